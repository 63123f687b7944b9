"""数值与标识符的统一转换"""
import math
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import DecimalLike, DecimalTriple, Identifier

# decimal.js 每个数组元素保存7位十进制数字
_CHUNK_DIGITS = 7


def triple_to_decimal(value: DecimalTriple) -> Decimal:
    """将 {sign, exponent, digits} 展开为 Decimal

    value = sign × digits × 10^(exponent − digitCount + 1)
    """
    if not value.digits:
        return Decimal(0)

    head, *rest = value.digits
    digit_str = str(abs(int(head))) + "".join(str(abs(int(chunk))).zfill(_CHUNK_DIGITS) for chunk in rest)
    sign_bit = 1 if value.sign < 0 else 0
    exponent = value.exponent - len(digit_str) + 1

    return Decimal((sign_bit, tuple(int(c) for c in digit_str), exponent))


def to_number(value: DecimalLike) -> float:
    """将金额字段统一转换为float，缺失或无法解析时返回0"""
    if value is None:
        return 0.0

    if isinstance(value, bool):
        return float(value)

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else 0.0

    if isinstance(value, DecimalTriple):
        return float(triple_to_decimal(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return 0.0
        return number if math.isfinite(number) else 0.0

    raise TypeError(f"Unsupported decimal-like value: {type(value).__name__}")


def to_id_string(value: Optional[Identifier]) -> Optional[str]:
    """大整数ID序列化为字符串，避免64位浮点精度丢失"""
    if value is None:
        return None
    return str(value)
