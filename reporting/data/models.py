from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Union
from dataclasses import dataclass, field


class OrderType(str, Enum):
    """订单类型"""
    DINE_IN = "DINE_IN"
    TAKEAWAY = "TAKEAWAY"
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class OrderStatus(str, Enum):
    """订单状态"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    PREPARING = "PREPARING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# 尚未完成也未取消的状态
ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})


class DiscountSource(str, Enum):
    """折扣来源"""
    POS_VOUCHER = "POS_VOUCHER"
    CUSTOMER_VOUCHER = "CUSTOMER_VOUCHER"
    MANUAL = "MANUAL"


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "CASH"
    CARD = "CARD"
    QRIS = "QRIS"
    BANK_TRANSFER = "BANK_TRANSFER"


@dataclass(frozen=True)
class DecimalTriple:
    """任意精度小数 {sign, exponent, digits}"""
    sign: int
    exponent: int
    digits: Sequence[int]

    @classmethod
    def from_mapping(cls, raw: dict) -> "DecimalTriple":
        """从 {"s": 1, "e": 2, "d": [5]} 结构创建"""
        return cls(sign=int(raw["s"]), exponent=int(raw["e"]), digits=tuple(int(d) for d in raw["d"]))


DecimalLike = Union[None, int, float, str, Decimal, DecimalTriple]
Identifier = Union[int, str]


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """无时区的时间视为UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class DateRange:
    """时间窗口，两端均包含"""
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) <= self.end


@dataclass
class OrderItem:
    """订单商品"""
    menu_id: Optional[Identifier]
    menu_name: Optional[str]
    quantity: int
    subtotal: DecimalLike
    # 关联菜单的名称，用于识别POS自定义商品占位菜单
    menu_placeholder_name: Optional[str] = None


@dataclass
class OrderDiscount:
    """订单折扣"""
    source: Optional[DiscountSource]
    discount_amount: DecimalLike
    voucher_template_id: Optional[Identifier] = None
    label: Optional[str] = None

    def __post_init__(self):
        if self.source is not None:
            self.source = DiscountSource(self.source)


@dataclass
class Payment:
    """支付信息"""
    payment_method: Optional[PaymentMethod]
    status: Optional[str] = None

    def __post_init__(self):
        if self.payment_method is not None:
            self.payment_method = PaymentMethod(self.payment_method)


@dataclass
class Order:
    """订单快照（只读）"""
    id: Identifier
    merchant_id: Identifier
    placed_at: datetime
    order_type: OrderType
    status: OrderStatus
    completed_at: Optional[datetime] = None
    is_scheduled: bool = False
    subtotal: DecimalLike = None
    tax_amount: DecimalLike = None
    service_charge_amount: DecimalLike = None
    packaging_fee_amount: DecimalLike = None
    delivery_fee_amount: DecimalLike = None
    discount_amount: DecimalLike = None
    total_amount: DecimalLike = None
    items: List[OrderItem] = field(default_factory=list)
    discounts: List[OrderDiscount] = field(default_factory=list)
    payment: Optional[Payment] = None

    def __post_init__(self):
        self.order_type = OrderType(self.order_type)
        self.status = OrderStatus(self.status)
        self.placed_at = ensure_utc(self.placed_at)
        self.completed_at = ensure_utc(self.completed_at)
        self.is_scheduled = bool(self.is_scheduled)


@dataclass
class Merchant:
    """商户元数据"""
    id: Identifier
    currency: Optional[str] = None
    timezone: Optional[str] = None
