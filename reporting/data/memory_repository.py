# reporting/data/memory_repository.py
import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .models import (
    DecimalLike, DecimalTriple, Identifier, Merchant, Order, OrderDiscount, OrderItem, Payment,
)
from .repositories import BaseOrderRepository, OrderSourceError
from ..analytics.filters import OrderQuery

logger = logging.getLogger(__name__)


def _decimal(raw: Any) -> DecimalLike:
    """JSON中的任意精度小数以 {"s","e","d"} 对象表示"""
    if isinstance(raw, dict):
        return DecimalTriple.from_mapping(raw)
    return raw


def _instant(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.fromisoformat(raw.replace('Z', '+00:00'))


def order_from_dict(raw: Dict[str, Any]) -> Order:
    """从camelCase的JSON记录构建订单"""
    payment = raw.get('payment')
    return Order(
        id=raw['id'],
        merchant_id=raw['merchantId'],
        placed_at=_instant(raw['placedAt']),
        completed_at=_instant(raw.get('completedAt')),
        order_type=raw['orderType'],
        status=raw['status'],
        is_scheduled=raw.get('isScheduled', False),
        subtotal=_decimal(raw.get('subtotal')),
        tax_amount=_decimal(raw.get('taxAmount')),
        service_charge_amount=_decimal(raw.get('serviceChargeAmount')),
        packaging_fee_amount=_decimal(raw.get('packagingFeeAmount')),
        delivery_fee_amount=_decimal(raw.get('deliveryFeeAmount')),
        discount_amount=_decimal(raw.get('discountAmount')),
        total_amount=_decimal(raw.get('totalAmount')),
        items=[
            OrderItem(
                menu_id=item.get('menuId'),
                menu_name=item.get('menuName'),
                quantity=item.get('quantity', 1),
                subtotal=_decimal(item.get('subtotal')),
                menu_placeholder_name=(item.get('menu') or {}).get('name'),
            )
            for item in raw.get('items', [])
        ],
        discounts=[
            OrderDiscount(
                source=discount.get('source'),
                discount_amount=_decimal(discount.get('discountAmount')),
                voucher_template_id=discount.get('voucherTemplateId'),
                label=discount.get('label'),
            )
            for discount in raw.get('discounts', [])
        ],
        payment=Payment(payment_method=payment.get('paymentMethod'), status=payment.get('status')) if payment else None,
    )


class InMemoryOrderRepository(BaseOrderRepository):
    """内存订单数据源（用于开发、演示和测试）"""

    def __init__(self, orders: Iterable[Order] = (), merchants: Iterable[Merchant] = ()):
        self._lock = threading.Lock()
        self._orders: List[Order] = list(orders)
        self._merchants: Dict[str, Merchant] = {str(m.id): m for m in merchants}
        logger.info(f"Using in-memory order repository ({len(self._orders)} orders)")

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryOrderRepository":
        """从JSON文件加载商户和订单"""
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            merchants = [
                Merchant(id=m['id'], currency=m.get('currency'), timezone=m.get('timezone'))
                for m in payload.get('merchants', [])
            ]
            orders = [order_from_dict(raw) for raw in payload.get('orders', [])]
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load order fixtures from {path}: {e}")
            raise OrderSourceError(f"Failed to load order fixtures: {e}") from e

        logger.info(f"Loaded {len(orders)} orders from {path}")
        return cls(orders=orders, merchants=merchants)

    def add_orders(self, orders: Iterable[Order]):
        with self._lock:
            self._orders.extend(orders)

    def add_merchant(self, merchant: Merchant):
        with self._lock:
            self._merchants[str(merchant.id)] = merchant

    def find_orders(self, query: OrderQuery) -> List[Order]:
        with self._lock:
            snapshot = list(self._orders)
        return [order for order in snapshot if query.matches(order)]

    def get_merchant(self, merchant_id: Identifier) -> Optional[Merchant]:
        return self._merchants.get(str(merchant_id))


def generate_sample_orders(
        merchant_id: Identifier,
        days: int = 60,
        end: Optional[datetime] = None,
        seed: int = 42
) -> List[Order]:
    """生成模拟订单数据"""
    rng = np.random.default_rng(seed)
    end = end or datetime.now(timezone.utc)

    menu = [
        (1, 'Chicken Kebab', 14.5),
        (2, 'Lamb Kebab', 16.0),
        (3, 'Falafel Wrap', 12.0),
        (4, 'Hot Chips', 6.5),
        (5, 'Baklava', 4.0),
        (6, 'Soft Drink', 3.5),
    ]
    order_types = ['DINE_IN', 'TAKEAWAY', 'DELIVERY', 'PICKUP']
    statuses = ['COMPLETED'] * 8 + ['CANCELLED', 'PENDING']
    methods = ['CASH', 'CARD', 'QRIS', 'BANK_TRANSFER']

    orders = []
    order_id = 1
    for day in range(days, 0, -1):
        day_start = (end - timedelta(days=day)).replace(hour=0, minute=0, second=0, microsecond=0)
        # 周末订单更多
        base = 30 if day_start.weekday() >= 5 else 20
        for _ in range(max(int(rng.normal(base, 4)), 1)):
            placed_at = day_start + timedelta(minutes=int(rng.integers(10 * 60, 22 * 60)))
            status = statuses[int(rng.integers(len(statuses)))]

            items = []
            for menu_id, name, price in (menu[i] for i in rng.choice(len(menu), size=int(rng.integers(1, 4)), replace=False)):
                quantity = int(rng.integers(1, 3))
                items.append(OrderItem(menu_id=menu_id, menu_name=name, quantity=quantity, subtotal=round(price * quantity, 2)))

            subtotal = round(sum(item.subtotal for item in items), 2)
            tax = round(subtotal * 0.1, 2)
            discounts = []
            if rng.random() < 0.15:
                discounts.append(OrderDiscount(source='CUSTOMER_VOUCHER', discount_amount=5.0,
                                               voucher_template_id=900, label='WELCOME5'))
            discount = sum(d.discount_amount for d in discounts)

            orders.append(Order(
                id=order_id,
                merchant_id=merchant_id,
                placed_at=placed_at,
                completed_at=placed_at + timedelta(minutes=float(rng.uniform(6, 25))) if status == 'COMPLETED' else None,
                order_type=order_types[int(rng.integers(len(order_types)))],
                status=status,
                is_scheduled=bool(rng.random() < 0.1),
                subtotal=subtotal,
                tax_amount=tax,
                discount_amount=discount,
                total_amount=round(subtotal + tax - discount, 2),
                items=items,
                discounts=discounts,
                payment=Payment(payment_method=methods[int(rng.integers(len(methods)))], status='COMPLETED'),
            ))
            order_id += 1

    return orders
