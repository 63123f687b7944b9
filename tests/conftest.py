import pytest
from datetime import datetime, timezone

from reporting.data.models import Order, OrderItem, OrderDiscount, Payment


@pytest.fixture
def make_order():
    """构造订单的工厂函数"""
    counter = {'id': 0}

    def _make(
            placed_at=datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc),
            status='COMPLETED',
            order_type='DINE_IN',
            total=100,
            subtotal=None,
            merchant_id=1,
            items=None,
            discounts=None,
            payment_method='CARD',
            **fields
    ):
        counter['id'] += 1
        return Order(
            id=fields.pop('id', counter['id']),
            merchant_id=merchant_id,
            placed_at=placed_at,
            order_type=order_type,
            status=status,
            total_amount=total,
            subtotal=total if subtotal is None else subtotal,
            items=items or [],
            discounts=discounts or [],
            payment=Payment(payment_method=payment_method, status='COMPLETED') if payment_method else None,
            **fields
        )

    return _make


@pytest.fixture
def item():
    def _item(menu_id, quantity, subtotal=10, name=None, placeholder=None):
        return OrderItem(
            menu_id=menu_id,
            menu_name=name or f"Menu {menu_id}",
            quantity=quantity,
            subtotal=subtotal,
            menu_placeholder_name=placeholder,
        )

    return _item


@pytest.fixture
def discount():
    def _discount(source='POS_VOUCHER', amount=5, template_id=None, label=None):
        return OrderDiscount(source=source, discount_amount=amount, voucher_template_id=template_id, label=label)

    return _discount
