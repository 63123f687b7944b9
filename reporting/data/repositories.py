import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import timezone
from typing import Any, Dict, List, Optional, Tuple

from .connectors import ClickHouseConnector
from .models import Identifier, Merchant, Order, OrderDiscount, OrderItem, Payment
from ..analytics.filters import OrderQuery

logger = logging.getLogger(__name__)


class OrderSourceError(RuntimeError):
    """订单数据源不可用或返回了无法解析的数据"""


class BaseOrderRepository(ABC):
    """订单数据源的读取接口，需要支持并发读取"""

    @abstractmethod
    def find_orders(self, query: OrderQuery) -> List[Order]:
        """按查询条件返回订单（包含商品、折扣、支付信息）"""

    @abstractmethod
    def get_merchant(self, merchant_id: Identifier) -> Optional[Merchant]:
        """返回商户的币种与时区"""


def _utc_naive(value):
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def build_order_where(query: OrderQuery) -> Tuple[str, Dict[str, Any]]:
    """将 OrderQuery 转换为参数化的 WHERE 子句"""
    clauses = [
        "o.merchant_id = {merchant_id:UInt64}",
        "o.placed_at >= {start:DateTime64(6, 'UTC')}",
        "o.placed_at <= {end:DateTime64(6, 'UTC')}",
    ]
    params: Dict[str, Any] = {
        'merchant_id': int(query.merchant_id),
        'start': _utc_naive(query.date_range.start),
        'end': _utc_naive(query.date_range.end),
    }

    filters = query.filters
    if filters.order_types:
        clauses.append("o.order_type IN {order_types:Array(String)}")
        params['order_types'] = list(filters.order_types)

    if filters.statuses:
        clauses.append("o.status IN {statuses:Array(String)}")
        params['statuses'] = list(filters.statuses)

    if filters.scheduled_only:
        clauses.append("o.is_scheduled = 1")

    if filters.voucher_sources:
        clauses.append(
            "o.id IN (SELECT order_id FROM order_discounts WHERE source IN {voucher_sources:Array(String)})"
        )
        params['voucher_sources'] = list(filters.voucher_sources)

    if filters.payment_methods:
        clauses.append("p.payment_method IN {payment_methods:Array(String)}")
        params['payment_methods'] = list(filters.payment_methods)

    return " AND ".join(clauses), params


class ClickHouseOrderRepository(BaseOrderRepository):
    """基于ClickHouse的订单数据源"""

    ORDER_SQL = """
        SELECT
            o.id AS id,
            o.merchant_id AS merchant_id,
            o.placed_at AS placed_at,
            o.completed_at AS completed_at,
            o.order_type AS order_type,
            o.status AS status,
            o.is_scheduled AS is_scheduled,
            o.subtotal AS subtotal,
            o.tax_amount AS tax_amount,
            o.service_charge_amount AS service_charge_amount,
            o.packaging_fee_amount AS packaging_fee_amount,
            o.delivery_fee_amount AS delivery_fee_amount,
            o.discount_amount AS discount_amount,
            o.total_amount AS total_amount,
            p.payment_method AS payment_method,
            p.status AS payment_status
        FROM orders AS o
        LEFT JOIN payments AS p ON p.order_id = o.id
        WHERE {where}
        ORDER BY o.placed_at
    """

    ITEM_SQL = """
        SELECT
            oi.order_id AS order_id,
            oi.menu_id AS menu_id,
            oi.menu_name AS menu_name,
            m.name AS menu_placeholder_name,
            oi.quantity AS quantity,
            oi.subtotal AS subtotal
        FROM order_items AS oi
        LEFT JOIN menus AS m ON m.id = oi.menu_id
        WHERE oi.order_id IN {order_ids:Array(UInt64)}
        ORDER BY oi.order_id, oi.id
    """

    DISCOUNT_SQL = """
        SELECT
            order_id,
            source,
            discount_amount,
            voucher_template_id,
            label
        FROM order_discounts
        WHERE order_id IN {order_ids:Array(UInt64)}
        ORDER BY order_id, id
    """

    MERCHANT_SQL = """
        SELECT id, currency, timezone
        FROM merchants
        WHERE id = {merchant_id:UInt64}
        LIMIT 1
    """

    def __init__(self, db: Optional[ClickHouseConnector] = None):
        self.db = db or ClickHouseConnector()

    def find_orders(self, query: OrderQuery) -> List[Order]:
        try:
            where, params = build_order_where(query)
            order_rows = self.db.query_rows(self.ORDER_SQL.format(where=where), params)
            order_ids = [row['id'] for row in order_rows]

            items_by_order = defaultdict(list)
            discounts_by_order = defaultdict(list)
            if order_ids:
                for row in self.db.query_rows(self.ITEM_SQL, {'order_ids': order_ids}):
                    items_by_order[row['order_id']].append(OrderItem(
                        menu_id=row['menu_id'],
                        menu_name=row['menu_name'],
                        quantity=row['quantity'],
                        subtotal=row['subtotal'],
                        menu_placeholder_name=row['menu_placeholder_name'],
                    ))
                for row in self.db.query_rows(self.DISCOUNT_SQL, {'order_ids': order_ids}):
                    discounts_by_order[row['order_id']].append(OrderDiscount(
                        source=row['source'] or None,
                        discount_amount=row['discount_amount'],
                        voucher_template_id=row['voucher_template_id'],
                        label=row['label'] or None,
                    ))

            orders = [
                self._to_order(row, items_by_order[row['id']], discounts_by_order[row['id']])
                for row in order_rows
            ]
        except Exception as e:
            logger.error(f"Failed to load orders for merchant {query.merchant_id}: {e}")
            raise OrderSourceError(f"Failed to load orders: {e}") from e

        logger.debug(f"Loaded {len(orders)} orders for merchant {query.merchant_id}")
        return orders

    @staticmethod
    def _to_order(row: Dict[str, Any], items: List[OrderItem], discounts: List[OrderDiscount]) -> Order:
        # LEFT JOIN 未命中时 payment_method 为空字符串
        payment = None
        if row.get('payment_method'):
            payment = Payment(payment_method=row['payment_method'], status=row.get('payment_status') or None)

        return Order(
            id=row['id'],
            merchant_id=row['merchant_id'],
            placed_at=row['placed_at'],
            completed_at=row['completed_at'],
            order_type=row['order_type'],
            status=row['status'],
            is_scheduled=bool(row['is_scheduled']),
            subtotal=row['subtotal'],
            tax_amount=row['tax_amount'],
            service_charge_amount=row['service_charge_amount'],
            packaging_fee_amount=row['packaging_fee_amount'],
            delivery_fee_amount=row['delivery_fee_amount'],
            discount_amount=row['discount_amount'],
            total_amount=row['total_amount'],
            items=items,
            discounts=discounts,
            payment=payment,
        )

    def get_merchant(self, merchant_id: Identifier) -> Optional[Merchant]:
        try:
            rows = self.db.query_rows(self.MERCHANT_SQL, {'merchant_id': int(merchant_id)})
        except Exception as e:
            logger.error(f"Failed to load merchant {merchant_id}: {e}")
            raise OrderSourceError(f"Failed to load merchant: {e}") from e

        if not rows:
            return None
        row = rows[0]
        return Merchant(id=row['id'], currency=row['currency'] or None, timezone=row['timezone'] or None)
