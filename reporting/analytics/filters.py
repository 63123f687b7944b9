import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional

from ..data.models import DateRange, Identifier, Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderFilters:
    """用户提供的筛选条件，None 表示该维度不限制"""
    order_types: Optional[List[str]] = None
    statuses: Optional[List[str]] = None
    payment_methods: Optional[List[str]] = None
    voucher_sources: Optional[List[str]] = None
    scheduled_only: bool = False


@dataclass(frozen=True)
class OrderQuery:
    """订单查询条件：维度之间为 AND，维度内部为 IN"""
    merchant_id: Identifier
    date_range: DateRange
    filters: OrderFilters

    def matches(self, order: Order) -> bool:
        """在内存中判断订单是否满足查询条件"""
        if str(order.merchant_id) != str(self.merchant_id):
            return False
        if not self.date_range.contains(order.placed_at):
            return False

        filters = self.filters
        if filters.order_types and order.order_type.value not in filters.order_types:
            return False
        if filters.statuses and order.status.value not in filters.statuses:
            return False
        if filters.scheduled_only and not order.is_scheduled:
            return False
        if filters.voucher_sources and not any(
                discount.source is not None and discount.source.value in filters.voucher_sources
                for discount in order.discounts
        ):
            return False
        if filters.payment_methods:
            method = order.payment.payment_method if order.payment else None
            if method is None or method.value not in filters.payment_methods:
                return False

        return True


def parse_list(value: Optional[str]) -> Optional[List[str]]:
    """解析逗号分隔的参数，空列表视为未提供"""
    if not value:
        return None
    items = [entry.strip() for entry in value.split(',') if entry.strip()]
    return items or None


def build_order_filters(params: Mapping[str, Optional[str]]) -> OrderFilters:
    """从请求参数构建筛选条件"""
    filters = OrderFilters(
        order_types=parse_list(params.get('orderType')),
        statuses=parse_list(params.get('status')),
        payment_methods=parse_list(params.get('paymentMethod')),
        voucher_sources=parse_list(params.get('voucherSource')),
        scheduled_only=params.get('scheduledOnly') == 'true',
    )
    logger.debug(f"Order filters: {filters}")
    return filters


def build_order_query(merchant_id: Identifier, date_range: DateRange, filters: OrderFilters) -> OrderQuery:
    """商户ID始终由调用方显式传入，不从请求参数读取"""
    return OrderQuery(merchant_id=merchant_id, date_range=date_range, filters=filters)
