import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Dict, List, Sequence, Union

import numpy as np
import pandas as pd

from ..data.models import ACTIVE_STATUSES, Order, OrderStatus
from ..data.serializer import to_id_string, to_number
from .date_ranges import resolve_timezone

logger = logging.getLogger(__name__)

COMPLETED = OrderStatus.COMPLETED.value
CANCELLED = OrderStatus.CANCELLED.value

TARGET_PREP_MINUTES = 15
TOP_MENU_ITEMS_LIMIT = 10
TOP_VOUCHER_TEMPLATES_LIMIT = 5

# POS端临时录入的商品都挂在这个占位菜单下
POS_CUSTOM_PLACEHOLDER_MENU_NAME = '[POS] __CUSTOM_ITEM_PLACEHOLDER__'
CUSTOM_ITEM_KEY_PREFIX = 'CUSTOM::'

MONEY_COLUMNS = [
    'subtotal',
    'tax_amount',
    'service_charge_amount',
    'packaging_fee_amount',
    'delivery_fee_amount',
    'discount_amount',
    'total_amount',
]

ORDER_COLUMNS = [
    'order_id', 'placed_at', 'completed_at', 'order_type', 'status',
    'is_scheduled', 'payment_method', *MONEY_COLUMNS,
]
ITEM_COLUMNS = ['order_id', 'status', 'key', 'name', 'quantity', 'revenue']
DISCOUNT_COLUMNS = ['order_id', 'status', 'source', 'template_key', 'label', 'amount']


@dataclass
class OrderFrames:
    """一个时间窗口内的订单、商品、折扣明细表"""
    orders: pd.DataFrame
    items: pd.DataFrame
    discounts: pd.DataFrame

    @property
    def completed_orders(self) -> pd.DataFrame:
        return self.orders[self.orders['status'] == COMPLETED]


def _share(count: int, total: int) -> float:
    return count / total * 100 if total > 0 else 0.0


def _item_key(item) -> str:
    name = item.menu_name or item.menu_placeholder_name or 'Menu'
    if item.menu_placeholder_name == POS_CUSTOM_PLACEHOLDER_MENU_NAME or item.menu_id is None:
        return f"{CUSTOM_ITEM_KEY_PREFIX}{name}"
    return to_id_string(item.menu_id)


def build_order_frames(orders: Sequence[Order]) -> OrderFrames:
    """将订单快照展开为DataFrame，所有金额字段统一经过 to_number"""
    order_rows, item_rows, discount_rows = [], [], []

    for order in orders:
        order_id = to_id_string(order.id)
        status = order.status.value
        payment_method = (
            order.payment.payment_method.value
            if order.payment is not None and order.payment.payment_method is not None
            else 'UNKNOWN'
        )

        order_rows.append({
            'order_id': order_id,
            'placed_at': order.placed_at,
            'completed_at': order.completed_at,
            'order_type': order.order_type.value,
            'status': status,
            'is_scheduled': order.is_scheduled,
            'payment_method': payment_method,
            **{column: to_number(getattr(order, column)) for column in MONEY_COLUMNS},
        })

        for item in order.items:
            item_rows.append({
                'order_id': order_id,
                'status': status,
                'key': _item_key(item),
                'name': item.menu_name or item.menu_placeholder_name or 'Menu',
                'quantity': int(item.quantity or 0),
                'revenue': to_number(item.subtotal),
            })

        for discount in order.discounts:
            template_key = None
            if discount.voucher_template_id is not None:
                template_key = to_id_string(discount.voucher_template_id)
            elif discount.label:
                template_key = discount.label

            discount_rows.append({
                'order_id': order_id,
                'status': status,
                'source': discount.source.value if discount.source is not None else 'UNKNOWN',
                'template_key': template_key,
                'label': discount.label or 'Voucher',
                'amount': to_number(discount.discount_amount),
            })

    order_frame = pd.DataFrame.from_records(order_rows, columns=ORDER_COLUMNS)
    order_frame['placed_at'] = pd.to_datetime(order_frame['placed_at'], utc=True)
    order_frame['completed_at'] = pd.to_datetime(order_frame['completed_at'], utc=True, errors='coerce')
    order_frame['is_scheduled'] = order_frame['is_scheduled'].astype(bool)
    order_frame[MONEY_COLUMNS] = order_frame[MONEY_COLUMNS].astype(float)

    item_frame = pd.DataFrame.from_records(item_rows, columns=ITEM_COLUMNS)
    item_frame['quantity'] = item_frame['quantity'].astype(int)
    item_frame['revenue'] = item_frame['revenue'].astype(float)

    discount_frame = pd.DataFrame.from_records(discount_rows, columns=DISCOUNT_COLUMNS)
    discount_frame['amount'] = discount_frame['amount'].astype(float)

    return OrderFrames(orders=order_frame, items=item_frame, discounts=discount_frame)


def summarize_orders(frame: pd.DataFrame) -> Dict[str, Any]:
    """汇总一个窗口内的订单；金额只统计已完成订单"""
    total_orders = len(frame)
    completed = frame[frame['status'] == COMPLETED]
    completed_count = len(completed)
    cancelled_count = int((frame['status'] == CANCELLED).sum())
    pending_count = int(frame['status'].isin([s.value for s in ACTIVE_STATUSES]).sum())

    totals = {column: float(completed[column].sum()) for column in MONEY_COLUMNS}
    total_revenue = totals['total_amount']

    return {
        'total_orders': total_orders,
        'completed_orders': completed_count,
        'cancelled_orders': cancelled_count,
        'pending_orders': pending_count,
        'total_revenue': total_revenue,
        'subtotal': totals['subtotal'],
        'total_tax': totals['tax_amount'],
        'total_service_charge': totals['service_charge_amount'],
        'total_packaging_fee': totals['packaging_fee_amount'],
        'total_delivery_fee': totals['delivery_fee_amount'],
        'total_discount': totals['discount_amount'],
        # 净收入基于小计（不含各项费用），而非总金额
        'net_revenue': totals['subtotal'] - totals['discount_amount'],
        'average_order_value': total_revenue / completed_count if completed_count > 0 else 0.0,
        'completion_rate': completed_count / total_orders * 100 if total_orders > 0 else 0.0,
    }


def fees_breakdown(summary: Dict[str, Any]) -> Dict[str, float]:
    """费用与折扣明细"""
    return {
        'tax': summary['total_tax'],
        'service_charge': summary['total_service_charge'],
        'packaging_fee': summary['total_packaging_fee'],
        'delivery_fee': summary['total_delivery_fee'],
        'discount': summary['total_discount'],
    }


def period_comparison(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """环比指标"""
    metrics = [
        ('Total Revenue', 'total_revenue', 'currency'),
        ('Net Revenue', 'net_revenue', 'currency'),
        ('Total Orders', 'total_orders', 'number'),
        ('Avg. Order Value', 'average_order_value', 'currency'),
        ('Completion Rate', 'completion_rate', 'decimal'),
    ]

    def change_pct(now: float, before: float) -> float:
        if before > 0:
            return (now - before) / before * 100
        return 100.0 if now > 0 else 0.0

    return {
        'metrics': [
            {
                'label': label,
                'current': current[key],
                'previous': previous[key],
                'format': fmt,
                'change_pct': change_pct(current[key], previous[key]),
            }
            for label, key, fmt in metrics
        ]
    }


class ReportAggregator:
    """报表聚合器：把一个窗口的订单转换为各个报表维度"""

    def __init__(self, timezone: Union[str, tzinfo, None] = None):
        self.timezone = resolve_timezone(timezone)

    def _local(self, instants: pd.Series) -> pd.Series:
        return instants.dt.tz_convert(self.timezone)

    def order_type_breakdown(self, completed: pd.DataFrame) -> List[Dict[str, Any]]:
        grouped = completed.groupby('order_type', sort=False)['total_amount'].agg(
            order_count='size', revenue='sum'
        )
        total = len(completed)
        return [
            {
                'type': row.Index,
                'count': int(row.order_count),
                'revenue': float(row.revenue),
                'percentage': _share(int(row.order_count), total),
            }
            for row in grouped.itertuples()
        ]

    def order_status_breakdown(self, orders: pd.DataFrame) -> List[Dict[str, Any]]:
        # 包含所有状态，便于展示取消/待处理数量
        counts = orders.groupby('status', sort=False).size()
        return [{'status': status, 'count': int(count)} for status, count in counts.items()]

    def payment_breakdown(self, completed: pd.DataFrame) -> List[Dict[str, Any]]:
        grouped = completed.groupby('payment_method', sort=False)['total_amount'].agg(
            order_count='size', revenue='sum'
        )
        total = len(completed)
        return [
            {
                'method': row.Index,
                'count': int(row.order_count),
                'revenue': float(row.revenue),
                'percentage': _share(int(row.order_count), total),
            }
            for row in grouped.itertuples()
        ]

    def voucher_summary(self, discounts: pd.DataFrame) -> Dict[str, List[Dict[str, Any]]]:
        completed = discounts[discounts['status'] == COMPLETED]

        by_source = completed.groupby('source', sort=False)['amount'].agg(usage_count='size', amount='sum')

        templated = completed[completed['template_key'].notna()]
        templates = (
            templated.groupby('template_key', sort=False)
            .agg(label=('label', 'first'), usage_count=('amount', 'size'), amount=('amount', 'sum'))
            .sort_values('amount', ascending=False, kind='stable')
            .head(TOP_VOUCHER_TEMPLATES_LIMIT)
        )

        return {
            'by_source': [
                {'source': row.Index, 'count': int(row.usage_count), 'amount': float(row.amount)}
                for row in by_source.itertuples()
            ],
            'top_templates': [
                {'label': row.label, 'count': int(row.usage_count), 'amount': float(row.amount)}
                for row in templates.itertuples()
            ],
        }

    def top_menu_items(self, items: pd.DataFrame) -> List[Dict[str, Any]]:
        completed = items[items['status'] == COMPLETED]
        ranked = (
            completed.groupby('key', sort=False)
            .agg(name=('name', 'last'), quantity=('quantity', 'sum'), revenue=('revenue', 'sum'))
            .sort_values('quantity', ascending=False, kind='stable')
            .head(TOP_MENU_ITEMS_LIMIT)
        )
        return [
            {'key': row.Index, 'name': row.name, 'quantity': int(row.quantity), 'revenue': float(row.revenue)}
            for row in ranked.itertuples()
        ]

    def daily_revenue(self, completed: pd.DataFrame) -> List[Dict[str, Any]]:
        """按商户时区的自然日汇总已完成订单"""
        day_keys = self._local(completed['placed_at']).dt.strftime('%Y-%m-%d')
        daily = completed.groupby(day_keys)['total_amount'].agg(revenue='sum', order_count='size').sort_index()
        return [
            {'date': row.Index, 'total_revenue': float(row.revenue), 'total_orders': int(row.order_count)}
            for row in daily.itertuples()
        ]

    def hourly_performance(self, orders: pd.DataFrame) -> List[Dict[str, Any]]:
        """按商户时区的小时统计订单量、平均出餐时间和效率评分"""
        active = orders[orders['status'] != CANCELLED]
        prep_minutes = (active['completed_at'] - active['placed_at']).dt.total_seconds() / 60
        hourly = (
            active.assign(
                hour=self._local(active['placed_at']).dt.hour,
                prep_minutes=prep_minutes,
                completed_revenue=active['total_amount'].where(active['status'] == COMPLETED, 0.0),
            )
            .groupby('hour')
            .agg(
                order_count=('status', 'size'),
                avg_prep=('prep_minutes', 'mean'),
                revenue=('completed_revenue', 'sum'),
            )
            .reindex(range(24))
        )

        results = []
        for hour, row in hourly.iterrows():
            order_count = 0 if pd.isna(row['order_count']) else int(row['order_count'])
            avg_prep = None if pd.isna(row['avg_prep']) else float(row['avg_prep'])
            revenue = 0.0 if pd.isna(row['revenue']) else float(row['revenue'])

            # 没有出餐时间数据时按0分钟计算，不额外扣分
            prep_time_score = max(0.0, 100 - ((avg_prep or 0.0) / TARGET_PREP_MINUTES) * 100)
            volume_score = min(100.0, order_count * 10.0)
            efficiency = float(np.clip((prep_time_score + volume_score) / 2, 0, 100))

            results.append({
                'hour': int(hour),
                'order_count': order_count,
                'avg_prep_time': avg_prep,
                'revenue': revenue,
                'efficiency': efficiency,
            })

        return results

    def scheduled_summary(self, orders: pd.DataFrame) -> Dict[str, Any]:
        scheduled = orders[orders['is_scheduled']]
        return {
            'scheduled_count': int((scheduled['status'] != CANCELLED).sum()),
            'scheduled_revenue': float(scheduled.loc[scheduled['status'] == COMPLETED, 'total_amount'].sum()),
        }

    def aggregate(self, frames: OrderFrames) -> Dict[str, Any]:
        """计算当前窗口的全部报表维度"""
        completed = frames.completed_orders
        logger.debug(f"Aggregating {len(frames.orders)} orders ({len(completed)} completed)")

        summary = summarize_orders(frames.orders)
        return {
            'summary': summary,
            'fees_breakdown': fees_breakdown(summary),
            'voucher_summary': self.voucher_summary(frames.discounts),
            'order_type_breakdown': self.order_type_breakdown(completed),
            'order_status_breakdown': self.order_status_breakdown(frames.orders),
            'payment_breakdown': self.payment_breakdown(completed),
            'scheduled_summary': self.scheduled_summary(frames.orders),
            'daily_revenue': self.daily_revenue(completed),
            'top_menu_items': self.top_menu_items(frames.items),
            'hourly_performance': self.hourly_performance(frames.orders),
        }
