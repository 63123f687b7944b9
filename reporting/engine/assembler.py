from typing import Any, Dict, List, Optional

from ..analytics.aggregation import build_order_frames, summarize_orders
from ..analytics.anomaly import AnomalySettings
from ..analytics.date_ranges import PeriodRanges


def _range_dict(date_range) -> Dict[str, Any]:
    return {'start': date_range.start, 'end': date_range.end}


class ReportAssembler:
    """把聚合结果和异常检测结果组合为固定结构的报表"""

    FACET_DEFAULTS = {
        'summary': lambda: summarize_orders(build_order_frames([]).orders),
        'fees_breakdown': lambda: {
            'tax': 0.0, 'service_charge': 0.0, 'packaging_fee': 0.0, 'delivery_fee': 0.0, 'discount': 0.0,
        },
        'voucher_summary': lambda: {'by_source': [], 'top_templates': []},
        'order_type_breakdown': list,
        'order_status_breakdown': list,
        'payment_breakdown': list,
        'scheduled_summary': lambda: {'scheduled_count': 0, 'scheduled_revenue': 0.0},
        'daily_revenue': list,
        'top_menu_items': list,
        'hourly_performance': list,
    }

    def assemble(
            self,
            period: str,
            ranges: PeriodRanges,
            currency: str,
            timezone: str,
            facets: Dict[str, Any],
            period_comparison: Dict[str, Any],
            anomalies: Optional[List[Dict[str, Any]]],
            anomaly_settings: AnomalySettings
    ) -> Dict[str, Any]:
        # 缺失的维度补为零值，保证返回结构稳定
        complete = {
            name: facets[name] if facets.get(name) is not None else default()
            for name, default in self.FACET_DEFAULTS.items()
        }

        return {
            'period': period,
            'date_range': {
                'current': _range_dict(ranges.current),
                'previous': _range_dict(ranges.previous),
            },
            'merchant': {'currency': currency, 'timezone': timezone},
            'summary': complete['summary'],
            'period_comparison': period_comparison or {'metrics': []},
            'voucher_summary': complete['voucher_summary'],
            'fees_breakdown': complete['fees_breakdown'],
            'order_type_breakdown': complete['order_type_breakdown'],
            'order_status_breakdown': complete['order_status_breakdown'],
            'payment_breakdown': complete['payment_breakdown'],
            'scheduled_summary': complete['scheduled_summary'],
            'daily_revenue': complete['daily_revenue'],
            'anomalies': anomalies or [],
            'anomaly_settings': anomaly_settings.to_dict(),
            'top_menu_items': complete['top_menu_items'],
            'hourly_performance': complete['hourly_performance'],
        }
