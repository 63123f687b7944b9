import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from config.settings import ReportConfig
from reporting.analytics.date_ranges import INSTANT
from reporting.data.memory_repository import InMemoryOrderRepository
from reporting.data.models import Merchant
from reporting.data.repositories import OrderSourceError
from reporting.engine.assembler import ReportAssembler
from reporting.engine.core import ReportEngine

REPORT_KEYS = {
    'period', 'date_range', 'merchant', 'summary', 'period_comparison', 'voucher_summary',
    'fees_breakdown', 'order_type_breakdown', 'order_status_breakdown', 'payment_breakdown',
    'scheduled_summary', 'daily_revenue', 'anomalies', 'anomaly_settings', 'top_menu_items',
    'hourly_performance',
}


@pytest.fixture
def report_config():
    return ReportConfig(
        default_currency="AUD",
        default_timezone="UTC",
        anomaly_window=7,
        anomaly_std_dev=2.0,
        anomaly_min_drop_pct=15.0,
    )


class TestReportEngine:
    """测试报表引擎"""

    @pytest.fixture
    def fortnight_orders(self, make_order):
        """1月1日至14日每天一笔已完成订单，前13天100，第14天20"""
        start = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        orders = [
            make_order(placed_at=start + timedelta(days=day), total=100)
            for day in range(13)
        ]
        orders.append(make_order(placed_at=start + timedelta(days=13), total=20))
        # 前一窗口（2024年12月）的订单
        orders.append(make_order(placed_at=datetime(2024, 12, 25, 9, 0, tzinfo=timezone.utc), total=400))
        # 其他商户
        orders.append(make_order(merchant_id=2, placed_at=start, total=1000))
        return orders

    @pytest.fixture
    def engine(self, fortnight_orders, report_config):
        repository = InMemoryOrderRepository(
            orders=fortnight_orders,
            merchants=[Merchant(id=1, currency="IDR", timezone="Asia/Jakarta")],
        )
        return ReportEngine(repository, report_config)

    def test_revenue_drop_reported_as_anomaly(self, engine):
        report = engine.build_report(1, {
            "period": "custom",
            "startDate": "2025-01-01",
            "endDate": "2025-01-14",
            "anomalyWindow": "7",
            "anomalyStdDev": "2",
            "anomalyMinDropPct": "15",
        })

        assert set(report) == REPORT_KEYS
        assert len(report["daily_revenue"]) == 14
        assert report["summary"]["total_revenue"] == 1320

        assert len(report["anomalies"]) == 1
        anomaly = report["anomalies"][0]
        assert anomaly["date"] == "2025-01-14"
        assert anomaly["revenue"] == 20
        assert anomaly["expected"] == pytest.approx(100)
        assert anomaly["delta_pct"] == pytest.approx(-80)

        assert report["anomaly_settings"] == {"window_size": 7, "std_dev_multiplier": 2.0, "min_drop_pct": 15.0}

    def test_merchant_metadata_and_previous_window(self, engine):
        report = engine.build_report("1", {"period": "custom", "startDate": "2025-01-01", "endDate": "2025-01-14"})

        assert report["merchant"] == {"currency": "IDR", "timezone": "Asia/Jakarta"}

        current = report["date_range"]["current"]
        previous = report["date_range"]["previous"]
        assert current["end"] - current["start"] == previous["end"] - previous["start"]
        assert current["start"] - previous["end"] == INSTANT

        comparison = {m["label"]: m for m in report["period_comparison"]["metrics"]}
        assert comparison["Total Revenue"]["previous"] == 400
        assert comparison["Total Orders"]["current"] == 14

    def test_unknown_merchant_uses_defaults(self, engine):
        report = engine.build_report(77, {})

        assert report["merchant"] == {"currency": "AUD", "timezone": "UTC"}
        assert report["period"] == "month"
        assert report["summary"]["total_orders"] == 0
        assert report["anomalies"] == []
        assert len(report["hourly_performance"]) == 24

    @pytest.mark.parametrize("requested, applied", [("WEEK", "week"), ("bogus", "month"), ("", "month")])
    def test_reports_applied_period(self, engine, requested, applied):
        report = engine.build_report(1, {"period": requested})
        assert report["period"] == applied

    def test_invalid_custom_reported_as_month(self, engine):
        report = engine.build_report(1, {"period": "custom", "startDate": "2025-02-01", "endDate": "2025-01-01"})
        assert report["period"] == "month"

    def test_filters_applied_to_both_windows(self, engine):
        report = engine.build_report(1, {
            "period": "custom",
            "startDate": "2025-01-01",
            "endDate": "2025-01-14",
            "orderType": "DELIVERY",
        })
        assert report["summary"]["total_orders"] == 0
        assert report["period_comparison"]["metrics"][0]["previous"] == 0

    def test_source_failure_propagates(self, report_config):
        repository = Mock()
        repository.get_merchant.return_value = None
        repository.find_orders.side_effect = OrderSourceError("down")

        engine = ReportEngine(repository, report_config)

        with pytest.raises(OrderSourceError):
            engine.build_report(1, {})

    def test_windows_fetched_with_same_filters(self, report_config):
        repository = Mock()
        repository.get_merchant.return_value = None
        repository.find_orders.return_value = []

        ReportEngine(repository, report_config).build_report(5, {"status": "COMPLETED"})

        queries = [call.args[0] for call in repository.find_orders.call_args_list]
        assert len(queries) == 2
        assert {q.merchant_id for q in queries} == {5}
        assert all(q.filters.statuses == ["COMPLETED"] for q in queries)


class TestReportAssembler:
    """测试报表组装"""

    def test_missing_facets_are_zero_valued(self):
        from reporting.analytics.anomaly import AnomalySettings
        from reporting.analytics.date_ranges import resolve_date_range

        report = ReportAssembler().assemble(
            period="week",
            ranges=resolve_date_range("week"),
            currency="AUD",
            timezone="UTC",
            facets={},
            period_comparison=None,
            anomalies=None,
            anomaly_settings=AnomalySettings(),
        )

        assert set(report) == REPORT_KEYS
        assert report["summary"]["total_orders"] == 0
        assert report["scheduled_summary"] == {"scheduled_count": 0, "scheduled_revenue": 0.0}
        assert report["fees_breakdown"]["tax"] == 0
        assert report["anomalies"] == []
        assert report["period_comparison"] == {"metrics": []}
