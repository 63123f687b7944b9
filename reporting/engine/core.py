# reporting/engine/core.py
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from ..analytics.aggregation import ReportAggregator, build_order_frames, period_comparison, summarize_orders
from ..analytics.anomaly import AnomalySettings, RevenueAnomalyDetector
from ..analytics.date_ranges import resolve_date_range, resolve_timezone
from ..analytics.filters import build_order_filters, build_order_query
from ..data.models import Identifier
from ..data.repositories import BaseOrderRepository
from .assembler import ReportAssembler

logger = logging.getLogger(__name__)


def get_repository(settings) -> BaseOrderRepository:
    """根据配置创建订单数据源"""
    from ..data.memory_repository import InMemoryOrderRepository, generate_sample_orders
    from ..data.repositories import ClickHouseOrderRepository
    from ..data.connectors import ClickHouseConnector

    if settings.use_memory_source():
        if settings.app.fixtures_path:
            return InMemoryOrderRepository.from_json_file(settings.app.fixtures_path)
        # 未提供数据文件时使用模拟订单，便于本地演示
        return InMemoryOrderRepository(orders=generate_sample_orders(settings.app.demo_merchant_id))

    return ClickHouseOrderRepository(ClickHouseConnector(settings.clickhouse))


class ReportEngine:
    """商户报表引擎：一次调用读取两个时间窗口并在内存中聚合"""

    def __init__(self, repository: BaseOrderRepository, report_config=None):
        if report_config is None:
            from config.settings import get_settings
            report_config = get_settings().report

        self.repository = repository
        self.config = report_config
        self.anomaly_detector = RevenueAnomalyDetector()
        self.assembler = ReportAssembler()
        self.default_anomaly_settings = AnomalySettings(
            window_size=report_config.anomaly_window,
            std_dev_multiplier=report_config.anomaly_std_dev,
            min_drop_pct=report_config.anomaly_min_drop_pct,
        ).clamped()

    def _merchant_context(self, merchant_id: Identifier):
        """商户币种与时区，未配置时使用默认值"""
        merchant = self.repository.get_merchant(merchant_id)
        currency = (merchant.currency if merchant else None) or self.config.default_currency
        timezone_name = (merchant.timezone if merchant else None) or self.config.default_timezone
        zone = resolve_timezone(timezone_name)
        return currency, zone

    def build_report(
            self,
            merchant_id: Identifier,
            params: Mapping[str, Optional[str]],
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """生成商户报表"""
        logger.info(f"Building report for merchant {merchant_id}")
        start_time = datetime.now()

        # 1. 商户信息与参数
        currency, zone = self._merchant_context(merchant_id)
        anomaly_settings = AnomalySettings.from_params(
            params.get('anomalyWindow'),
            params.get('anomalyStdDev'),
            params.get('anomalyMinDropPct'),
            defaults=self.default_anomaly_settings,
        )

        # 2. 时间窗口与筛选条件
        ranges = resolve_date_range(params.get('period'), params.get('startDate'), params.get('endDate'), now=now, tz=zone)
        filters = build_order_filters(params)
        current_query = build_order_query(merchant_id, ranges.current, filters)
        previous_query = build_order_query(merchant_id, ranges.previous, filters)

        # 3. 并发读取两个窗口
        logger.info("Step 1: Loading orders")
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix='report-fetch') as pool:
            current_future = pool.submit(self.repository.find_orders, current_query)
            previous_future = pool.submit(self.repository.find_orders, previous_query)
            current_orders = current_future.result()
            previous_orders = previous_future.result()
        logger.debug(f"Loaded {len(current_orders)} current and {len(previous_orders)} previous orders")

        # 4. 聚合
        logger.info("Step 2: Aggregating orders")
        aggregator = ReportAggregator(zone)
        current_frames = build_order_frames(current_orders)
        facets = aggregator.aggregate(current_frames)
        previous_summary = summarize_orders(build_order_frames(previous_orders).orders)

        # 5. 异常检测
        logger.info("Step 3: Detecting revenue anomalies")
        anomalies = self.anomaly_detector.detect(facets['daily_revenue'], anomaly_settings)

        report = self.assembler.assemble(
            period=ranges.period,
            ranges=ranges,
            currency=currency,
            timezone=str(zone),
            facets=facets,
            period_comparison=period_comparison(facets['summary'], previous_summary),
            anomalies=anomalies,
            anomaly_settings=anomaly_settings,
        )

        logger.info(f"Report for merchant {merchant_id} built in {(datetime.now() - start_time).total_seconds():.2f} seconds")
        return report
