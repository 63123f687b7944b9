from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Literal
from datetime import datetime


class ReportModel(BaseModel):
    """报表响应基类：字段以camelCase输出"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRangeModel(ReportModel):
    start: datetime
    end: datetime


class DateRanges(ReportModel):
    current: DateRangeModel
    previous: DateRangeModel


class MerchantInfo(ReportModel):
    currency: str
    timezone: str


class ReportSummary(ReportModel):
    """窗口汇总"""
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    pending_orders: int
    total_revenue: float
    subtotal: float
    total_tax: float
    total_service_charge: float
    total_packaging_fee: float
    total_delivery_fee: float
    total_discount: float
    net_revenue: float
    average_order_value: float
    completion_rate: float = Field(..., ge=0, le=100)


class ComparisonMetric(ReportModel):
    label: str
    current: float
    previous: float
    format: Literal['currency', 'number', 'decimal']
    change_pct: float


class PeriodComparison(ReportModel):
    metrics: List[ComparisonMetric]


class VoucherSourceUsage(ReportModel):
    source: str
    count: int
    amount: float


class VoucherTemplateUsage(ReportModel):
    label: str
    count: int
    amount: float


class VoucherSummary(ReportModel):
    by_source: List[VoucherSourceUsage]
    top_templates: List[VoucherTemplateUsage]


class FeesBreakdown(ReportModel):
    tax: float
    service_charge: float
    packaging_fee: float
    delivery_fee: float
    discount: float


class OrderTypeBreakdown(ReportModel):
    type: str
    count: int
    revenue: float
    percentage: float


class OrderStatusBreakdown(ReportModel):
    status: str
    count: int


class PaymentBreakdown(ReportModel):
    method: str
    count: int
    revenue: float
    percentage: float


class ScheduledSummary(ReportModel):
    scheduled_count: int
    scheduled_revenue: float


class DailyRevenuePoint(ReportModel):
    date: str
    total_revenue: float
    total_orders: int


class AnomalyPoint(ReportModel):
    date: str
    revenue: float
    expected: float
    delta_pct: float


class AnomalySettingsModel(ReportModel):
    window_size: int
    std_dev_multiplier: float
    min_drop_pct: float


class TopMenuItem(ReportModel):
    key: str
    name: str
    quantity: int
    revenue: float


class HourlyPerformance(ReportModel):
    hour: int = Field(..., ge=0, le=23)
    order_count: int
    avg_prep_time: Optional[float]
    revenue: float
    efficiency: float = Field(..., ge=0, le=100)


class MerchantReport(ReportModel):
    """商户报表"""
    period: str
    date_range: DateRanges
    merchant: MerchantInfo
    summary: ReportSummary
    period_comparison: PeriodComparison
    voucher_summary: VoucherSummary
    fees_breakdown: FeesBreakdown
    order_type_breakdown: List[OrderTypeBreakdown]
    order_status_breakdown: List[OrderStatusBreakdown]
    payment_breakdown: List[PaymentBreakdown]
    scheduled_summary: ScheduledSummary
    daily_revenue: List[DailyRevenuePoint]
    anomalies: List[AnomalyPoint]
    anomaly_settings: AnomalySettingsModel
    top_menu_items: List[TopMenuItem]
    hourly_performance: List[HourlyPerformance]


class ReportResponse(ReportModel):
    """报表接口响应"""
    success: bool = True
    data: MerchantReport


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    version: str
    engine_status: str
    order_source: str
    message: Optional[str] = None
