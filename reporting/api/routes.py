from fastapi import APIRouter, Query, HTTPException, Depends
from typing import Optional
import logging

from reporting.api.schemas import ReportResponse
from reporting.api.dependencies import get_engine
from reporting.engine.core import ReportEngine

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR = {"error": "INTERNAL_ERROR", "message": "Failed to fetch reports data"}


@router.get("/merchants/{merchant_id}/reports", response_model=ReportResponse)
def get_merchant_report(
        merchant_id: str,
        period: Optional[str] = Query("month", description="week/month/year/custom"),
        start_date: Optional[str] = Query(None, alias="startDate", description="custom周期的开始日期"),
        end_date: Optional[str] = Query(None, alias="endDate", description="custom周期的结束日期"),
        order_type: Optional[str] = Query(None, alias="orderType", description="逗号分隔的订单类型"),
        status: Optional[str] = Query(None, description="逗号分隔的订单状态"),
        payment_method: Optional[str] = Query(None, alias="paymentMethod"),
        voucher_source: Optional[str] = Query(None, alias="voucherSource"),
        scheduled_only: Optional[str] = Query(None, alias="scheduledOnly"),
        anomaly_window: Optional[str] = Query(None, alias="anomalyWindow"),
        anomaly_std_dev: Optional[str] = Query(None, alias="anomalyStdDev"),
        anomaly_min_drop_pct: Optional[str] = Query(None, alias="anomalyMinDropPct"),
        engine: ReportEngine = Depends(get_engine)
):
    """获取商户报表"""
    params = {
        "period": period,
        "startDate": start_date,
        "endDate": end_date,
        "orderType": order_type,
        "status": status,
        "paymentMethod": payment_method,
        "voucherSource": voucher_source,
        "scheduledOnly": scheduled_only,
        "anomalyWindow": anomaly_window,
        "anomalyStdDev": anomaly_std_dev,
        "anomalyMinDropPct": anomaly_min_drop_pct,
    }

    try:
        report = engine.build_report(merchant_id, params)
        return ReportResponse(success=True, data=report)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Reports API error for merchant {merchant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
