import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

MIN_WINDOW_SIZE = 3
MIN_STD_DEV_MULTIPLIER = 0.5
MIN_DROP_PCT = 0.0


@dataclass(frozen=True)
class AnomalySettings:
    """异常检测参数"""
    window_size: int = 7
    std_dev_multiplier: float = 2.0
    min_drop_pct: float = 15.0

    def clamped(self) -> "AnomalySettings":
        """将参数限制在允许的最小值以上"""
        return AnomalySettings(
            window_size=max(MIN_WINDOW_SIZE, int(self.window_size)),
            std_dev_multiplier=max(MIN_STD_DEV_MULTIPLIER, float(self.std_dev_multiplier)),
            min_drop_pct=max(MIN_DROP_PCT, float(self.min_drop_pct)),
        )

    @classmethod
    def from_params(
            cls,
            window: Optional[str] = None,
            std_dev: Optional[str] = None,
            min_drop_pct: Optional[str] = None,
            defaults: Optional["AnomalySettings"] = None
    ) -> "AnomalySettings":
        """解析请求参数，无法解析的值使用默认值"""
        defaults = defaults or cls()
        return replace(
            defaults,
            window_size=int(_parse_number(window, defaults.window_size)),
            std_dev_multiplier=_parse_number(std_dev, defaults.std_dev_multiplier),
            min_drop_pct=_parse_number(min_drop_pct, defaults.min_drop_pct),
        ).clamped()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'window_size': self.window_size,
            'std_dev_multiplier': self.std_dev_multiplier,
            'min_drop_pct': self.min_drop_pct,
        }


def _parse_number(value: Optional[str], default: float) -> float:
    if value is None or str(value).strip() == '':
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid anomaly parameter {value!r}, using default {default}")
        return default
    return number if math.isfinite(number) else default


class RevenueAnomalyDetector:
    """营收下跌异常检测

    对每一天，用前 window_size 天的均值与总体标准差计算阈值
    mean - k * std；当日营收低于阈值且相对均值的跌幅不小于 min_drop_pct 时记为异常。
    """

    def detect(
            self,
            daily_series: Sequence[Dict[str, Any]],
            settings: Optional[AnomalySettings] = None
    ) -> List[Dict[str, Any]]:
        settings = (settings or AnomalySettings()).clamped()
        window_size = settings.window_size

        if len(daily_series) <= window_size:
            logger.debug(f"Series too short for anomaly detection ({len(daily_series)} <= {window_size})")
            return []

        revenue = pd.Series([float(point['total_revenue']) for point in daily_series])

        # 前一窗口的统计量：shift(1) 使第 i 天只看 i-window..i-1
        rolling = revenue.rolling(window=window_size)
        trailing_mean = rolling.mean().shift(1)
        trailing_std = rolling.std(ddof=0).shift(1)

        anomalies = []
        for index in range(window_size, len(daily_series)):
            mean = float(trailing_mean.iloc[index])
            std = float(trailing_std.iloc[index])

            # 没有有效基线
            if mean <= 0:
                continue

            current = float(revenue.iloc[index])
            threshold = mean - settings.std_dev_multiplier * std
            if current >= threshold:
                continue

            delta_pct = (current - mean) / mean * 100
            if abs(delta_pct) >= settings.min_drop_pct:
                anomalies.append({
                    'date': daily_series[index]['date'],
                    'revenue': current,
                    'expected': mean,
                    'delta_pct': delta_pct,
                })

        logger.info(f"Detected {len(anomalies)} revenue anomalies in {len(daily_series)} days")
        return anomalies
