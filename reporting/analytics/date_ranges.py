import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..data.models import DateRange

logger = logging.getLogger(__name__)

# 时间的最小单位，前一窗口在当前窗口开始前一个单位结束
INSTANT = timedelta(microseconds=1)

PERIOD_DAYS = {
    'week': 7,
    'month': 30,
}

DEFAULT_PERIOD = 'month'

# 系统时区配置文件，通常链接到 zoneinfo 数据库中的某个时区
LOCALTIME_PATH = '/etc/localtime'


@dataclass(frozen=True)
class PeriodRanges:
    """当前窗口与等长的前一窗口，以及实际采用的周期"""
    current: DateRange
    previous: DateRange
    period: str = DEFAULT_PERIOD


def resolve_timezone(tz: Union[str, tzinfo, None]) -> tzinfo:
    """解析时区，未设置时使用系统时区"""
    if isinstance(tz, tzinfo):
        return tz
    if tz:
        try:
            return ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{tz}', falling back to system timezone")
    return system_timezone()


def system_timezone() -> tzinfo:
    """系统时区；尽量解析为有名称的时区，使夏令时切换后的日期与小时分桶正确"""
    name = os.environ.get('TZ', '').lstrip(':')
    if not name:
        target = os.path.realpath(LOCALTIME_PATH)
        if '/zoneinfo/' in target:
            name = target.split('/zoneinfo/', 1)[1]

    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Cannot resolve system timezone '{name}', using fixed UTC offset")

    return datetime.now().astimezone().tzinfo


def _preceding(current: DateRange) -> DateRange:
    """紧接在当前窗口之前、时长相同的窗口"""
    previous_end = current.start - INSTANT
    return DateRange(start=previous_end - current.duration, end=previous_end)


def _parse_bound(value: str, tz: tzinfo, end_of_day: bool) -> datetime:
    """解析ISO日期；纯日期按商户时区的当天开始/结束处理"""
    text = value.strip()
    if len(text) == 10:
        day = date.fromisoformat(text)
        local = datetime.combine(day, time.max if end_of_day else time.min, tzinfo=tz)
        return local.astimezone(timezone.utc)

    parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc)


def _custom_range(start_date: Optional[str], end_date: Optional[str], tz: tzinfo) -> Optional[DateRange]:
    if not start_date or not end_date:
        return None
    try:
        start = _parse_bound(start_date, tz, end_of_day=False)
        end = _parse_bound(end_date, tz, end_of_day=True)
    except ValueError:
        logger.warning(f"Invalid custom range {start_date!r} - {end_date!r}, using default period")
        return None
    if end < start:
        logger.warning(f"Custom range ends before it starts ({start_date} > {end_date}), using default period")
        return None
    return DateRange(start=start, end=end)


def resolve_date_range(
        period: Optional[str],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        now: Optional[datetime] = None,
        tz: Union[str, tzinfo, None] = None
) -> PeriodRanges:
    """根据周期关键字计算当前窗口与前一窗口

    week/month 为滚动的7天/30天；year 从本年1月1日（商户时区）开始；
    custom 使用给定的起止日期，缺少或无效时退回 month；未知关键字同样按 month 处理。
    前一窗口始终与当前窗口等长，并在当前窗口开始前一个最小时间单位结束。
    """
    zone = resolve_timezone(tz)
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    period = (period or DEFAULT_PERIOD).strip().lower()

    current = None
    if period == 'custom':
        current = _custom_range(start_date, end_date, zone)
    elif period == 'year':
        local_now = now.astimezone(zone)
        year_start = datetime(local_now.year, 1, 1, tzinfo=zone).astimezone(timezone.utc)
        current = DateRange(start=year_start, end=now)

    if current is None:
        if period not in PERIOD_DAYS:
            period = DEFAULT_PERIOD
        days = PERIOD_DAYS[period]
        current = DateRange(start=now - timedelta(days=days), end=now)

    return PeriodRanges(current=current, previous=_preceding(current), period=period)
