import pytest
from datetime import datetime, timedelta, timezone

from zoneinfo import ZoneInfo

from reporting.analytics import date_ranges
from reporting.analytics.date_ranges import INSTANT, resolve_date_range, resolve_timezone, system_timezone

NOW = datetime(2025, 6, 15, 10, 30, tzinfo=timezone.utc)


class TestResolveDateRange:
    """测试时间窗口计算"""

    @pytest.mark.parametrize("period, start, end", [
        ("week", None, None),
        ("month", None, None),
        ("year", None, None),
        ("custom", "2025-01-01", "2025-01-14"),
        ("custom", "2025-01-01T08:00:00Z", "2025-01-03T20:00:00Z"),
        ("custom", "2025-01-01", None),
        ("bogus", None, None),
    ])
    def test_previous_window_is_symmetric(self, period, start, end):
        """前一窗口与当前窗口等长，且紧邻当前窗口"""
        ranges = resolve_date_range(period, start, end, now=NOW, tz="UTC")

        assert ranges.previous.duration == ranges.current.duration
        assert ranges.current.start - ranges.previous.end == INSTANT

    def test_week(self):
        ranges = resolve_date_range("week", now=NOW, tz="UTC")
        assert ranges.current.end == NOW
        assert ranges.current.start == NOW - timedelta(days=7)
        assert ranges.previous.start == NOW - timedelta(days=14) - INSTANT

    def test_month_is_default(self):
        ranges = resolve_date_range(None, now=NOW, tz="UTC")
        assert ranges.current.start == NOW - timedelta(days=30)

    def test_year_starts_on_january_first(self):
        ranges = resolve_date_range("year", now=NOW, tz="UTC")
        assert ranges.current.start == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert ranges.previous.end == datetime(2024, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_year_uses_merchant_timezone(self):
        ranges = resolve_date_range("year", now=NOW, tz="Australia/Sydney")
        # 悉尼1月为UTC+11
        assert ranges.current.start == datetime(2024, 12, 31, 13, 0, tzinfo=timezone.utc)

    def test_custom_dates_cover_whole_days(self):
        ranges = resolve_date_range("custom", "2025-01-01", "2025-01-14", now=NOW, tz="UTC")
        assert ranges.current.start == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert ranges.current.end == datetime(2025, 1, 14, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_custom_previous_window(self):
        ranges = resolve_date_range("custom", "2025-01-11T00:00:00Z", "2025-01-21T00:00:00Z", now=NOW)
        assert ranges.previous.end == datetime(2025, 1, 11, tzinfo=timezone.utc) - INSTANT
        assert ranges.previous.start == datetime(2025, 1, 1, tzinfo=timezone.utc) - INSTANT

    @pytest.mark.parametrize("start, end", [
        ("2025-01-01", None),
        (None, "2025-01-14"),
        ("yesterday", "2025-01-14"),
        ("2025-02-01", "2025-01-01"),
    ])
    def test_invalid_custom_falls_back_to_month(self, start, end):
        ranges = resolve_date_range("custom", start, end, now=NOW, tz="UTC")
        assert ranges.current.start == NOW - timedelta(days=30)
        assert ranges.current.end == NOW
        assert ranges.period == "month"

    @pytest.mark.parametrize("period, start, end, applied", [
        ("WEEK", None, None, "week"),
        (" Year ", None, None, "year"),
        ("bogus", None, None, "month"),
        (None, None, None, "month"),
        ("custom", "2025-01-01", "2025-01-14", "custom"),
        ("custom", "yesterday", "2025-01-14", "month"),
    ])
    def test_applied_period(self, period, start, end, applied):
        """返回实际采用的周期，而不是原始参数"""
        assert resolve_date_range(period, start, end, now=NOW, tz="UTC").period == applied


def test_unknown_timezone_falls_back_to_system():
    zone = resolve_timezone("Mars/Olympus_Mons")
    assert zone is not None
    assert datetime(2025, 1, 1, tzinfo=zone).utcoffset() is not None


class TestSystemTimezone:
    """测试系统时区解析"""

    def test_tz_environment_variable(self, monkeypatch):
        monkeypatch.setenv("TZ", "Australia/Sydney")

        zone = system_timezone()

        assert zone == ZoneInfo("Australia/Sydney")
        # 有名称的时区在夏令时前后偏移不同
        assert datetime(2025, 1, 15, tzinfo=zone).utcoffset() == timedelta(hours=11)
        assert datetime(2025, 7, 15, tzinfo=zone).utcoffset() == timedelta(hours=10)

    def test_localtime_link(self, monkeypatch, tmp_path):
        monkeypatch.delenv("TZ", raising=False)
        zone_file = tmp_path / "zoneinfo" / "Europe" / "Berlin"
        zone_file.parent.mkdir(parents=True)
        zone_file.write_bytes(b"")
        link = tmp_path / "localtime"
        link.symlink_to(zone_file)
        monkeypatch.setattr(date_ranges, "LOCALTIME_PATH", str(link))

        assert system_timezone() == ZoneInfo("Europe/Berlin")
        assert resolve_timezone(None) == ZoneInfo("Europe/Berlin")

    def test_unresolvable_name_uses_fixed_offset(self, monkeypatch):
        monkeypatch.setenv("TZ", "Nowhere/Land")

        zone = system_timezone()

        assert isinstance(zone, timezone)
