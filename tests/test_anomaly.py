import pytest

from reporting.analytics.anomaly import AnomalySettings, RevenueAnomalyDetector


def series(values):
    return [
        {"date": f"2025-01-{day:02d}", "total_revenue": value, "total_orders": 1}
        for day, value in enumerate(values, start=1)
    ]


class TestAnomalySettings:
    """测试异常检测参数"""

    def test_defaults(self):
        settings = AnomalySettings.from_params()
        assert settings == AnomalySettings(window_size=7, std_dev_multiplier=2.0, min_drop_pct=15.0)

    def test_clamped_to_minimums(self):
        settings = AnomalySettings.from_params("1", "0.1", "-5")
        assert settings.window_size == 3
        assert settings.std_dev_multiplier == 0.5
        assert settings.min_drop_pct == 0

    @pytest.mark.parametrize("value", ["abc", "nan", "inf", ""])
    def test_invalid_values_use_defaults(self, value):
        settings = AnomalySettings.from_params(value, value, value)
        assert settings == AnomalySettings()

    def test_custom_defaults(self):
        defaults = AnomalySettings(window_size=14, std_dev_multiplier=3, min_drop_pct=25)
        settings = AnomalySettings.from_params(None, "1.5", None, defaults=defaults)
        assert settings.window_size == 14
        assert settings.std_dev_multiplier == 1.5
        assert settings.min_drop_pct == 25


class TestRevenueAnomalyDetector:
    """测试营收异常检测"""

    @pytest.fixture
    def detector(self):
        return RevenueAnomalyDetector()

    def test_requires_both_gates(self, detector):
        """均值1000、标准差50、阈值900：895 跌幅不足，700 为异常"""
        settings = AnomalySettings(window_size=4, std_dev_multiplier=2, min_drop_pct=15)
        baseline = [950, 1050, 950, 1050]

        assert detector.detect(series(baseline + [895]), settings) == []

        flagged = detector.detect(series(baseline + [700]), settings)
        assert len(flagged) == 1
        assert flagged[0]["date"] == "2025-01-05"
        assert flagged[0]["expected"] == pytest.approx(1000)
        assert flagged[0]["delta_pct"] == pytest.approx(-30)

    def test_small_drop_flagged_when_min_drop_low(self, detector):
        settings = AnomalySettings(window_size=4, std_dev_multiplier=2, min_drop_pct=5)
        flagged = detector.detect(series([950, 1050, 950, 1050, 895]), settings)
        assert [a["revenue"] for a in flagged] == [895]
        assert flagged[0]["delta_pct"] == pytest.approx(-10.5)

    def test_revenue_drop_after_flat_fortnight(self, detector):
        flagged = detector.detect(series([100] * 13 + [20]), AnomalySettings())

        assert len(flagged) == 1
        assert flagged[0]["date"] == "2025-01-14"
        assert flagged[0]["revenue"] == 20
        assert flagged[0]["expected"] == pytest.approx(100)
        assert flagged[0]["delta_pct"] == pytest.approx(-80)

    def test_spikes_are_not_flagged(self, detector):
        assert detector.detect(series([100] * 8 + [900]), AnomalySettings()) == []

    def test_zero_baseline_skipped(self, detector):
        assert detector.detect(series([0] * 8 + [0]), AnomalySettings()) == []

    @pytest.mark.parametrize("values", [[], [100], [100] * 7])
    def test_short_series(self, detector, values):
        assert detector.detect(series(values), AnomalySettings()) == []

    def test_results_in_chronological_order(self, detector):
        values = [100] * 7 + [10] + [100] * 7 + [5]
        flagged = detector.detect(series(values), AnomalySettings(window_size=3))
        dates = [a["date"] for a in flagged]
        assert dates == sorted(dates)
        assert "2025-01-08" in dates
