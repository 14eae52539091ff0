import numpy as np
import pytest

from common.custom_exceptions.analysis_errors import InsufficientDataError
from core.interfaces.AnalysisResult import TrendDirection, TrendType
from core.use_cases.market_analysis import trend_detector
from core.use_cases.market_analysis.analysis_config import get_config
from core.use_cases.market_analysis.trend_detector import TimeframeTrendClassifier
from mock_data.simulated_series import (
    HOUR_MS,
    START_TS,
    get_mock_downtrend_klines,
    get_mock_flat_klines,
    get_mock_uptrend_klines,
)


def closes_to_klines(closes):
    return [[START_TS + i * HOUR_MS, c, c * 1.001, c * 0.999, c, 1000.0] for i, c in enumerate(closes)]


def flat_rsi(values, period):
    return np.full(len(values) - period, 50.0)


class TestTimeframeTrendClassifier:
    """Test suite for single-timeframe trend classification"""

    @pytest.fixture
    def classifier(self):
        return TimeframeTrendClassifier(get_config())

    def test_clean_uptrend_is_strong_uptrend(self, classifier):
        result = classifier.classify(get_mock_uptrend_klines(), "1h")

        assert result.trend == TrendType.STRONG_UPTREND
        assert result.ema20 > result.ema60 > result.ema120
        assert result.current_price >= result.ema20
        assert 60 <= result.confidence <= 100
        assert result.trend_strength == 100.0
        assert result.divergence is False
        assert result.timeframe == "1h"

    def test_clean_downtrend_is_strong_downtrend(self, classifier):
        result = classifier.classify(get_mock_downtrend_klines(), "4h")

        assert result.trend == TrendType.STRONG_DOWNTREND
        assert result.ema20 < result.ema60 < result.ema120
        assert result.trend.direction is TrendDirection.DOWN

    def test_flat_series_is_ranging(self, classifier):
        result = classifier.classify(get_mock_flat_klines(), "15m")

        assert result.trend == TrendType.RANGING
        assert result.trend_strength == 0.0
        # Perfect EMA stack and price on EMA20, but no regression fit
        assert result.confidence == pytest.approx(70.0)

    def test_fewer_than_120_candles_raises(self, classifier):
        with pytest.raises(InsufficientDataError) as exc_info:
            classifier.classify(get_mock_uptrend_klines(n=119), "1d")

        assert exc_info.value.required == 120
        assert exc_info.value.actual == 119
        assert exc_info.value.timeframe == "1d"

    def test_exactly_120_candles_is_enough(self, classifier):
        result = classifier.classify(get_mock_uptrend_klines(n=120), "1d")
        assert result.trend.direction is TrendDirection.UP

    def test_input_is_not_modified(self, classifier):
        klines = get_mock_uptrend_klines()
        snapshot = [list(row) for row in klines]
        classifier.classify(klines, "1h")
        assert klines == snapshot

    def test_rationale_mentions_timeframe_and_trend(self, classifier):
        result = classifier.classify(get_mock_uptrend_klines(), "1h")
        assert result.analysis.startswith("1h strong uptrend")
        assert "confidence" in result.analysis


class TestTrendTiers:
    """Spread tiers and the regression-slope downgrade"""

    @pytest.fixture
    def classifier(self):
        return TimeframeTrendClassifier(get_config())

    @pytest.mark.parametrize("spread,expected", [
        (0.06, "STRONG"),
        (0.05, "STRONG"),
        (0.03, "PLAIN"),
        (0.01, "WEAK"),
    ])
    def test_spread_thresholds(self, classifier, spread, expected):
        assert classifier._tier(TrendDirection.UP, spread, slope=1.0) == expected

    def test_disagreeing_slope_downgrades_one_tier(self, classifier):
        assert classifier._tier(TrendDirection.UP, 0.06, slope=-1.0) == "PLAIN"
        assert classifier._tier(TrendDirection.DOWN, -0.03, slope=1.0) == "WEAK"

    def test_weak_is_the_floor(self, classifier):
        assert classifier._tier(TrendDirection.UP, 0.01, slope=-1.0) == "WEAK"

    def test_mismatched_confidence_weights_rejected(self):
        config = get_config({"trend_detection": {"confidence_weights": {
            "ema_ordering": 0.5, "price_position": 0.5, "regression_fit": 0.5}}})
        with pytest.raises(ValueError, match="Weights must sum to 1.0"):
            TimeframeTrendClassifier(config)


class TestDivergence:
    """Price extrema compared against RSI at the same candles"""

    @pytest.fixture
    def closes(self):
        # Slow drift with two bumps; the second top is higher than the first
        values = 100 + 0.01 * np.arange(200)
        for top, height in ((150, 10.0), (170, 15.0)):
            for offset in range(-5, 6):
                values[top + offset] += height * (1 - abs(offset) / 5)
        return values

    def test_higher_high_with_flat_rsi_is_bearish(self, monkeypatch, closes):
        monkeypatch.setattr(trend_detector, "rsi", flat_rsi)
        classifier = TimeframeTrendClassifier(get_config())
        assert classifier._detect_divergence(closes) == "bearish"

    def test_higher_high_with_rising_rsi_is_not_divergence(self, monkeypatch, closes):
        monkeypatch.setattr(trend_detector, "rsi",
                            lambda values, period: np.linspace(10, 90, len(values) - period))
        classifier = TimeframeTrendClassifier(get_config())
        assert classifier._detect_divergence(closes) is None

    @pytest.fixture
    def falling_closes(self):
        # Slow decline with two dips; the second bottom is lower than the first
        values = 100 - 0.01 * np.arange(200)
        for bottom, depth in ((150, 10.0), (170, 15.0)):
            for offset in range(-5, 6):
                values[bottom + offset] -= depth * (1 - abs(offset) / 5)
        return values

    def test_flat_topped_higher_high_is_still_bearish(self, monkeypatch, closes):
        monkeypatch.setattr(trend_detector, "rsi", flat_rsi)
        closes[171] = closes[170]
        classifier = TimeframeTrendClassifier(get_config())
        assert classifier._detect_divergence(closes) == "bearish"

    def test_lower_low_with_flat_rsi_is_bullish(self, monkeypatch, falling_closes):
        monkeypatch.setattr(trend_detector, "rsi", flat_rsi)
        classifier = TimeframeTrendClassifier(get_config())
        assert classifier._detect_divergence(falling_closes) == "bullish"

    def test_lower_low_with_falling_rsi_is_not_divergence(self, monkeypatch, falling_closes):
        monkeypatch.setattr(trend_detector, "rsi",
                            lambda values, period: np.linspace(90, 10, len(values) - period))
        classifier = TimeframeTrendClassifier(get_config())
        assert classifier._detect_divergence(falling_closes) is None

    def test_classify_reports_bearish_divergence(self, monkeypatch, closes):
        monkeypatch.setattr(trend_detector, "rsi", flat_rsi)
        result = TimeframeTrendClassifier(get_config()).classify(closes_to_klines(closes), "4h")

        assert result.divergence is True
        assert "bearish divergence" in result.analysis

    def test_classify_reports_bullish_divergence(self, monkeypatch, falling_closes):
        monkeypatch.setattr(trend_detector, "rsi", flat_rsi)
        result = TimeframeTrendClassifier(get_config()).classify(closes_to_klines(falling_closes), "4h")

        assert result.divergence is True
        assert "bullish divergence" in result.analysis
