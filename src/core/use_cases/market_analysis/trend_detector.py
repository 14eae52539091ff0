"""
Trend Detection Module for Multi-Timeframe Analysis

This module classifies one timeframe's candle series into a trend label using
stacked EMAs, a short linear regression on recent closes and an RSI divergence
check, providing the per-timeframe input for the multi-timeframe aggregator.
"""

import math
import numpy as np
from typing import Dict, List, Optional, Any

from common.logger import logger
from common.utils.data_processing import OhlcvInput, prepare_ohlcv
from core.engines.indicators import ema, find_peaks_and_valleys, linear_regression, rsi
from core.interfaces.AnalysisResult import TimeframeTrend, TrendDirection, TrendType
from .analysis_config import get_config


TIER_ORDER = ["STRONG", "PLAIN", "WEAK"]


class TimeframeTrendClassifier:
    """
    Classifies a single timeframe into one of the seven trend labels.
    Confidence blends EMA ordering, price position and regression fit.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the trend classifier.

        Args:
            config: Full engine configuration (defaults to ``get_config()``)
        """
        config = config or get_config()
        self.trend_config = config["trend_detection"]
        self.indicator_config = config["indicators"]

        self.ema_periods: List[int] = list(self.indicator_config["ema_periods"])
        if len(self.ema_periods) != 3 or sorted(self.ema_periods) != self.ema_periods:
            raise ValueError(f"Exactly three ascending EMA periods are required, got {self.ema_periods}")

        self.min_candles = max(int(self.trend_config["min_candles"]), self.ema_periods[-1])

        weights = self.trend_config["confidence_weights"]
        total_weight = sum(weights.values())
        if abs(total_weight - 1.0) > 0.01:
            raise ValueError(f"Weights must sum to 1.0, got {total_weight}")
        self.weights = weights

        if self.trend_config["weak_spread"] >= self.trend_config["strong_spread"]:
            raise ValueError("weak_spread must be smaller than strong_spread")

    def classify(self, ohlcv: OhlcvInput, timeframe: str) -> TimeframeTrend:
        """
        Classify the trend of one timeframe.

        Args:
            ohlcv: Candle series for the timeframe (at least ``min_candles`` rows)
            timeframe: Timeframe label, e.g. "4h"

        Returns:
            TimeframeTrend value object

        Raises:
            InsufficientDataError: if the series is shorter than ``min_candles``
            InvalidSeriesError: if the series is malformed
        """
        df = prepare_ohlcv(ohlcv, timeframe=timeframe, min_candles=self.min_candles)

        closes = df["close"].to_numpy(dtype=float)
        current_price = float(closes[-1])

        fast, mid, slow = (float(ema(closes, p)[-1]) for p in self.ema_periods)
        direction = self._direction(current_price, fast, mid, slow)

        spread = (fast - slow) / slow
        regression = self._recent_regression(closes)
        tier = self._tier(direction, spread, regression["slope"])
        trend = TrendType.from_parts(direction, tier)

        confidence = self._confidence(direction, current_price, fast, mid, slow, spread, regression["r2"])
        trend_strength = min(100.0, abs(spread) / self.trend_config["strength_spread_scale"] * 100.0)
        divergence_kind = self._detect_divergence(closes)

        logger.debug(
            f"[TrendDetector] {timeframe}: ema={fast:.5f}/{mid:.5f}/{slow:.5f} spread={spread:.4f} "
            f"slope={regression['slope']:.6f} r2={regression['r2']}"
        )

        return TimeframeTrend(
            timeframe=timeframe,
            trend=trend,
            confidence=confidence,
            current_price=current_price,
            ema20=fast,
            ema60=mid,
            ema120=slow,
            trend_strength=round(trend_strength, 2),
            divergence=divergence_kind is not None,
            analysis=self._rationale(timeframe, trend, trend_strength, confidence, divergence_kind),
        )

    def _direction(self, price: float, fast: float, mid: float, slow: float) -> TrendDirection:
        if fast > mid > slow and price >= fast:
            return TrendDirection.UP
        if fast < mid < slow and price <= fast:
            return TrendDirection.DOWN
        return TrendDirection.RANGING

    def _recent_regression(self, closes: np.ndarray) -> Dict[str, float]:
        lookback = min(int(self.trend_config["regression_lookback"]), len(closes))
        recent = closes[-lookback:]
        return linear_regression(np.arange(len(recent), dtype=float), recent)

    def _tier(self, direction: TrendDirection, spread: float, slope: float) -> str:
        if direction is TrendDirection.RANGING:
            return "PLAIN"

        magnitude = abs(spread)
        if magnitude >= self.trend_config["strong_spread"]:
            tier = "STRONG"
        elif magnitude < self.trend_config["weak_spread"]:
            tier = "WEAK"
        else:
            tier = "PLAIN"

        # Recent slope against the EMA stack costs one tier
        expected_sign = 1 if direction is TrendDirection.UP else -1
        if slope * expected_sign <= 0:
            tier = TIER_ORDER[min(TIER_ORDER.index(tier) + 1, len(TIER_ORDER) - 1)]
        return tier

    def _confidence(self, direction: TrendDirection, price: float, fast: float, mid: float,
                    slow: float, spread: float, r2: float) -> float:
        ordering_scale = self.trend_config["ordering_scale"]

        if direction is TrendDirection.UP:
            avg_gap = ((fast - mid) + (mid - slow)) / 2
            ordering = min(1.0, avg_gap / slow / ordering_scale)
        elif direction is TrendDirection.DOWN:
            avg_gap = ((mid - fast) + (slow - mid)) / 2
            ordering = min(1.0, avg_gap / slow / ordering_scale)
        else:
            # A flat stack is the clean case for a range
            ordering = 1.0 - min(1.0, abs(spread) / ordering_scale)

        position = max(0.0, 1.0 - abs(price - fast) / fast / self.trend_config["price_distance_scale"])
        fit = 0.0 if r2 is None or math.isnan(r2) else max(0.0, min(1.0, r2))

        score = 100.0 * (
            self.weights["ema_ordering"] * max(0.0, ordering)
            + self.weights["price_position"] * position
            + self.weights["regression_fit"] * fit
        )
        return round(float(np.clip(score, 0.0, 100.0)), 2)

    def _detect_divergence(self, closes: np.ndarray) -> Optional[str]:
        """
        Compare the last two price extrema with RSI at the same candles.

        Returns:
            "bearish", "bullish" or None
        """
        period = int(self.indicator_config["rsi_period"])
        rsi_values = rsi(closes, period)
        if len(rsi_values) == 0:
            return None

        window = int(self.trend_config["divergence_window"])
        start = max(period, len(closes) - int(self.trend_config["divergence_lookback"]))
        peaks, valleys = find_peaks_and_valleys(closes, window)
        peaks = _first_of_runs([i for i in peaks if i >= start])
        valleys = _first_of_runs([i for i in valleys if i >= start])

        # rsi_values[0] lines up with closes[period]
        if len(peaks) >= 2:
            prev, last = peaks[-2], peaks[-1]
            if closes[last] > closes[prev] and rsi_values[last - period] <= rsi_values[prev - period]:
                return "bearish"
        if len(valleys) >= 2:
            prev, last = valleys[-2], valleys[-1]
            if closes[last] < closes[prev] and rsi_values[last - period] >= rsi_values[prev - period]:
                return "bullish"
        return None

    def _rationale(self, timeframe: str, trend: TrendType, trend_strength: float,
                   confidence: float, divergence_kind: Optional[str]) -> str:
        description = trend.value.replace("_", " ").lower()

        if trend_strength > 80:
            strength_band = "strong"
        elif trend_strength > 60:
            strength_band = "moderate"
        else:
            strength_band = "weak"

        if confidence > 80:
            confidence_band = "high"
        elif confidence > 60:
            confidence_band = "moderate"
        else:
            confidence_band = "low"

        text = (f"{timeframe} {description}: {strength_band} momentum "
                f"(strength {trend_strength:.1f}), {confidence_band} confidence ({confidence:.1f}%)")
        if divergence_kind:
            text += f", {divergence_kind} divergence between price and RSI"
        return text


def _first_of_runs(indices: List[int]) -> List[int]:
    """Collapse runs of consecutive indices (plateaus) to the first index of each run."""
    return [idx for pos, idx in enumerate(indices) if pos == 0 or idx != indices[pos - 1] + 1]
