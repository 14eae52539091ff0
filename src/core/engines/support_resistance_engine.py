import math
import numpy as np
import pandas as pd
from typing import Dict, List, Any, Optional, Tuple

from common.logger import logger
from common.utils.data_processing import OhlcvInput, prepare_ohlcv
from core.engines.indicators import find_peaks_and_valleys
from core.interfaces.AnalysisResult import (
    CurrentPosition,
    KeyLevels,
    LevelCollection,
    LevelStrength,
    LevelType,
    PriceAction,
    PriceRange,
    SupportResistanceLevel,
)

# One extremum folded into a band: (price, candle index)
Touch = Tuple[float, int]


class SupportResistanceEngine:
    """
    Detects support/resistance levels by clustering price extrema of a long
    reference series into bands, then scores each band by touches and recency.
    Detection is deterministic: identical candles always yield identical levels.
    """
    def __init__(self, interval: str = "1d", config: Optional[Dict[str, Any]] = None):
        """
        Initializes the SupportResistanceEngine.

        Args:
            interval (str): Timeframe label of the reference series (e.g. "1d"),
                            reported as each level's origin timeframe.
            config (Optional[Dict[str, Any]]): Overrides for the ``support_resistance`` settings.
        """
        self.interval = interval

        self.config = {
            "min_candles": 50,
            "extrema_window": 5,
            "tolerance_fraction": 0.005,
            "major_min_touches": 5,
            "major_span_fraction": 0.5,
            "strong_min_touches": 3,
            "medium_min_touches": 2,
            "touch_weight": 20.0,
            "touch_cap": 70.0,
            "recency_weight": 30.0,
            "recency_decay_fraction": 0.25,
            "break_confirmation_pct": 0.01,
            "break_confirmation_bars": 2,
            "zone_epsilon": 0.001,
            "approach_threshold": 0.02,
        }
        if config:
            self.config.update(config)

        if self.config["tolerance_fraction"] <= 0:
            raise ValueError(f"tolerance_fraction must be positive, got {self.config['tolerance_fraction']}")

    def detect(self, ohlcv: OhlcvInput, current_price: Optional[float] = None) -> Dict[str, Any]:
        """
        Detects support/resistance levels from a reference candle series.

        Args:
            ohlcv (OhlcvInput): Reference candle series (long history).
            current_price (Optional[float]): Price to classify levels against; defaults to the last close.

        Returns:
            Dict[str, Any]: ``levels`` (all detected levels), ``key_levels``, ``all_levels``,
                            ``current_position``, ``current_price`` and ``timestamp``.
        """
        logger.info(f"[S/R Engine] Starting detection for interval: {self.interval}")
        df = prepare_ohlcv(ohlcv, timeframe=self.interval, min_candles=int(self.config["min_candles"]))

        closes = df['close'].to_numpy(dtype=float)
        price = float(closes[-1]) if current_price is None else float(current_price)
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"Current price must be a positive number, got {current_price}")

        candidates = self._find_touch_candidates(df)
        bands = self._cluster_touches(candidates, tolerance=self.config["tolerance_fraction"] * price)
        levels = [self._build_level(band, df, price) for band in bands]

        supports = sorted([lvl for lvl in levels if lvl.type is LevelType.SUPPORT],
                          key=lambda lvl: lvl.price_range.center, reverse=True)
        resistances = sorted([lvl for lvl in levels if lvl.type is LevelType.RESISTANCE],
                             key=lambda lvl: lvl.price_range.center)

        key_levels = self._derive_key_levels(supports, resistances)
        position = self._classify_position(levels, key_levels, closes, price)

        logger.info(f"[S/R Engine] Detection complete. Found {len(supports)} support levels, "
                    f"{len(resistances)} resistance levels.")

        return {
            "levels": supports + resistances,
            "key_levels": key_levels,
            "all_levels": LevelCollection(supports=supports, resistances=resistances),
            "current_position": position,
            "current_price": price,
            "timestamp": int(df['timestamp'].iloc[-1]),
        }

    def _find_touch_candidates(self, df: pd.DataFrame) -> List[Touch]:
        """Peaks of highs and valleys of lows, sorted by (price, index)."""
        window = int(self.config["extrema_window"])
        highs = df['high'].to_numpy(dtype=float)
        lows = df['low'].to_numpy(dtype=float)

        peaks, _ = find_peaks_and_valleys(highs, window)
        _, valleys = find_peaks_and_valleys(lows, window)

        candidates = [(float(highs[i]), i) for i in peaks] + [(float(lows[i]), i) for i in valleys]
        return sorted(candidates)

    def _cluster_touches(self, candidates: List[Touch], tolerance: float) -> List[List[Touch]]:
        """
        Greedy single pass over price-sorted candidates.

        A candidate joins the open band when it lies strictly within ``tolerance``
        of the band's center (midpoint of its min and max); otherwise it opens a new band.
        """
        bands: List[List[Touch]] = []
        band_min = band_max = None
        for touch in candidates:
            if bands and abs(touch[0] - (band_min + band_max) / 2) < tolerance:
                bands[-1].append(touch)
                band_max = max(band_max, touch[0])
            else:
                bands.append([touch])
                band_min = band_max = touch[0]
        return bands

    def _build_level(self, band: List[Touch], df: pd.DataFrame, price: float) -> SupportResistanceLevel:
        n = len(df)
        prices = [p for p, _ in band]
        indices = [i for _, i in band]
        low, high = min(prices), max(prices)
        center = (low + high) / 2
        first_idx, last_idx = min(indices), max(indices)
        touch_count = len(band)

        level_type = LevelType.SUPPORT if center < price else LevelType.RESISTANCE
        strength = self._strength(touch_count, last_idx - first_idx, n)
        confidence = self._confidence(touch_count, age=(n - 1) - last_idx, n=n)
        is_active = self._is_active(level_type, low, high, df['close'].to_numpy(dtype=float)[last_idx + 1:])

        return SupportResistanceLevel(
            type=level_type,
            price_range=PriceRange(min=low, max=high, center=center),
            strength=strength,
            confidence=confidence,
            touch_count=touch_count,
            last_touch=int(df['timestamp'].iloc[last_idx]),
            distance=abs(center - price) / price * 100,
            is_active=is_active,
            origin_timeframe=self.interval,
            description=(f"{self.interval} {strength.value.lower()} {level_type.value.lower()} "
                         f"at {center:.5f}, touched {touch_count} times"),
        )

    def _strength(self, touch_count: int, span: int, n: int) -> LevelStrength:
        if touch_count >= self.config["major_min_touches"] and span >= self.config["major_span_fraction"] * n:
            return LevelStrength.MAJOR
        if touch_count >= self.config["strong_min_touches"]:
            return LevelStrength.STRONG
        if touch_count >= self.config["medium_min_touches"]:
            return LevelStrength.MEDIUM
        return LevelStrength.WEAK

    def _confidence(self, touch_count: int, age: int, n: int) -> float:
        """Touch score plus an exponentially decaying recency bonus, capped at 100."""
        touch_score = min(self.config["touch_cap"], self.config["touch_weight"] * touch_count)
        decay = max(self.config["recency_decay_fraction"] * n, 1.0)
        recency = self.config["recency_weight"] * math.exp(-age / decay)
        return round(min(100.0, touch_score + recency), 2)

    def _is_active(self, level_type: LevelType, low: float, high: float, later_closes: np.ndarray) -> bool:
        """A level stays active until enough closes settle decisively beyond it."""
        pct = self.config["break_confirmation_pct"]
        if level_type is LevelType.SUPPORT:
            breaks = int(np.sum(later_closes < low * (1 - pct)))
        else:
            breaks = int(np.sum(later_closes > high * (1 + pct)))
        return breaks < self.config["break_confirmation_bars"]

    def _derive_key_levels(self, supports: List[SupportResistanceLevel],
                           resistances: List[SupportResistanceLevel]) -> KeyLevels:
        def nearest(levels):
            return min(levels, key=lambda lvl: lvl.distance) if levels else None

        def strongest(levels):
            return max(levels, key=lambda lvl: (lvl.strength.rank, lvl.confidence)) if levels else None

        return KeyLevels(
            nearest_support=nearest(supports),
            nearest_resistance=nearest(resistances),
            strongest_support=strongest(supports),
            strongest_resistance=strongest(resistances),
        )

    def _classify_position(self, levels: List[SupportResistanceLevel], key_levels: KeyLevels,
                           closes: np.ndarray, price: float) -> CurrentPosition:
        eps = self.config["zone_epsilon"] * price
        active = [lvl for lvl in levels if lvl.is_active]

        def inside(value: float, lvl: SupportResistanceLevel) -> bool:
            return lvl.price_range.min - eps <= value <= lvl.price_range.max + eps

        in_support = any(inside(price, lvl) for lvl in active if lvl.type is LevelType.SUPPORT)
        in_resistance = any(inside(price, lvl) for lvl in active if lvl.type is LevelType.RESISTANCE)

        previous_close = float(closes[-2]) if len(closes) > 1 else None
        just_exited = (
            previous_close is not None
            and any(inside(previous_close, lvl) for lvl in active)
            and not any(inside(price, lvl) for lvl in active)
        )

        threshold = self.config["approach_threshold"] * 100  # distance is in percent
        approaching = [
            (lvl.distance, action)
            for lvl, action in ((key_levels.nearest_support, PriceAction.APPROACHING_SUPPORT),
                                (key_levels.nearest_resistance, PriceAction.APPROACHING_RESISTANCE))
            if lvl is not None and lvl.distance < threshold
        ]

        if just_exited:
            price_action = PriceAction.BREAKING_OUT
        elif approaching:
            price_action = min(approaching, key=lambda item: item[0])[1]
        else:
            price_action = PriceAction.CONSOLIDATING

        return CurrentPosition(
            between_levels=key_levels.nearest_support is not None and key_levels.nearest_resistance is not None,
            in_support_zone=in_support,
            in_resistance_zone=in_resistance,
            price_action=price_action,
        )
