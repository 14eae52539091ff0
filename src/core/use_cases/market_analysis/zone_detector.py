"""
Zone Detection Module for Multi-Timeframe Analysis

This module converts strong support/resistance levels into actionable buy and
sell zones with an entry, tolerance band, stop-loss and golden-ratio target.
"""

from typing import Dict, List, Optional, Any

from common.logger import logger
from core.interfaces.AnalysisResult import (
    LevelStrength,
    LevelType,
    SupportResistanceLevel,
    TradingZone,
    TradingZones,
)
from .analysis_config import get_config


class ZoneDetector:
    """
    Builds trading zones from detected levels.
    Only confident, non-weak levels qualify; the nearest ones win.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the zone detector.

        Args:
            config: Full engine configuration (defaults to ``get_config()``)
        """
        config = config or get_config()
        self.zone_config = config["trading_zones"]
        if self.zone_config["max_zones"] < 0:
            raise ValueError(f"max_zones must not be negative, got {self.zone_config['max_zones']}")

    def detect_zones(self, levels: List[SupportResistanceLevel], current_price: float) -> TradingZones:
        """
        Synthesize buy and sell zones.

        Args:
            levels: Detected support/resistance levels
            current_price: Current market price

        Returns:
            TradingZones with buy zones (from supports) and sell zones (from resistances),
            each ordered nearest to price first
        """
        if current_price <= 0:
            raise ValueError(f"Current price must be positive, got {current_price}")

        supports = self._candidates(levels, LevelType.SUPPORT)
        resistances = self._candidates(levels, LevelType.RESISTANCE)

        zones = TradingZones(
            buy_zones=[self._buy_zone(lvl, current_price) for lvl in supports],
            sell_zones=[self._sell_zone(lvl, current_price) for lvl in resistances],
        )
        logger.info(f"[ZoneDetector] {len(zones.buy_zones)} buy zones, {len(zones.sell_zones)} sell zones "
                    f"around {current_price:.5f}")
        return zones

    def _candidates(self, levels: List[SupportResistanceLevel], level_type: LevelType) -> List[SupportResistanceLevel]:
        eligible = [
            lvl for lvl in levels
            if lvl.type is level_type
            and lvl.confidence >= self.zone_config["min_confidence"]
            and lvl.strength is not LevelStrength.WEAK
        ]
        # sorted() is stable, so equal distances keep their detection order
        eligible = sorted(eligible, key=lambda lvl: lvl.distance)
        return eligible[: int(self.zone_config["max_zones"])]

    def _tolerance(self, level: SupportResistanceLevel, current_price: float) -> float:
        return min(self.zone_config["base_tolerance_pct"] * current_price, level.price_range.width / 4)

    def _buy_zone(self, level: SupportResistanceLevel, current_price: float) -> TradingZone:
        entry = level.price_range.center
        tolerance = self._tolerance(level, current_price)
        return TradingZone(
            entry=entry,
            tolerance=tolerance,
            confidence=level.confidence,
            stop_loss=entry - self.zone_config["stop_loss_multiplier"] * tolerance,
            target=current_price + (current_price - entry) * self.zone_config["target_ratio"],
            reason=f"{level.origin_timeframe} {level.strength.value} support",
        )

    def _sell_zone(self, level: SupportResistanceLevel, current_price: float) -> TradingZone:
        entry = level.price_range.center
        tolerance = self._tolerance(level, current_price)
        return TradingZone(
            entry=entry,
            tolerance=tolerance,
            confidence=level.confidence,
            stop_loss=entry + self.zone_config["stop_loss_multiplier"] * tolerance,
            target=current_price - (entry - current_price) * self.zone_config["target_ratio"],
            reason=f"{level.origin_timeframe} {level.strength.value} resistance",
        )
