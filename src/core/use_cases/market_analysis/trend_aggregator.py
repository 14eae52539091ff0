"""
Multi-Timeframe Aggregation Module

This module implements the weighted consensus across per-timeframe trend
classifications: vote mass, alignment scoring and the resulting trading
suggestion. Longer timeframes carry more weight.
"""

import math
from typing import Dict, List, Optional, Any, Tuple

from common.custom_exceptions.analysis_errors import InsufficientDataError
from common.logger import logger
from core.interfaces.AnalysisResult import (
    MultiTimeframeTrend,
    RiskLevel,
    TimeframeTrend,
    TradeAction,
    TradingSuggestion,
    TrendAlignment,
    TrendDirection,
    TrendType,
)
from .analysis_config import get_config, normalize_weights


class TrendAggregator:
    """
    Combines per-timeframe trends into one consensus.
    Implemented as a pure reduce over ordered (timeframe, weight, trend) tuples.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the aggregator.

        Args:
            config: Full engine configuration (defaults to ``get_config()``)
        """
        config = config or get_config()
        self.timeframes: List[str] = list(config["timeframes"]["analysis"])
        if not self.timeframes:
            raise ValueError("At least one analysis timeframe must be configured")

        self.weights = normalize_weights(config["timeframes"]["weights"], self.timeframes)
        self.agg_config = config["trend_aggregation"]

    def aggregate(self, symbol: str, trends: Dict[str, TimeframeTrend], timestamp: int) -> MultiTimeframeTrend:
        """
        Build the multi-timeframe consensus.

        Args:
            symbol: Instrument symbol
            trends: TimeframeTrend per configured timeframe
            timestamp: Timestamp (ms) of the latest analysed candle

        Returns:
            MultiTimeframeTrend value object
        """
        missing = [tf for tf in self.timeframes if tf not in trends]
        if missing:
            raise InsufficientDataError(
                required=len(self.timeframes),
                actual=len(self.timeframes) - len(missing),
                detail=f"missing timeframe classifications: {missing}",
            )

        votes = [(tf, self.weights[tf], trends[tf]) for tf in self.timeframes]

        overall_trend = self._overall_trend(votes)
        overall_direction = overall_trend.direction
        overall_confidence = sum(w * t.confidence for _, w, t in votes)
        trend_strength = sum(w * t.trend_strength for _, w, t in votes)

        agreeing_mass = sum(w for _, w, t in votes if t.trend.direction is overall_direction)
        alignment_score = round(min(100.0, 100.0 * agreeing_mass), 2)
        conflicting = [tf for tf, _, t in votes if t.trend.direction is not overall_direction]

        alignment = TrendAlignment(
            is_aligned=alignment_score >= self.agg_config["alignment_threshold"],
            alignment_score=alignment_score,
            conflicting_timeframes=conflicting,
        )
        suggestion = self._suggest(overall_trend, alignment_score, conflicting)

        logger.info(
            f"[TrendAggregator] {symbol}: overall={overall_trend.value} confidence={overall_confidence:.2f} "
            f"alignment={alignment_score:.2f} action={suggestion.action.value}"
        )

        return MultiTimeframeTrend(
            symbol=symbol,
            timestamp=timestamp,
            overall_trend=overall_trend,
            overall_confidence=round(min(100.0, overall_confidence), 2),
            trend_strength=round(min(100.0, trend_strength), 2),
            timeframes={tf: trends[tf] for tf in self.timeframes},
            alignment=alignment,
            trading_suggestion=suggestion,
        )

    def _overall_trend(self, votes: List[Tuple[str, float, TimeframeTrend]]) -> TrendType:
        mass: Dict[TrendType, float] = {}
        for _, weight, trend in votes:
            mass[trend.trend] = mass.get(trend.trend, 0.0) + weight * trend.confidence

        best = max(mass.values())
        # Ties go to the label of the longest timeframe holding it
        for _, _, trend in reversed(votes):
            if math.isclose(mass[trend.trend], best, rel_tol=1e-9, abs_tol=1e-9):
                return trend.trend
        return votes[-1][2].trend

    def _suggest(self, overall_trend: TrendType, alignment_score: float, conflicting: List[str]) -> TradingSuggestion:
        strong_alignment = self.agg_config["strong_alignment"]
        low_alignment = self.agg_config["low_alignment"]
        direction = overall_trend.direction
        tier = overall_trend.tier

        if alignment_score < low_alignment:
            action = TradeAction.WAIT
            reason = f"Timeframes disagree (alignment {alignment_score:.1f}%), waiting for confirmation"
        elif direction is TrendDirection.RANGING:
            action = TradeAction.HOLD
            reason = "No directional consensus, market is ranging"
        elif alignment_score >= strong_alignment:
            if direction is TrendDirection.UP:
                action = TradeAction.STRONG_BUY if tier == "STRONG" else TradeAction.BUY
            else:
                action = TradeAction.STRONG_SELL if tier == "STRONG" else TradeAction.SELL
            reason = f"{_describe(overall_trend)} confirmed across timeframes (alignment {alignment_score:.1f}%)"
        elif tier == "WEAK":
            action = TradeAction.HOLD
            reason = f"{_describe(overall_trend)} with partial agreement (alignment {alignment_score:.1f}%)"
        else:
            action = TradeAction.BUY if direction is TrendDirection.UP else TradeAction.SELL
            reason = f"{_describe(overall_trend)} with partial agreement (alignment {alignment_score:.1f}%)"

        if alignment_score < low_alignment or self.timeframes[-1] in conflicting:
            risk = RiskLevel.HIGH
        elif alignment_score >= strong_alignment and tier != "WEAK":
            risk = RiskLevel.LOW
        else:
            risk = RiskLevel.MEDIUM

        return TradingSuggestion(action=action, reason=reason, risk_level=risk)


def _describe(trend: TrendType) -> str:
    return trend.value.replace("_", " ").capitalize()
