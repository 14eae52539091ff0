"""
Comprehensive Assessment Module

Merges the multi-timeframe trend consensus with the support/resistance picture
into a single market verdict. Rule based only; no new numeric derivation.
"""

from typing import Dict, Optional, Any

from common.logger import logger
from core.interfaces.AnalysisResult import (
    HoldingTimeframe,
    MarketCondition,
    MultiTimeframeTrend,
    Opportunity,
    OverallAssessment,
    PriceAction,
    RiskLevel,
    SupportResistanceAnalysis,
    TrendDirection,
)
from .analysis_config import get_config


class AssessmentAggregator:
    """Produces the OverallAssessment from trend and level analysis."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or get_config()
        self.assessment_config = config["assessment"]
        self.alignment_threshold = config["trend_aggregation"]["alignment_threshold"]

        if not self.assessment_config["zone_availability"]:
            raise ValueError("zone_availability must list at least one factor")

    def assess(self, trend: MultiTimeframeTrend, sr_analysis: SupportResistanceAnalysis) -> OverallAssessment:
        """
        Combine trend and level analysis into one verdict.

        Args:
            trend: Multi-timeframe trend consensus
            sr_analysis: Support/resistance analysis including trading zones

        Returns:
            OverallAssessment value object
        """
        condition = self._market_condition(trend)
        risk = self._risk_level(trend, sr_analysis)
        opportunity = self._opportunity(trend, sr_analysis, risk)
        holding = self._holding_timeframe(trend)
        recommendation = self._recommendation(trend, sr_analysis, condition)

        logger.info(f"[Assessment] {trend.symbol}: condition={condition.value} risk={risk.value} "
                    f"opportunity={opportunity.value} holding={holding.value}")

        return OverallAssessment(
            market_condition=condition,
            risk_level=risk,
            opportunity=opportunity,
            preferred_holding_timeframe=holding,
            recommendation=recommendation,
        )

    def _market_condition(self, trend: MultiTimeframeTrend) -> MarketCondition:
        if (trend.trend_strength >= self.assessment_config["volatile_strength"]
                and trend.alignment.alignment_score < self.assessment_config["volatile_alignment"]):
            return MarketCondition.VOLATILE

        direction = trend.overall_trend.direction
        if direction is TrendDirection.UP:
            return MarketCondition.BULLISH
        if direction is TrendDirection.DOWN:
            return MarketCondition.BEARISH
        return MarketCondition.NEUTRAL

    def _risk_level(self, trend: MultiTimeframeTrend, sr_analysis: SupportResistanceAnalysis) -> RiskLevel:
        risk = trend.trading_suggestion.risk_level
        position = sr_analysis.current_position
        direction = trend.overall_trend.direction
        # Buying into resistance or selling into support, whatever the market condition
        if ((direction is TrendDirection.UP and position.in_resistance_zone)
                or (direction is TrendDirection.DOWN and position.in_support_zone)):
            risk = risk.escalate()
        return risk

    def _opportunity(self, trend: MultiTimeframeTrend, sr_analysis: SupportResistanceAnalysis,
                     risk: RiskLevel) -> Opportunity:
        if risk is RiskLevel.EXTREME:
            return Opportunity.AVOID

        availability = self.assessment_config["zone_availability"]
        zone_count = sr_analysis.trading_zones.count
        score = trend.overall_confidence * availability[min(zone_count, len(availability) - 1)]

        thresholds = self.assessment_config["opportunity_thresholds"]
        opportunity = Opportunity.AVOID
        for grade in (Opportunity.EXCELLENT, Opportunity.GOOD, Opportunity.FAIR, Opportunity.POOR):
            if score >= thresholds[grade.value]:
                opportunity = grade
                break

        if zone_count == 0 and opportunity in (Opportunity.EXCELLENT, Opportunity.GOOD):
            opportunity = Opportunity.FAIR
        return opportunity

    def _holding_timeframe(self, trend: MultiTimeframeTrend) -> HoldingTimeframe:
        if trend.alignment.is_aligned and trend.overall_trend.tier == "STRONG":
            return HoldingTimeframe.LONG_TERM
        if (trend.overall_confidence < self.assessment_config["short_term_confidence"]
                or not trend.alignment.is_aligned):
            return HoldingTimeframe.SHORT_TERM
        return HoldingTimeframe.MEDIUM_TERM

    def _recommendation(self, trend: MultiTimeframeTrend, sr_analysis: SupportResistanceAnalysis,
                        condition: MarketCondition) -> str:
        position = sr_analysis.current_position
        key_levels = sr_analysis.key_levels
        action = trend.trading_suggestion.action.value.replace("_", " ")
        trend_text = (f"{trend.overall_trend.value.replace('_', ' ').lower()} with "
                      f"{trend.overall_confidence:.1f}% confidence and "
                      f"{trend.alignment.alignment_score:.1f}% timeframe alignment")

        # Level proximity dominates when price sits on or near a level
        if position.in_support_zone and key_levels.nearest_support is not None:
            return (f"Price is testing support at {key_levels.nearest_support.price_range.center:.5f}; "
                    f"level proximity drives the setup ({trend_text}). Suggested action: {action}.")
        if position.in_resistance_zone and key_levels.nearest_resistance is not None:
            return (f"Price is testing resistance at {key_levels.nearest_resistance.price_range.center:.5f}; "
                    f"level proximity drives the setup ({trend_text}). Suggested action: {action}.")
        if position.price_action is PriceAction.APPROACHING_SUPPORT and key_levels.nearest_support is not None:
            return (f"Price is approaching support at {key_levels.nearest_support.price_range.center:.5f} "
                    f"({key_levels.nearest_support.distance:.2f}% away); watch for a bounce. "
                    f"Trend: {trend_text}. Suggested action: {action}.")
        if position.price_action is PriceAction.APPROACHING_RESISTANCE and key_levels.nearest_resistance is not None:
            return (f"Price is approaching resistance at {key_levels.nearest_resistance.price_range.center:.5f} "
                    f"({key_levels.nearest_resistance.distance:.2f}% away); watch for rejection. "
                    f"Trend: {trend_text}. Suggested action: {action}.")

        if condition is MarketCondition.VOLATILE:
            return (f"Volatile market: strong movement but timeframes disagree ({trend_text}). "
                    f"Suggested action: {action}.")
        return f"Trend drives the outlook: {trend_text}. Suggested action: {action}."
