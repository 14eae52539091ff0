"""
Technical Market Analyzer

This module provides a clean per-symbol interface to the analysis pipeline:
it pulls candle series from a market data provider and returns the complete
technical analysis, or one part of it.
"""

import asyncio
from typing import Dict, List, Optional, Any

from common.custom_exceptions.analysis_errors import AnalysisError, DataUnavailableError
from common.logger import logger
from core.interfaces.AnalysisRequest import Candle
from core.interfaces.AnalysisResult import (
    MultiTimeframeTrend,
    SupportResistanceAnalysis,
    TechnicalAnalysisResult,
)
from core.interfaces.market_data_provider import MarketDataProvider

from .analysis_pipeline import MarketAnalysisPipeline


class TechnicalAnalyzer:
    """
    High-level interface for multi-timeframe technical analysis.

    Each call fetches fresh candles and runs the stateless pipeline, so one
    analyzer can serve many symbols concurrently.
    """

    def __init__(self, provider: MarketDataProvider, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the technical analyzer.

        Args:
            provider: Data collaborator supplying candle series
            config: Configuration overrides for the analysis pipeline
        """
        self.provider = provider
        self.pipeline = MarketAnalysisPipeline(config)

        timeframe_config = self.pipeline.config["timeframes"]
        self.candle_limit = int(timeframe_config["candle_limit"])
        self.reference_limit = int(timeframe_config["reference_limit"])

    async def analyze_symbol(self, symbol: str, current_price: Optional[float] = None) -> TechnicalAnalysisResult:
        """
        Perform the full technical analysis for one symbol.

        Args:
            symbol: Instrument symbol, e.g. "BTCUSDT"
            current_price: Optional live price; defaults to the last close of the shortest timeframe

        Returns:
            TechnicalAnalysisResult

        Raises:
            DataUnavailableError: the provider failed to supply a series
            InsufficientDataError / InvalidSeriesError: the supplied series cannot be analysed
        """
        logger.info(f"[TechnicalAnalyzer] Starting analysis for {symbol}...")

        timeframe_series, reference_series = await self._fetch_series(symbol)
        result = await self.pipeline.analyze_market(
            symbol=symbol,
            timeframe_series=timeframe_series,
            reference_series=reference_series,
            current_price=current_price,
        )

        logger.info(f"[TechnicalAnalyzer] Analysis for {symbol} completed successfully")
        return result

    async def get_trend_analysis(self, symbol: str) -> MultiTimeframeTrend:
        """Run the full analysis and return only the multi-timeframe trend."""
        result = await self.analyze_symbol(symbol)
        return result.trend_analysis

    async def get_support_resistance_analysis(self, symbol: str) -> SupportResistanceAnalysis:
        """Run the full analysis and return only the support/resistance part."""
        result = await self.analyze_symbol(symbol)
        return result.support_resistance_analysis

    def get_analysis_summary(self, result: TechnicalAnalysisResult) -> Dict[str, Any]:
        """
        Get a flat summary of an analysis result.

        Args:
            result: Analysis result

        Returns:
            Summary dictionary with key metrics, camelCase keys
        """
        trend = result.trend_analysis
        sr = result.support_resistance_analysis
        overall = result.overall_assessment
        nearest_support = sr.key_levels.nearest_support
        nearest_resistance = sr.key_levels.nearest_resistance

        return {
            'symbol': result.symbol,
            'timestamp': result.timestamp,
            'overallTrend': trend.overall_trend.value,
            'overallConfidence': trend.overall_confidence,
            'alignmentScore': trend.alignment.alignment_score,
            'action': trend.trading_suggestion.action.value,
            'currentPrice': sr.current_price,
            'nearestSupport': nearest_support.price_range.center if nearest_support else None,
            'nearestResistance': nearest_resistance.price_range.center if nearest_resistance else None,
            'buyZones': len(sr.trading_zones.buy_zones),
            'sellZones': len(sr.trading_zones.sell_zones),
            'marketCondition': overall.market_condition.value,
            'riskLevel': overall.risk_level.value,
            'opportunity': overall.opportunity.value,
        }

    async def _fetch_series(self, symbol: str):
        timeframes = self.pipeline.timeframes
        reference_tf = self.pipeline.reference_timeframe

        requests = [self._get_candles(symbol, tf, self.candle_limit) for tf in timeframes]
        requests.append(self._get_candles(symbol, reference_tf, self.reference_limit))
        results = await asyncio.gather(*requests)

        timeframe_series = dict(zip(timeframes, results[:-1]))
        return timeframe_series, results[-1]

    async def _get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        try:
            candles = await self.provider.get_candles(symbol, timeframe, limit)
        except AnalysisError:
            raise
        except Exception as e:
            logger.error(f"[TechnicalAnalyzer] Failed to fetch {symbol} {timeframe}: {str(e)}")
            raise DataUnavailableError(
                message=f"Market data unavailable for {symbol} {timeframe}",
                detail=str(e),
            ) from e

        if not candles:
            raise DataUnavailableError(message=f"No candles returned for {symbol} {timeframe}")
        return candles
