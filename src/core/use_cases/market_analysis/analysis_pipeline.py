"""
Analysis Pipeline Module for Multi-Timeframe Trend & Support/Resistance Analysis

This module orchestrates the complete analysis for one symbol, integrating
per-timeframe trend classification, multi-timeframe aggregation, level
detection, trading zone synthesis and the overall assessment.
"""

import asyncio
from typing import Dict, List, Optional, Any

import pandas as pd

from common.custom_exceptions.analysis_errors import AnalysisError, InsufficientDataError
from common.logger import logger
from common.utils.data_processing import OhlcvInput, prepare_ohlcv
from core.engines.support_resistance_engine import SupportResistanceEngine
from core.interfaces.AnalysisRequest import AnalysisRequest
from core.interfaces.AnalysisResult import (
    MultiTimeframeTrend,
    SupportResistanceAnalysis,
    TechnicalAnalysisResult,
    TimeframeTrend,
)

from .analysis_config import get_config
from .assessment import AssessmentAggregator
from .trend_aggregator import TrendAggregator
from .trend_detector import TimeframeTrendClassifier
from .zone_detector import ZoneDetector


class MarketAnalysisPipeline:
    """
    Main pipeline for multi-timeframe market analysis.

    Implements the complete workflow:
    1. Series validation
    2. Per-timeframe trend classification (optionally in parallel)
    3. Multi-timeframe aggregation
    4. Support/resistance detection on the reference series
    5. Trading zone synthesis
    6. Overall assessment

    The pipeline holds configuration only; every call works on fresh objects.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the analysis pipeline.

        Args:
            config: Configuration overrides merged over the defaults
        """
        self.config = get_config(config)

        self.timeframes: List[str] = list(self.config["timeframes"]["analysis"])
        self.reference_timeframe: str = self.config["timeframes"]["reference"]
        self.parallel: bool = bool(self.config["timeframes"]["parallel"])

        # Initialize all modules
        self.trend_classifier = TimeframeTrendClassifier(self.config)
        self.trend_aggregator = TrendAggregator(self.config)
        self.zone_detector = ZoneDetector(self.config)
        self.assessor = AssessmentAggregator(self.config)

    async def analyze_market(self, symbol: str, timeframe_series: Dict[str, OhlcvInput],
                             reference_series: OhlcvInput, current_price: Optional[float] = None,
                             reference_timeframe: Optional[str] = None) -> TechnicalAnalysisResult:
        """
        Run the complete analysis for one symbol.

        Args:
            symbol: Instrument symbol
            timeframe_series: Candle series per configured timeframe
            reference_series: Long candle series used for level detection
            current_price: Optional price override; defaults to the last close of the shortest timeframe
            reference_timeframe: Label of the reference series; defaults to the configured one

        Returns:
            TechnicalAnalysisResult

        Raises:
            InsufficientDataError: a configured timeframe is missing or too short, or the reference series is too short
            InvalidSeriesError: a series is malformed
        """
        try:
            logger.info(f"[Pipeline] Starting analysis for {symbol} over {self.timeframes}")

            frames = self._validate_series(timeframe_series)
            reference_label = reference_timeframe or self.reference_timeframe
            reference_df = self._prepare_reference(reference_series, reference_label)

            price = float(current_price) if current_price is not None else float(frames[self.timeframes[0]]['close'].iloc[-1])
            timestamp = max(
                [int(df['timestamp'].iloc[-1]) for df in frames.values()] + [int(reference_df['timestamp'].iloc[-1])]
            )

            trends = await self._classify_timeframes(frames)
            trend_analysis = self.trend_aggregator.aggregate(symbol, trends, timestamp)

            sr_analysis = self._analyze_levels(symbol, reference_df, reference_label, price, timestamp)
            overall = self.assessor.assess(trend_analysis, sr_analysis)

            logger.info(f"[Pipeline] Analysis complete for {symbol}: {overall.market_condition.value}, "
                        f"{overall.opportunity.value}")

            return TechnicalAnalysisResult(
                symbol=symbol,
                timestamp=timestamp,
                trend_analysis=trend_analysis,
                support_resistance_analysis=sr_analysis,
                overall_assessment=overall,
            )

        except AnalysisError as e:
            logger.error(f"[Pipeline] Analysis failed for {symbol}: {e}")
            raise
        except Exception as e:
            logger.error(f"[Pipeline] Unexpected error analysing {symbol}: {str(e)}")
            raise

    async def analyze_request(self, request: AnalysisRequest) -> TechnicalAnalysisResult:
        """Run the analysis for a validated AnalysisRequest."""
        return await self.analyze_market(
            symbol=request.symbol,
            timeframe_series=request.timeframes,
            reference_series=request.reference,
            current_price=request.current_price,
            reference_timeframe=request.reference_timeframe,
        )

    async def analyze_trend(self, symbol: str, timeframe_series: Dict[str, OhlcvInput]) -> MultiTimeframeTrend:
        """Run only the trend stages (classification and aggregation)."""
        frames = self._validate_series(timeframe_series)
        timestamp = max(int(df['timestamp'].iloc[-1]) for df in frames.values())
        trends = await self._classify_timeframes(frames)
        return self.trend_aggregator.aggregate(symbol, trends, timestamp)

    def analyze_levels(self, symbol: str, reference_series: OhlcvInput,
                       current_price: Optional[float] = None,
                       reference_timeframe: Optional[str] = None) -> SupportResistanceAnalysis:
        """Run only the support/resistance stages (levels and trading zones)."""
        reference_label = reference_timeframe or self.reference_timeframe
        reference_df = self._prepare_reference(reference_series, reference_label)
        price = float(current_price) if current_price is not None else float(reference_df['close'].iloc[-1])
        return self._analyze_levels(symbol, reference_df, reference_label, price,
                                    int(reference_df['timestamp'].iloc[-1]))

    def _validate_series(self, timeframe_series: Dict[str, OhlcvInput]) -> Dict[str, pd.DataFrame]:
        missing = [tf for tf in self.timeframes if tf not in timeframe_series]
        if missing:
            raise InsufficientDataError(
                required=len(self.timeframes),
                actual=len(self.timeframes) - len(missing),
                detail=f"missing timeframe series: {missing}",
            )

        extra = [tf for tf in timeframe_series if tf not in self.timeframes]
        if extra:
            logger.warning(f"[Pipeline] Ignoring unconfigured timeframes: {extra}")

        return {
            tf: prepare_ohlcv(timeframe_series[tf], timeframe=tf, min_candles=self.trend_classifier.min_candles)
            for tf in self.timeframes
        }

    def _prepare_reference(self, reference_series: OhlcvInput, reference_label: str) -> pd.DataFrame:
        return prepare_ohlcv(reference_series, timeframe=reference_label,
                             min_candles=int(self.config["support_resistance"]["min_candles"]))

    async def _classify_timeframes(self, frames: Dict[str, pd.DataFrame]) -> Dict[str, TimeframeTrend]:
        if self.parallel:
            # Timeframes are independent; run them on worker threads
            results = await asyncio.gather(*[
                asyncio.to_thread(self.trend_classifier.classify, frames[tf], tf) for tf in self.timeframes
            ])
            return dict(zip(self.timeframes, results))
        return {tf: self.trend_classifier.classify(frames[tf], tf) for tf in self.timeframes}

    def _analyze_levels(self, symbol: str, reference_df: pd.DataFrame, reference_label: str,
                        price: float, timestamp: int) -> SupportResistanceAnalysis:
        engine = SupportResistanceEngine(interval=reference_label, config=self.config["support_resistance"])
        detection = engine.detect(reference_df, current_price=price)
        zones = self.zone_detector.detect_zones(detection["levels"], price)

        return SupportResistanceAnalysis(
            symbol=symbol,
            current_price=price,
            timestamp=timestamp,
            key_levels=detection["key_levels"],
            all_levels=detection["all_levels"],
            current_position=detection["current_position"],
            trading_zones=zones,
        )
