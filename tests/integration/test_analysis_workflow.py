import pytest
from unittest.mock import AsyncMock, MagicMock

from common.custom_exceptions.analysis_errors import DataUnavailableError, InsufficientDataError, InvalidSeriesError
from core.interfaces.AnalysisRequest import AnalysisRequest
from core.interfaces.AnalysisResult import (
    HoldingTimeframe,
    LevelStrength,
    MarketCondition,
    Opportunity,
    RiskLevel,
    TradeAction,
    TrendType,
)
from core.interfaces.market_data_provider import MarketDataProvider
from core.use_cases.market_analysis.analysis_pipeline import MarketAnalysisPipeline
from core.use_cases.market_analysis.technical_analyzer import TechnicalAnalyzer
from mock_data.simulated_series import (
    get_mock_downtrend_klines,
    get_mock_oscillating_klines,
    get_mock_uptrend_klines,
    klines_to_candles,
)

TIMEFRAME_MS = {"15m": 900_000, "1h": 3_600_000, "4h": 14_400_000, "1d": 86_400_000}


def uptrend_series():
    return {tf: get_mock_uptrend_klines(interval_ms=ms) for tf, ms in TIMEFRAME_MS.items()}


class TestAnalysisPipeline:
    """End-to-end analysis over simulated candle series"""

    @pytest.fixture
    def pipeline(self):
        return MarketAnalysisPipeline()

    @pytest.mark.asyncio
    async def test_clean_uptrend_across_all_timeframes(self, pipeline):
        result = await pipeline.analyze_market("BTCUSDT", uptrend_series(), get_mock_oscillating_klines(),
                                               current_price=100.0)
        trend = result.trend_analysis

        assert trend.overall_trend in (TrendType.UPTREND, TrendType.STRONG_UPTREND)
        assert trend.alignment.alignment_score >= 90
        assert trend.trading_suggestion.action in (TradeAction.BUY, TradeAction.STRONG_BUY)
        assert set(trend.timeframes) == set(TIMEFRAME_MS)

        overall = result.overall_assessment
        assert overall.market_condition == MarketCondition.BULLISH
        assert overall.risk_level == RiskLevel.LOW
        assert overall.opportunity in (Opportunity.EXCELLENT, Opportunity.GOOD)
        assert overall.preferred_holding_timeframe == HoldingTimeframe.LONG_TERM

    @pytest.mark.asyncio
    async def test_levels_and_zones_from_reference_series(self, pipeline):
        result = await pipeline.analyze_market("BTCUSDT", uptrend_series(), get_mock_oscillating_klines(),
                                               current_price=100.0)
        sr = result.support_resistance_analysis

        assert sr.current_price == 100.0
        assert sr.key_levels.strongest_support.strength == LevelStrength.MAJOR
        assert sr.key_levels.strongest_resistance.strength == LevelStrength.MAJOR
        assert len(sr.trading_zones.buy_zones) == 1
        assert len(sr.trading_zones.sell_zones) == 1
        assert sr.trading_zones.buy_zones[0].entry < 100.0 < sr.trading_zones.sell_zones[0].entry

    def test_levels_only(self, pipeline):
        reference = get_mock_oscillating_klines()
        sr = pipeline.analyze_levels("BTCUSDT", reference, current_price=100.0)

        assert sr.timestamp == reference[-1][0]
        assert sr.current_position.between_levels is True
        assert sr.trading_zones.count == 2

    @pytest.mark.asyncio
    async def test_current_price_defaults_to_shortest_timeframe_close(self, pipeline):
        series = uptrend_series()
        result = await pipeline.analyze_market("BTCUSDT", series, get_mock_oscillating_klines())
        assert result.support_resistance_analysis.current_price == pytest.approx(series["15m"][-1][4])

    @pytest.mark.asyncio
    async def test_timestamp_comes_from_latest_candle(self, pipeline):
        series = uptrend_series()
        reference = get_mock_oscillating_klines()
        result = await pipeline.analyze_market("BTCUSDT", series, reference)

        latest = max([rows[-1][0] for rows in series.values()] + [reference[-1][0]])
        assert result.timestamp == latest
        assert result.trend_analysis.timestamp == latest

    @pytest.mark.asyncio
    async def test_repeated_runs_are_identical(self, pipeline):
        first = await pipeline.analyze_market("BTCUSDT", uptrend_series(), get_mock_oscillating_klines())
        second = await pipeline.analyze_market("BTCUSDT", uptrend_series(), get_mock_oscillating_klines())
        assert first == second

    @pytest.mark.asyncio
    async def test_sequential_and_parallel_classification_agree(self):
        parallel = MarketAnalysisPipeline({"timeframes": {"parallel": True}})
        sequential = MarketAnalysisPipeline({"timeframes": {"parallel": False}})

        a = await parallel.analyze_trend("BTCUSDT", uptrend_series())
        b = await sequential.analyze_trend("BTCUSDT", uptrend_series())
        assert a == b

    @pytest.mark.asyncio
    async def test_mixed_trends_lower_alignment(self, pipeline):
        series = uptrend_series()
        series["1d"] = get_mock_downtrend_klines(interval_ms=TIMEFRAME_MS["1d"])
        trend = await pipeline.analyze_trend("BTCUSDT", series)

        assert trend.alignment.alignment_score == pytest.approx(60.0)
        assert trend.alignment.conflicting_timeframes == ["1d"]
        assert trend.trading_suggestion.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_short_timeframe_series_fails_whole_analysis(self, pipeline):
        series = uptrend_series()
        series["4h"] = get_mock_uptrend_klines(n=119, interval_ms=TIMEFRAME_MS["4h"])

        with pytest.raises(InsufficientDataError) as exc_info:
            await pipeline.analyze_market("BTCUSDT", series, get_mock_oscillating_klines())
        assert exc_info.value.timeframe == "4h"

    @pytest.mark.asyncio
    async def test_missing_timeframe_fails(self, pipeline):
        series = uptrend_series()
        del series["1h"]
        with pytest.raises(InsufficientDataError):
            await pipeline.analyze_market("BTCUSDT", series, get_mock_oscillating_klines())

    @pytest.mark.asyncio
    async def test_invalid_reference_series_fails(self, pipeline):
        reference = get_mock_oscillating_klines()
        reference[10][0] = reference[9][0]
        with pytest.raises(InvalidSeriesError):
            await pipeline.analyze_market("BTCUSDT", uptrend_series(), reference)

    @pytest.mark.asyncio
    async def test_empty_reference_series_is_insufficient_data(self, pipeline):
        with pytest.raises(InsufficientDataError) as exc_info:
            await pipeline.analyze_market("BTCUSDT", uptrend_series(), [])
        assert exc_info.value.timeframe == "1d"
        assert exc_info.value.actual == 0

    @pytest.mark.asyncio
    async def test_request_with_empty_reference_is_insufficient_data(self, pipeline):
        request = AnalysisRequest(
            symbol="ETHUSDT",
            timeframes={tf: klines_to_candles(rows) for tf, rows in uptrend_series().items()},
            reference=[],
        )
        with pytest.raises(InsufficientDataError):
            await pipeline.analyze_request(request)

    @pytest.mark.parametrize("reference", [[], get_mock_oscillating_klines(n=49)])
    def test_levels_only_rejects_short_reference(self, pipeline, reference):
        with pytest.raises(InsufficientDataError) as exc_info:
            pipeline.analyze_levels("BTCUSDT", reference)
        assert exc_info.value.required == 50

    @pytest.mark.asyncio
    async def test_analyze_request(self, pipeline):
        request = AnalysisRequest(
            symbol="ETHUSDT",
            timeframes={tf: klines_to_candles(rows) for tf, rows in uptrend_series().items()},
            reference=klines_to_candles(get_mock_oscillating_klines()),
            current_price=100.0,
        )
        result = await pipeline.analyze_request(request)
        assert result.symbol == "ETHUSDT"
        assert result.support_resistance_analysis.current_price == 100.0

    @pytest.mark.asyncio
    async def test_result_serialises_with_camel_case_names(self, pipeline):
        result = await pipeline.analyze_market("BTCUSDT", uptrend_series(), get_mock_oscillating_klines(),
                                               current_price=100.0)
        payload = result.model_dump(by_alias=True, mode="json")

        assert payload["trendAnalysis"]["overallTrend"] in ("UPTREND", "STRONG_UPTREND")
        assert "alignmentScore" in payload["trendAnalysis"]["alignment"]
        level = payload["supportResistanceAnalysis"]["allLevels"]["supports"][0]
        assert set(level["priceRange"]) == {"min", "max", "center"}
        assert "preferredHoldingTimeframe" in payload["overallAssessment"]


class TestTechnicalAnalyzer:
    """Analyzer driving a mocked market data provider"""

    @pytest.fixture
    def mock_provider(self):
        provider = MagicMock(spec=MarketDataProvider)

        async def get_candles(symbol, timeframe, limit):
            if limit == 500:
                return klines_to_candles(get_mock_oscillating_klines())
            return klines_to_candles(get_mock_uptrend_klines(interval_ms=TIMEFRAME_MS[timeframe]))

        provider.get_candles = AsyncMock(side_effect=get_candles)
        return provider

    @pytest.mark.asyncio
    async def test_analyze_symbol_fetches_every_series(self, mock_provider):
        analyzer = TechnicalAnalyzer(mock_provider)
        result = await analyzer.analyze_symbol("BTCUSDT", current_price=100.0)

        assert result.symbol == "BTCUSDT"
        assert mock_provider.get_candles.await_count == 5
        mock_provider.get_candles.assert_any_await("BTCUSDT", "1d", 500)
        mock_provider.get_candles.assert_any_await("BTCUSDT", "15m", 200)

    @pytest.mark.asyncio
    async def test_partial_accessors(self, mock_provider):
        analyzer = TechnicalAnalyzer(mock_provider)

        trend = await analyzer.get_trend_analysis("BTCUSDT")
        levels = await analyzer.get_support_resistance_analysis("BTCUSDT")

        assert trend.symbol == "BTCUSDT"
        assert levels.symbol == "BTCUSDT"

    @pytest.mark.asyncio
    async def test_summary(self, mock_provider):
        analyzer = TechnicalAnalyzer(mock_provider)
        result = await analyzer.analyze_symbol("BTCUSDT", current_price=100.0)
        summary = analyzer.get_analysis_summary(result)

        assert summary["symbol"] == "BTCUSDT"
        assert summary["buyZones"] == 1
        assert summary["nearestSupport"] < 100.0 < summary["nearestResistance"]

    @pytest.mark.asyncio
    async def test_provider_failure_is_data_unavailable(self, mock_provider):
        mock_provider.get_candles = AsyncMock(side_effect=ConnectionError("exchange down"))
        analyzer = TechnicalAnalyzer(mock_provider)

        with pytest.raises(DataUnavailableError) as exc_info:
            await analyzer.analyze_symbol("BTCUSDT")
        assert "exchange down" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_empty_series_is_data_unavailable(self, mock_provider):
        mock_provider.get_candles = AsyncMock(return_value=[])
        analyzer = TechnicalAnalyzer(mock_provider)

        with pytest.raises(DataUnavailableError):
            await analyzer.analyze_symbol("BTCUSDT")
