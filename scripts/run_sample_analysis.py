#!/usr/bin/env python3
"""
Sample run of the multi-timeframe technical analysis.

Generates reproducible synthetic candles for every configured timeframe,
serves them through an in-memory market data provider and prints the
analysis summary and full result as JSON.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Dict, List

import numpy as np

# Add the src directory to the Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from common.logger import logger
from core.interfaces.AnalysisRequest import Candle
from core.interfaces.market_data_provider import MarketDataProvider
from core.use_cases.market_analysis.technical_analyzer import TechnicalAnalyzer

TIMEFRAME_MS = {"1m": 60_000, "5m": 300_000, "15m": 900_000, "30m": 1_800_000,
                "1h": 3_600_000, "4h": 14_400_000, "1d": 86_400_000, "1w": 604_800_000}


def generate_sample_candles(n_candles: int, interval_ms: int, seed: int,
                            drift: float = 0.001, volatility: float = 0.01) -> List[Candle]:
    """
    Generate a reproducible geometric random walk with a mild upward drift
    and a slow oscillation, so both trends and levels show up.

    Args:
        n_candles: Number of candles to generate
        interval_ms: Candle duration in milliseconds
        seed: Random seed
        drift: Mean log return per candle
        volatility: Standard deviation of log returns

    Returns:
        List of Candle models, oldest first
    """
    rng = np.random.default_rng(seed)
    start_ts = 1_700_000_000_000 - n_candles * interval_ms

    candles = []
    price = 100.0
    for i in range(n_candles):
        cycle = 0.004 * np.sin(2 * np.pi * i / 40)
        open_price = price
        close_price = open_price * float(np.exp(rng.normal(drift, volatility) + cycle))
        high_price = max(open_price, close_price) * (1 + abs(rng.normal(0, volatility / 2)))
        low_price = min(open_price, close_price) * (1 - abs(rng.normal(0, volatility / 2)))

        candles.append(Candle(
            timestamp=start_ts + i * interval_ms,
            open=open_price,
            high=high_price,
            low=low_price,
            close=close_price,
            volume=float(rng.uniform(500, 1500)),
        ))
        price = close_price
    return candles


class SyntheticMarketDataProvider(MarketDataProvider):
    """Serves generated candles; each (symbol, timeframe) pair gets its own stable seed."""

    async def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        seed = sum(ord(ch) for ch in f"{symbol}:{timeframe}")
        return generate_sample_candles(limit, TIMEFRAME_MS.get(timeframe, 3_600_000), seed)


async def main():
    """Run the sample analysis"""
    symbol = os.getenv("SAMPLE_SYMBOL", "BTCUSDT")
    overrides: Dict = {}
    if os.getenv("SAMPLE_SEQUENTIAL", "").lower() == "true":
        overrides = {"timeframes": {"parallel": False}}

    analyzer = TechnicalAnalyzer(SyntheticMarketDataProvider(), overrides)
    result = await analyzer.analyze_symbol(symbol)

    logger.info(f"Sample analysis for {symbol} finished")
    print(json.dumps(analyzer.get_analysis_summary(result), indent=2))
    print(json.dumps(result.model_dump(by_alias=True, mode="json"), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
