from abc import ABC, abstractmethod
from typing import List

from core.interfaces.AnalysisRequest import Candle


class MarketDataProvider(ABC):
    """Supplies candle series per symbol and timeframe, oldest first, timestamps strictly increasing."""

    @abstractmethod
    async def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        pass
