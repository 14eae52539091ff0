from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional
import re

TIMEFRAME_PATTERN = re.compile(r'^\d+[mhdwM]$')


def validate_timeframe_label(v: str) -> str:
    if not TIMEFRAME_PATTERN.match(v):
        raise ValueError('Invalid timeframe format. Use format like "15m", "4h", "1d"')
    return v


class Candle(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int  # ms since epoch
    open: float = Field(gt=0)
    high: float = Field(gt=0)
    low: float = Field(gt=0)
    close: float = Field(gt=0)
    volume: float = Field(ge=0)


class AnalysisRequest(BaseModel):
    """Candles for one symbol: one series per configured timeframe plus a long reference series."""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    timeframes: Dict[str, List[Candle]]
    reference: List[Candle]
    reference_timeframe: str = "1d"
    current_price: Optional[float] = Field(default=None, gt=0)

    @field_validator('timeframes')
    @classmethod
    def validate_timeframes(cls, v):
        if not v:
            raise ValueError('At least one timeframe series is required')
        for label in v:
            validate_timeframe_label(label)
        return v

    @field_validator('reference_timeframe')
    @classmethod
    def validate_reference_timeframe(cls, v):
        return validate_timeframe_label(v)
