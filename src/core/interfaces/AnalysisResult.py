from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict


class TrendDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    RANGING = "RANGING"


class TrendType(str, Enum):
    STRONG_UPTREND = "STRONG_UPTREND"
    UPTREND = "UPTREND"
    WEAK_UPTREND = "WEAK_UPTREND"
    RANGING = "RANGING"
    WEAK_DOWNTREND = "WEAK_DOWNTREND"
    DOWNTREND = "DOWNTREND"
    STRONG_DOWNTREND = "STRONG_DOWNTREND"

    @property
    def direction(self) -> TrendDirection:
        if self.value.endswith("UPTREND"):
            return TrendDirection.UP
        if self.value.endswith("DOWNTREND"):
            return TrendDirection.DOWN
        return TrendDirection.RANGING

    @property
    def tier(self) -> Optional[str]:
        """STRONG, PLAIN or WEAK; None for RANGING."""
        if self is TrendType.RANGING:
            return None
        if self.value.startswith("STRONG_"):
            return "STRONG"
        if self.value.startswith("WEAK_"):
            return "WEAK"
        return "PLAIN"

    @classmethod
    def from_parts(cls, direction: TrendDirection, tier: str) -> "TrendType":
        if direction is TrendDirection.RANGING:
            return cls.RANGING
        base = "UPTREND" if direction is TrendDirection.UP else "DOWNTREND"
        return cls(base if tier == "PLAIN" else f"{tier}_{base}")


class LevelType(str, Enum):
    SUPPORT = "SUPPORT"
    RESISTANCE = "RESISTANCE"


class LevelStrength(str, Enum):
    WEAK = "WEAK"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"
    MAJOR = "MAJOR"

    @property
    def rank(self) -> int:
        return ["WEAK", "MEDIUM", "STRONG", "MAJOR"].index(self.value)


class TradeAction(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"
    WAIT = "WAIT"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"

    def escalate(self) -> "RiskLevel":
        order = list(RiskLevel)
        return order[min(order.index(self) + 1, len(order) - 1)]


class PriceAction(str, Enum):
    APPROACHING_SUPPORT = "APPROACHING_SUPPORT"
    APPROACHING_RESISTANCE = "APPROACHING_RESISTANCE"
    BREAKING_OUT = "BREAKING_OUT"
    CONSOLIDATING = "CONSOLIDATING"


class MarketCondition(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"
    VOLATILE = "VOLATILE"


class Opportunity(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    AVOID = "AVOID"


class HoldingTimeframe(str, Enum):
    SHORT_TERM = "SHORT_TERM"
    MEDIUM_TERM = "MEDIUM_TERM"
    LONG_TERM = "LONG_TERM"


class ResultModel(BaseModel):
    """Immutable result object; serialises with camelCase field names."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


# --- Trend analysis ---

class TimeframeTrend(ResultModel):
    timeframe: str
    trend: TrendType
    confidence: float = Field(ge=0, le=100)
    current_price: float
    ema20: float
    ema60: float
    ema120: float
    trend_strength: float = Field(ge=0, le=100)
    divergence: bool
    analysis: str


class TrendAlignment(ResultModel):
    is_aligned: bool
    alignment_score: float = Field(ge=0, le=100)
    conflicting_timeframes: List[str]


class TradingSuggestion(ResultModel):
    action: TradeAction
    reason: str
    risk_level: RiskLevel


class MultiTimeframeTrend(ResultModel):
    symbol: str
    timestamp: int
    overall_trend: TrendType
    overall_confidence: float = Field(ge=0, le=100)
    trend_strength: float = Field(ge=0, le=100)
    timeframes: Dict[str, TimeframeTrend]
    alignment: TrendAlignment
    trading_suggestion: TradingSuggestion


# --- Support / resistance ---

class PriceRange(ResultModel):
    min: float
    max: float
    center: float

    @model_validator(mode='after')
    def check_ordering(self):
        if not (self.min <= self.center <= self.max):
            raise ValueError(f"Price range must satisfy min <= center <= max, got {self.min}/{self.center}/{self.max}")
        return self

    @property
    def width(self) -> float:
        return self.max - self.min


class SupportResistanceLevel(ResultModel):
    type: LevelType
    price_range: PriceRange
    strength: LevelStrength
    confidence: float = Field(ge=0, le=100)
    touch_count: int = Field(ge=1)
    last_touch: int
    distance: float = Field(ge=0)
    is_active: bool
    origin_timeframe: str
    description: str


class KeyLevels(ResultModel):
    nearest_support: Optional[SupportResistanceLevel] = None
    nearest_resistance: Optional[SupportResistanceLevel] = None
    strongest_support: Optional[SupportResistanceLevel] = None
    strongest_resistance: Optional[SupportResistanceLevel] = None


class LevelCollection(ResultModel):
    supports: List[SupportResistanceLevel]
    resistances: List[SupportResistanceLevel]


class CurrentPosition(ResultModel):
    between_levels: bool
    in_support_zone: bool
    in_resistance_zone: bool
    price_action: PriceAction


class TradingZone(ResultModel):
    entry: float
    tolerance: float = Field(ge=0)
    confidence: float = Field(ge=0, le=100)
    stop_loss: float
    target: float
    reason: str


class TradingZones(ResultModel):
    buy_zones: List[TradingZone]
    sell_zones: List[TradingZone]

    @property
    def count(self) -> int:
        return len(self.buy_zones) + len(self.sell_zones)


class SupportResistanceAnalysis(ResultModel):
    symbol: str
    current_price: float
    timestamp: int
    key_levels: KeyLevels
    all_levels: LevelCollection
    current_position: CurrentPosition
    trading_zones: TradingZones


# --- Combined verdict ---

class OverallAssessment(ResultModel):
    market_condition: MarketCondition
    risk_level: RiskLevel
    opportunity: Opportunity
    preferred_holding_timeframe: HoldingTimeframe
    recommendation: str


class TechnicalAnalysisResult(ResultModel):
    symbol: str
    timestamp: int
    trend_analysis: MultiTimeframeTrend
    support_resistance_analysis: SupportResistanceAnalysis
    overall_assessment: OverallAssessment
