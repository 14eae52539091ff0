from typing import Optional

# Custom Exceptions
class AnalysisError(Exception):
    def __init__(self, message: str = "Market analysis failed", detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class InsufficientDataError(AnalysisError):
    """A series is shorter than the window a stage needs."""

    def __init__(self, required: int, actual: int, timeframe: Optional[str] = None,
                 detail: Optional[str] = None):
        self.required = required
        self.actual = actual
        self.timeframe = timeframe
        where = f" for {timeframe}" if timeframe else ""
        super().__init__(
            f"Insufficient data{where}: {actual} candles supplied, at least {required} required",
            detail,
        )


class InvalidSeriesError(AnalysisError):
    """Malformed candle series: missing columns, NaNs, non-positive prices or unordered timestamps."""

    def __init__(self, message: str = "Invalid candle series", detail: Optional[str] = None,
                 timeframe: Optional[str] = None):
        self.timeframe = timeframe
        if timeframe:
            message = f"{message} ({timeframe})"
        super().__init__(message, detail)


class DataUnavailableError(AnalysisError):
    def __init__(self, message: str = "Market data unavailable", detail: Optional[str] = None):
        super().__init__(message, detail)
