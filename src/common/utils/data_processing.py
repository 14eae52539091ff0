import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Union

from common.custom_exceptions.analysis_errors import InsufficientDataError, InvalidSeriesError

OHLCV_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']
PRICE_COLUMNS = ['open', 'high', 'low', 'close']

OhlcvInput = Union[Dict[str, List], pd.DataFrame, List[Any]]


def normalize_kline_rows(klines: list) -> pd.DataFrame:
    """
    Convert raw kline rows to a standardized DataFrame

    Row Format (extra trailing fields are ignored):
    [
        Open time (ms),
        Open,
        High,
        Low,
        Close,
        Volume,
        ...
    ]
    """
    rows = [list(row[:6]) for row in klines]
    return pd.DataFrame(rows, columns=OHLCV_COLUMNS, dtype=float)


def ohlcv_to_dataframe(ohlcv: OhlcvInput) -> pd.DataFrame:
    """Accepts a dict of lists, a DataFrame, a list of Candle models or raw kline rows."""
    if isinstance(ohlcv, pd.DataFrame):
        df = ohlcv.copy()
    elif isinstance(ohlcv, dict):
        df = pd.DataFrame(ohlcv)
    elif isinstance(ohlcv, (list, tuple)):
        if not ohlcv:
            df = pd.DataFrame(columns=OHLCV_COLUMNS)
        elif hasattr(ohlcv[0], 'model_dump'):
            df = pd.DataFrame([c.model_dump() for c in ohlcv])
        else:
            df = normalize_kline_rows(ohlcv)
    else:
        raise InvalidSeriesError(f"Unsupported OHLCV container: {type(ohlcv).__name__}")

    missing = [col for col in OHLCV_COLUMNS if col not in df.columns]
    if missing:
        raise InvalidSeriesError("Invalid OHLCV data structure.", detail=f"missing columns: {missing}")
    return df[OHLCV_COLUMNS].reset_index(drop=True)


def prepare_ohlcv(ohlcv: OhlcvInput, timeframe: Optional[str] = None, min_candles: int = 0) -> pd.DataFrame:
    """
    Build a validated, read-only-by-convention OHLCV DataFrame.

    The input itself is never modified; a fresh frame is returned.

    Raises:
        InvalidSeriesError: missing columns, NaNs, non-positive prices, negative volume
            or timestamps that are not strictly increasing.
        InsufficientDataError: fewer than ``min_candles`` rows.
    """
    df = ohlcv_to_dataframe(ohlcv)
    try:
        df = df.astype({'timestamp': 'int64', 'open': float, 'high': float,
                        'low': float, 'close': float, 'volume': float})
    except (TypeError, ValueError) as e:
        raise InvalidSeriesError("Non-numeric OHLCV values", detail=str(e), timeframe=timeframe) from e

    if len(df) < min_candles:
        raise InsufficientDataError(required=min_candles, actual=len(df), timeframe=timeframe)

    if df[PRICE_COLUMNS + ['volume']].isna().to_numpy().any():
        raise InvalidSeriesError("OHLCV series contains NaN values", timeframe=timeframe)
    if (df[PRICE_COLUMNS] <= 0).to_numpy().any():
        raise InvalidSeriesError("Prices must be strictly positive", timeframe=timeframe)
    if (df['volume'] < 0).any():
        raise InvalidSeriesError("Volume must not be negative", timeframe=timeframe)
    if len(df) > 1 and not bool(np.all(np.diff(df['timestamp'].to_numpy()) > 0)):
        raise InvalidSeriesError("Timestamps must be strictly increasing", timeframe=timeframe)

    return df
