"""
Indicator math used by the trend classifier and the support/resistance engine.

Every function here is pure and total over well-formed input: when the input is
shorter than the function's minimum length the result is empty rather than an
exception. Outputs are never padded, so an output array is aligned to the tail
of its input. The offset of the first output value is documented per function.
"""

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema
from typing import Dict, List, Sequence, Tuple


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def sma(values: Sequence[float], period: int) -> np.ndarray:
    """
    Rolling arithmetic mean.

    Minimum length: ``period``. Output length ``len(values) - period + 1``;
    output[0] corresponds to input index ``period - 1``.
    """
    arr = _as_array(values)
    if period < 1 or len(arr) < period:
        return np.array([], dtype=float)
    return pd.Series(arr).rolling(window=period).mean().to_numpy()[period - 1:]


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """
    Exponential moving average seeded with the SMA of the first ``period`` values.

    Minimum length: ``period``. Output length ``len(values) - period + 1``;
    output[0] is the seed (input index ``period - 1``), then one output per input
    from index ``period`` on with ``k = 2 / (period + 1)``.
    """
    arr = _as_array(values)
    if period < 1 or len(arr) < period:
        return np.array([], dtype=float)

    k = 2.0 / (period + 1)
    out = np.empty(len(arr) - period + 1, dtype=float)
    out[0] = arr[:period].mean()
    for i, value in enumerate(arr[period:], start=1):
        # Same as value*k + prev*(1-k); exact when value == prev
        out[i] = out[i - 1] + k * (value - out[i - 1])
    return out


def macd(prices: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> Dict[str, np.ndarray]:
    """
    MACD line, signal line and histogram.

    Requires ``fast < slow``. Minimum length ``slow`` for the MACD line
    (offset ``slow - 1``) and ``slow + signal - 1`` for signal/histogram
    (offset ``slow + signal - 2``).
    """
    empty = np.array([], dtype=float)
    if fast < 1 or slow <= fast or signal < 1:
        return {"macd": empty, "signal": empty, "histogram": empty}

    ema_fast = ema(prices, fast)
    ema_slow = ema(prices, slow)
    if len(ema_slow) == 0:
        return {"macd": empty, "signal": empty, "histogram": empty}

    # Drop the head of the faster EMA so both start on the same candle
    macd_line = ema_fast[slow - fast:] - ema_slow
    signal_line = ema(macd_line, signal)
    histogram = macd_line[signal - 1:] - signal_line if len(signal_line) else empty

    return {"macd": macd_line, "signal": signal_line, "histogram": histogram}


def rsi(prices: Sequence[float], period: int = 14) -> np.ndarray:
    """
    Relative Strength Index with Wilder smoothing.

    Minimum length ``period + 1``. Output length ``len(prices) - period``;
    output[0] (the seed) corresponds to input index ``period``.
    When the average loss is zero the RSI is 100.
    """
    arr = _as_array(prices)
    if period < 1 or len(arr) < period + 1:
        return np.array([], dtype=float)

    changes = np.diff(arr)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()

    out = np.empty(len(changes) - period + 1, dtype=float)
    out[0] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i - period + 1] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def bollinger_bands(prices: Sequence[float], period: int = 20, k: float = 2.0) -> Dict[str, np.ndarray]:
    """
    Bollinger Bands around an SMA using the population standard deviation.

    Minimum length ``period``; same alignment as :func:`sma`.
    """
    arr = _as_array(prices)
    middle = sma(arr, period)
    if len(middle) == 0:
        empty = np.array([], dtype=float)
        return {"upper": empty, "middle": empty, "lower": empty}

    std = pd.Series(arr).rolling(window=period).std(ddof=0).to_numpy()[period - 1:]
    return {"upper": middle + k * std, "middle": middle, "lower": middle - k * std}


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (divide by N). Empty input gives 0.0."""
    arr = _as_array(values)
    if len(arr) == 0:
        return 0.0
    return float(np.std(arr, ddof=0))


def find_peaks_and_valleys(values: Sequence[float], window: int = 5) -> Tuple[List[int], List[int]]:
    """
    Local extrema over a symmetric window.

    Index ``i`` is a peak when ``values[i]`` is >= every value in
    ``[i-window, i)`` and ``(i, i+window]``; valleys use <=. Only indices with a
    full window on both sides qualify, so the minimum length is ``2*window + 1``.
    Plateaus yield every index of the tied run, in ascending order.
    """
    arr = _as_array(values)
    n = len(arr)
    if window < 1 or n < 2 * window + 1:
        return [], []

    peaks = argrelextrema(arr, np.greater_equal, order=window)[0]
    valleys = argrelextrema(arr, np.less_equal, order=window)[0]

    lo, hi = window, n - window
    return (
        [int(i) for i in peaks if lo <= i < hi],
        [int(i) for i in valleys if lo <= i < hi],
    )


def linear_regression(x: Sequence[float], y: Sequence[float]) -> Dict[str, float]:
    """
    Least-squares fit ``y = slope * x + intercept`` with R².

    R² is NaN when the total sum of squares is zero (constant ``y``). With fewer
    than two points, or constant ``x``, the slope is 0 and the intercept is mean(y).
    """
    xs = _as_array(x)
    ys = _as_array(y)
    n = min(len(xs), len(ys))
    if n == 0:
        return {"slope": 0.0, "intercept": 0.0, "r2": float("nan")}
    xs, ys = xs[:n], ys[:n]

    mean_x = xs.mean()
    mean_y = ys.mean()
    sxx = float(np.sum((xs - mean_x) ** 2))
    if n < 2 or sxx == 0:
        slope = 0.0
    else:
        slope = float(np.sum((xs - mean_x) * (ys - mean_y)) / sxx)
    intercept = float(mean_y - slope * mean_x)

    ss_tot = float(np.sum((ys - mean_y) ** 2))
    if ss_tot == 0:
        r2 = float("nan")
    else:
        ss_res = float(np.sum((ys - (slope * xs + intercept)) ** 2))
        r2 = 1.0 - ss_res / ss_tot

    return {"slope": slope, "intercept": intercept, "r2": r2}
