"""tradebench.backtest.indicators

Indicator library: EMA and ATR.

Pure functions over float64 arrays. Output is index-aligned to the input;
bars before an indicator's warm-up are NaN ("no value yet"). Consumers
mask with ``np.isfinite``.
"""

from __future__ import annotations

import numpy as np


def ema(x: np.ndarray, period: int) -> np.ndarray:
    """Exponential moving average seeded with the simple mean of the first ``period`` values.

    Returns an all-NaN array when the input is shorter than ``period``.
    """

    if period < 1:
        raise ValueError("period must be >= 1")

    x = np.asarray(x, dtype=np.float64)
    out = np.full(x.shape[0], np.nan, dtype=np.float64)
    if x.shape[0] < period:
        return out

    k = 2.0 / (period + 1.0)
    out[period - 1] = float(np.mean(x[:period]))
    for i in range(period, x.shape[0]):
        out[i] = x[i] * k + out[i - 1] * (1.0 - k)
    return out


def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    high = np.asarray(high, dtype=np.float64)
    low = np.asarray(low, dtype=np.float64)
    close = np.asarray(close, dtype=np.float64)
    if not (high.shape == low.shape == close.shape) or high.ndim != 1:
        raise ValueError("high, low and close must be 1D arrays of same length")

    tr = high - low
    if tr.shape[0] > 1:
        prev_close = close[:-1]
        tr[1:] = np.maximum.reduce(
            [
                high[1:] - low[1:],
                np.abs(high[1:] - prev_close),
                np.abs(low[1:] - prev_close),
            ]
        )
    return tr


def atr(high: np.ndarray, low: np.ndarray, close: np.ndarray, period: int) -> np.ndarray:
    """Average true range with Wilder smoothing.

    The first bar has no prior close, so its true range is just high - low.
    """

    if period < 1:
        raise ValueError("period must be >= 1")

    tr = true_range(high, low, close)
    out = np.full(tr.shape[0], np.nan, dtype=np.float64)
    if tr.shape[0] < period:
        return out

    out[period - 1] = float(np.mean(tr[:period]))
    for i in range(period, tr.shape[0]):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out
