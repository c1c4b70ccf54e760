"""Windowed-average primitives over pandas Series.

All functions are pure, keep the input index, and leave the prefix that
lacks enough history as NaN.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view


def seeded_ewm(values: pd.Series, window: int, alpha: float, start: int = 0) -> pd.Series:
    """
    Exponentially weighted mean seeded with a simple average.

    The seed is the mean of ``values[start:start + window]`` and lands on
    index ``start + window - 1``; from there on each value is
    ``prev + alpha * (x - prev)``.  With ``alpha = 2 / (window + 1)`` this is
    the classic EMA, with ``alpha = 1 / window`` it is Wilder smoothing.
    """
    seed_idx = start + window - 1
    if window <= 0 or len(values) <= seed_idx:
        return pd.Series(np.nan, index=values.index, dtype=float)
    seeded = values.astype(float).copy()
    seeded.iloc[:seed_idx] = np.nan
    seeded.iloc[seed_idx] = values.iloc[start:seed_idx + 1].astype(float).mean()
    return seeded.ewm(alpha=alpha, adjust=False).mean()


def ema(values: pd.Series, window: int) -> pd.Series:
    """EMA seeded with the SMA of the first ``window`` values."""
    return seeded_ewm(values, window, alpha=2.0 / (window + 1))


def wilder(values: pd.Series, window: int, start: int = 0) -> pd.Series:
    return seeded_ewm(values, window, alpha=1.0 / window, start=start)


def rolling_sum(values: pd.Series, window: int) -> pd.Series:
    """
    Trailing sum over exactly ``window`` values.  Each window is summed
    independently so an all-zero window sums to exactly 0.
    """
    out = np.full(len(values), np.nan)
    if len(values) >= window > 0:
        arr = values.to_numpy(dtype=float)
        out[window - 1:] = sliding_window_view(arr, window).sum(axis=1)
    return pd.Series(out, index=values.index)


def rolling_mean(values: pd.Series, window: int) -> pd.Series:
    return rolling_sum(values, window) / window


def round_half_up(values: pd.Series) -> pd.Series:
    """Round to the nearest integer with .5 going up (NaN stays NaN)."""
    return np.floor(values + 0.5)
