"""Compute the daily technical indicators attached to every price point.

The engine derives EMA(20/50/200), RSI(14), MACD(12, 26, 9), OBV, MFI(14)
and ADX(14) from an ordered OHLCV sequence.  Indicators are always computed
over the whole sequence: EMA seeds and Wilder smoothing state depend on the
full history, so results are never patched incrementally.

Values that cannot be computed yet (too little history) come back as NaN
from the ``compute_*`` helpers and as ``None`` in the final bundles.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .models import IndicatorBundle, PricePoint, SeriesPoint
from .series_utils import ema, rolling_mean, rolling_sum, round_half_up, wilder


def compute_ema(close: pd.Series, window: int) -> pd.Series:
    """
    EMA seeded with the simple average of the first ``window`` closes.
    Defined from index ``window - 1``.
    """
    return ema(close, window)


def compute_rsi(close: pd.Series, window: int = 14) -> pd.Series:
    """
    Relative Strength Index using Wilder’s method.  Average gain/loss are
    seeded over the first ``window`` price changes; RSI is reported from
    index ``window + 1`` and is 100 when the average loss is 0.
    """
    delta = close.astype(float).diff()
    gain = delta.where(delta > 0, 0.0)
    loss = -delta.where(delta < 0, 0.0)
    avg_gain = wilder(gain, window, start=1)
    avg_loss = wilder(loss, window, start=1)
    rsi = 100 - (100 / (1 + avg_gain / avg_loss))
    rsi = rsi.where(avg_loss != 0, 100.0)
    rsi.iloc[: window + 1] = np.nan
    return rsi


def compute_macd(
    close: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9
) -> pd.DataFrame:
    """
    Compute the Moving Average Convergence Divergence (MACD).
    The signal line is an EMA over the defined part of the MACD line only,
    re-aligned to the input index.  Returns a DataFrame with columns
    macd, macd_signal and macd_hist.
    """
    macd_line = compute_ema(close, fast) - compute_ema(close, slow)
    defined = macd_line.dropna()
    signal_line = compute_ema(defined, signal).reindex(close.index)
    macd_hist = macd_line - signal_line
    return pd.DataFrame(
        {"macd": macd_line, "macd_signal": signal_line, "macd_hist": macd_hist}
    )


def compute_obv(close: pd.Series, volume: pd.Series) -> pd.Series:
    """On-balance volume, starting at 0 on the first day."""
    direction = np.sign(close.astype(float).diff()).fillna(0).astype("int64")
    return (direction * volume.astype("int64")).cumsum()


def compute_mfi(
    high: pd.Series, low: pd.Series, close: pd.Series, volume: pd.Series, window: int = 14
) -> pd.Series:
    """
    Money Flow Index over the trailing ``window`` days.  Typical price is
    (H+L+C)/3; a day's money flow counts as positive when its typical price
    rose and negative when it fell.  100 when negative flow is 0.
    """
    typical = (high + low + close) / 3
    flow = typical * volume
    delta = typical.diff()
    pos = flow.where(delta > 0, 0.0)
    neg = flow.where(delta < 0, 0.0)
    pos.iloc[:1] = np.nan
    neg.iloc[:1] = np.nan
    pos_sum = rolling_sum(pos, window)
    neg_sum = rolling_sum(neg, window)
    mfi = 100 - (100 / (1 + pos_sum / neg_sum))
    return mfi.where(neg_sum != 0, 100.0)


def compute_adx(high: pd.Series, low: pd.Series, close: pd.Series, window: int = 14) -> pd.Series:
    """
    Average Directional Index.  True range and +DM/-DM are Wilder-smoothed
    from day 1; DX is defined from day ``window + 1`` and ADX is the rolling
    ``window``-day mean of DX, so the first value lands on day ``2 * window``.
    Days without any directional movement have DX 0.
    """
    prev_close = close.shift(1)
    tr = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1
    ).max(axis=1)
    up = high.diff()
    down = -low.diff()
    plus_dm = up.where((up > down) & (up > 0), 0.0)
    minus_dm = down.where((down > up) & (down > 0), 0.0)

    s_tr = wilder(tr, window, start=1)
    s_plus = wilder(plus_dm, window, start=1)
    s_minus = wilder(minus_dm, window, start=1)
    plus_di = (100 * s_plus / s_tr).where(s_tr != 0, 0.0)
    minus_di = (100 * s_minus / s_tr).where(s_tr != 0, 0.0)
    di_sum = plus_di + minus_di
    dx = (100 * (plus_di - minus_di).abs() / di_sum).where(di_sum != 0, 0.0)
    dx.iloc[: window + 1] = np.nan
    return rolling_mean(dx, window)


def _to_frame(points: Sequence[PricePoint]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "open": [p.open for p in points],
            "high": [p.high for p in points],
            "low": [p.low for p in points],
            "close": [p.close for p in points],
            "volume": [p.volume for p in points],
        }
    ).astype({"open": float, "high": float, "low": float, "close": float, "volume": "int64"})


def _opt_round(value: float, ndigits: int = 2) -> Optional[float]:
    if value is None or math.isnan(value):
        return None
    return round(float(value), ndigits)


def _opt_int(value: float) -> Optional[int]:
    if value is None or math.isnan(value):
        return None
    return int(value)


def compute_indicators(points: Sequence[PricePoint]) -> List[SeriesPoint]:
    """
    Annotate an ascending sequence of price points with the full indicator
    bundle.  Pure: the same input always yields the same output, and an
    empty input yields an empty list.
    """
    if not points:
        return []
    df = _to_frame(points)
    close = df["close"]

    ema20 = round_half_up(compute_ema(close, 20))
    ema50 = round_half_up(compute_ema(close, 50))
    ema200 = round_half_up(compute_ema(close, 200))
    rsi = compute_rsi(close)
    macd_df = compute_macd(close)
    obv = compute_obv(close, df["volume"])
    mfi = compute_mfi(df["high"], df["low"], close, df["volume"])
    adx = compute_adx(df["high"], df["low"], close)

    out: List[SeriesPoint] = []
    for i, point in enumerate(points):
        bundle = IndicatorBundle(
            ema20=_opt_int(ema20.iloc[i]),
            ema50=_opt_int(ema50.iloc[i]),
            ema200=_opt_int(ema200.iloc[i]),
            rsi=_opt_round(rsi.iloc[i]),
            macd=_opt_round(macd_df["macd"].iloc[i]),
            macd_signal=_opt_round(macd_df["macd_signal"].iloc[i]),
            macd_hist=_opt_round(macd_df["macd_hist"].iloc[i]),
            obv=int(obv.iloc[i]),
            mfi=_opt_round(mfi.iloc[i]),
            adx=_opt_round(adx.iloc[i]),
        )
        out.append(SeriesPoint(point, bundle))
    return out
