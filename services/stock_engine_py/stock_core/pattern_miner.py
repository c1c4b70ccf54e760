"""
Mine historically successful buy setups from an annotated series.

Every day with enough history on both sides is treated as a hypothetical
long entry at its close.  The entry counts as a success when the high of
any of the next ``LOOK_FORWARD`` days reaches ``TARGET_RETURN`` times the
entry price.  Successful entries are labelled from the indicator values of
the ``LOOK_BACK`` days ending on the entry day.  Overlapping entries are
all reported; the output is a set of training examples, not unique events.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Union

from .models import IndicatorBundle, LearningResult, PatternContext, SeriesPoint, StockSeries

LOOK_BACK = 10
LOOK_FORWARD = 20
TARGET_RETURN = 1.10
VOLUME_BASELINE_DAYS = 5

FULLY_BULLISH_MAINTAINED = "fully bullish maintained"
BULLISH_TRANSITION = "bullish transition success"
BEARISH_DECLINING = "bearish declining"
BEARISH_ESCAPE = "bearish-escape attempt"
MIXED = "mixed"

STRONG_TREND = "strong trend sustained"
TREND_STRENGTHENING = "trend strengthening"
LOW_ENERGY = "low-energy consolidation"
MODERATE = "moderate"


def _v(value: Optional[float]) -> float:
    return value if value is not None else 0


def _fully_bullish(b: IndicatorBundle) -> bool:
    return _v(b.ema20) > _v(b.ema50) > _v(b.ema200)


def _fully_bearish(b: IndicatorBundle) -> bool:
    return _v(b.ema20) < _v(b.ema50) < _v(b.ema200)


def ema_trend_label(window: Sequence[SeriesPoint]) -> str:
    first = window[0].indicators
    last = window[-1].indicators
    if _fully_bullish(last):
        return FULLY_BULLISH_MAINTAINED if _fully_bullish(first) else BULLISH_TRANSITION
    if _fully_bearish(last):
        return BEARISH_DECLINING
    if _v(last.ema20) > _v(last.ema50) and _fully_bearish(first):
        return BEARISH_ESCAPE
    return MIXED


def adx_strength_label(window: Sequence[SeriesPoint]) -> str:
    current = _v(window[-1].indicators.adx)
    previous = _v(window[-2].indicators.adx) if len(window) >= 2 else 0
    if current > 25:
        return STRONG_TREND
    if current > 20 and current > previous:
        return TREND_STRENGTHENING
    if current < 20:
        return LOW_ENERGY
    return MODERATE


def volume_multiplier(window: Sequence[SeriesPoint]) -> float:
    """Last day's volume relative to the mean of the window's first days."""
    baseline = window[:VOLUME_BASELINE_DAYS]
    mean_volume = sum(p.price.volume for p in baseline) / VOLUME_BASELINE_DAYS
    return round(window[-1].price.volume / (mean_volume or 1), 2)


def mine(series: Union[StockSeries, Sequence[SeriesPoint]]) -> List[LearningResult]:
    """
    Scan ``series`` for entries followed by a ``TARGET_RETURN`` rally within
    ``LOOK_FORWARD`` days.  Too short a series yields an empty list.

    ``success_date`` is the earliest qualifying day while ``max_return_pct``
    uses the highest high of the whole forward window.
    """
    points = series.points if isinstance(series, StockSeries) else list(series)
    if len(points) < LOOK_BACK + LOOK_FORWARD:
        return []

    results: List[LearningResult] = []
    for i in range(LOOK_BACK - 1, len(points) - LOOK_FORWARD):
        buy = points[i].price
        buy_price = buy.close
        target = buy_price * TARGET_RETURN
        success_date: Optional[str] = None
        max_high = 0.0
        for j in range(i + 1, i + LOOK_FORWARD + 1):
            high = points[j].price.high
            if high > max_high:
                max_high = high
            if success_date is None and high >= target:
                success_date = points[j].date

        if success_date is None:
            continue

        window = tuple(points[i - (LOOK_BACK - 1):i + 1])
        context = PatternContext(
            ema_trend_label=ema_trend_label(window),
            adx_strength_label=adx_strength_label(window),
            volume_multiplier=volume_multiplier(window),
        )
        max_return = (max_high - buy_price) / buy_price * 100 if buy_price else 0.0
        results.append(
            LearningResult(
                buy_date=buy.date,
                success_date=success_date,
                max_return_pct=round(max_return, 2),
                context=context,
                context_window=window,
            )
        )
    return results
