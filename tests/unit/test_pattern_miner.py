import datetime as dt
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../services/stock_engine_py')))

from stock_core.models import IndicatorBundle, PricePoint, SeriesPoint, StockSeries
from stock_core.pattern_miner import (
    BEARISH_DECLINING,
    BEARISH_ESCAPE,
    BULLISH_TRANSITION,
    FULLY_BULLISH_MAINTAINED,
    LOW_ENERGY,
    LOOK_BACK,
    LOOK_FORWARD,
    MIXED,
    MODERATE,
    STRONG_TREND,
    TREND_STRENGTHENING,
    adx_strength_label,
    ema_trend_label,
    mine,
)


def _dates(n):
    start = dt.date(2024, 1, 1)
    return [(start + dt.timedelta(days=i)).strftime("%Y%m%d") for i in range(n)]


def _series(highs, closes=None, volumes=None):
    closes = closes or [100.0] * len(highs)
    volumes = volumes or [1000] * len(highs)
    points = [
        SeriesPoint(PricePoint(d, c, h, min(c, h), c, v))
        for d, h, c, v in zip(_dates(len(highs)), highs, closes, volumes)
    ]
    return StockSeries("005930", points)


def _window(first: IndicatorBundle, last: IndicatorBundle, prev: IndicatorBundle = None):
    price = PricePoint("20240101", 1, 1, 1, 1, 1)
    middle = [SeriesPoint(price, IndicatorBundle()) for _ in range(7)]
    return [SeriesPoint(price, first)] + middle + [SeriesPoint(price, prev or IndicatorBundle()), SeriesPoint(price, last)]


def test_spike_flags_first_candidate():
    highs = [100.0] * 40
    closes = [100.0] * 40
    highs[20] = closes[20] = 115.0
    series = _series(highs, closes)

    results = mine(series)

    first = results[0]
    assert first.buy_date == series.points[LOOK_BACK - 1].date
    assert first.success_date == series.points[20].date
    assert first.max_return_pct == 15.0
    assert len(first.context_window) == LOOK_BACK
    assert first.context_window[-1].date == first.buy_date


def test_overlapping_entries_are_all_reported():
    highs = [100.0] * 40
    highs[20] = 115.0
    results = mine(_series(highs))
    # every candidate from day 9 to day 19 sees the day-20 spike
    assert [r.buy_date for r in results] == _dates(40)[9:20]


def test_max_return_uses_whole_forward_window():
    highs = [100.0] * 40
    highs[12] = 111.0
    highs[25] = 120.0
    results = mine(_series(highs))
    first = results[0]
    assert first.success_date == _dates(40)[12]
    assert first.max_return_pct == 20.0


def test_unsuccessful_candidates_are_dropped():
    highs = [100.0] * 40
    highs[20] = 109.0
    assert mine(_series(highs)) == []


def test_short_series_yields_nothing():
    highs = [100.0] * (LOOK_BACK + LOOK_FORWARD - 1)
    highs[-1] = 200.0
    assert mine(_series(highs)) == []


def test_volume_multiplier_against_window_start():
    highs = [100.0] * 40
    highs[20] = 115.0
    volumes = [100] * 40
    volumes[9] = 350
    first = mine(_series(highs, volumes=volumes))[0]
    assert first.context.volume_multiplier == 3.5


def test_volume_multiplier_zero_baseline():
    highs = [100.0] * 40
    highs[20] = 115.0
    volumes = [0] * 40
    volumes[9] = 42
    first = mine(_series(highs, volumes=volumes))[0]
    assert first.context.volume_multiplier == 42.0


def test_ema_trend_labels():
    bull = IndicatorBundle(ema20=120, ema50=110, ema200=100)
    bear = IndicatorBundle(ema20=90, ema50=100, ema200=110)
    escape = IndicatorBundle(ema20=105, ema50=100, ema200=110)
    flat = IndicatorBundle(ema20=100, ema50=100, ema200=100)

    assert ema_trend_label(_window(bull, bull)) == FULLY_BULLISH_MAINTAINED
    assert ema_trend_label(_window(flat, bull)) == BULLISH_TRANSITION
    assert ema_trend_label(_window(bull, bear)) == BEARISH_DECLINING
    assert ema_trend_label(_window(bear, escape)) == BEARISH_ESCAPE
    assert ema_trend_label(_window(flat, escape)) == MIXED
    # missing EMAs compare as 0
    assert ema_trend_label(_window(IndicatorBundle(), IndicatorBundle(ema20=50))) == MIXED


def test_adx_strength_labels():
    assert adx_strength_label(_window(IndicatorBundle(), IndicatorBundle(adx=30.0))) == STRONG_TREND
    assert adx_strength_label(
        _window(IndicatorBundle(), IndicatorBundle(adx=22.0), prev=IndicatorBundle(adx=21.0))
    ) == TREND_STRENGTHENING
    assert adx_strength_label(
        _window(IndicatorBundle(), IndicatorBundle(adx=22.0), prev=IndicatorBundle(adx=23.0))
    ) == MODERATE
    assert adx_strength_label(_window(IndicatorBundle(), IndicatorBundle(adx=15.0))) == LOW_ENERGY
    assert adx_strength_label(_window(IndicatorBundle(), IndicatorBundle(adx=20.0))) == MODERATE
    assert adx_strength_label(_window(IndicatorBundle(), IndicatorBundle())) == LOW_ENERGY


def test_result_to_dict_is_plain_data():
    highs = [100.0] * 40
    highs[20] = 115.0
    d = mine(_series(highs))[0].to_dict()
    assert set(d) == {"buy_date", "success_date", "max_return_pct", "context", "context_window"}
    assert d["context"]["ema_trend_label"] == MIXED
    assert len(d["context_window"]) == LOOK_BACK
