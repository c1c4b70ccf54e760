import asyncio
import datetime as dt
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../services/stock_engine_py')))

from stock_core.cache_store import InMemoryCacheStore
from stock_core.errors import DataEmpty, DataUnavailable, InvalidSymbol
from stock_core.indicators import compute_indicators
from stock_core.models import PricePoint, StockSeries
from stock_core.reconciler import (
    FetchPlan,
    FetchReconciler,
    days_between,
    is_yyyymmdd,
    merge_points,
    normalize_symbol,
    plan_fetch,
)


def _points(n, end="20240105", close=100.0):
    end_date = dt.datetime.strptime(end, "%Y%m%d").date()
    dates = [(end_date - dt.timedelta(days=i)).strftime("%Y%m%d") for i in reversed(range(n))]
    return [PricePoint(d, close, close + 1, close - 1, close + (i % 3), 1000 + i) for i, d in enumerate(dates)]


def _series(n, end="20240105"):
    return StockSeries("005930", compute_indicators(_points(n, end)))


class FakeFetcher:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    async def fetch_rows(self, symbol, start_time, count):
        self.calls.append((symbol, start_time, count))
        if self.error is not None:
            raise self.error
        return list(self.rows)


def test_normalize_symbol_pads_numeric_codes():
    assert normalize_symbol("5930") == "005930"
    assert normalize_symbol(" 005930 ") == "005930"
    assert normalize_symbol("1234567") == "1234567"
    assert normalize_symbol("AAPL") == "AAPL"


@pytest.mark.parametrize("bad", ["", "   ", None])
def test_normalize_symbol_rejects_blank(bad):
    with pytest.raises(InvalidSymbol):
        normalize_symbol(bad)


def test_days_between():
    assert days_between("20240110", "20240105") == 5
    assert days_between("20240105", "20240110") == 5
    assert days_between("2024010", "20240110") == 999


@pytest.mark.parametrize("value", ["20240628", "20240229"])
def test_is_yyyymmdd_accepts_calendar_dates(value):
    assert is_yyyymmdd(value)


@pytest.mark.parametrize("value", ["2024-06-28", "2024628", "20240230", "", None])
def test_is_yyyymmdd_rejects_other_forms(value):
    assert not is_yyyymmdd(value)


def test_plan_without_cache_is_full():
    assert plan_fetch(None, "20240110", 250) == FetchPlan(250, incremental=False)


def test_plan_with_short_cache_for_long_history_is_full():
    assert plan_fetch(_series(100), "20240110", 250) == FetchPlan(250, incremental=False)


def test_plan_incremental_for_recent_gap():
    assert plan_fetch(_series(250), "20240110", 250) == FetchPlan(15, incremental=True)
    # short requests never need a long cache
    assert plan_fetch(_series(10), "20240110", 2) == FetchPlan(15, incremental=True)


def test_plan_refresh_on_same_day():
    assert plan_fetch(_series(250), "20240105", 250) == FetchPlan(5, incremental=True)


def test_plan_full_for_large_gap():
    assert plan_fetch(_series(250), "20240601", 250) == FetchPlan(250, incremental=False)


def test_plan_full_for_date_inside_cached_range():
    assert plan_fetch(_series(250), "20231201", 250) == FetchPlan(250, incremental=False)


def test_merge_with_itself_is_idempotent():
    pts = _points(50)
    assert merge_points(pts, pts) == pts


def test_merge_overwrites_same_date_and_keeps_rest():
    cached = _points(10)
    fresh = [PricePoint("20240105", 1, 2, 0.5, 1.5, 7), PricePoint("20240106", 2, 3, 1, 2, 8)]
    merged = merge_points(cached, fresh)
    assert len(merged) == 11
    assert merged[-2] == fresh[0]
    assert merged[-1] == fresh[1]
    assert merged[:9] == cached[:9]


def test_merge_keeps_newest_300_sorted():
    cached = _points(295)
    fresh = _points(10, end="20240110")
    merged = merge_points(list(reversed(cached)), fresh)
    assert len(merged) == 300
    assert merged[-1].date == "20240110"
    assert [p.date for p in merged] == sorted(p.date for p in merged)


def test_first_reconcile_is_full_and_written_through():
    cache = InMemoryCacheStore()
    fetcher = FakeFetcher(rows=_points(60))
    series = asyncio.run(FetchReconciler(cache, fetcher).reconcile("5930", "20240105", 250))

    assert fetcher.calls == [("005930", "20240105", 250)]
    assert series.symbol == "005930"
    assert len(series) == 60
    assert series.points[-1].indicators.ema50 is not None
    assert cache.get("005930") == series


def test_incremental_reconcile_merges_and_recomputes():
    cache = InMemoryCacheStore()
    cached = _series(250)
    cache.put("005930", cached)
    fresh = _points(6, end="20240110", close=120.0)
    fetcher = FakeFetcher(rows=fresh)

    series = asyncio.run(FetchReconciler(cache, fetcher).reconcile("005930", "20240110", 250))

    assert fetcher.calls == [("005930", "20240110", 15)]
    assert len(series) == 255
    assert series.points[-6].price == fresh[0]  # 20240105 replaced
    expected = compute_indicators(merge_points(cached.prices(), fresh))
    assert series.points == expected
    assert cache.get("005930") == series


def test_empty_fetch_is_data_empty_and_leaves_cache():
    cache = InMemoryCacheStore()
    cached = _series(250)
    cache.put("005930", cached)
    with pytest.raises(DataEmpty):
        asyncio.run(FetchReconciler(cache, FakeFetcher(rows=[])).reconcile("005930", "20240110"))
    assert cache.get("005930") == cached


def test_unavailable_data_propagates():
    fetcher = FakeFetcher(error=DataUnavailable("all relays failed"))
    with pytest.raises(DataUnavailable):
        asyncio.run(FetchReconciler(InMemoryCacheStore(), fetcher).reconcile("005930", "20240110"))


def test_blank_symbol_never_hits_network():
    fetcher = FakeFetcher(rows=_points(5))
    with pytest.raises(InvalidSymbol):
        asyncio.run(FetchReconciler(InMemoryCacheStore(), fetcher).reconcile("  ", "20240110"))
    assert fetcher.calls == []
