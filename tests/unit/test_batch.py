import asyncio
import datetime as dt
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../services/stock_engine_py')))

from stock_core.batch import BatchRefresher, RefreshState, dedupe
from stock_core.errors import DataUnavailable
from stock_core.indicators import compute_indicators
from stock_core.models import PricePoint, SeriesPoint, StockSeries


class FakeReconciler:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.active = 0
        self.max_active = 0
        self.calls = []

    async def reconcile(self, symbol, reference_date, desired_count=250):
        self.calls.append((symbol, reference_date, desired_count))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        if symbol in self.failing:
            raise DataUnavailable(f"All relays failed for {symbol}")
        return StockSeries(
            symbol,
            [
                SeriesPoint(PricePoint("20240104", 100, 100, 100, 100.0, 10)),
                SeriesPoint(PricePoint("20240105", 110, 110, 110, 110.0, 10)),
            ],
        )


def _refresh(refresher, symbols):
    return asyncio.run(refresher.refresh(symbols, "20240105"))


def test_dedupe_keeps_first_seen_order():
    assert dedupe(["B", "A", "B", "C", "A"]) == ["B", "A", "C"]


def test_batches_are_paced_and_bounded():
    pauses = []

    async def fake_sleep(secs):
        pauses.append(secs)

    reconciler = FakeReconciler()
    refresher = BatchRefresher(reconciler, batch_size=8, pause_secs=1.0, sleep=fake_sleep)
    symbols = [f"{i:06d}" for i in range(17)] + ["000001", "000002", "000003"]

    outcomes = _refresh(refresher, symbols)

    assert len(outcomes) == 17
    assert len(reconciler.calls) == 17
    assert reconciler.max_active <= 8
    # three chunks (8, 8, 1), pauses only between them
    assert pauses == [1.0, 1.0]
    assert all(o.state is RefreshState.SETTLED for o in outcomes.values())
    assert all(call[2] == 2 for call in reconciler.calls)


def test_failures_are_isolated_per_symbol():
    async def no_sleep(secs):
        return None

    refresher = BatchRefresher(FakeReconciler(failing={"000660"}), sleep=no_sleep)
    outcomes = _refresh(refresher, ["005930", "000660", "035420"])

    bad = outcomes["000660"]
    assert bad.error is True
    assert "000660" in bad.error_message
    assert bad.quote is None
    good = outcomes["005930"]
    assert good.error is False
    assert good.quote.close == 110.0
    assert good.quote.change_rate == pytest.approx(10.0)
    assert list(outcomes) == ["005930", "000660", "035420"]


def test_single_batch_never_pauses():
    pauses = []

    async def fake_sleep(secs):
        pauses.append(secs)

    _refresh(BatchRefresher(FakeReconciler(), sleep=fake_sleep), ["005930", "000660"])
    assert pauses == []


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchRefresher(FakeReconciler(), batch_size=0)


def _spike_series(symbol, n=40):
    start = dt.date(2024, 1, 1)
    points = []
    for i in range(n):
        price = 115.0 if i == 20 else 100.0
        points.append(PricePoint((start + dt.timedelta(days=i)).strftime("%Y%m%d"), price, price, price, price, 1000))
    return StockSeries(symbol, compute_indicators(points))


class LearningReconciler(FakeReconciler):
    async def reconcile(self, symbol, reference_date, desired_count=250):
        series = await super().reconcile(symbol, reference_date, desired_count)
        return _spike_series(symbol) if symbol == "005930" else series


def test_learn_tallies_saved_no_pattern_and_failed():
    async def no_sleep(secs):
        return None

    reconciler = LearningReconciler(failing={"035420"})
    refresher = BatchRefresher(reconciler, sleep=no_sleep)
    summary = asyncio.run(refresher.learn(["005930", "000660", "035420", "005930"], "20240209"))

    assert (summary.saved, summary.no_pattern, summary.failed) == (1, 1, 1)
    assert list(summary.outcomes) == ["005930", "000660", "035420"]
    saved = summary.outcomes["005930"]
    assert saved.results[0].buy_date == "20240110"
    assert summary.total_results == len(saved.results)
    assert summary.outcomes["000660"].results == []
    assert summary.outcomes["035420"].error is True
    assert all(o.state is RefreshState.SETTLED for o in summary.outcomes.values())
    assert all(call[2] == 300 for call in reconciler.calls)


def test_learn_shares_the_refresh_pacing():
    pauses = []

    async def fake_sleep(secs):
        pauses.append(secs)

    refresher = BatchRefresher(FakeReconciler(), batch_size=2, pause_secs=0.5, sleep=fake_sleep)
    summary = asyncio.run(refresher.learn(["A", "B", "C", "D", "E"], "20240105"))
    assert pauses == [0.5, 0.5]
    assert summary.no_pattern == 5
