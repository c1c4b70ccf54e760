"""
Reconcile a symbol's price history against the cache.

The reconciler decides how many rows to request (full refetch vs.
incremental update), fetches them through :class:`UpstreamFetcher`, merges
with the cached series by date, recomputes every indicator over the merged
series and writes the result back to the cache.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .cache_store import CacheStore
from .config import MAX_SERIES_LENGTH, get_logger
from .errors import DataEmpty, InvalidSymbol
from .indicators import compute_indicators
from .models import PricePoint, StockSeries
from .ohlc_fetcher import UpstreamFetcher

logger = get_logger("stock_reconciler")

FULL_HISTORY_THRESHOLD = 50
MIN_SUFFICIENT_CACHE = 240
MAX_INCREMENTAL_GAP_DAYS = 100
INCREMENTAL_MARGIN = 10
REFRESH_WINDOW = 5


@dataclass(frozen=True)
class FetchPlan:
    count: int
    incremental: bool


def normalize_symbol(symbol: Optional[str]) -> str:
    """Strip the symbol and left-pad numeric codes shorter than 6 digits."""
    if symbol is None or not str(symbol).strip():
        raise InvalidSymbol("Invalid symbol: empty")
    clean = str(symbol).strip()
    if clean.isdigit() and len(clean) < 6:
        clean = clean.zfill(6)
    return clean


def is_yyyymmdd(value: Optional[str]) -> bool:
    """True for a real calendar date written as exactly eight digits."""
    if not isinstance(value, str) or len(value) != 8 or not (value.isascii() and value.isdigit()):
        return False
    try:
        dt.datetime.strptime(value, "%Y%m%d")
    except ValueError:
        return False
    return True


def days_between(date1: str, date2: str) -> int:
    """Absolute calendar-day distance of two YYYYMMDD dates; 999 if malformed."""
    try:
        d1 = dt.datetime.strptime(date1, "%Y%m%d").date()
        d2 = dt.datetime.strptime(date2, "%Y%m%d").date()
    except (TypeError, ValueError):
        return 999
    return abs((d2 - d1).days)


def plan_fetch(cached: Optional[StockSeries], reference_date: str, desired_count: int) -> FetchPlan:
    """
    Decide between a full and an incremental fetch.  Dates compare
    lexically.  A reference date inside the cached range falls through to
    a full refetch.
    """
    if cached is None or len(cached) == 0:
        return FetchPlan(desired_count, incremental=False)
    if desired_count > FULL_HISTORY_THRESHOLD and len(cached) < MIN_SUFFICIENT_CACHE:
        return FetchPlan(desired_count, incremental=False)

    last_cached = max(cached.dates)
    if reference_date > last_cached:
        gap = days_between(reference_date, last_cached)
        if gap < MAX_INCREMENTAL_GAP_DAYS:
            return FetchPlan(gap + INCREMENTAL_MARGIN, incremental=True)
    elif reference_date == last_cached:
        return FetchPlan(REFRESH_WINDOW, incremental=True)
    return FetchPlan(desired_count, incremental=False)


def merge_points(
    cached: Iterable[PricePoint], fresh: Iterable[PricePoint], limit: int = MAX_SERIES_LENGTH
) -> List[PricePoint]:
    """
    Merge by date: fresh rows replace cached rows of the same date, other
    cached rows stay.  Result is ascending and keeps the newest ``limit``.
    """
    by_date = {p.date: p for p in cached}
    for p in fresh:
        by_date[p.date] = p
    merged = sorted(by_date.values(), key=lambda p: p.date)
    return merged[-limit:] if limit else merged


class FetchReconciler:
    def __init__(self, cache: CacheStore, fetcher: Optional[UpstreamFetcher] = None):
        self.cache = cache
        self.fetcher = fetcher or UpstreamFetcher()

    async def reconcile(self, symbol: str, reference_date: str, desired_count: int = 250) -> StockSeries:
        """
        Return the indicator-annotated series for ``symbol`` up to
        ``reference_date`` and overwrite its cache entry.

        Raises InvalidSymbol, DataUnavailable or DataEmpty.
        """
        clean = normalize_symbol(symbol)
        cached = self.cache.get(clean)
        plan = plan_fetch(cached, reference_date, desired_count)
        logger.debug(
            "%s: %s fetch of %d rows (cached=%d)",
            clean, "incremental" if plan.incremental else "full", plan.count, len(cached) if cached else 0,
        )

        fresh = await self.fetcher.fetch_rows(clean, reference_date, plan.count)
        if not fresh:
            raise DataEmpty(f"No data returned for {clean}")

        base = cached.prices() if (plan.incremental and cached is not None) else []
        merged = merge_points(base, fresh)
        series = StockSeries(symbol=clean, points=compute_indicators(merged))
        self.cache.put(clean, series)
        logger.info("%s: %d points up to %s", clean, len(series), series.last_date)
        return series
