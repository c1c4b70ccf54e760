"""
Paced, batched work over a whole watchlist.

Symbols are deduplicated, then processed in fixed-size chunks.  Every chunk
runs concurrently and must fully settle before a fixed pause and the next
chunk.  A failing symbol only marks its own outcome as failed.

Two passes share that schedule: ``refresh`` pulls the latest quote of each
symbol, ``learn`` reconciles the full history and mines it for successful
buy setups.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .config import BATCH_PAUSE_SECS, BATCH_SIZE, MAX_SERIES_LENGTH, get_logger
from .models import LearningResult, Quote
from .pattern_miner import mine
from .reconciler import FetchReconciler

logger = get_logger("stock_batch")


class RefreshState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SETTLED = "settled"


@dataclass
class RefreshOutcome:
    symbol: str
    state: RefreshState = RefreshState.PENDING
    quote: Optional[Quote] = None
    error: bool = False
    error_message: Optional[str] = None


@dataclass
class LearningOutcome:
    symbol: str
    state: RefreshState = RefreshState.PENDING
    results: List[LearningResult] = field(default_factory=list)
    error: bool = False
    error_message: Optional[str] = None


@dataclass
class LearningSummary:
    """Per-symbol learning outcomes plus saved / no-pattern / failed tallies."""

    outcomes: Dict[str, LearningOutcome]

    @property
    def saved(self) -> int:
        return sum(1 for o in self.outcomes.values() if not o.error and o.results)

    @property
    def no_pattern(self) -> int:
        return sum(1 for o in self.outcomes.values() if not o.error and not o.results)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.error)

    @property
    def total_results(self) -> int:
        return sum(len(o.results) for o in self.outcomes.values())


Outcome = Union[RefreshOutcome, LearningOutcome]


def dedupe(symbols: Iterable[str]) -> List[str]:
    seen = set()
    unique: List[str] = []
    for s in symbols:
        if s not in seen:
            seen.add(s)
            unique.append(s)
    return unique


class BatchRefresher:
    def __init__(
        self,
        reconciler: FetchReconciler,
        batch_size: int = BATCH_SIZE,
        pause_secs: float = BATCH_PAUSE_SECS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.reconciler = reconciler
        self.batch_size = batch_size
        self.pause_secs = pause_secs
        self._sleep = sleep

    async def _settle(self, outcome: Outcome, work: Callable[[Outcome], Awaitable[None]]) -> None:
        outcome.state = RefreshState.IN_FLIGHT
        try:
            await work(outcome)
        except Exception as e:
            logger.warning("Batch work failed for %s: %s", outcome.symbol, e)
            outcome.error = True
            outcome.error_message = str(e) or type(e).__name__
        finally:
            outcome.state = RefreshState.SETTLED

    async def _run_in_batches(
        self, outcomes: Dict[str, Outcome], work: Callable[[Outcome], Awaitable[None]]
    ) -> None:
        symbols = list(outcomes)
        for start in range(0, len(symbols), self.batch_size):
            chunk = symbols[start:start + self.batch_size]
            logger.debug("Processing %d / %d", start + len(chunk), len(symbols))
            await asyncio.gather(*(self._settle(outcomes[s], work) for s in chunk))
            if start + self.batch_size < len(symbols):
                await self._sleep(self.pause_secs)

    async def refresh(
        self, symbols: Iterable[str], reference_date: str, count: int = 2
    ) -> Dict[str, RefreshOutcome]:
        """
        Refresh every symbol and return one outcome per unique symbol, in
        first-seen order.
        """
        outcomes = {s: RefreshOutcome(symbol=s) for s in dedupe(symbols)}

        async def work(outcome: RefreshOutcome) -> None:
            series = await self.reconciler.reconcile(outcome.symbol, reference_date, count)
            outcome.quote = series.quote()

        await self._run_in_batches(outcomes, work)
        failed = sum(1 for o in outcomes.values() if o.error)
        logger.info("Watchlist refresh settled: %d ok, %d failed", len(outcomes) - failed, failed)
        return outcomes

    async def learn(
        self, symbols: Iterable[str], reference_date: str, count: int = MAX_SERIES_LENGTH
    ) -> LearningSummary:
        """
        Reconcile each symbol's history and mine it.  A symbol with no
        successful setup counts as ``no_pattern``, not as a failure.
        """
        summary = LearningSummary({s: LearningOutcome(symbol=s) for s in dedupe(symbols)})

        async def work(outcome: LearningOutcome) -> None:
            series = await self.reconciler.reconcile(outcome.symbol, reference_date, count)
            outcome.results = mine(series)

        await self._run_in_batches(summary.outcomes, work)
        logger.info(
            "Watchlist learning settled: %d saved (%d setups), %d without pattern, %d failed",
            summary.saved, summary.total_results, summary.no_pattern, summary.failed,
        )
        return summary
