"""Core of the stock watchlist engine.

This package reconciles a symbol's daily price history against a local
cache through a multi-relay upstream fetch, computes technical indicators
over the merged series, and mines the annotated series for historically
successful buy setups.  Indicator computation and mining are side‑effect
free and deterministic when given the same inputs.
"""

from .errors import DataEmpty, DataUnavailable, InvalidSymbol, ParseFailure, StockDataError
from .models import (
    IndicatorBundle,
    LearningResult,
    PatternContext,
    PricePoint,
    Quote,
    SeriesPoint,
    StockSeries,
)
from .indicators import (
    compute_indicators,
    compute_ema,
    compute_rsi,
    compute_macd,
    compute_obv,
    compute_mfi,
    compute_adx,
)
from .cache_store import CacheStore, InMemoryCacheStore, SqlCacheStore
from .relays import DEFAULT_RELAYS, RelayProvider, direct_relay, select_relays
from .ohlc_fetcher import UpstreamFetcher
from .reconciler import FetchPlan, FetchReconciler, is_yyyymmdd, merge_points, normalize_symbol, plan_fetch
from .batch import BatchRefresher, LearningOutcome, LearningSummary, RefreshOutcome, RefreshState
from .pattern_miner import LOOK_BACK, LOOK_FORWARD, mine

__all__ = [
    "StockDataError",
    "InvalidSymbol",
    "ParseFailure",
    "DataEmpty",
    "DataUnavailable",
    "PricePoint",
    "IndicatorBundle",
    "SeriesPoint",
    "StockSeries",
    "Quote",
    "PatternContext",
    "LearningResult",
    "compute_indicators",
    "compute_ema",
    "compute_rsi",
    "compute_macd",
    "compute_obv",
    "compute_mfi",
    "compute_adx",
    "CacheStore",
    "InMemoryCacheStore",
    "SqlCacheStore",
    "RelayProvider",
    "DEFAULT_RELAYS",
    "direct_relay",
    "select_relays",
    "UpstreamFetcher",
    "FetchPlan",
    "FetchReconciler",
    "plan_fetch",
    "merge_points",
    "normalize_symbol",
    "is_yyyymmdd",
    "BatchRefresher",
    "RefreshOutcome",
    "RefreshState",
    "LearningOutcome",
    "LearningSummary",
    "LOOK_BACK",
    "LOOK_FORWARD",
    "mine",
]
