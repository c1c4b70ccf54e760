"""
FastAPI application exposing the reconciled price series, the mined buy
setups and a paced watchlist refresh.  All responses are plain data; how
they are rendered or exported is up to the consumer.
"""
from __future__ import annotations
import logging
import datetime as dt
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from stock_core import (
    BatchRefresher,
    DataEmpty,
    DataUnavailable,
    FetchReconciler,
    InvalidSymbol,
    SqlCacheStore,
    UpstreamFetcher,
    is_yyyymmdd,
    mine,
    select_relays,
)
from stock_core.config import CACHE_URL, RELAY_NAMES

logger = logging.getLogger("stock_api")
app = FastAPI(title="Stock Watchlist Engine API")


# ----------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------
class PointResponse(BaseModel):
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: int
    foreign_ownership_rate: float = 0.0
    ema20: Optional[int] = None
    ema50: Optional[int] = None
    ema200: Optional[int] = None
    rsi: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_hist: Optional[float] = None
    obv: Optional[int] = None
    mfi: Optional[float] = None
    adx: Optional[float] = None


class SeriesResponse(BaseModel):
    symbol: str
    points: List[PointResponse]


class PatternContextResponse(BaseModel):
    ema_trend_label: str
    adx_strength_label: str
    volume_multiplier: float


class LearningResultResponse(BaseModel):
    buy_date: str
    success_date: Optional[str] = None
    max_return_pct: float
    context: PatternContextResponse
    context_window: List[PointResponse]


class PatternsResponse(BaseModel):
    symbol: str
    results: List[LearningResultResponse]


class RefreshRequest(BaseModel):
    symbols: List[str] = Field(..., description="Watchlist symbols, e.g. 005930")
    date: Optional[str] = Field(None, description="Reference date YYYYMMDD (default: today)")
    count: int = Field(2, ge=1, le=300, description="Rows requested per symbol")

    @field_validator("date")
    @classmethod
    def _validate_date(cls, v):
        if v is not None and not is_yyyymmdd(v):
            raise ValueError("date must be YYYYMMDD")
        return v


class RefreshItem(BaseModel):
    symbol: str
    close: Optional[float] = None
    change_rate: Optional[float] = None
    error: bool = False
    error_message: Optional[str] = None


class RefreshResponse(BaseModel):
    results: List[RefreshItem]


class LearnRequest(BaseModel):
    symbols: List[str]
    date: Optional[str] = Field(None, description="Reference date YYYYMMDD (default: today)")
    count: int = Field(300, ge=1, le=300, description="History length mined per symbol")

    @field_validator("date")
    @classmethod
    def _validate_date(cls, v):
        if v is not None and not is_yyyymmdd(v):
            raise ValueError("date must be YYYYMMDD")
        return v


class LearnItem(BaseModel):
    symbol: str
    results: List[LearningResultResponse] = []
    error: bool = False
    error_message: Optional[str] = None


class LearnResponse(BaseModel):
    saved: int
    no_pattern: int
    failed: int
    items: List[LearnItem]


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------
def _reference_date(date: Optional[str]) -> str:
    if date is None:
        return dt.date.today().strftime("%Y%m%d")
    if not is_yyyymmdd(date):
        raise HTTPException(400, detail="date must be YYYYMMDD")
    return date


@lru_cache(maxsize=1)
def get_reconciler() -> FetchReconciler:
    fetcher = UpstreamFetcher(relays=select_relays(RELAY_NAMES))
    return FetchReconciler(SqlCacheStore(CACHE_URL), fetcher)


def get_refresher(reconciler: FetchReconciler = Depends(get_reconciler)) -> BatchRefresher:
    return BatchRefresher(reconciler)


async def _reconcile_or_raise(reconciler: FetchReconciler, symbol: str, date: str, count: int):
    try:
        return await reconciler.reconcile(symbol, date, count)
    except InvalidSymbol as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataEmpty as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception:
        logger.exception("Unhandled error reconciling %s", symbol)
        raise HTTPException(status_code=500, detail="Internal server error")


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------
@app.get("/series/{symbol}", response_model=SeriesResponse)
async def get_series(
    symbol: str,
    date: Optional[str] = Query(None, description="Reference date YYYYMMDD"),
    count: int = Query(250, ge=1, le=300, description="Desired history length"),
    reconciler: FetchReconciler = Depends(get_reconciler),
) -> SeriesResponse:
    """Return the indicator-annotated daily series for ``symbol``."""
    series = await _reconcile_or_raise(reconciler, symbol, _reference_date(date), count)
    return SeriesResponse(
        symbol=series.symbol,
        points=[PointResponse(**p.to_dict()) for p in series.points],
    )


@app.get("/patterns/{symbol}", response_model=PatternsResponse)
async def get_patterns(
    symbol: str,
    date: Optional[str] = Query(None, description="Reference date YYYYMMDD"),
    count: int = Query(300, ge=1, le=300, description="History length to mine"),
    reconciler: FetchReconciler = Depends(get_reconciler),
) -> PatternsResponse:
    """
    Reconcile the series and mine it for past entries followed by a 10%
    rally within 20 trading days.  An empty list is a valid answer.
    """
    series = await _reconcile_or_raise(reconciler, symbol, _reference_date(date), count)
    results = mine(series)
    logger.info("%s: %d successful setups mined", series.symbol, len(results))
    return PatternsResponse(
        symbol=series.symbol,
        results=[LearningResultResponse(**r.to_dict()) for r in results],
    )


@app.post("/watchlist/refresh", response_model=RefreshResponse)
async def refresh_watchlist(
    req: RefreshRequest,
    refresher: BatchRefresher = Depends(get_refresher),
) -> RefreshResponse:
    """
    Refresh the latest quote of every watchlist symbol in paced batches.
    A failing symbol is flagged in its own item and never fails the call.
    """
    if not req.symbols:
        raise HTTPException(400, detail="No symbols given")
    outcomes = await refresher.refresh(req.symbols, _reference_date(req.date), req.count)
    items = []
    for outcome in outcomes.values():
        quote = outcome.quote
        items.append(
            RefreshItem(
                symbol=outcome.symbol,
                close=quote.close if quote else None,
                change_rate=round(quote.change_rate, 2) if quote else None,
                error=outcome.error,
                error_message=outcome.error_message,
            )
        )
    return RefreshResponse(results=items)


@app.post("/watchlist/learn", response_model=LearnResponse)
async def learn_watchlist(
    req: LearnRequest,
    refresher: BatchRefresher = Depends(get_refresher),
) -> LearnResponse:
    """Mine every watchlist symbol in paced batches and tally the outcome."""
    if not req.symbols:
        raise HTTPException(400, detail="No symbols given")
    summary = await refresher.learn(req.symbols, _reference_date(req.date), req.count)
    items = [
        LearnItem(
            symbol=o.symbol,
            results=[LearningResultResponse(**r.to_dict()) for r in o.results],
            error=o.error,
            error_message=o.error_message,
        )
        for o in summary.outcomes.values()
    ]
    return LearnResponse(
        saved=summary.saved, no_pattern=summary.no_pattern, failed=summary.failed, items=items
    )
