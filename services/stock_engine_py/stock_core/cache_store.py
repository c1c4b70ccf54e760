"""
Symbol-keyed store of the most recently computed, indicator-annotated series.

Two stores share the narrow ``get``/``put`` contract: an in-process store
with optional capacity, and a SQLAlchemy-backed store that keeps one row per
symbol so the cache survives restarts.  Writes are last-writer-wins per
symbol.
"""
from __future__ import annotations

import json
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import Session, declarative_base

from .config import get_logger
from .models import StockSeries

logger = get_logger("stock_cache")


class CacheStore(Protocol):
    def get(self, symbol: str) -> Optional[StockSeries]:
        ...

    def put(self, symbol: str, series: StockSeries) -> None:
        ...


class InMemoryCacheStore:
    """Dict-backed store.  With ``capacity`` set, the oldest write is evicted first."""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity
        self._entries: "OrderedDict[str, dict]" = OrderedDict()

    def get(self, symbol: str) -> Optional[StockSeries]:
        payload = self._entries.get(symbol)
        return StockSeries.from_dict(payload) if payload is not None else None

    def put(self, symbol: str, series: StockSeries) -> None:
        # detached copy
        self._entries.pop(symbol, None)
        self._entries[symbol] = series.to_dict()
        if self.capacity is not None:
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache evicted %s", evicted)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# --- ORM models ---------------------------------------------------------------

Base = declarative_base()


class SeriesCacheRow(Base):
    __tablename__ = "series_cache"
    symbol = Column(String, primary_key=True)
    points = Column(Integer, nullable=False)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class SqlCacheStore:
    """SQLAlchemy store: one JSON payload per symbol, overwritten on every put."""

    def __init__(self, url: str = "sqlite:///stock_cache.db"):
        self.engine = create_engine(url, future=True)
        Base.metadata.create_all(self.engine)  # create if missing; no destructive changes

    def get(self, symbol: str) -> Optional[StockSeries]:
        with Session(self.engine) as session:
            row = session.execute(
                select(SeriesCacheRow).where(SeriesCacheRow.symbol == symbol)
            ).scalar_one_or_none()
            if row is None:
                return None
            try:
                return StockSeries.from_dict(json.loads(row.payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Ignoring unreadable cache entry for %s: %s", symbol, e)
                return None

    def put(self, symbol: str, series: StockSeries) -> None:
        payload = json.dumps(series.to_dict())
        now = datetime.now(timezone.utc)
        with Session(self.engine) as session:
            row = session.get(SeriesCacheRow, symbol)
            if row is None:
                session.add(SeriesCacheRow(symbol=symbol, points=len(series), payload=payload, updated_at=now))
            else:
                row.points = len(series)
                row.payload = payload
                row.updated_at = now
            session.commit()
        logger.debug("Cached %d points for %s", len(series), symbol)
