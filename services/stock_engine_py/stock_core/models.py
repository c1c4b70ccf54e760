"""
Plain data types shared by the fetcher, indicator engine and miner.

Absent indicator values are ``None`` ("not yet computable"), never a
sentinel number: 0 is a legitimate value for several indicators.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class PricePoint:
    date: str  # YYYYMMDD
    open: float
    high: float
    low: float
    close: float
    volume: int
    foreign_ownership_rate: float = 0.0


@dataclass(frozen=True)
class IndicatorBundle:
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


@dataclass(frozen=True)
class SeriesPoint:
    price: PricePoint
    indicators: IndicatorBundle = field(default_factory=IndicatorBundle)

    @property
    def date(self) -> str:
        return self.price.date

    def to_dict(self) -> Dict[str, Any]:
        """Flatten price and indicator fields into one record."""
        d = dataclasses.asdict(self.price)
        d.update(dataclasses.asdict(self.indicators))
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SeriesPoint":
        price_fields = {f.name for f in dataclasses.fields(PricePoint)}
        ind_fields = {f.name for f in dataclasses.fields(IndicatorBundle)}
        price = PricePoint(**{k: v for k, v in d.items() if k in price_fields})
        bundle = IndicatorBundle(**{k: v for k, v in d.items() if k in ind_fields})
        return cls(price, bundle)


@dataclass(frozen=True)
class Quote:
    """Latest close and day-over-day change, as shown in a watchlist row."""
    date: str
    close: float
    change_rate: float


@dataclass
class StockSeries:
    symbol: str
    points: List[SeriesPoint] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def dates(self) -> List[str]:
        return [p.date for p in self.points]

    @property
    def last_date(self) -> Optional[str]:
        return self.points[-1].date if self.points else None

    def prices(self) -> List[PricePoint]:
        return [p.price for p in self.points]

    def quote(self) -> Optional[Quote]:
        if not self.points:
            return None
        current = self.points[-1].price
        change_rate = 0.0
        if len(self.points) >= 2:
            prev_close = self.points[-2].price.close
            if prev_close:
                change_rate = (current.close - prev_close) / prev_close * 100
        return Quote(date=current.date, close=current.close, change_rate=change_rate)

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "points": [p.to_dict() for p in self.points]}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StockSeries":
        return cls(
            symbol=d["symbol"],
            points=[SeriesPoint.from_dict(p) for p in d.get("points", [])],
        )


@dataclass(frozen=True)
class PatternContext:
    ema_trend_label: str
    adx_strength_label: str
    volume_multiplier: float


@dataclass(frozen=True)
class LearningResult:
    buy_date: str
    success_date: Optional[str]
    max_return_pct: float
    context: PatternContext
    context_window: Tuple[SeriesPoint, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buy_date": self.buy_date,
            "success_date": self.success_date,
            "max_return_pct": self.max_return_pct,
            "context": dataclasses.asdict(self.context),
            "context_window": [p.to_dict() for p in self.context_window],
        }
