# stock_core/ohlc_fetcher.py
"""Fetch daily OHLCV rows for a domestic stock symbol.

Tries the primary chart endpoint first.  If no relay can deliver it, falls
back to the legacy row-array endpoint through the same relays.  Each relay
attempt is bounded by a timeout; relays are tried one after another, never
raced.

Both endpoints resolve to rows shaped ``[date, open, high, low, close,
volume, foreign_rate?]``.  Dates are ``YYYYMMDD`` strings.
"""
from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx

from .config import FALLBACK_URL, PRIMARY_URL, RELAY_TIMEOUT_SECS, get_logger
from .errors import DataUnavailable, ParseFailure
from .models import PricePoint
from .relays import DEFAULT_RELAYS, RelayProvider

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────

logger = get_logger("stock_fetcher")

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

HEADER_DATE_LABEL = "날짜"

_PAYLOAD_KEYS = ("priceInfos", "data", "result", "rows", "chartData")

_RECORD_KEYS: Dict[str, Tuple[str, ...]] = {
    "date": ("localDate", "dt", "date"),
    "open": ("openPrice", "ov", "open"),
    "high": ("highPrice", "hv", "high"),
    "low": ("lowPrice", "lv", "low"),
    "close": ("closePrice", "nc", "close"),
    "volume": ("accumulatedTradingVolume", "sv", "volume"),
    "foreign_rate": ("foreignRetentionRate", "foreignRate"),
}

_NON_DIGITS = re.compile(r"\D")


def _cache_buster() -> int:
    return int(time.time() * 1000)


def primary_url(symbol: str, count: int, start_time: str, base: str = PRIMARY_URL) -> str:
    params = {
        "symbol": symbol,
        "requestType": 2,
        "count": count,
        "startTime": start_time,
        "timeframe": "day",
        "_": _cache_buster(),
    }
    return f"{base}?{urlencode(params)}"


def fallback_url(symbol: str, count: int, start_time: str, base: str = FALLBACK_URL) -> str:
    params = {
        "symbol": symbol,
        "requestType": 1,
        "startTime": start_time,
        "count": count,
        "timeframe": "day",
        "_": _cache_buster(),
    }
    return f"{base}?{urlencode(params)}"


def parse_number(val: Any) -> float:
    """Parse a number that may carry thousands separators; junk becomes 0."""
    if isinstance(val, bool):
        return 0.0
    if isinstance(val, (int, float)):
        return float(val)
    if isinstance(val, str):
        cleaned = val.replace(",", "").strip()
        try:
            return float(cleaned or "0")
        except ValueError:
            return 0.0
    return 0.0


def _is_numeric(val: Any) -> bool:
    if isinstance(val, bool):
        return False
    if isinstance(val, (int, float)):
        return True
    if isinstance(val, str):
        try:
            float(val.replace(",", "").strip() or "0")
            return True
        except ValueError:
            return False
    return False


def normalize_date(val: Any) -> str:
    return _NON_DIGITS.sub("", str(val).strip())


def decode_body(text: str) -> Any:
    """
    Decode a JSON body.  Malformed bodies (typically single-quoted, as the
    legacy endpoint returns them) get one repair attempt.
    """
    try:
        return json.loads(text)
    except ValueError as first:
        try:
            return json.loads(text.replace("'", '"').strip())
        except ValueError:
            raise ParseFailure(f"Unparseable body: {first}") from first


def _record_to_row(record: Dict[str, Any]) -> List[Any]:
    row: List[Any] = []
    for field in ("date", "open", "high", "low", "close", "volume", "foreign_rate"):
        value = None
        for key in _RECORD_KEYS[field]:
            if key in record:
                value = record[key]
                break
        row.append(value)
    return row


def _is_header(row: Sequence[Any]) -> bool:
    if not row:
        return False
    if str(row[0]).strip() == HEADER_DATE_LABEL:
        return True
    return len(row) > 1 and not _is_numeric(row[1])


def extract_rows(payload: Any) -> List[List[Any]]:
    """
    Normalize either upstream shape into a list of rows.  Accepts an object
    wrapping the rows under a known key, a list of records, or a plain row
    array; a leading header row is dropped.
    """
    if isinstance(payload, dict):
        inner = next((payload[k] for k in _PAYLOAD_KEYS if isinstance(payload.get(k), list)), None)
        if inner is None:
            raise ParseFailure(f"No row payload in object with keys {sorted(payload)[:8]}")
        payload = inner
    if not isinstance(payload, list):
        raise ParseFailure(f"Expected a row array, got {type(payload).__name__}")

    rows: List[List[Any]] = []
    for item in payload:
        if isinstance(item, dict):
            rows.append(_record_to_row(item))
        elif isinstance(item, (list, tuple)):
            rows.append(list(item))
    # only row arrays carry a header row
    if payload and isinstance(payload[0], (list, tuple)) and _is_header(rows[0]):
        rows = rows[1:]
    return rows


def rows_to_points(rows: Sequence[Sequence[Any]]) -> List[PricePoint]:
    """Convert parsed rows to price points, skipping rows without a usable date."""
    points: List[PricePoint] = []
    for row in rows:
        if not row:
            continue
        date = normalize_date(row[0])
        if len(date) != 8:
            logger.debug("Skipping row with unusable date %r", row[0])
            continue
        cells = list(row[1:7]) + [None] * max(0, 7 - len(row))
        points.append(
            PricePoint(
                date=date,
                open=parse_number(cells[0]),
                high=parse_number(cells[1]),
                low=parse_number(cells[2]),
                close=parse_number(cells[3]),
                volume=int(parse_number(cells[4])),
                foreign_ownership_rate=parse_number(cells[5]),
            )
        )
    return points

# ──────────────────────────────────────────────────────────────────────────────
# Relay chain
# ──────────────────────────────────────────────────────────────────────────────

def describe_error(e: Optional[BaseException]) -> str:
    """Exception type plus message; httpx timeouts usually carry no message."""
    if e is None:
        return "no relays configured"
    message = str(e)
    return f"{type(e).__name__}: {message}" if message else type(e).__name__


class UpstreamFetcher:
    """
    Walks the endpoint chain (primary, fallback) and, for each endpoint, the
    relay chain.  The first relay returning a non-empty, parseable body wins.
    """

    def __init__(
        self,
        relays: Optional[Sequence[RelayProvider]] = None,
        timeout: float = RELAY_TIMEOUT_SECS,
        client: Optional[httpx.AsyncClient] = None,
        primary_base: str = PRIMARY_URL,
        fallback_base: str = FALLBACK_URL,
    ):
        self.relays = list(relays) if relays is not None else list(DEFAULT_RELAYS)
        self.timeout = timeout
        self.client = client
        self.primary_base = primary_base
        self.fallback_base = fallback_base

    async def _attempt(self, client: httpx.AsyncClient, relay: RelayProvider, target: str) -> List[List[Any]]:
        resp = await asyncio.wait_for(
            client.get(relay.url_for(target), timeout=self.timeout), timeout=self.timeout
        )
        if not resp.is_success:
            raise httpx.HTTPStatusError(f"HTTP {resp.status_code}", request=resp.request, response=resp)
        text = resp.text
        if not text or not text.strip():
            raise ValueError("Empty response")
        if relay.is_json_wrapper:
            wrapper = decode_body(text)
            contents = wrapper.get("contents") if isinstance(wrapper, dict) else None
            if not isinstance(contents, str) or not contents.strip():
                raise ValueError("Empty response")
            text = contents
        return extract_rows(decode_body(text))

    async def _fetch_via_relays(self, client: httpx.AsyncClient, target: str, description: str) -> List[List[Any]]:
        last_error: Optional[BaseException] = None
        for relay in self.relays:
            try:
                return await self._attempt(client, relay, target)
            except Exception as e:
                logger.debug("%s failed for %s: %s", relay.name, description, describe_error(e))
                last_error = e
        raise DataUnavailable(f"All relays failed for {description}", last_error)

    async def _fetch(self, client: httpx.AsyncClient, symbol: str, start_time: str, count: int) -> List[List[Any]]:
        try:
            return await self._fetch_via_relays(
                client, primary_url(symbol, count, start_time, self.primary_base), f"{symbol} (primary)"
            )
        except DataUnavailable as main_error:
            logger.warning(
                "Primary endpoint failed for %s, trying fallback (%s)",
                symbol,
                describe_error(main_error.last_error),
            )
        try:
            return await self._fetch_via_relays(
                client, fallback_url(symbol, count, start_time, self.fallback_base), f"{symbol} (fallback)"
            )
        except DataUnavailable as fallback_error:
            raise DataUnavailable(
                f"Data fetch failed for {symbol}: {describe_error(fallback_error.last_error)}", fallback_error.last_error
            ) from fallback_error.last_error

    async def fetch_rows(self, symbol: str, start_time: str, count: int) -> List[PricePoint]:
        """
        Fetch up to ``count`` daily rows for ``symbol`` ending at
        ``start_time``.  Raises :class:`DataUnavailable` when every relay of
        both endpoints failed.  May return an empty list.
        """
        if self.client is not None:
            rows = await self._fetch(self.client, symbol, start_time, count)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                rows = await self._fetch(client, symbol, start_time, count)
        return rows_to_points(rows)
