"""Pass-through relay providers used to reach the upstream endpoints.

A relay rewrites a target URL into its own URL and proxies a GET to it.
Some relays wrap the upstream body in a JSON object under ``contents``.
Relays are tried in list order; see :mod:`stock_core.ohlc_fetcher`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional
from urllib.parse import quote


@dataclass(frozen=True)
class RelayProvider:
    name: str
    rewrite: Callable[[str], str]
    is_json_wrapper: bool = False

    def url_for(self, target: str) -> str:
        return self.rewrite(target)


def _no_cache() -> int:
    return int(time.time() * 1000)


DEFAULT_RELAYS: List[RelayProvider] = [
    RelayProvider(
        "AllOrigins (JSON)",
        lambda t: f"https://api.allorigins.win/get?url={quote(t, safe='')}&disableCache={_no_cache()}",
        is_json_wrapper=True,
    ),
    RelayProvider("CorsProxy.io", lambda t: f"https://corsproxy.io/?{quote(t, safe='')}"),
    RelayProvider("ThingProxy", lambda t: f"https://thingproxy.freeboard.io/fetch/{t}"),
    RelayProvider(
        "AllOrigins (Raw)",
        lambda t: f"https://api.allorigins.win/raw?url={quote(t, safe='')}&disableCache={_no_cache()}",
    ),
]


def direct_relay() -> RelayProvider:
    """A relay that calls the target URL as-is (server-side use, no CORS)."""
    return RelayProvider("Direct", lambda t: t)


def select_relays(names: Optional[str]) -> List[RelayProvider]:
    """
    Pick relays by comma-separated name, keeping the given order.  Unknown
    names are ignored; ``None``/empty means all default relays.
    """
    if not names:
        return list(DEFAULT_RELAYS)
    known = {r.name.lower(): r for r in DEFAULT_RELAYS + [direct_relay()]}
    picked = [known[n.strip().lower()] for n in names.split(",") if n.strip().lower() in known]
    return picked or list(DEFAULT_RELAYS)
