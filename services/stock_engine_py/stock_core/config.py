# stock_core/config.py
"""Runtime configuration and logging setup for the stock engine.

Values come from the environment and are read once at import time.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

# ──────────────────────────────────────────────────────────────────────────────
# Env helpers (strip quotes/whitespace so .env "KEY=value " doesn’t break things)
# ──────────────────────────────────────────────────────────────────────────────

def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
        v = v[1:-1].strip()
    return v or default


LOG_LEVEL = (_env("STOCK_LOG_LEVEL", "INFO") or "INFO").upper()

PRIMARY_URL = (
    _env("STOCK_PRIMARY_URL", "https://m.stock.naver.com/front-api/external/chart/domestic/info") or ""
)
FALLBACK_URL = _env("STOCK_FALLBACK_URL", "https://api.finance.naver.com/siseJson.naver") or ""

RELAY_TIMEOUT_SECS = float(_env("STOCK_RELAY_TIMEOUT_SECS", "20") or "20")
BATCH_SIZE = int(_env("STOCK_BATCH_SIZE", "8") or "8")
BATCH_PAUSE_SECS = float(_env("STOCK_BATCH_PAUSE_SECS", "1.0") or "1.0")

# comma-separated relay names in priority order; empty means the default list
RELAY_NAMES = _env("STOCK_RELAYS")

CACHE_URL = _env("STOCK_CACHE_URL", "sqlite:///stock_cache.db") or "sqlite:///stock_cache.db"

# retained history per symbol; oldest points go first
MAX_SERIES_LENGTH = 300

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────

def get_logger(name: str) -> logging.Logger:
    """Return a named logger with the service's stream handler attached once."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        _h = logging.StreamHandler()
        _h.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
        logger.addHandler(_h)
    logger.setLevel(LOG_LEVEL)
    return logger
