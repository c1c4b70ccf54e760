"""Exceptions raised by the fetch/reconcile pipeline.

Only ``InvalidSymbol``, ``DataEmpty`` and ``DataUnavailable`` ever reach a
caller of :func:`stock_core.reconciler.FetchReconciler.reconcile`.
``ParseFailure`` is raised per relay attempt and recovered by moving on to
the next relay or endpoint.
"""
from __future__ import annotations

from typing import Optional


class StockDataError(RuntimeError):
    """Base class for all stock data errors."""


class InvalidSymbol(StockDataError, ValueError):
    """Empty or blank symbol; rejected before any network activity."""


class ParseFailure(StockDataError):
    """A relay returned a body that could not be read as row data."""


class DataEmpty(StockDataError):
    """Upstream answered and parsed, but no usable rows came back."""


class DataUnavailable(StockDataError):
    """Every relay for every upstream endpoint failed."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error
