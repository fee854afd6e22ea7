"""
Error kinds shared by the indicator, data and execution layers.

`InsufficientData` and `InvariantViolation` signal programming errors
and are never caught by the engines.  `FetchFailure` covers every
external call (market data, orders) and is the only error a live tick
recovers from, by skipping the cycle.
"""

from __future__ import annotations


class TrendbotError(Exception):
    """Base class for all errors raised by this package."""


class InsufficientData(TrendbotError, ValueError):
    """An indicator was asked to evaluate a window shorter than its period."""


class FetchFailure(TrendbotError, RuntimeError):
    """An external data or order call failed or returned an unusable payload."""


class InvariantViolation(TrendbotError, RuntimeError):
    """The single-position state machine was driven into an illegal transition."""
