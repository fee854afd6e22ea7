"""
Technical indicators over a finite price window.

Every function takes a time‑ascending sequence (oldest value first) and
looks only at its trailing values, so callers can pass the whole
history up to the bar being evaluated.  Windows shorter than required
raise `InsufficientData` instead of producing a value from a partial
window.
"""

from __future__ import annotations

from typing import List, Sequence

from ..errors import InsufficientData


def _tail(window: Sequence[float], count: int) -> List[float]:
    """Return the last `count` values of `window` as floats."""
    if count < 1:
        raise ValueError(f"period must be at least 1, got {count}")
    if len(window) < count:
        raise InsufficientData(f"need {count} values, window has {len(window)}")
    return [float(v) for v in list(window)[-count:]]


def sma(window: Sequence[float], period: int) -> float:
    """Simple moving average of the last `period` values."""
    values = _tail(window, period)
    return sum(values) / period


def rsi(window: Sequence[float], period: int) -> float:
    """Relative strength index from plain sums of gains and losses.

    The last ``period + 1`` values provide ``period`` consecutive
    deltas.  A rising delta (later value above the earlier one) counts
    as a gain, so the window must be ordered oldest first.

    Returns 100 when there is no loss at all, otherwise
    ``100 - 100 / (1 + gain / loss)``.
    """
    values = _tail(window, period + 1)
    gain = 0.0
    loss = 0.0
    for prev, curr in zip(values, values[1:]):
        change = curr - prev
        if change > 0:
            gain += change
        else:
            loss -= change
    if loss == 0:
        return 100.0
    rs = gain / loss
    return 100.0 - 100.0 / (1.0 + rs)


def rolling_max(highs: Sequence[float], period: int) -> float:
    """Resistance: highest of the last `period` highs."""
    return max(_tail(highs, period))


def rolling_min(lows: Sequence[float], period: int) -> float:
    """Support: lowest of the last `period` lows."""
    return min(_tail(lows, period))
