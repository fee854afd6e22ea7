"""
Signal, position and trade models.

These dataclasses represent the objects passed between the strategy,
the position book and the engines.  Keeping them in a separate module
improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import pandas as pd


class Side(str, Enum):
    """Direction of an open position or completed trade."""
    LONG = "LONG"
    SHORT = "SHORT"


class Signal(str, Enum):
    """Decision produced by the signal generator for one cycle."""
    LONG = "LONG"
    SHORT = "SHORT"
    NONE = "NONE"

    @property
    def side(self) -> Optional[Side]:
        """The position side this signal opens, or `None` for NONE."""
        if self is Signal.NONE:
            return None
        return Side(self.value)


@dataclass(frozen=True)
class Position:
    """Represents the single open position of a position book."""
    side: Side
    entry_price: float
    tp_price: float
    sl_price: float
    entry_time: Optional[pd.Timestamp] = None
    qty: Optional[float] = None  # contracts held on the exchange, if known


@dataclass(frozen=True)
class Trade:
    """Represents a completed trade."""
    side: Side
    entry_price: float
    exit_price: float
    pnl: float
    reason: str  # 'tp' or 'sl'
    entry_time: Optional[pd.Timestamp] = None
    exit_time: Optional[pd.Timestamp] = None

    @property
    def won(self) -> bool:
        return self.pnl > 0


@dataclass(frozen=True)
class EquityPoint:
    """Represents the account equity at a given timestamp."""
    timestamp: Optional[pd.Timestamp]
    equity: float
