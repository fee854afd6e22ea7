"""
Single-slot position book.

`PositionBook` is the state machine shared by the backtest and live
engines.  It is either FLAT or holds exactly one open position.  Each
cycle the engine first asks the book to evaluate an exit, then offers
it a new entry; the book itself never decides when to trade.

On every exit the book appends a `Trade`, adds its P&L to the running
equity and records an `EquityPoint` in one step, so that equity always
equals the starting capital plus the sum of the ledger's P&L.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple
import pandas as pd

from ..config.schema import StrategyProfile
from ..errors import InvariantViolation
from .models import Side, Position, Trade, EquityPoint


logger = logging.getLogger(__name__)


class PositionBook:
    """Track at most one open position and the realised P&L."""

    def __init__(
        self,
        capital: float,
        leverage: float,
        tp_pct: float,
        sl_pct: float,
        short_tp_pct: Optional[float] = None,
        short_sl_pct: Optional[float] = None,
    ) -> None:
        self.capital = capital
        self.leverage = leverage
        self.tp_pct = tp_pct
        self.sl_pct = sl_pct
        self.short_tp_pct = tp_pct if short_tp_pct is None else short_tp_pct
        self.short_sl_pct = sl_pct if short_sl_pct is None else short_sl_pct
        self.equity = capital
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.equity_curve: List[EquityPoint] = []

    @classmethod
    def from_profile(cls, profile: StrategyProfile) -> "PositionBook":
        return cls(
            capital=profile.capital,
            leverage=profile.leverage,
            tp_pct=profile.tp_pct,
            sl_pct=profile.sl_pct,
            short_tp_pct=profile.short_tp_pct,
            short_sl_pct=profile.short_sl_pct,
        )

    @property
    def is_open(self) -> bool:
        return self.position is not None

    @property
    def state(self) -> str:
        return 'OPEN' if self.is_open else 'FLAT'

    def mark(self, timestamp: Optional[pd.Timestamp]) -> None:
        """Record the current equity without a trade (curve start)."""
        self.equity_curve.append(EquityPoint(timestamp=timestamp, equity=self.equity))

    def open(
        self,
        side: Side,
        price: float,
        timestamp: Optional[pd.Timestamp] = None,
        qty: Optional[float] = None,
    ) -> Position:
        """Open a position at `price`.

        `qty` is the order quantity sent to the exchange, if any; it is
        kept on the position so that the exit closes exactly that size.

        Raises
        ------
        InvariantViolation
            If a position is already open.
        """
        side = Side(side)
        if self.position is not None:
            raise InvariantViolation(
                f"cannot open {side.value}: {self.position.side.value} position already open"
            )
        if side is Side.LONG:
            tp_price = price * (1.0 + self.tp_pct)
            sl_price = price * (1.0 - self.sl_pct)
        else:
            tp_price = price * (1.0 - self.short_tp_pct)
            sl_price = price * (1.0 + self.short_sl_pct)
        self.position = Position(
            side=side,
            entry_price=float(price),
            tp_price=tp_price,
            sl_price=sl_price,
            entry_time=timestamp,
            qty=qty,
        )
        logger.debug("Opened %s at %s (TP=%s, SL=%s)", side.value, price, tp_price, sl_price)
        return self.position

    def realised_pnl(self, side: Side, entry_price: float, exit_price: float) -> float:
        """Leveraged P&L of a move from `entry_price` to `exit_price`."""
        pnl = (exit_price - entry_price) / entry_price * self.leverage * self.capital
        return pnl if side is Side.LONG else -pnl

    def close(self, exit_price: float, reason: str, timestamp: Optional[pd.Timestamp] = None) -> Trade:
        """Close the open position and book the trade.

        Raises
        ------
        InvariantViolation
            If no position is open.
        """
        position = self.position
        if position is None:
            raise InvariantViolation("cannot close: no position is open")
        pnl = self.realised_pnl(position.side, position.entry_price, exit_price)
        trade = Trade(
            side=position.side,
            entry_price=position.entry_price,
            exit_price=float(exit_price),
            pnl=pnl,
            reason=reason,
            entry_time=position.entry_time,
            exit_time=timestamp,
        )
        self.trades.append(trade)
        self.equity += pnl
        self.equity_curve.append(EquityPoint(timestamp=timestamp, equity=self.equity))
        self.position = None
        logger.debug("Closed %s at %s (%s) pnl=%.2f", trade.side.value, exit_price, reason, pnl)
        return trade

    def close_exit_reason(self, price: float) -> Optional[str]:
        """Which level, if any, a closing `price` reaches: ``'tp'``, ``'sl'`` or `None`."""
        position = self.position
        if position is None:
            return None
        if position.side is Side.LONG:
            if price >= position.tp_price:
                return 'tp'
            if price <= position.sl_price:
                return 'sl'
        else:
            if price <= position.tp_price:
                return 'tp'
            if price >= position.sl_price:
                return 'sl'
        return None

    def range_exit_level(self, high: float, low: float) -> Optional[Tuple[float, str]]:
        """Exit level crossed by a candle's high/low range.

        The stop‑loss is checked before the take‑profit.  Returns the
        crossed level's price and reason, or `None`.
        """
        position = self.position
        if position is None:
            return None
        if position.side is Side.LONG:
            if low <= position.sl_price:
                return position.sl_price, 'sl'
            if high >= position.tp_price:
                return position.tp_price, 'tp'
        else:
            if high >= position.sl_price:
                return position.sl_price, 'sl'
            if low <= position.tp_price:
                return position.tp_price, 'tp'
        return None

    def evaluate_close(self, price: float, timestamp: Optional[pd.Timestamp] = None) -> Optional[Trade]:
        """Exit check against a single closing price.

        The position is closed at `price` itself when it reaches the
        take‑profit or the stop‑loss level.  Returns the trade, or
        `None` if the book is flat or no level was reached.
        """
        reason = self.close_exit_reason(price)
        if reason is None:
            return None
        return self.close(price, reason, timestamp)

    def evaluate_range(
        self,
        high: float,
        low: float,
        timestamp: Optional[pd.Timestamp] = None,
    ) -> Optional[Trade]:
        """Exit check against the high/low range of a closed candle.

        The position is closed at the level that was crossed.
        """
        level = self.range_exit_level(high, low)
        if level is None:
            return None
        price, reason = level
        return self.close(price, reason, timestamp)
