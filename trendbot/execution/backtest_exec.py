"""
Backtest execution engine.

This module contains the `BacktestEngine` class which replays a fixed
array of historical candles through the crossover strategy and the
single‑slot position book.  For every candle from index ``ma_slow``
onwards it recomputes the indicators from the candles up to and
including that one, evaluates the exit of an open position against the
close, and then opens a new position if the book is flat and the
strategy produced a signal.

The run is a single synchronous pass with no side effects: replaying
the same candles with the same profile yields the same ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import pandas as pd

from ..config.schema import Config, StrategyProfile
from ..data.bybit_data import BybitMarketData
from ..data.csv_data import CSVDataLoader
from ..errors import InsufficientData
from ..strategy.ma_crossover import MACrossoverStrategy
from .models import Trade, EquityPoint
from .position_book import PositionBook


logger = logging.getLogger(__name__)


@dataclass
class BacktestResult:
    """Outcome of one backtest run."""
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    initial_capital: float = 0.0
    final_equity: float = 0.0

    @property
    def total_pnl(self) -> float:
        return self.final_equity - self.initial_capital

    @property
    def wins(self) -> int:
        return sum(1 for t in self.trades if t.pnl > 0)

    @property
    def losses(self) -> int:
        return sum(1 for t in self.trades if t.pnl <= 0)

    def summary(self) -> dict:
        return {
            'initial_capital': self.initial_capital,
            'final_equity': self.final_equity,
            'total_pnl': self.total_pnl,
            'num_trades': len(self.trades),
            'wins': self.wins,
            'losses': self.losses,
        }


class BacktestEngine:
    """Run backtests on historical candles.

    Parameters
    ----------
    config : Config
        Root configuration; supplies the symbol, interval and data source.
    profile : StrategyProfile, optional
        Strategy parameters.  Defaults to the ``backtest`` profile.
    market_data : optional
        Object with a ``fetch_candles(symbol, interval, count)`` method,
        used when ``data.source`` is ``bybit``.  Defaults to
        `BybitMarketData`.
    """

    def __init__(
        self,
        config: Config,
        profile: Optional[StrategyProfile] = None,
        market_data=None,
    ) -> None:
        self.config = config
        self.profile = profile or config.profiles.backtest
        self.strategy = MACrossoverStrategy(self.profile)
        self.market_data = market_data

    def load_candles(self) -> pd.DataFrame:
        """Load the historical candles, oldest first.

        Any failure propagates: a backtest never runs on partial data.
        """
        if self.config.data.source == 'csv':
            loader = CSVDataLoader(self.config.data.csv_dir, self.config.data.timezone)
            return loader.load(self.config.symbol)
        market_data = self.market_data or BybitMarketData(self.config.bybit)
        return market_data.fetch_candles(
            self.config.symbol, self.config.interval, self.profile.candle_limit
        )

    def run(
        self,
        candles: Optional[pd.DataFrame] = None,
        on_step: Optional[Callable[[int, PositionBook], None]] = None,
    ) -> BacktestResult:
        """Execute the backtest.

        Parameters
        ----------
        candles : pandas.DataFrame, optional
            Oldest‑first candles with ``high``, ``low`` and ``close``
            columns.  Loaded with `load_candles()` when omitted.
        on_step : callable, optional
            Called as ``on_step(index, book)`` after every cycle.

        Returns
        -------
        BacktestResult
            Completed trades, the equity curve and the final equity.
        """
        if candles is None:
            candles = self.load_candles()
        closes = candles['close'].astype(float).tolist()
        highs = candles['high'].astype(float).tolist()
        lows = candles['low'].astype(float).tolist()
        times = list(candles.index)

        start = self.profile.ma_slow
        window = self.strategy.min_candles
        if len(closes) <= start or len(closes) < window:
            raise InsufficientData(
                f"Backtest needs more than {max(start, window - 1)} candles, got {len(closes)}"
            )

        book = PositionBook.from_profile(self.profile)
        book.mark(times[start])
        for i in range(start, len(closes)):
            ts = times[i]
            lo = max(0, i + 1 - window)
            signal, snapshot = self.strategy.evaluate(
                closes[lo:i + 1], highs[lo:i + 1], lows[lo:i + 1]
            )

            trade = book.evaluate_close(snapshot.price, ts)
            if trade is not None:
                logger.debug(
                    "%s exit %s at %.4f pnl=%.2f equity=%.2f",
                    trade.side.value, trade.reason, trade.exit_price, trade.pnl, book.equity,
                )

            if not book.is_open and signal.side is not None:
                book.open(signal.side, snapshot.price, ts)

            if on_step is not None:
                on_step(i, book)

        result = BacktestResult(
            trades=list(book.trades),
            equity_curve=list(book.equity_curve),
            initial_capital=book.capital,
            final_equity=book.equity,
        )
        logger.info(
            "Backtest %s: %d trades, equity %.2f -> %.2f (P&L %.2f, won %d, lost %d)",
            self.config.symbol,
            len(result.trades),
            result.initial_capital,
            result.final_equity,
            result.total_pnl,
            result.wins,
            result.losses,
        )
        return result
