"""
Live polling engine.

`LiveEngine.tick()` runs one cycle of the strategy against fresh Bybit
candles:

- with an open position, only the most recent closed candle is
  fetched and its high/low range is checked against the stop‑loss and
  take‑profit levels;
- when flat, a full candle window is fetched, the indicators are
  recomputed and a new position is opened on a signal.

`LiveEngine.run()` starts a tick every ``live.poll_seconds`` without
waiting for the previous one.  A tick that fires while another is
still running is skipped, never queued.  A failed fetch skips the
cycle with the position book untouched.

The position lives in memory only.  Restarting the process loses an
open position; closed trades are kept in the trade ledger when one is
configured.

A new position is opened at the close of the newest, still forming
candle.  Exit checks skip closed candles that do not start after the
entry time, since their range includes prices from before the entry.

An error other than `FetchFailure` is fatal: the tick logs it, stops
the scheduler and `run()` re‑raises it after joining running ticks.

**Note**: orders are only submitted when ``bybit.trading_enabled`` is
set and an order client is supplied.  Otherwise every transition is
logged and notified, nothing is sent to the exchange.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from ..config.schema import Config, StrategyProfile
from ..data.bybit_data import BybitMarketData
from ..errors import FetchFailure
from ..notify.telegram import LogNotifier
from ..strategy.ma_crossover import MACrossoverStrategy
from ..utils.ledger import TradeLedger
from .bybit_orders import order_quantity
from .models import Side, Position, Trade
from .position_book import PositionBook


logger = logging.getLogger(__name__)


def format_entry(symbol: str, position: Position) -> str:
    return (
        f"Opened {position.side.value} on {symbol} at {position.entry_price:.2f}, "
        f"Take Profit: {position.tp_price:.2f}, Stop Loss: {position.sl_price:.2f}"
    )


def format_exit(symbol: str, trade: Trade, equity: float) -> str:
    label = 'Take Profit' if trade.reason == 'tp' else 'Stop Loss'
    return (
        f"Closed {trade.side.value} on {symbol} at {trade.exit_price:.2f} ({label}), "
        f"entry {trade.entry_price:.2f}, P&L {trade.pnl:+.2f}, equity {equity:.2f}"
    )


class LiveEngine:
    """Run the strategy against live candles, one cycle per tick.

    Parameters
    ----------
    config : Config
        Root configuration.
    market_data : optional
        Candle provider with ``fetch_candles(symbol, interval, count)``
        returning an oldest‑first DataFrame.  Defaults to
        `BybitMarketData`.
    notifier : optional
        Object with ``notify(message)``.  Defaults to `LogNotifier`.
    order_client : optional
        Object with ``place_order(symbol, side, qty, reduce_only=False)``;
        used only when ``bybit.trading_enabled`` is true.  Exits close
        the quantity stored on the position with ``reduce_only=True``.
    ledger : TradeLedger, optional
        Persistent store for closed trades.
    profile : StrategyProfile, optional
        Defaults to the ``live`` profile.
    """

    def __init__(
        self,
        config: Config,
        market_data=None,
        notifier=None,
        order_client=None,
        ledger: Optional[TradeLedger] = None,
        profile: Optional[StrategyProfile] = None,
    ) -> None:
        self.config = config
        self.profile = profile or config.profiles.live
        self.strategy = MACrossoverStrategy(self.profile)
        self.book = PositionBook.from_profile(self.profile)
        self.market_data = market_data or BybitMarketData(config.bybit)
        self.notifier = notifier or LogNotifier()
        self.order_client = order_client
        self.ledger = ledger
        self.skipped_ticks = 0
        self._busy = False
        self._guard = threading.Lock()
        self._stop = threading.Event()
        self._fatal: Optional[BaseException] = None
        self._workers: List[threading.Thread] = []

    @property
    def symbol(self) -> str:
        return self.config.symbol

    @property
    def trading_enabled(self) -> bool:
        return self.order_client is not None and self.config.bybit.trading_enabled

    def _try_acquire(self) -> bool:
        with self._guard:
            if self._busy:
                return False
            self._busy = True
            return True

    def _release(self) -> None:
        with self._guard:
            self._busy = False

    def _notify(self, message: str) -> None:
        try:
            self.notifier.notify(message)
        except Exception as exc:
            logger.error("Notification failed: %s", exc)

    def _quantity(self, price: float) -> float:
        return order_quantity(
            self.profile.capital, self.profile.leverage, price, self.config.bybit.qty_decimals
        )

    def _submit(self, side: Side, qty: float, reduce_only: bool = False) -> None:
        """Send a market order when live trading is enabled."""
        if not self.trading_enabled:
            logger.info("Trading disabled; not sending %s %s %s", side.value, qty, self.symbol)
            return
        self.order_client.place_order(self.symbol, side, qty, reduce_only=reduce_only)

    @property
    def fatal_error(self) -> Optional[BaseException]:
        """The unexpected error that stopped the engine, if any."""
        return self._fatal

    def tick(self) -> bool:
        """Run one cycle.

        Returns
        -------
        bool
            `False` if the tick was skipped because the previous one is
            still running, `True` otherwise (including cycles skipped
            after a fetch failure).

        Raises
        ------
        Exception
            Anything other than `FetchFailure` (notably
            `InvariantViolation`) is recorded as the engine's fatal error,
            stops the scheduler and is re‑raised.
        """
        if not self._try_acquire():
            self.skipped_ticks += 1
            logger.warning("Previous tick still running; skipping this one")
            return False
        try:
            if self.book.is_open:
                self._check_exit()
            else:
                self._check_entry()
        except FetchFailure as exc:
            logger.warning("Skipping cycle for %s: %s", self.symbol, exc)
        except Exception as exc:
            logger.exception("Fatal error in live tick for %s", self.symbol)
            self._fatal = exc
            self._stop.set()
            raise
        finally:
            self._release()
        return True

    def _tick_worker(self) -> None:
        try:
            self.tick()
        except Exception:
            # Already logged and stored in _fatal; run() re-raises it.
            return

    def _check_exit(self) -> None:
        candles = self.market_data.fetch_candles(self.symbol, self.config.interval, 2)
        # The newest candle is still forming; evaluate the one before it.
        ts = candles.index[-2]
        bar = candles.iloc[-2]
        entry_time = self.book.position.entry_time
        if entry_time is not None and ts <= entry_time:
            # The position was opened inside this candle; its range
            # includes prices from before the entry.
            logger.debug("Last closed candle %s does not start after entry %s", ts, entry_time)
            return
        level = self.book.range_exit_level(float(bar['high']), float(bar['low']))
        if level is None:
            logger.info(
                "Holding %s on %s (last close %.2f)",
                self.book.position.side.value, self.symbol, float(bar['close']),
            )
            return
        price, reason = level
        position = self.book.position
        closing_side = Side.SHORT if position.side is Side.LONG else Side.LONG
        qty = position.qty
        if qty is None:
            qty = self._quantity(position.entry_price)
        self._submit(closing_side, qty, reduce_only=True)
        trade = self.book.close(price, reason, ts)
        logger.info(
            "Closed %s on %s at %s due to %s, pnl=%.2f",
            trade.side.value, self.symbol, trade.exit_price, reason, trade.pnl,
        )
        if self.ledger is not None:
            try:
                self.ledger.append(trade, self.symbol)
            except OSError as exc:
                logger.error("Could not write trade to ledger %s: %s", self.ledger.path, exc)
        self._notify(format_exit(self.symbol, trade, self.book.equity))

    def _check_entry(self) -> None:
        candles = self.market_data.fetch_candles(
            self.symbol, self.config.interval, self.profile.candle_limit
        )
        signal, snapshot = self.strategy.evaluate_frame(candles)
        logger.info(
            "MA%d: %.2f, MA%d: %.2f, RSI: %.2f -> %s",
            self.profile.ma_fast, snapshot.ma_fast,
            self.profile.ma_slow, snapshot.ma_slow,
            snapshot.rsi, signal.value,
        )
        if signal.side is None:
            logger.info("No market opportunity on %s at the moment", self.symbol)
            return
        qty = self._quantity(snapshot.price)
        self._submit(signal.side, qty)
        position = self.book.open(signal.side, snapshot.price, candles.index[-1], qty=qty)
        logger.info(
            "Opened %s on %s at %s (SL=%s, TP=%s)",
            position.side.value, self.symbol, position.entry_price,
            position.sl_price, position.tp_price,
        )
        self._notify(format_entry(self.symbol, position))

    def stop(self) -> None:
        """Stop the scheduler; `run()` returns once in‑flight ticks finish."""
        self._stop.set()

    def run(self) -> None:
        """Main loop for live polling.

        Starts a tick on a worker thread every ``live.poll_seconds``
        until `stop()` is called, Ctrl+C is pressed or a tick fails with
        an unexpected error.  Running ticks are joined before returning.

        Raises
        ------
        Exception
            The fatal error of a failed tick, if any.
        """
        period = self.config.live.poll_seconds
        logger.info(
            "Starting live engine on %s (%s min candles, every %ss, trading=%s)",
            self.symbol, self.config.interval, period, self.trading_enabled,
        )
        try:
            while not self._stop.is_set():
                self._workers = [w for w in self._workers if w.is_alive()]
                worker = threading.Thread(target=self._tick_worker, name="live-tick", daemon=True)
                worker.start()
                self._workers.append(worker)
                if self._stop.wait(period):
                    break
        except KeyboardInterrupt:
            logger.info("Shutting down live engine...")
        finally:
            self._stop.set()
            for worker in self._workers:
                worker.join()
            self._workers = []
            if self.book.is_open:
                logger.warning(
                    "Open %s position at %s is held in memory only and will be lost",
                    self.book.position.side.value, self.book.position.entry_price,
                )
        if self._fatal is not None:
            raise self._fatal
