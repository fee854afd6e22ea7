import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from trendbot.config.schema import backtest_profile, live_profile
from trendbot.errors import InvariantViolation
from trendbot.execution.models import Side
from trendbot.execution.position_book import PositionBook

import unittest


class TestStopLossTakeProfit(unittest.TestCase):
    def setUp(self) -> None:
        self.book = PositionBook(capital=1000.0, leverage=5.0, tp_pct=0.01, sl_pct=0.005)

    def test_levels_relative_to_entry(self) -> None:
        """Verify that SL and TP are computed correctly relative to entry price."""
        long_pos = self.book.open(Side.LONG, 10.0)
        self.assertAlmostEqual(long_pos.tp_price, 10.1)
        self.assertAlmostEqual(long_pos.sl_price, 9.95)
        self.book.close(10.0, 'sl')
        short_pos = self.book.open(Side.SHORT, 10.0)
        self.assertAlmostEqual(short_pos.tp_price, 9.9)
        self.assertAlmostEqual(short_pos.sl_price, 10.05)

    def test_long_take_profit_on_close(self) -> None:
        self.book.open(Side.LONG, 102.0)
        self.assertIsNone(self.book.evaluate_close(102.5))
        trade = self.book.evaluate_close(102.0 * (1.0 + 0.01))
        self.assertIsNotNone(trade)
        self.assertEqual(trade.reason, 'tp')
        self.assertAlmostEqual(trade.pnl, 50.0)
        self.assertAlmostEqual(self.book.equity, 1050.0)
        self.assertEqual(len(self.book.trades), 1)
        self.assertEqual(self.book.state, 'FLAT')

    def test_long_stop_loss_exits_at_close_price(self) -> None:
        self.book.open(Side.LONG, 100.0)
        trade = self.book.evaluate_close(99.0)
        self.assertEqual(trade.reason, 'sl')
        self.assertEqual(trade.exit_price, 99.0)
        self.assertAlmostEqual(trade.pnl, -50.0)

    def test_short_take_profit_on_close(self) -> None:
        self.book.open(Side.SHORT, 100.0)
        trade = self.book.evaluate_close(98.0)
        self.assertEqual(trade.reason, 'tp')
        self.assertAlmostEqual(trade.pnl, 100.0)
        self.assertTrue(trade.won)

    def test_short_stop_loss_on_range(self) -> None:
        self.book.open(Side.SHORT, 100.0)
        trade = self.book.evaluate_range(high=100.6, low=99.8)
        self.assertEqual(trade.reason, 'sl')
        self.assertAlmostEqual(trade.exit_price, 100.5)
        self.assertAlmostEqual(trade.pnl, -25.0)
        self.assertAlmostEqual(self.book.equity, 975.0)
        self.assertFalse(trade.won)

    def test_range_checks_stop_loss_first(self) -> None:
        self.book.open(Side.LONG, 100.0)
        trade = self.book.evaluate_range(high=102.0, low=99.0)
        self.assertEqual(trade.reason, 'sl')
        self.assertAlmostEqual(trade.exit_price, 99.5)

    def test_range_take_profit_exits_at_level(self) -> None:
        self.book.open(Side.LONG, 100.0)
        trade = self.book.evaluate_range(high=101.5, low=99.9)
        self.assertEqual(trade.reason, 'tp')
        self.assertAlmostEqual(trade.exit_price, 101.0)
        self.assertAlmostEqual(trade.pnl, 50.0)

    def test_range_inside_levels_keeps_position(self) -> None:
        self.book.open(Side.SHORT, 100.0)
        self.assertIsNone(self.book.evaluate_range(high=100.4, low=99.2))
        self.assertTrue(self.book.is_open)
        self.assertEqual(self.book.trades, [])

    def test_flat_book_has_nothing_to_exit(self) -> None:
        self.assertIsNone(self.book.evaluate_close(1.0))
        self.assertIsNone(self.book.evaluate_range(2.0, 0.5))
        self.assertIsNone(self.book.range_exit_level(2.0, 0.5))


class TestProfileLevels(unittest.TestCase):
    def test_live_profile_short_levels(self) -> None:
        book = PositionBook.from_profile(live_profile())
        short_pos = book.open(Side.SHORT, 100.0)
        self.assertAlmostEqual(short_pos.tp_price, 98.0)
        self.assertAlmostEqual(short_pos.sl_price, 101.0)
        book.close(100.0, 'sl')
        long_pos = book.open(Side.LONG, 100.0)
        self.assertAlmostEqual(long_pos.tp_price, 101.0)
        self.assertAlmostEqual(long_pos.sl_price, 99.5)

    def test_backtest_profile_is_symmetric(self) -> None:
        book = PositionBook.from_profile(backtest_profile())
        short_pos = book.open(Side.SHORT, 100.0)
        self.assertAlmostEqual(short_pos.tp_price, 99.0)
        self.assertAlmostEqual(short_pos.sl_price, 100.5)

    def test_open_keeps_order_quantity(self) -> None:
        book = PositionBook.from_profile(backtest_profile())
        self.assertIsNone(book.open(Side.LONG, 100.0).qty)
        book.close(100.0, 'sl')
        self.assertEqual(book.open(Side.LONG, 100.0, qty=50.0).qty, 50.0)


class TestSinglePositionInvariant(unittest.TestCase):
    def test_open_twice_is_fatal(self) -> None:
        book = PositionBook.from_profile(backtest_profile())
        book.open(Side.LONG, 100.0)
        with self.assertRaises(InvariantViolation):
            book.open(Side.SHORT, 100.0)
        self.assertEqual(book.position.side, Side.LONG)

    def test_close_while_flat_is_fatal(self) -> None:
        book = PositionBook.from_profile(backtest_profile())
        with self.assertRaises(InvariantViolation):
            book.close(100.0, 'tp')
        self.assertEqual(book.equity, 1000.0)

    def test_equity_tracks_ledger(self) -> None:
        book = PositionBook(capital=1000.0, leverage=5.0, tp_pct=0.01, sl_pct=0.005)
        for side, entry, exit_price in [
            (Side.LONG, 100.0, 101.3),
            (Side.SHORT, 50.0, 50.4),
            (Side.LONG, 20.0, 19.8),
        ]:
            book.open(side, entry)
            book.close(exit_price, 'tp')
        expected = book.capital
        for trade in book.trades:
            expected += trade.pnl
        self.assertEqual(book.equity, expected)
        self.assertEqual(len(book.equity_curve), 3)


if __name__ == '__main__':
    unittest.main()
