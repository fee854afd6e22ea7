import os
import sys
import random
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from trendbot.config.schema import Config, StrategyProfile
from trendbot.errors import FetchFailure, InsufficientData
from trendbot.execution.backtest_exec import BacktestEngine
from trendbot.execution.models import Side

import unittest


def make_candles(closes, spread: float = 1.0) -> pd.DataFrame:
    index = pd.date_range("2024-01-01", periods=len(closes), freq="min", tz="UTC", name="time")
    return pd.DataFrame(
        {
            'open': closes,
            'high': [c + spread for c in closes],
            'low': [c - spread for c in closes],
            'close': closes,
        },
        index=index,
    )


def random_walk(n: int, seed: int) -> pd.DataFrame:
    rng = random.Random(seed)
    price = 100.0
    closes = []
    for _ in range(n):
        price = max(1.0, price + rng.gauss(0.0, 0.4))
        closes.append(round(price, 4))
    return make_candles(closes, spread=0.2)


def small_profile() -> StrategyProfile:
    return StrategyProfile(
        ma_fast=2,
        ma_slow=3,
        rsi_period=2,
        extremum_period=3,
        rsi_upper=90.0,
        rsi_lower=10.0,
        candle_limit=4,
    )


class FakeMarketData:
    def __init__(self, candles=None, error=None) -> None:
        self.candles = candles
        self.error = error
        self.calls = []

    def fetch_candles(self, symbol, interval, count):
        self.calls.append((symbol, interval, count))
        if self.error is not None:
            raise self.error
        return self.candles


class TestBacktestScenario(unittest.TestCase):
    def test_crossover_entry_and_take_profit_exit(self) -> None:
        engine = BacktestEngine(Config(), profile=small_profile())
        result = engine.run(make_candles([10.0, 9.0, 8.0, 12.0, 12.2]))
        self.assertEqual(len(result.trades), 1)
        trade = result.trades[0]
        self.assertEqual(trade.side, Side.LONG)
        self.assertEqual(trade.entry_price, 12.0)
        self.assertEqual(trade.exit_price, 12.2)
        self.assertEqual(trade.reason, 'tp')
        self.assertAlmostEqual(trade.pnl, 0.2 / 12.0 * 5 * 1000)
        self.assertAlmostEqual(result.final_equity, 1000.0 + trade.pnl)
        self.assertEqual(result.summary()['wins'], 1)
        self.assertEqual(result.summary()['losses'], 0)
        # initial mark plus one point per trade
        self.assertEqual([p.equity for p in result.equity_curve], [1000.0, result.final_equity])

    def test_too_few_candles(self) -> None:
        engine = BacktestEngine(Config(), profile=small_profile())
        with self.assertRaises(InsufficientData):
            engine.run(make_candles([10.0, 9.0, 8.0]))


class TestBacktestInvariants(unittest.TestCase):
    def setUp(self) -> None:
        self.config = Config()
        self.candles = random_walk(1500, seed=42)

    def test_ledger_and_equity_at_every_step(self) -> None:
        engine = BacktestEngine(self.config)
        state = {'opens': 0, 'last_position': None}

        def check(index, book) -> None:
            if book.position is not None and book.position is not state['last_position']:
                state['opens'] += 1
            state['last_position'] = book.position
            # every completed entry->exit cycle produced exactly one trade
            self.assertEqual(state['opens'], len(book.trades) + (1 if book.is_open else 0))
            expected = book.capital
            for trade in book.trades:
                expected += trade.pnl
            self.assertEqual(book.equity, expected)

        result = engine.run(self.candles, on_step=check)
        self.assertGreater(len(result.trades), 0)
        self.assertEqual(result.wins + result.losses, len(result.trades))

    def test_replay_is_idempotent(self) -> None:
        first = BacktestEngine(self.config).run(self.candles)
        second = BacktestEngine(self.config).run(self.candles.copy())
        self.assertEqual(first.trades, second.trades)
        self.assertEqual(first.final_equity, second.final_equity)
        self.assertEqual(first.equity_curve, second.equity_curve)

    def test_profiles_are_independent(self) -> None:
        live = BacktestEngine(self.config, profile=self.config.profiles.live).run(self.candles)
        self.assertEqual(live.initial_capital, 1000.0)
        self.assertEqual(self.config.profiles.backtest.ma_slow, 20)
        self.assertEqual(self.config.profiles.live.ma_slow, 30)


class TestBacktestDataLoading(unittest.TestCase):
    def test_fetches_candle_limit_from_market_data(self) -> None:
        candles = random_walk(200, seed=1)
        fake = FakeMarketData(candles)
        result = BacktestEngine(Config(), market_data=fake).run()
        self.assertEqual(fake.calls, [("ETHUSDT", "1", 2000)])
        self.assertEqual(result.initial_capital, 1000.0)

    def test_fetch_failure_is_fatal(self) -> None:
        fake = FakeMarketData(error=FetchFailure("boom"))
        with self.assertRaises(FetchFailure):
            BacktestEngine(Config(), market_data=fake).run()

    def test_loads_csv_source(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            candles = random_walk(60, seed=5)
            frame = candles.reset_index()
            frame['time'] = frame['time'].dt.strftime('%Y-%m-%d %H:%M:%S')
            frame.to_csv(os.path.join(tmp, "ETHUSDT.csv"), index=False)
            cfg = Config()
            cfg.data.source = 'csv'
            cfg.data.csv_dir = tmp
            engine = BacktestEngine(cfg)
            loaded = engine.load_candles()
            self.assertEqual(len(loaded), 60)
            self.assertTrue(loaded.index.is_monotonic_increasing)
            self.assertEqual(str(loaded.index.tz), 'UTC')
            for got, want in zip(loaded['close'].tolist(), candles['close'].tolist()):
                self.assertAlmostEqual(got, want)
            engine.run()


if __name__ == '__main__':
    unittest.main()
