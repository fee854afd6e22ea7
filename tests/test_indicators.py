import os
import sys
import random

# Ensure the project root (one level above `tests`) is on sys.path so that
# `trendbot` can be imported when running tests directly via `python`.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from trendbot.errors import InsufficientData
from trendbot.strategy.indicators import sma, rsi, rolling_max, rolling_min

import unittest


class TestSMA(unittest.TestCase):
    def test_mean_of_last_values(self) -> None:
        self.assertEqual(sma([1.0, 2.0, 3.0, 4.0, 5.0], 3), 4.0)
        self.assertEqual(sma([7.0, 9.0], 2), 8.0)

    def test_matches_arithmetic_mean_for_any_window(self) -> None:
        rng = random.Random(11)
        for _ in range(50):
            window = [rng.uniform(50, 150) for _ in range(rng.randint(5, 40))]
            period = rng.randint(1, len(window))
            expected = sum(window[-period:]) / period
            self.assertAlmostEqual(sma(window, period), expected, places=9)

    def test_short_window_is_rejected(self) -> None:
        with self.assertRaises(InsufficientData):
            sma([1.0, 2.0], 3)

    def test_non_positive_period_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            sma([1.0, 2.0], 0)


class TestRSI(unittest.TestCase):
    def test_no_down_moves_returns_100(self) -> None:
        self.assertEqual(rsi([1.0, 2.0, 3.0, 4.0, 5.0], 4), 100.0)
        # Flat prices have no loss either
        self.assertEqual(rsi([3.0, 3.0, 3.0], 2), 100.0)

    def test_only_down_moves_returns_0(self) -> None:
        self.assertEqual(rsi([5.0, 4.0, 3.0, 2.0], 3), 0.0)

    def test_gain_loss_ratio(self) -> None:
        # deltas +1, -1, +1 -> gain 2, loss 1, rs 2
        self.assertAlmostEqual(rsi([1.0, 2.0, 1.0, 2.0], 3), 100.0 - 100.0 / 3.0)

    def test_uses_period_plus_one_points(self) -> None:
        # The drop from 10 to 1 lies outside the last three points.
        self.assertEqual(rsi([10.0, 1.0, 2.0, 3.0], 2), 100.0)
        with self.assertRaises(InsufficientData):
            rsi([1.0, 2.0, 3.0], 3)

    def test_always_within_bounds(self) -> None:
        rng = random.Random(3)
        for _ in range(200):
            window = [rng.uniform(90, 110) for _ in range(20)]
            value = rsi(window, rng.randint(1, 19))
            self.assertGreaterEqual(value, 0.0)
            self.assertLessEqual(value, 100.0)


class TestExtrema(unittest.TestCase):
    def test_resistance_and_support_use_trailing_window(self) -> None:
        highs = [20.0, 11.0, 12.0, 13.0]
        lows = [1.0, 9.0, 8.0, 10.0]
        self.assertEqual(rolling_max(highs, 3), 13.0)
        self.assertEqual(rolling_min(lows, 3), 8.0)
        self.assertEqual(rolling_max(highs, 4), 20.0)
        self.assertEqual(rolling_min(lows, 4), 1.0)

    def test_short_window_is_rejected(self) -> None:
        with self.assertRaises(InsufficientData):
            rolling_max([1.0], 2)
        with self.assertRaises(InsufficientData):
            rolling_min([], 1)


if __name__ == '__main__':
    unittest.main()
