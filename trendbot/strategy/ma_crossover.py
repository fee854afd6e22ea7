"""
Moving-average crossover strategy implementation.

The strategy compares a fast and a slow simple moving average on the
current candle and on the candle before it.  A crossover is only
acted upon when the RSI is not already stretched in the trade's
direction and the price has room before the recent extremum:

- LONG: fast crosses above slow, RSI below the upper guard and the
  close below resistance (highest high of the extremum window).
- SHORT: fast crosses below slow, RSI above the lower guard and the
  close above support (lowest low of the extremum window).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple
import pandas as pd

from ..config.schema import StrategyProfile
from ..execution.models import Signal
from .indicators import sma, rsi, rolling_max, rolling_min


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at one candle, recomputed every cycle."""
    ma_fast: float
    ma_slow: float
    ma_fast_prev: float
    ma_slow_prev: float
    rsi: float
    resistance: float
    support: float
    price: float

    @property
    def crossed_up(self) -> bool:
        return self.ma_fast_prev < self.ma_slow_prev and self.ma_fast > self.ma_slow

    @property
    def crossed_down(self) -> bool:
        return self.ma_fast_prev > self.ma_slow_prev and self.ma_fast < self.ma_slow

    @property
    def ma_spread_pct(self) -> float:
        """Distance of the fast average from the slow one, in percent."""
        return (self.ma_fast - self.ma_slow) / self.ma_slow * 100.0


def required_candles(profile: StrategyProfile) -> int:
    """Minimum window length `compute_snapshot` accepts for `profile`."""
    return max(profile.ma_slow + 1, profile.rsi_period + 1, profile.extremum_period)


def compute_snapshot(
    closes: Sequence[float],
    highs: Sequence[float],
    lows: Sequence[float],
    profile: StrategyProfile,
) -> IndicatorSnapshot:
    """Evaluate all indicators on a time-ascending window.

    The "previous" averages are computed on the same window with the
    latest candle dropped.

    Raises
    ------
    InsufficientData
        If the window is shorter than ``required_candles(profile)``.
    """
    closes = list(closes)
    previous = closes[:-1]
    return IndicatorSnapshot(
        ma_fast=sma(closes, profile.ma_fast),
        ma_slow=sma(closes, profile.ma_slow),
        ma_fast_prev=sma(previous, profile.ma_fast),
        ma_slow_prev=sma(previous, profile.ma_slow),
        rsi=rsi(closes, profile.rsi_period),
        resistance=rolling_max(highs, profile.extremum_period),
        support=rolling_min(lows, profile.extremum_period),
        price=float(closes[-1]),
    )


def generate_signal(snapshot: IndicatorSnapshot, profile: StrategyProfile) -> Signal:
    """Turn an indicator snapshot into a trading decision."""
    spread_ok_long = True
    spread_ok_short = True
    if profile.min_ma_spread_pct > 0:
        spread_ok_long = snapshot.ma_spread_pct > profile.min_ma_spread_pct
        spread_ok_short = snapshot.ma_spread_pct < -profile.min_ma_spread_pct

    if (
        snapshot.crossed_up
        and snapshot.rsi < profile.rsi_upper
        and snapshot.price < snapshot.resistance
        and spread_ok_long
    ):
        return Signal.LONG
    if (
        snapshot.crossed_down
        and snapshot.rsi > profile.rsi_lower
        and snapshot.price > snapshot.support
        and spread_ok_short
    ):
        return Signal.SHORT
    return Signal.NONE


class MACrossoverStrategy:
    """Generate trading signals from a window of candles."""

    def __init__(self, profile: StrategyProfile) -> None:
        self.profile = profile

    @property
    def min_candles(self) -> int:
        return required_candles(self.profile)

    def evaluate(
        self,
        closes: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
    ) -> Tuple[Signal, IndicatorSnapshot]:
        """Evaluate the latest candle of the window.

        Returns
        -------
        signal : Signal
            The decision for this cycle.
        snapshot : IndicatorSnapshot
            The indicator values the decision was based on.
        """
        snapshot = compute_snapshot(closes, highs, lows, self.profile)
        signal = generate_signal(snapshot, self.profile)
        logger.debug(
            "MA%d=%.4f MA%d=%.4f (prev %.4f/%.4f) RSI=%.2f R=%.4f S=%.4f price=%.4f -> %s",
            self.profile.ma_fast,
            snapshot.ma_fast,
            self.profile.ma_slow,
            snapshot.ma_slow,
            snapshot.ma_fast_prev,
            snapshot.ma_slow_prev,
            snapshot.rsi,
            snapshot.resistance,
            snapshot.support,
            snapshot.price,
            signal.value,
        )
        return signal, snapshot

    def evaluate_frame(self, candles: pd.DataFrame) -> Tuple[Signal, IndicatorSnapshot]:
        """Same as `evaluate` for an oldest-first candle DataFrame."""
        return self.evaluate(
            candles['close'].tolist(),
            candles['high'].tolist(),
            candles['low'].tolist(),
        )
