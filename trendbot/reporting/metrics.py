"""
Performance metrics calculations.

This module provides helpers to compute summary statistics from a
list of trades and an equity curve.  Wins are trades with a strictly
positive P&L; every other trade counts as a loss.
"""

from __future__ import annotations

from typing import List

from ..execution.models import Trade, EquityPoint


def max_drawdown(equity_curve: List[EquityPoint]) -> float:
    """Largest peak‑to‑trough decline as a fraction of the peak."""
    if not equity_curve:
        return 0.0
    peak = equity_curve[0].equity
    worst = 0.0
    for point in equity_curve:
        if point.equity > peak:
            peak = point.equity
        drawdown = (peak - point.equity) / peak if peak > 0 else 0.0
        if drawdown > worst:
            worst = drawdown
    return worst


def compute_metrics(
    trades: List[Trade],
    equity_curve: List[EquityPoint],
    initial_capital: float,
) -> dict:
    """Compute the summary reported at the end of a backtest.

    Parameters
    ----------
    trades : list of Trade
        Completed trades in exit order.
    equity_curve : list of EquityPoint
        Equity at the start of the run and after each trade.
    initial_capital : float
        Starting equity.

    Returns
    -------
    dict
        Initial and final equity, total P&L, trade and win/loss counts,
        plus win rate, profit factor, average trade and max drawdown.
    """
    total_pnl = sum(t.pnl for t in trades)
    final_equity = equity_curve[-1].equity if equity_curve else initial_capital + total_pnl
    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [t.pnl for t in trades if t.pnl <= 0]
    gross_profit = sum(wins)
    gross_loss = -sum(losses)

    return {
        'initial_capital': initial_capital,
        'final_equity': final_equity,
        'total_pnl': total_pnl,
        'total_return': total_pnl / initial_capital if initial_capital else 0.0,
        'num_trades': len(trades),
        'wins': len(wins),
        'losses': len(losses),
        'win_rate': len(wins) / len(trades) if trades else 0.0,
        'profit_factor': gross_profit / gross_loss if gross_loss > 0 else 0.0,
        'avg_trade': total_pnl / len(trades) if trades else 0.0,
        'max_drawdown': max_drawdown(equity_curve),
        'tp_exits': sum(1 for t in trades if t.reason == 'tp'),
        'sl_exits': sum(1 for t in trades if t.reason == 'sl'),
    }
