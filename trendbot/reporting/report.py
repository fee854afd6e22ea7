"""
Report generation utilities.

This module turns backtest results into human‑readable artefacts:
CSV files of trades and equity curve, a JSON summary of performance
metrics and a PNG chart of the equity curve.
"""

from __future__ import annotations

import os
import json
import logging
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.backtest_exec import BacktestResult
from ..utils.ledger import trade_to_record
from .metrics import compute_metrics


logger = logging.getLogger(__name__)


def format_summary(metrics: dict) -> str:
    """Console rendering of the backtest summary."""
    return "\n".join([
        "=== BACKTEST COMPLETE ===",
        f"Initial capital: {metrics['initial_capital']:.2f}",
        f"Final capital:   {metrics['final_equity']:.2f}",
        f"Total P&L:       {metrics['total_pnl']:.2f}",
        f"Trades:          {metrics['num_trades']}",
        f"Won: {metrics['wins']}  Lost: {metrics['losses']}",
    ])


def generate_backtest_report(result: BacktestResult, out_dir: str = "results") -> dict:
    """Generate report files for a backtest run.

    Creates the output directory if it does not exist and writes the
    following files:

    - `trades.csv` – detailed list of trades
    - `equity_curve.csv` – account equity after each trade
    - `summary.json` – performance metrics
    - `equity_curve.png` – line chart of the equity curve

    Returns the metrics dictionary.
    """
    os.makedirs(out_dir, exist_ok=True)

    columns = ['symbol', 'side', 'entry_price', 'exit_price', 'pnl', 'reason', 'won',
               'entry_time', 'exit_time']
    df_trades = pd.DataFrame([trade_to_record(t) for t in result.trades], columns=columns)
    df_trades = df_trades.drop(columns=['symbol'])
    df_trades.to_csv(os.path.join(out_dir, 'trades.csv'), index=False)

    df_eq = pd.DataFrame(
        [
            {
                'timestamp': pt.timestamp.isoformat() if pt.timestamp is not None else None,
                'equity': pt.equity,
            }
            for pt in result.equity_curve
        ],
        columns=['timestamp', 'equity'],
    )
    df_eq.to_csv(os.path.join(out_dir, 'equity_curve.csv'), index=False)

    metrics = compute_metrics(result.trades, result.equity_curve, result.initial_capital)
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.step(range(len(df_eq)), df_eq['equity'], where='post', linewidth=1.5)
        ax.axhline(result.initial_capital, color='grey', linewidth=0.8, linestyle='--')
        ax.set_title('Equity Curve')
        ax.set_xlabel('Trade #')
        ax.set_ylabel('Equity')
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'equity_curve.png'))
    plt.close(fig)

    logger.info("Report written to %s", out_dir)
    return metrics
