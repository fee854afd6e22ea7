"""
Application entry point.

This module defines a simple command‑line interface for running the
trading program in different modes:

- ``backtest`` replays historical candles and writes a report;
- ``live`` polls Bybit on a fixed interval and manages one position;
- ``ledger`` prints the won/lost record of the persisted live trades;
- ``balance`` prints the total equity of the Bybit account.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config.schema import load_config
from .errors import FetchFailure, InsufficientData, InvariantViolation
from .execution.backtest_exec import BacktestEngine
from .execution.bybit_orders import BybitOrderClient
from .execution.live_exec import LiveEngine
from .notify.telegram import build_notifier
from .reporting.report import format_summary, generate_backtest_report
from .utils.ledger import TradeLedger


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="MA crossover trading bot")
    parser.add_argument('mode', choices=['backtest', 'live', 'ledger', 'balance'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--profile', choices=['backtest', 'live'],
                        help="Strategy profile (defaults to the one named after the mode)")
    parser.add_argument('--out', default='results', help="Directory for backtest reports")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)
    load_dotenv()

    config = load_config(args.config)
    # Override mode from CLI if provided
    config.mode = args.mode

    if args.mode == 'ledger':
        summary = TradeLedger(config.ledger.path).summary()
        print(f"Trades: {summary.total}  Won: {summary.won}  Lost: {summary.lost}")
        return 0

    if args.mode == 'balance':
        try:
            equity = BybitOrderClient(config.bybit).wallet_balance()
        except (FetchFailure, ValueError) as exc:
            logging.error("Balance query failed: %s", exc)
            return 1
        print(f"Total equity: {equity:.2f}")
        return 0

    profile = config.profiles.get(args.profile or args.mode)

    if args.mode == 'backtest':
        logging.info("Running backtest on %s...", config.symbol)
        engine = BacktestEngine(config, profile=profile)
        try:
            result = engine.run()
        except (FetchFailure, InsufficientData, OSError, ValueError) as exc:
            logging.error("Backtest aborted: %s", exc)
            return 1
        metrics = generate_backtest_report(result, out_dir=args.out)
        print(format_summary(metrics))
        logging.info("Backtest complete. Results saved to the '%s' directory.", args.out)
        return 0

    order_client = None
    if config.bybit.trading_enabled:
        order_client = BybitOrderClient(config.bybit)
    engine = LiveEngine(
        config,
        notifier=build_notifier(config.telegram),
        order_client=order_client,
        ledger=TradeLedger(config.ledger.path),
        profile=profile,
    )
    try:
        engine.run()
    except InvariantViolation as exc:
        logging.critical("Live engine stopped: %s", exc)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
