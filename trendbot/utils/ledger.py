"""
Trade ledger persistence.

Closed live trades are appended to a JSON‑lines file so that the
won/lost record survives restarts.  The open position itself is not
persisted: after a restart the engine starts flat.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import pandas as pd

from ..execution.models import Side, Trade


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregate of stored trades."""
    total: int
    won: int
    lost: int


def trade_to_record(trade: Trade, symbol: str = "") -> Dict[str, Any]:
    """Serialise a trade to a JSON‑compatible dict."""
    return {
        'symbol': symbol,
        'side': trade.side.value,
        'entry_price': trade.entry_price,
        'exit_price': trade.exit_price,
        'pnl': trade.pnl,
        'reason': trade.reason,
        'won': trade.won,
        'entry_time': trade.entry_time.isoformat() if trade.entry_time is not None else None,
        'exit_time': trade.exit_time.isoformat() if trade.exit_time is not None else None,
    }


def _parse_time(value: Optional[str]) -> Optional[pd.Timestamp]:
    return pd.Timestamp(value) if value else None


def trade_from_record(record: Dict[str, Any]) -> Trade:
    """Inverse of `trade_to_record`."""
    return Trade(
        side=Side(record['side']),
        entry_price=float(record['entry_price']),
        exit_price=float(record['exit_price']),
        pnl=float(record['pnl']),
        reason=str(record['reason']),
        entry_time=_parse_time(record.get('entry_time')),
        exit_time=_parse_time(record.get('exit_time')),
    )


class TradeLedger:
    """Append‑only JSON‑lines store of closed trades.

    Parameters
    ----------
    path : str
        Location of the ledger file.  Parent directories are created
        on first write.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def append(self, trade: Trade, symbol: str = "") -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(trade_to_record(trade, symbol), ensure_ascii=False, sort_keys=True))
            fh.write("\n")

    def records(self) -> List[Dict[str, Any]]:
        """All stored records, oldest first.  Empty if the file is missing."""
        if not self.path.exists():
            return []
        out: List[Dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(json.loads(line))
                except json.JSONDecodeError as exc:
                    raise ValueError(f"Corrupt ledger line {lineno} in {self.path}") from exc
        return out

    def trades(self) -> List[Trade]:
        return [trade_from_record(r) for r in self.records()]

    def summary(self) -> LedgerSummary:
        """Count stored trades by their won/lost flag."""
        records = self.records()
        won = sum(1 for r in records if r.get('won'))
        return LedgerSummary(total=len(records), won=won, lost=len(records) - won)
