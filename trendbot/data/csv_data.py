"""
CSV data loader.

This module provides a class to load historical OHLC candles from CSV
files for offline backtests.  The expected schema for each CSV is:

```
time,open,high,low,close[,volume,...]
```

Only the `time`, `high`, `low` and `close` columns are required;
additional columns are ignored.  The `time` column may hold ISO
timestamps or UNIX epochs in milliseconds (as exported from Bybit).
MetaTrader 5 tab‑separated exports (`<DATE>`, `<TIME>`, ...) are
accepted as well.
"""

from __future__ import annotations

from pathlib import Path
import pandas as pd

from .bybit_data import CANDLE_COLUMNS


class CSVDataLoader:
    """Load OHLC data from CSV files for backtesting.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.  Each symbol’s file
        must be named `{SYMBOL}.csv`.
    timezone : str
        IANA timezone used to localise naive timestamps.  The returned
        index is always converted to UTC.
    """

    def __init__(self, csv_dir: str, timezone: str = "UTC") -> None:
        self.csv_dir = Path(csv_dir)
        self.timezone = timezone

    def _finish(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df[~df.index.duplicated(keep='first')].sort_index().copy()
        if df.index.tz is None:
            df.index = df.index.tz_localize(self.timezone)
        df.index = df.index.tz_convert('UTC')
        df.index.name = 'time'
        if 'open' not in df.columns:
            df['open'] = df['close']
        df = df[CANDLE_COLUMNS].astype(float)
        if df[['high', 'low', 'close']].isna().any().any():
            raise ValueError("CSV contains missing prices")
        return df

    def load(self, symbol: str) -> pd.DataFrame:
        """Return the candles of `symbol`, oldest first."""
        file_path = self.csv_dir / f"{symbol}.csv"
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")

        df = pd.read_csv(file_path)
        df.columns = [str(c).strip() for c in df.columns]
        if "time" not in df.columns:
            df = pd.read_csv(file_path, sep="\t", engine="python")
            df.columns = [str(c).strip() for c in df.columns]

        # 1) Standard CSV with a single 'time' column
        if "time" in df.columns:
            missing = [c for c in ("high", "low", "close") if c not in df.columns]
            if missing:
                raise ValueError(f"CSV for {symbol} is missing columns: {missing}")
            if pd.api.types.is_numeric_dtype(df["time"]):
                df["time"] = pd.to_datetime(df["time"], unit="ms", utc=True)
            else:
                df["time"] = pd.to_datetime(df["time"], errors="raise")
            return self._finish(df.set_index("time"))

        # 2) MT5 export format: tab-separated with <DATE> and <TIME>
        required = ["<DATE>", "<TIME>", "<OPEN>", "<HIGH>", "<LOW>", "<CLOSE>"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {symbol}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )

        dt = df["<DATE>"].astype(str).str.strip() + " " + df["<TIME>"].astype(str).str.strip()
        ts = pd.to_datetime(dt, format="%Y.%m.%d %H:%M:%S", errors="coerce")
        if ts.isna().any():
            bad = dt[ts.isna()].head(5).tolist()
            raise ValueError(f"Could not parse MT5 DATE/TIME for {symbol}. Examples: {bad}")

        out = pd.DataFrame(
            {
                "open": df["<OPEN>"].astype(float).values,
                "high": df["<HIGH>"].astype(float).values,
                "low": df["<LOW>"].astype(float).values,
                "close": df["<CLOSE>"].astype(float).values,
            },
            index=pd.DatetimeIndex(ts),
        )
        return self._finish(out)
