"""
Bybit market data feed.

This module wraps the public Bybit v5 kline endpoint to fetch recent
candles for backtests and live polling.  Bybit returns rows
newest‑first as lists of strings::

    [startTime, open, high, low, close, volume, turnover]

`parse_kline_rows()` validates such rows and turns them into the
oldest‑first DataFrame used everywhere else in the package, so the
rest of the code never sees the exchange's ordering.  Any network
error, API error code or malformed payload raises `FetchFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
import pandas as pd
import requests

from ..config.schema import BybitConfig
from ..errors import FetchFailure


logger = logging.getLogger(__name__)

# Per-request maximum of /v5/market/kline.
MAX_KLINE_LIMIT = 1000

CANDLE_COLUMNS = ['open', 'high', 'low', 'close']


def parse_kline_rows(rows: Sequence[Any]) -> pd.DataFrame:
    """Convert raw Bybit kline rows into an oldest‑first candle DataFrame.

    Parameters
    ----------
    rows : sequence
        Rows as returned in ``result.list``; newest first.

    Returns
    -------
    pandas.DataFrame
        Columns ``open``, ``high``, ``low``, ``close`` indexed by the
        candle start time in UTC, sorted ascending, without duplicates.

    Raises
    ------
    FetchFailure
        If a row is not a list of at least five numeric fields or the
        prices are inconsistent (``low > high``).
    """
    records: List[Dict[str, float]] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            raise FetchFailure(f"Malformed kline row: {row!r}")
        try:
            record = {
                'time': int(row[0]),
                'open': float(row[1]),
                'high': float(row[2]),
                'low': float(row[3]),
                'close': float(row[4]),
            }
        except (TypeError, ValueError) as exc:
            raise FetchFailure(f"Non-numeric kline row: {row!r}") from exc
        if record['low'] > record['high']:
            raise FetchFailure(f"Kline low above high: {row!r}")
        records.append(record)

    if not records:
        return pd.DataFrame(columns=CANDLE_COLUMNS, index=pd.DatetimeIndex([], tz='UTC', name='time'))
    df = pd.DataFrame(records)
    df['time'] = pd.to_datetime(df['time'], unit='ms', utc=True)
    df = df.drop_duplicates(subset='time', keep='first').set_index('time').sort_index()
    return df[CANDLE_COLUMNS]


class BybitMarketData:
    """Fetch candles from the public Bybit v5 REST API."""

    def __init__(self, config: BybitConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def _kline_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/v5/market/kline"

    def _get_page(self, symbol: str, interval: str, limit: int, end: Optional[int]) -> List[Any]:
        params: Dict[str, Any] = {
            'category': self.config.category,
            'symbol': symbol,
            'interval': interval,
            'limit': limit,
        }
        if end is not None:
            params['end'] = end
        try:
            resp = self.session.get(self._kline_url, params=params, timeout=self.config.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise FetchFailure(f"Kline request failed for {symbol}: {exc}") from exc
        except ValueError as exc:
            raise FetchFailure(f"Kline response for {symbol} is not JSON") from exc

        if not isinstance(payload, dict):
            raise FetchFailure(f"Unexpected kline payload for {symbol}: {payload!r}")
        ret_code = payload.get('retCode')
        if str(ret_code) != '0':
            raise FetchFailure(f"Bybit error {ret_code}: {payload.get('retMsg')}")
        result = payload.get('result') or {}
        rows = result.get('list') if isinstance(result, dict) else None
        if not isinstance(rows, list):
            raise FetchFailure(f"Kline payload for {symbol} has no result list")
        return rows

    def fetch_candles(self, symbol: str, interval: str, count: int) -> pd.DataFrame:
        """Return the `count` most recent candles, oldest first.

        The newest candle is usually still forming.  Requests above the
        endpoint's per‑call limit are paginated backwards in time.

        Raises
        ------
        FetchFailure
            On any request or payload error, or when fewer than `count`
            candles are available.
        """
        if count < 1:
            raise ValueError("count must be positive")
        rows: List[Any] = []
        end: Optional[int] = None
        while len(rows) < count:
            limit = min(MAX_KLINE_LIMIT, count - len(rows))
            page = self._get_page(symbol, interval, limit, end)
            if not page:
                break
            rows.extend(page)
            try:
                earliest = int(page[-1][0])
            except (TypeError, ValueError, IndexError) as exc:
                raise FetchFailure(f"Malformed kline row: {page[-1]!r}") from exc
            if len(page) < limit:
                break
            end = earliest - 1

        candles = parse_kline_rows(rows)
        if len(candles) < count:
            raise FetchFailure(
                f"Expected {count} candles for {symbol}, received {len(candles)}"
            )
        logger.debug("Fetched %d %s candles for %s", len(candles), interval, symbol)
        return candles.iloc[-count:]
