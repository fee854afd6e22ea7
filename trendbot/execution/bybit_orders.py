"""
Bybit order execution.

Signed access to the private v5 endpoints used by the live engine:
market orders and the wallet balance.  The live engine only submits
orders when ``bybit.trading_enabled`` is set; otherwise entries are
logged and notified without touching the exchange.

Bybit v5 signs ``timestamp + api_key + recv_window + payload`` with
HMAC‑SHA256, where the payload is the JSON body for POST requests and
the query string for GET requests.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import requests

from ..config.schema import BybitConfig
from ..errors import FetchFailure
from .models import Side


logger = logging.getLogger(__name__)


class BybitOrderClient:
    """Minimal signed client for order placement and balance queries."""

    def __init__(self, config: BybitConfig, session: Optional[requests.Session] = None) -> None:
        if not config.api_key or not config.api_secret:
            raise ValueError("Bybit api_key and api_secret are required for order execution")
        self.config = config
        self.session = session or requests.Session()

    def _sign(self, timestamp: str, payload: str) -> str:
        prehash = f"{timestamp}{self.config.api_key}{self.config.recv_window}{payload}"
        return hmac.new(
            self.config.api_secret.encode(), prehash.encode(), hashlib.sha256
        ).hexdigest()

    def _headers(self, payload: str) -> Dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        return {
            'Content-Type': 'application/json',
            'X-BAPI-API-KEY': self.config.api_key,
            'X-BAPI-SIGN': self._sign(timestamp, payload),
            'X-BAPI-TIMESTAMP': timestamp,
            'X-BAPI-RECV-WINDOW': str(self.config.recv_window),
        }

    def _unwrap(self, resp: requests.Response, what: str) -> Dict[str, Any]:
        try:
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise FetchFailure(f"{what} failed: {exc}") from exc
        except ValueError as exc:
            raise FetchFailure(f"{what} returned a non-JSON response") from exc
        if not isinstance(payload, dict) or str(payload.get('retCode')) != '0':
            ret_msg = payload.get('retMsg') if isinstance(payload, dict) else payload
            raise FetchFailure(f"{what} rejected: {ret_msg}")
        return payload.get('result') or {}

    def place_order(
        self, symbol: str, side: Side, qty: float, reduce_only: bool = False
    ) -> Dict[str, Any]:
        """Submit a market order and return Bybit's ``result`` object.

        With `reduce_only` the order can only shrink an existing
        position, never open or flip one.
        """
        body = {
            'category': self.config.category,
            'symbol': symbol,
            'side': 'Buy' if Side(side) is Side.LONG else 'Sell',
            'orderType': 'Market',
            'qty': str(qty),
            'timeInForce': 'IOC',
        }
        if reduce_only:
            body['reduceOnly'] = True
        payload = json.dumps(body, separators=(',', ':'))
        url = f"{self.config.base_url.rstrip('/')}/v5/order/create"
        try:
            resp = self.session.post(
                url, data=payload, headers=self._headers(payload), timeout=self.config.timeout
            )
        except requests.RequestException as exc:
            raise FetchFailure(f"Order request failed: {exc}") from exc
        result = self._unwrap(resp, "Order")
        logger.info("Order placed: %s %s %s -> %s", body['side'], qty, symbol, result.get('orderId'))
        return result

    def wallet_balance(self, account_type: str = "UNIFIED") -> float:
        """Total equity of the account, in USD."""
        params = {'accountType': account_type}
        query = urlencode(params)
        url = f"{self.config.base_url.rstrip('/')}/v5/account/wallet-balance"
        try:
            resp = self.session.get(
                url, params=params, headers=self._headers(query), timeout=self.config.timeout
            )
        except requests.RequestException as exc:
            raise FetchFailure(f"Wallet request failed: {exc}") from exc
        result = self._unwrap(resp, "Wallet balance")
        try:
            return float(result['list'][0]['totalEquity'])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise FetchFailure(f"Unexpected wallet payload: {result!r}") from exc


def order_quantity(capital: float, leverage: float, price: float, decimals: int) -> float:
    """Contract quantity for a leveraged position of `capital` at `price`."""
    return round(capital * leverage / price, decimals)
