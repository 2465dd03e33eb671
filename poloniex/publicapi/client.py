"""
Public REST client for Poloniex.

Snapshot calls that complement the push stream: the ticker for every market,
a market's order book with the sequence number push deltas continue from and
its recent trade history.
Calls are spaced so the client never exceeds the configured request rate.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

import requests
from pydantic import ValidationError

from poloniex.config import PublicConfig
from poloniex.errors import PublicApiError
from poloniex.publicapi.models import OrderBook, TickerSnapshot, Trade

logger = logging.getLogger(__name__)


class PublicClient:
    """
    Blocking client for the public API.

    Usage:
        with PublicClient(PublicConfig()) as client:
            book = client.get_order_book("btc_xmr", depth=10)
            print(book.seq, book.best_bid)
    """

    def __init__(
        self,
        config: Optional[PublicConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the public client.

        Args:
            config: Endpoint, timeout and rate settings (defaults to PublicConfig())
            session: HTTP session to use instead of a new requests.Session
            clock: Monotonic time source for request spacing
            sleep: Blocking sleep used to space requests
        """
        self._config = config if config is not None else PublicConfig()
        self._session = session if session is not None else requests.Session()
        self._session.headers["Accept"] = "application/json"
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._last_request: Optional[float] = None

    def __enter__(self) -> PublicClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def get_tickers(self) -> dict[str, TickerSnapshot]:
        """
        Ticker for every market, keyed by currency pair.

        Raises:
            PublicApiError: On transport failure, bad status, error body or bad payload
        """
        command = "returnTicker"
        body = self._call({"command": command})
        if not isinstance(body, dict):
            raise PublicApiError("Expected an object of markets", command=command)

        try:
            return {pair: TickerSnapshot.model_validate(raw) for pair, raw in body.items()}
        except ValidationError as e:
            raise PublicApiError(f"Invalid ticker payload: {e}", command=command) from e

    def get_order_book(self, currency_pair: str, depth: int = 10) -> OrderBook:
        """
        Order book of one market with its push sequence number.

        Raises:
            PublicApiError: On transport failure, bad status, error body or bad payload
        """
        if depth <= 0:
            raise ValueError(f"depth must be positive, got {depth}")

        command = "returnOrderBook"
        body = self._call(
            {"command": command, "currencyPair": currency_pair.upper(), "depth": str(depth)}
        )

        try:
            return OrderBook.model_validate(body)
        except ValidationError as e:
            raise PublicApiError(f"Invalid order book payload: {e}", command=command) from e

    def get_trade_history(
        self,
        currency_pair: str,
        start: Optional[float] = None,
        end: Optional[float] = None,
    ) -> list[Trade]:
        """
        Trades of one market, newest first.

        Without a range the API returns the latest 200 trades.

        Args:
            currency_pair: Market, e.g. "BTC_XMR" (case-insensitive)
            start: Range start in Unix seconds
            end: Range end in Unix seconds

        Raises:
            PublicApiError: On transport failure, bad status, error body or bad payload
        """
        command = "returnTradeHistory"
        params = {"command": command, "currencyPair": currency_pair.upper()}
        if start is not None:
            params["start"] = str(int(start))
        if end is not None:
            params["end"] = str(int(end))

        body = self._call(params)
        if not isinstance(body, list):
            raise PublicApiError("Expected a list of trades", command=command)

        try:
            return [Trade.model_validate(raw) for raw in body]
        except ValidationError as e:
            raise PublicApiError(f"Invalid trade payload: {e}", command=command) from e

    def _throttle(self) -> None:
        """Wait until at least min_request_interval_s passed since the last call."""
        with self._lock:
            now = self._clock()
            if self._last_request is not None:
                wait = self._config.min_request_interval_s - (now - self._last_request)
                if wait > 0:
                    self._sleep(wait)
                    now = self._clock()
            self._last_request = now

    def _call(self, params: dict[str, str]) -> Any:
        command = params["command"]
        self._throttle()

        logger.debug(f"GET {self._config.api_url} {params}")
        try:
            resp = self._session.get(
                self._config.api_url,
                params=params,
                timeout=self._config.http_timeout_s,
            )
        except requests.RequestException as e:
            raise PublicApiError(f"Request failed: {e}", command=command) from e

        if resp.status_code != 200:
            raise PublicApiError(
                f"Unexpected status {resp.status_code}",
                command=command,
                status=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise PublicApiError(
                "Response is not valid JSON", command=command, status=resp.status_code
            ) from e

        if isinstance(body, dict) and "error" in body:
            raise PublicApiError(
                f"API error: {body['error']}", command=command, status=resp.status_code
            )

        return body
