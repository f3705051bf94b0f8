"""Binance spot REST adapter for klines and the symbol list."""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Set

import requests

from ..models.candle import Candle
from ..models.kline_row import parse_rows
from ..models.symbol import SymbolInfo
from .base import ExchangeAdapter, ExchangeError

logger = logging.getLogger(__name__)

MAX_KLINES_PER_REQUEST = 1000


class BinanceExchangeAdapter(ExchangeAdapter):
    """Binance spot exchange adapter."""

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 10.0,
        min_request_interval: float = 0.1,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Binance adapter.

        Args:
            base_url: REST API base URL
            timeout: Per-request timeout in seconds
            min_request_interval: Minimum spacing between requests in seconds
            session: Optional requests session for testing
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_request_interval = min_request_interval
        self.session = session or requests.Session()
        self._throttle_lock = threading.Lock()
        self._last_request_at = 0.0

    def _throttle(self) -> None:
        """Space requests at least ``min_request_interval`` apart."""
        with self._throttle_lock:
            wait = self._last_request_at + self.min_request_interval - time.monotonic()
            if wait > 0:
                logger.debug(f"Throttling Binance request for {wait:.3f}s")
                time.sleep(wait)
            self._last_request_at = time.monotonic()

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        self._throttle()
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Binance request failed for {path}: {e}")
            raise ExchangeError(f"Binance request failed for {path}: {e}") from e
        except ValueError as e:
            raise ExchangeError(f"Invalid JSON from Binance {path}: {e}") from e

    def get_klines(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        """Get historical klines for a symbol."""
        params = {
            "symbol": symbol,
            "interval": interval,
            "startTime": start_ms,
            "endTime": end_ms,
            "limit": min(limit or MAX_KLINES_PER_REQUEST, MAX_KLINES_PER_REQUEST),
        }
        logger.debug(f"Fetching klines {symbol} {interval} from_ms={start_ms} to_ms={end_ms}")
        data = self._get("/api/v3/klines", params=params)

        if not isinstance(data, list):
            raise ExchangeError(f"Unexpected klines response for {symbol}: {data!r}")

        try:
            candles = parse_rows(data)
        except ValueError as e:
            raise ExchangeError(f"Malformed kline from Binance for {symbol}: {e}") from e

        candles.sort(key=lambda c: c.timestamp)
        return candles

    def get_symbols(self) -> Set[str]:
        """Get every symbol listed in exchangeInfo."""
        return {info.symbol for info in self.get_symbol_info()}

    def get_symbol_info(self) -> List[SymbolInfo]:
        """Get chart metadata for every symbol listed in exchangeInfo."""
        data = self._get("/api/v3/exchangeInfo")
        try:
            symbols = [
                SymbolInfo(
                    symbol=entry["symbol"],
                    base_asset=entry.get("baseAsset", ""),
                    quote_asset=entry.get("quoteAsset", ""),
                    pricescale=_pricescale(entry.get("filters", [])),
                )
                for entry in data["symbols"]
            ]
        except (KeyError, TypeError, AttributeError, InvalidOperation) as e:
            raise ExchangeError(f"Malformed exchangeInfo response: {e}") from e

        logger.info(f"Loaded {len(symbols)} symbols from Binance")
        return symbols


def _pricescale(filters: List[dict]) -> int:
    """Price scale from the PRICE_FILTER tick size, 1 when absent."""
    for entry in filters:
        if entry.get("filterType") == "PRICE_FILTER":
            tick_size = Decimal(entry["tickSize"])
            if tick_size > 0:
                return int((1 / tick_size).to_integral_value())
    return 1
