"""Exchange symbol catalog with periodic refresh."""

import asyncio
import logging
from typing import Dict, Optional

from ..errors import UpstreamFetchError
from ..models.symbol import SymbolInfo
from .base import ExchangeAdapter

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: str) -> str:
    """Normalize a chart symbol for the exchange.

    Handles different symbol formats:
    - "BINANCE:BTCUSDT" -> "BTCUSDT"
    - "btcusdt" -> "BTCUSDT"
    """
    symbol = symbol.strip()
    if ":" in symbol:
        symbol = symbol.split(":", 1)[1]
    return symbol.upper()


class SymbolCatalog:
    """Set of exchange symbols, refreshed on a fixed period.

    Refresh runs independently of the candle cache and shares no locks
    with it.
    """

    def __init__(
        self,
        exchange_adapter: ExchangeAdapter,
        refresh_seconds: float = 30.0,
        retry_seconds: float = 1.0,
        load_timeout: Optional[float] = None,
    ):
        """Initialize symbol catalog.

        Args:
            exchange_adapter: Source of the symbol list
            refresh_seconds: Period between refreshes
            retry_seconds: Delay before retrying a failed refresh
            load_timeout: How long lookups wait for the first load,
                defaults to ``refresh_seconds``
        """
        self.exchange = exchange_adapter
        self.refresh_seconds = refresh_seconds
        self.retry_seconds = retry_seconds
        self.load_timeout = refresh_seconds if load_timeout is None else load_timeout
        self._symbols: Dict[str, SymbolInfo] = {}
        self._last_error: Optional[Exception] = None
        self._loaded: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    def _loaded_event(self) -> asyncio.Event:
        if self._loaded is None:
            self._loaded = asyncio.Event()
        return self._loaded

    async def refresh(self) -> None:
        """Reload the symbol list from the exchange.

        Raises:
            ExchangeError: If the exchange call fails
        """
        try:
            symbols = await asyncio.to_thread(self.exchange.get_symbol_info)
        except Exception as e:
            self._last_error = e
            raise
        self._symbols = {info.symbol: info for info in symbols}
        self._last_error = None
        self._loaded_event().set()
        logger.debug(f"Symbol catalog refreshed: {len(self._symbols)} symbols")

    async def is_known_symbol(self, symbol: str) -> bool:
        """Whether the exchange lists a symbol, waiting for the first load.

        Raises:
            UpstreamFetchError: If the first load does not succeed within
                ``load_timeout``
        """
        return await self.symbol_info(symbol) is not None

    async def symbol_info(self, symbol: str) -> Optional[SymbolInfo]:
        """Metadata for a listed symbol, or None if the exchange does not list it.

        Raises:
            UpstreamFetchError: If the first load does not succeed within
                ``load_timeout``
        """
        await self._wait_loaded()
        return self._symbols.get(normalize_symbol(symbol))

    async def _wait_loaded(self) -> None:
        loaded = self._loaded_event()
        if loaded.is_set():
            return
        try:
            await asyncio.wait_for(loaded.wait(), timeout=self.load_timeout)
        except asyncio.TimeoutError as e:
            reason = self._last_error or "first refresh still pending"
            raise UpstreamFetchError(f"Symbol list unavailable: {reason}") from e

    def start(self) -> None:
        """Start the periodic refresh task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        """Cancel the refresh task."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.refresh()
                delay = self.refresh_seconds
            except Exception as e:
                logger.error(f"Symbol catalog refresh failed: {e}")
                delay = self.retry_seconds
            await asyncio.sleep(delay)
