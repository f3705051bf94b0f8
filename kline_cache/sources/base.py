"""Base classes for exchange adapters."""

from abc import ABC, abstractmethod
from typing import List, Optional, Set

from ..errors import UpstreamFetchError
from ..models.candle import Candle
from ..models.symbol import SymbolInfo


class ExchangeError(UpstreamFetchError):
    """Base exception for exchange-related errors."""

    pass


class ExchangeAdapter(ABC):
    """Base class for exchange adapters.

    Methods are synchronous; async callers run them in a worker thread.
    """

    @abstractmethod
    def get_klines(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        """Get candles whose open time falls in ``[start_ms, end_ms]``.

        Args:
            symbol: Exchange symbol (e.g., "BTCUSDT")
            interval: Exchange interval string (e.g., "1m", "1h")
            start_ms: First open time, epoch milliseconds (inclusive)
            end_ms: Last open time, epoch milliseconds (inclusive)
            limit: Maximum number of candles (optional)

        Returns:
            Candles in ascending open-time order, at most one upstream page

        Raises:
            ExchangeError: If unable to fetch candle data
        """
        pass

    @abstractmethod
    def get_symbols(self) -> Set[str]:
        """Get every symbol currently listed on the exchange.

        Raises:
            ExchangeError: If unable to fetch the symbol list
        """
        pass

    def get_symbol_info(self) -> List[SymbolInfo]:
        """Get chart metadata for every listed symbol.

        Adapters without richer metadata report each symbol with defaults.

        Raises:
            ExchangeError: If unable to fetch the symbol list
        """
        return [SymbolInfo(symbol=symbol) for symbol in sorted(self.get_symbols())]
