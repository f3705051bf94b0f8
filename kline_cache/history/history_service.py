"""Cached history queries: load, fill gaps, merge, save, slice."""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..cache.backfill import BackfillFetcher
from ..cache.candle_store import CandleStore
from ..cache.gaps import DEFAULT_MAX_PAGE, find_gaps
from ..cache.locks import KeyedLocks
from ..cache.merge import merge_candles
from ..cache.query import slice_candles, to_columns
from ..errors import SymbolNotFound
from ..models.candle import CacheKey, Candle
from ..models.interval import Interval, parse_resolution
from ..models.results import HistoryResult, PrimeResult
from ..sources.symbols import SymbolCatalog, normalize_symbol

logger = logging.getLogger(__name__)


class HistoryService:
    """Orchestrates cached history queries for the chart."""

    def __init__(
        self,
        store: CandleStore,
        fetcher: BackfillFetcher,
        catalog: Optional[SymbolCatalog] = None,
        max_page: int = DEFAULT_MAX_PAGE,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize history service.

        Args:
            store: Persists candle sequences
            fetcher: Fetches missing candles from the exchange
            catalog: Known symbols; when None every symbol is accepted
            max_page: Maximum candles per gap page
            locks: Per-key lock registry, shared by every request
            clock: Current time in epoch seconds
        """
        self.store = store
        self.fetcher = fetcher
        self.catalog = catalog
        self.max_page = max_page
        self.locks = locks or KeyedLocks()
        self.clock = clock

    async def get_history(
        self, symbol: str, resolution: str, from_seconds: int, to_seconds: int
    ) -> HistoryResult:
        """Bars for ``[from_seconds, to_seconds)``, filling the cache first.

        An empty window (``from_seconds >= to_seconds``) returns an empty
        result without touching the cache or the exchange.

        Raises:
            SymbolNotFound: If the catalog does not list the symbol
            InvalidResolution: If the resolution is not in the table
            UpstreamFetchError: If the exchange fails during backfill
            CacheWriteError: If the merged sequence cannot be saved
        """
        symbol, interval = await self._resolve(symbol, resolution)
        from_ms, to_ms = int(from_seconds) * 1000, int(to_seconds) * 1000

        if from_ms >= to_ms:
            logger.debug(f"Empty window for {symbol} {interval.value}: from={from_seconds} to={to_seconds}")
            return HistoryResult()

        key = CacheKey(symbol, interval.value)
        stored, unfinished, _, _ = await self._sync_window(key, interval, from_ms, to_ms)
        candles = merge_candles(stored, unfinished) if unfinished else stored

        result = to_columns(slice_candles(candles, from_ms, to_ms))
        logger.info(f"History {symbol} {interval.value} from={from_seconds} to={to_seconds}: {len(result)} bars")
        return result

    async def prime(
        self, symbol: str, resolution: str, from_seconds: int, to_seconds: int
    ) -> PrimeResult:
        """Fill the cache for a window without building a response."""
        logger.info(f"Priming {symbol} {resolution} from={from_seconds} to={to_seconds}")
        op_start = datetime.now(timezone.utc)

        try:
            symbol, interval = await self._resolve(symbol, resolution)
            if from_seconds >= to_seconds:
                raise ValueError(f"Start {from_seconds} must be before end {to_seconds}")
            key = CacheKey(symbol, interval.value)
            stored, _, gaps_found, fetched = await self._sync_window(
                key, interval, int(from_seconds) * 1000, int(to_seconds) * 1000
            )

            duration_ms = int((datetime.now(timezone.utc) - op_start).total_seconds() * 1000)
            return PrimeResult(
                symbol=symbol,
                interval=interval.value,
                gaps_found=gaps_found,
                candles_fetched=fetched,
                candles_stored=len(stored),
                status="success" if gaps_found else "cache_hit",
                execution_time_ms=duration_ms,
            )

        except Exception as e:
            logger.error(f"Priming failed for {symbol}: {e}", exc_info=True)
            duration_ms = int((datetime.now(timezone.utc) - op_start).total_seconds() * 1000)
            return PrimeResult(
                symbol=symbol,
                interval=str(resolution),
                gaps_found=0,
                candles_fetched=0,
                candles_stored=0,
                status="error",
                execution_time_ms=duration_ms,
                errors=[str(e)],
            )

    async def _resolve(self, symbol: str, resolution: str) -> Tuple[str, Interval]:
        symbol = normalize_symbol(symbol)
        if self.catalog is not None and not await self.catalog.is_known_symbol(symbol):
            raise SymbolNotFound(f"Unknown symbol: {symbol}")
        return symbol, parse_resolution(resolution)

    async def _sync_window(
        self, key: CacheKey, interval: Interval, from_ms: int, to_ms: int
    ) -> Tuple[List[Candle], List[Candle], int, int]:
        """Load, backfill and save one key under its lock.

        Candles still open at the current time are returned but never saved,
        so a later request fetches them again once they close.

        Returns:
            The stored sequence after the sync, fetched candles that are still
            open, the number of gaps found and the number of new candles fetched
        """
        step_ms = interval.ms
        async with self.locks.hold(key):
            stored = await self.store.load(key)
            gaps = find_gaps(stored, from_ms, to_ms, step_ms, self.max_page)
            if not gaps:
                logger.debug(f"Cache hit for {key.symbol} {key.interval}")
                return stored, [], 0, 0

            logger.info(f"{len(gaps)} gaps for {key.symbol} {key.interval}, backfilling")
            backfill = await self.fetcher.fetch(key, gaps, step_ms, stored)

            now_ms = int(self.clock() * 1000)
            closed = [c for c in backfill.candles if c.timestamp + step_ms <= now_ms]
            unfinished = [c for c in backfill.candles if c.timestamp + step_ms > now_ms]
            if unfinished:
                logger.debug(
                    f"Not caching {len(unfinished)} open candles for {key.symbol} {key.interval} "
                    f"now_ms={now_ms}"
                )

            if closed:
                stored = merge_candles(stored, closed)
                await self.store.save(key, stored)
            return stored, unfinished, len(gaps), len(backfill.candles)
