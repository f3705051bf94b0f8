"""Paginated backfill of missing candles from the exchange."""

import asyncio
import logging
from typing import List, Sequence, Set

from ..errors import UpstreamFetchError
from ..models.candle import CacheKey, Candle
from ..models.results import BackfillResult
from ..sources.base import ExchangeAdapter
from .gaps import DEFAULT_MAX_PAGE, Gap

logger = logging.getLogger(__name__)


class BackfillFetcher:
    """Walks a gap list and fetches the missing candles page by page.

    Pages are requested strictly one after another; the exchange adapter
    is responsible for its own rate limiting.
    """

    def __init__(self, exchange_adapter: ExchangeAdapter, page_size: int = DEFAULT_MAX_PAGE):
        """Initialize backfill fetcher.

        Args:
            exchange_adapter: Handles exchange communication
            page_size: Maximum candles requested per call
        """
        self.exchange = exchange_adapter
        self.page_size = page_size

    async def fetch(
        self,
        key: CacheKey,
        gaps: Sequence[Gap],
        step_ms: int,
        stored: Sequence[Candle],
    ) -> BackfillResult:
        """Fetch candles for every gap, skipping ones already known.

        Args:
            key: Symbol and interval to fetch
            gaps: Gaps in the order they should be filled
            step_ms: Interval step in milliseconds
            stored: Candles already in the cache

        Returns:
            BackfillResult with only the new candles, in fetch order

        Raises:
            UpstreamFetchError: If an exchange call fails
        """
        known: Set[int] = {candle.timestamp for candle in stored}
        new_candles: List[Candle] = []
        requests_made = 0
        duplicates = 0
        gaps_abandoned = 0

        for gap in gaps:
            cursor = gap.from_ms
            while cursor <= gap.to_ms:
                page_end = min(cursor + step_ms * self.page_size - 1, gap.to_ms)
                page = await self._fetch_page(key, cursor, page_end)
                requests_made += 1

                if not page:
                    logger.warning(
                        f"No upstream data for {key.symbol} {key.interval} "
                        f"from_ms={cursor} to_ms={gap.to_ms}, abandoning gap"
                    )
                    gaps_abandoned += 1
                    break

                added = 0
                for candle in page:
                    if candle.timestamp in known:
                        duplicates += 1
                        logger.debug(f"Duplicate candle {key.symbol} {key.interval} ts={candle.timestamp}")
                        continue
                    known.add(candle.timestamp)
                    new_candles.append(candle)
                    added += 1

                logger.debug(
                    f"Page {key.symbol} {key.interval} from_ms={cursor} to_ms={page_end}: "
                    f"returned={len(page)} added={added}"
                )
                cursor += step_ms * len(page)

        logger.info(
            f"Backfill {key.symbol} {key.interval}: {len(new_candles)} new candles, "
            f"{requests_made} requests, {duplicates} duplicates"
        )
        return BackfillResult(
            candles=new_candles,
            requests_made=requests_made,
            duplicates=duplicates,
            gaps_abandoned=gaps_abandoned,
        )

    async def _fetch_page(self, key: CacheKey, start_ms: int, end_ms: int) -> List[Candle]:
        try:
            return await asyncio.to_thread(
                self.exchange.get_klines,
                key.symbol,
                key.interval,
                start_ms,
                end_ms,
                self.page_size,
            )
        except UpstreamFetchError:
            raise
        except Exception as e:
            raise UpstreamFetchError(
                f"Failed to fetch {key.symbol} {key.interval} from_ms={start_ms} to_ms={end_ms}: {e}"
            ) from e
