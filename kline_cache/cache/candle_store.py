"""JSON file store for per-symbol, per-interval candle sequences."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Union

from ..errors import CacheWriteError, CorruptCache
from ..models.candle import CacheKey, Candle
from ..models.kline_row import parse_rows

logger = logging.getLogger(__name__)


class CandleStore:
    """Persists one JSON array of kline rows per cache key.

    Sequences handed to ``save`` must already be sorted ascending and unique
    by timestamp; the store does not re-check.
    """

    def __init__(self, cache_dir: Union[str, Path] = "tickers"):
        """Initialize candle store.

        Args:
            cache_dir: Directory holding the ``<SYMBOL>_<interval>.json`` files
        """
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: CacheKey) -> Path:
        """Cache file path for a key."""
        return self.cache_dir / f"{key.symbol}_{key.interval}.json"

    async def load(self, key: CacheKey) -> List[Candle]:
        """Load the stored sequence, treating a corrupt file as empty.

        A corrupt file degrades to a full-range backfill; the next successful
        save replaces it.
        """
        try:
            return await self.load_strict(key)
        except CorruptCache as e:
            logger.warning(f"Corrupt cache for {key.symbol} {key.interval}, treating as empty: {e}")
            return []

    async def load_strict(self, key: CacheKey) -> List[Candle]:
        """Load the stored sequence.

        Returns:
            Stored candles, or an empty list if no file exists

        Raises:
            CorruptCache: If the file cannot be read or parsed
        """
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def save(self, key: CacheKey, candles: List[Candle]) -> None:
        """Replace the stored sequence for a key.

        Raises:
            CacheWriteError: If the file cannot be written
        """
        await asyncio.to_thread(self._write, self.path_for(key), candles)
        logger.info(f"Saved {len(candles)} candles to {self.path_for(key)}")

    def _read(self, path: Path) -> List[Candle]:
        if not path.exists():
            logger.debug(f"No cache file at {path}")
            return []

        try:
            with open(path, encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptCache(f"Cannot read {path}: {e}") from e

        if not isinstance(rows, list):
            raise CorruptCache(f"Expected a JSON array in {path}, got {type(rows).__name__}")

        try:
            candles = parse_rows(rows)
        except ValueError as e:
            raise CorruptCache(f"Invalid kline row in {path}: {e}") from e

        logger.debug(f"Loaded {len(candles)} candles from {path}")
        return candles

    def _write(self, path: Path, candles: List[Candle]) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        payload = json.dumps([candle.to_row() for candle in candles])
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Failed to remove temp file {tmp_path}")
            raise CacheWriteError(f"Failed to write {path}: {e}") from e
