"""Per-key asyncio locks for the load/backfill/save section."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLocks:
    """Registry of asyncio locks created on demand, one per key."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        """Lock for a key, creating it on first use."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for a key for the duration of the block."""
        async with self.get(key):
            yield

    def __len__(self) -> int:
        return len(self._locks)
