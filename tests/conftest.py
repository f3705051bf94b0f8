"""Shared test fixtures and utilities."""

from decimal import Decimal
from typing import Dict, List, Optional, Set

import pytest

from kline_cache.cache.backfill import BackfillFetcher
from kline_cache.cache.candle_store import CandleStore
from kline_cache.history.history_service import HistoryService
from kline_cache.models.candle import Candle
from kline_cache.sources.base import ExchangeAdapter

MINUTE_MS = 60_000
# 2025-01-01T12:00:00Z, aligned to minute and hour intervals
BASE_TS = 1_735_732_800_000


def make_candle(timestamp: int, price: float = 100.0, volume: float = 1.5) -> Candle:
    """Helper to create a candle around a price.

    Args:
        timestamp: Open time in milliseconds
        price: Open/close price; high and low are +/- 1
        volume: Base volume

    Returns:
        Candle object
    """
    return Candle(
        timestamp=timestamp,
        open=Decimal(str(price)),
        high=Decimal(str(price + 1)),
        low=Decimal(str(price - 1)),
        close=Decimal(str(price)),
        volume=Decimal(str(volume)),
    )


def make_series(start: int, count: int, step_ms: int = MINUTE_MS) -> List[Candle]:
    """Helper to create ``count`` contiguous candles starting at ``start``."""
    return [make_candle(start + i * step_ms, price=100.0 + i) for i in range(count)]


class FakeExchange(ExchangeAdapter):
    """In-memory exchange that serves candles from a fixed timeline.

    Mimics the kline endpoint: returns candles with open time in
    ``[start_ms, end_ms]``, ascending, capped at ``limit``.
    """

    def __init__(
        self,
        candles: Optional[List[Candle]] = None,
        symbols: Optional[Set[str]] = None,
        page_cap: Optional[int] = None,
    ):
        self.timeline: Dict[int, Candle] = {c.timestamp: c for c in candles or []}
        self.symbols = symbols if symbols is not None else {"BTCUSDT", "ETHUSDT"}
        self.page_cap = page_cap
        self.calls: List[dict] = []
        self.error: Optional[Exception] = None

    def get_klines(self, symbol, interval, start_ms, end_ms, limit=None):
        self.calls.append(
            {"symbol": symbol, "interval": interval, "start_ms": start_ms, "end_ms": end_ms, "limit": limit}
        )
        if self.error is not None:
            raise self.error
        page = [c for ts, c in sorted(self.timeline.items()) if start_ms <= ts <= end_ms]
        cap = min(x for x in (limit, self.page_cap, 1000) if x is not None)
        return page[:cap]

    def get_symbols(self):
        return set(self.symbols)


@pytest.fixture
def store(tmp_path):
    """Candle store rooted in a temporary directory."""
    return CandleStore(tmp_path / "tickers")


@pytest.fixture
def exchange():
    """Empty fake exchange; tests fill ``timeline`` as needed."""
    return FakeExchange()


@pytest.fixture
def service(store, exchange):
    """History service without a symbol catalog."""
    return HistoryService(store=store, fetcher=BackfillFetcher(exchange), catalog=None)
