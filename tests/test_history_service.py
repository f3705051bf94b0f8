"""End-to-end tests for cached history queries.

These tests run the real store, gap detector, fetcher and merger against an
in-memory exchange:
HistoryService -> CandleStore / find_gaps / BackfillFetcher -> FakeExchange
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from kline_cache.cache.backfill import BackfillFetcher
from kline_cache.errors import CacheWriteError, InvalidResolution, SymbolNotFound, UpstreamFetchError
from kline_cache.history.history_service import HistoryService
from kline_cache.models.candle import CacheKey
from kline_cache.sources.symbols import SymbolCatalog
from tests.conftest import BASE_TS, MINUTE_MS, FakeExchange, make_candle, make_series

KEY = CacheKey("BTCUSDT", "1m")
FROM_S = BASE_TS // 1000
HOUR_MS = 60 * MINUTE_MS


class TestHistoryService:
    """Load -> gaps -> backfill -> merge -> save -> slice."""

    def test_empty_cache_backfills_and_saves(self, service, exchange, store):
        """First request fetches the whole window and persists it."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 10)}

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60))

        assert result.t == [FROM_S + i * 60 for i in range(10)]
        assert result.o[0] == 100.0
        assert len(exchange.calls) == 1
        assert [c.timestamp for c in asyncio.run(store.load(KEY))] == list(
            range(BASE_TS, BASE_TS + 10 * MINUTE_MS, MINUTE_MS)
        )

    def test_second_run_hits_cache(self, service, exchange):
        """Repeating a request gives identical output with zero upstream calls."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 10)}

        async def run_twice():
            first = await service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60)
            calls_after_first = len(exchange.calls)
            second = await service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60)
            return first, second, calls_after_first

        first, second, calls_after_first = asyncio.run(run_twice())

        assert first == second
        assert len(exchange.calls) == calls_after_first

    def test_only_missing_span_fetched(self, service, exchange, store):
        """A stored prefix is not re-requested; only the tail is fetched."""
        asyncio.run(store.save(KEY, make_series(BASE_TS, 5)))
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 10)}

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60))

        assert len(result) == 10
        assert len(exchange.calls) == 1
        assert exchange.calls[0]["start_ms"] == BASE_TS + 5 * MINUTE_MS
        assert exchange.calls[0]["end_ms"] == BASE_TS + 9 * MINUTE_MS

    def test_interior_gap_filled(self, service, exchange, store):
        """A hole in the stored series is fetched and merged in order."""
        stored = [make_candle(BASE_TS), make_candle(BASE_TS + MINUTE_MS), make_candle(BASE_TS + 3 * MINUTE_MS)]
        asyncio.run(store.save(KEY, stored))
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 4)}

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 4 * 60))

        assert result.t == [FROM_S, FROM_S + 60, FROM_S + 120, FROM_S + 180]
        assert exchange.calls[0]["start_ms"] == BASE_TS + 2 * MINUTE_MS
        saved = asyncio.run(store.load(KEY))
        assert [c.timestamp for c in saved] == sorted({c.timestamp for c in saved})

    def test_empty_upstream_leaves_store_unchanged(self, service, exchange, store):
        """No upstream data for the only gap returns the stored data, no error."""
        stored = make_series(BASE_TS, 3)
        asyncio.run(store.save(KEY, stored))
        before = store.path_for(KEY).read_text()

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60))

        assert result.t == [FROM_S, FROM_S + 60, FROM_S + 120]
        assert len(exchange.calls) == 1
        assert store.path_for(KEY).read_text() == before

    def test_result_is_half_open(self, service, exchange, store):
        """The candle at ``to`` is stored but not returned."""
        asyncio.run(store.save(KEY, make_series(BASE_TS, 10)))

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S + 60, FROM_S + 5 * 60))

        assert result.t == [FROM_S + 60, FROM_S + 120, FROM_S + 180, FROM_S + 240]
        assert exchange.calls == []

    def test_hourly_resolution_uses_hour_step(self, service, exchange):
        """Resolution "60" caches under 1h and steps by one hour."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 3, step_ms=HOUR_MS)}

        result = asyncio.run(service.get_history("BTCUSDT", "60", FROM_S, FROM_S + 3 * 3600))

        assert len(result) == 3
        assert exchange.calls[0]["interval"] == "1h"
        assert exchange.calls[0]["end_ms"] == BASE_TS + 2 * HOUR_MS

    def test_symbol_normalized(self, service, exchange, store):
        """Exchange prefix and lower case are normalized before caching."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 2)}

        asyncio.run(service.get_history("binance:btcusdt", "1", FROM_S, FROM_S + 120))

        assert exchange.calls[0]["symbol"] == "BTCUSDT"
        assert store.path_for(KEY).exists()

    @pytest.mark.parametrize("to_offset", [0, -60])
    def test_empty_window_returns_empty(self, service, exchange, store, to_offset):
        """``from >= to`` returns no bars and touches nothing."""
        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + to_offset))

        assert result.to_dict()["t"] == []
        assert exchange.calls == []
        assert not store.path_for(KEY).exists()

    def test_invalid_resolution(self, service, exchange):
        """Resolution "2" is not in the table."""
        with pytest.raises(InvalidResolution):
            asyncio.run(service.get_history("BTCUSDT", "2", FROM_S, FROM_S + 600))
        assert exchange.calls == []

    def test_upstream_error_propagates_without_saving(self, service, exchange, store):
        """A failed fetch raises and the previous file stays valid."""
        asyncio.run(store.save(KEY, make_series(BASE_TS, 3)))
        before = store.path_for(KEY).read_text()
        exchange.error = UpstreamFetchError("503 Service Unavailable")

        with pytest.raises(UpstreamFetchError):
            asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60))

        assert store.path_for(KEY).read_text() == before

    def test_save_failure_propagates(self, service, exchange):
        """A storage write failure surfaces as CacheWriteError."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 2)}

        with patch("kline_cache.cache.candle_store.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(CacheWriteError):
                asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 120))

    def test_corrupt_cache_refetched(self, service, exchange, store):
        """A corrupt file is treated as empty and overwritten by the backfill."""
        path = store.path_for(KEY)
        path.parent.mkdir(parents=True)
        path.write_text("{broken")
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 3)}

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 180))

        assert len(result) == 3
        assert len(json.loads(path.read_text())) == 3


class TestConcurrency:
    """Per-key serialization of the load/backfill/save section."""

    def test_same_key_requests_do_not_lose_data(self, store):
        """Two overlapping requests for one key both end up persisted."""
        exchange = FakeExchange(make_series(BASE_TS, 20))
        service = HistoryService(store=store, fetcher=BackfillFetcher(exchange))

        async def run_both():
            return await asyncio.gather(
                service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60),
                service.get_history("BTCUSDT", "1", FROM_S + 10 * 60, FROM_S + 20 * 60),
            )

        first, second = asyncio.run(run_both())

        assert len(first) == 10
        assert len(second) == 10
        saved = asyncio.run(store.load(KEY))
        assert [c.timestamp for c in saved] == list(range(BASE_TS, BASE_TS + 20 * MINUTE_MS, MINUTE_MS))

    def test_same_key_second_request_reuses_first_backfill(self, store):
        """The second same-window request waits and then hits the cache."""
        exchange = FakeExchange(make_series(BASE_TS, 10))
        service = HistoryService(store=store, fetcher=BackfillFetcher(exchange))

        async def run_both():
            return await asyncio.gather(
                service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60),
                service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 10 * 60),
            )

        first, second = asyncio.run(run_both())

        assert first == second
        assert len(exchange.calls) == 1

    def test_locks_are_per_key(self, service):
        """Different keys get different locks."""
        btc = service.locks.get(CacheKey("BTCUSDT", "1m"))
        eth = service.locks.get(CacheKey("ETHUSDT", "1m"))

        assert btc is not eth
        assert service.locks.get(CacheKey("BTCUSDT", "1m")) is btc


class TestSymbolCheck:
    """Symbol validation through the catalog."""

    def test_unknown_symbol_rejected(self, store, exchange):
        """Symbols the exchange does not list raise SymbolNotFound."""
        catalog = SymbolCatalog(exchange)
        service = HistoryService(store=store, fetcher=BackfillFetcher(exchange), catalog=catalog)

        async def run():
            await catalog.refresh()
            return await service.get_history("DOGEBTC", "1", FROM_S, FROM_S + 60)

        with pytest.raises(SymbolNotFound):
            asyncio.run(run())
        assert exchange.calls == []

    def test_known_symbol_accepted(self, store, exchange):
        """Listed symbols pass the check."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 1)}
        catalog = SymbolCatalog(exchange)
        service = HistoryService(store=store, fetcher=BackfillFetcher(exchange), catalog=catalog)

        async def run():
            await catalog.refresh()
            return await service.get_history("ETHUSDT", "1", FROM_S, FROM_S + 60)

        assert len(asyncio.run(run())) == 1


class TestPrime:
    """Cache warm-up results."""

    def test_prime_reports_fetch(self, service, exchange):
        """Priming an empty cache reports gaps and fetched candles."""
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 5)}

        result = asyncio.run(service.prime("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert result.status == "success"
        assert result.interval == "1m"
        assert result.gaps_found == 1
        assert result.candles_fetched == 5
        assert result.candles_stored == 5

    def test_prime_cache_hit(self, service, exchange, store):
        """Priming a covered window makes no requests."""
        asyncio.run(store.save(KEY, make_series(BASE_TS, 5)))

        result = asyncio.run(service.prime("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert result.status == "cache_hit"
        assert exchange.calls == []

    def test_prime_captures_errors(self, service, exchange):
        """Errors are reported in the result rather than raised."""
        exchange.error = UpstreamFetchError("timeout")

        result = asyncio.run(service.prime("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert result.status == "error"
        assert result.errors == ["timeout"]

    def test_prime_rejects_empty_window(self, service, exchange):
        """An inverted window is an error for the batch job."""
        result = asyncio.run(service.prime("BTCUSDT", "1", FROM_S, FROM_S))

        assert result.status == "error"
        assert exchange.calls == []


class TestOpenCandles:
    """Candles still open at request time are served but not cached."""

    def test_open_candle_refetched_after_close(self, store, exchange):
        """The current candle is fetched again once the exchange finalizes it."""
        now = [FROM_S + 3 * 60 + 30]
        service = HistoryService(store=store, fetcher=BackfillFetcher(exchange), clock=lambda: now[0])
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 4)}

        first = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert first.c == [100.0, 101.0, 102.0, 103.0]
        assert [c.timestamp for c in asyncio.run(store.load(KEY))] == [
            BASE_TS, BASE_TS + MINUTE_MS, BASE_TS + 2 * MINUTE_MS
        ]

        exchange.timeline[BASE_TS + 3 * MINUTE_MS] = make_candle(BASE_TS + 3 * MINUTE_MS, price=150.0)
        exchange.timeline[BASE_TS + 4 * MINUTE_MS] = make_candle(BASE_TS + 4 * MINUTE_MS, price=160.0)
        now[0] = FROM_S + 5 * 60 + 1

        second = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert second.c == [100.0, 101.0, 102.0, 150.0, 160.0]
        assert exchange.calls[-1]["start_ms"] == BASE_TS + 3 * MINUTE_MS
        assert len(asyncio.run(store.load(KEY))) == 5

    def test_only_open_candle_fetched_skips_save(self, store, exchange):
        """A backfill returning just the open candle leaves no file behind."""
        service = HistoryService(
            store=store, fetcher=BackfillFetcher(exchange), clock=lambda: FROM_S + 30
        )
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 1)}

        result = asyncio.run(service.get_history("BTCUSDT", "1", FROM_S, FROM_S + 60))

        assert result.t == [FROM_S]
        assert not store.path_for(KEY).exists()

    def test_prime_counts_only_closed_candles(self, store, exchange):
        """Priming reports what was persisted, not the open candle."""
        service = HistoryService(
            store=store, fetcher=BackfillFetcher(exchange), clock=lambda: FROM_S + 4 * 60 + 10
        )
        exchange.timeline = {c.timestamp: c for c in make_series(BASE_TS, 5)}

        result = asyncio.run(service.prime("BTCUSDT", "1", FROM_S, FROM_S + 5 * 60))

        assert result.candles_fetched == 5
        assert result.candles_stored == 4
