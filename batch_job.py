#!/usr/bin/env python3
"""Batch job entry point for warming the kline cache."""

import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dateutil import parser as dateparser
from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from kline_cache.config import CacheConfig  # noqa: E402
from kline_cache.main import build_service  # noqa: E402


def parse_time(value: str) -> datetime:
    """Parse an ISO timestamp, assuming UTC when no offset is given."""
    parsed = dateparser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_window() -> tuple:
    """Read the priming window from PRIME_START_TIME/PRIME_END_TIME or PRIME_DAYS."""
    prime_days = os.getenv("PRIME_DAYS")
    start_str = os.getenv("PRIME_START_TIME")
    end_str = os.getenv("PRIME_END_TIME")

    if prime_days and (start_str or end_str):
        raise ValueError(
            "PRIME_DAYS cannot be used together with "
            "PRIME_START_TIME/PRIME_END_TIME. Use one or the other."
        )

    if start_str or end_str:
        if not (start_str and end_str):
            raise ValueError(
                "Both PRIME_START_TIME and PRIME_END_TIME must be "
                "provided together, or neither should be provided"
            )
        start_time = parse_time(start_str)
        end_time = parse_time(end_str)
    else:
        end_time = datetime.now(timezone.utc)
        start_time = end_time - timedelta(days=int(prime_days or "1"))

    if start_time >= end_time:
        raise ValueError("PRIME_START_TIME must be before PRIME_END_TIME")
    return start_time, end_time


async def main():
    """Prime the cache for every configured symbol."""
    logger.info("🚀 Starting cache priming job...")

    try:
        config = CacheConfig.from_env()
        config.validate()
        logger.info("✅ Configuration loaded")
        logger.info(f"   - Cache dir: {config.cache_dir}")

        symbols = os.getenv("PRIME_SYMBOLS", "BTCUSDT,ETHUSDT").split(",")
        symbols = [s.strip() for s in symbols if s.strip()]
        resolution = os.getenv("PRIME_RESOLUTION", "60")
        start_time, end_time = resolve_window()

        logger.info(f"   - Symbols: {symbols}")
        logger.info(f"   - Resolution: {resolution}")
        logger.info(f"   - Window: {start_time} to {end_time}")

        service, catalog = build_service(config)
        await catalog.refresh()

        failed = 0
        for symbol in symbols:
            result = await service.prime(
                symbol, resolution, int(start_time.timestamp()), int(end_time.timestamp())
            )
            if result.status == "error":
                failed += 1
                logger.error(f"❌ {symbol}: {result.errors}")
            else:
                logger.info(
                    f"✅ {symbol}: {result.status}, {result.gaps_found} gaps, "
                    f"{result.candles_fetched} fetched, {result.candles_stored} stored "
                    f"({result.execution_time_ms} ms)"
                )

        if failed:
            logger.error(f"Priming completed with {failed} failed symbols")
            sys.exit(1)

        logger.info("✅ Priming completed")
        sys.exit(0)

    except Exception as e:
        logger.error(f"❌ Job failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
