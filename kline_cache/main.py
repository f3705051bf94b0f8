"""Kline history cache service.

Serves chart history from the on-disk cache, backfilling gaps from Binance.
"""

import logging
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from .api.app import create_app
from .cache.backfill import BackfillFetcher
from .cache.candle_store import CandleStore
from .config import CacheConfig
from .history.history_service import HistoryService
from .sources.binance import BinanceExchangeAdapter
from .sources.symbols import SymbolCatalog

logger = logging.getLogger(__name__)


def build_service(config: CacheConfig):
    """Wire the exchange adapter, store, catalog and history service.

    Returns:
        Tuple of (HistoryService, SymbolCatalog)
    """
    exchange_adapter = BinanceExchangeAdapter(
        base_url=config.binance_base_url,
        timeout=config.request_timeout_seconds,
        min_request_interval=config.min_request_interval_seconds,
    )
    catalog = SymbolCatalog(exchange_adapter, refresh_seconds=config.symbols_refresh_seconds)
    service = HistoryService(
        store=CandleStore(config.cache_dir),
        fetcher=BackfillFetcher(exchange_adapter, page_size=config.max_page),
        catalog=catalog,
        max_page=config.max_page,
    )
    return service, catalog


def main():
    """Main entry point for the history server."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    try:
        config = CacheConfig.from_env()
        config.validate()
    except ValueError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"❌ Configuration invalid: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logger.info("🚀 Starting kline history cache...")
    logger.info(f"   - Cache dir: {config.cache_dir}")
    logger.info(f"   - Binance: {config.binance_base_url}")
    logger.info(f"   - Max page: {config.max_page}")

    service, catalog = build_service(config)
    app = create_app(service, catalog)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
