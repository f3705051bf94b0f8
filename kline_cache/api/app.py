"""HTTP datafeed endpoints for the chart front-end."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..errors import CacheWriteError, InvalidResolution, SymbolNotFound, UDFError, UpstreamFetchError
from ..history.history_service import HistoryService
from ..models.interval import SUPPORTED_RESOLUTIONS
from ..models.symbol import SymbolInfo
from ..sources.symbols import SymbolCatalog, normalize_symbol

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    SymbolNotFound: 404,
    InvalidResolution: 400,
    UpstreamFetchError: 502,
    CacheWriteError: 500,
}


def create_app(service: HistoryService, catalog: Optional[SymbolCatalog] = None) -> FastAPI:
    """Build the datafeed app around a history service.

    Args:
        service: Answers history queries
        catalog: Symbol catalog whose periodic refresh runs with the app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if catalog is not None:
            catalog.start()
        try:
            yield
        finally:
            if catalog is not None:
                await catalog.stop()

    app = FastAPI(title="Kline History Cache", lifespan=lifespan)
    app.state.history = service

    @app.exception_handler(UDFError)
    async def udf_error_handler(request: Request, exc: UDFError):
        status_code = ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc}", exc_info=exc)
        else:
            logger.info(f"{request.url.path} rejected: {exc}")
        return JSONResponse(status_code=status_code, content={"s": "error", "errmsg": str(exc)})

    @app.get("/config")
    async def config():
        return {
            "exchanges": [{"value": "BINANCE", "name": "Binance", "desc": "Binance Exchange"}],
            "symbols_types": [{"value": "crypto", "name": "Cryptocurrency"}],
            "supported_resolutions": SUPPORTED_RESOLUTIONS,
            "supports_search": False,
            "supports_group_request": False,
            "supports_marks": False,
            "supports_timescale_marks": False,
            "supports_time": True,
        }

    @app.get("/time", response_class=PlainTextResponse)
    async def server_time():
        return str(int(time.time()))

    @app.get("/symbols")
    async def symbols(symbol: str = Query(...)):
        name = normalize_symbol(symbol)
        if catalog is None:
            return SymbolInfo(symbol=name).to_udf()
        info = await catalog.symbol_info(name)
        if info is None:
            raise SymbolNotFound(f"Unknown symbol: {name}")
        return info.to_udf()

    @app.get("/history")
    async def history(
        symbol: str = Query(...),
        resolution: str = Query(...),
        from_: int = Query(..., alias="from"),
        to: int = Query(...),
    ):
        result = await app.state.history.get_history(symbol, resolution, from_, to)
        return result.to_dict()

    return app
