"""Exchange symbol metadata for chart symbol resolution."""

from dataclasses import dataclass
from typing import Any, Dict

from .interval import SUPPORTED_RESOLUTIONS


@dataclass(frozen=True)
class SymbolInfo:
    """Listed symbol with the fields the chart needs to draw it."""

    symbol: str
    base_asset: str = ""
    quote_asset: str = ""
    pricescale: int = 1  # 1 / tick size

    def to_udf(self) -> Dict[str, Any]:
        """Render the UDF symbol resolve response."""
        if self.base_asset and self.quote_asset:
            description = f"{self.base_asset} / {self.quote_asset}"
        else:
            description = self.symbol
        return {
            "symbol": self.symbol,
            "ticker": self.symbol,
            "name": self.symbol,
            "full_name": self.symbol,
            "description": description,
            "exchange": "BINANCE",
            "listed_exchange": "BINANCE",
            "type": "crypto",
            "currency_code": self.quote_asset,
            "session": "24x7",
            "timezone": "UTC",
            "minmov": 1,
            "minmov2": 0,
            "pricescale": self.pricescale,
            "supported_resolutions": SUPPORTED_RESOLUTIONS,
            "has_intraday": True,
            "has_daily": True,
            "has_weekly_and_monthly": True,
            "data_status": "streaming",
        }
