"""Canonical candle model."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, NamedTuple, Tuple


class CacheKey(NamedTuple):
    """Identifies one persisted candle sequence."""

    symbol: str
    interval: str


@dataclass(frozen=True)
class Candle:
    """OHLCV candle keyed by its open time in milliseconds.

    ``extra`` holds any trailing upstream fields (close time, quote volume,
    trade count, ...) so they survive a load/save cycle untouched.
    """

    timestamp: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    extra: Tuple[Any, ...] = ()

    def to_row(self) -> List[Any]:
        """Serialize to the persisted ``[ts, o, h, l, c, v, ...]`` row."""
        return [
            self.timestamp,
            str(self.open),
            str(self.high),
            str(self.low),
            str(self.close),
            str(self.volume),
            *self.extra,
        ]
