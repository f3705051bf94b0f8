"""Result models for history and backfill operations."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .candle import Candle


@dataclass
class BackfillResult:
    """Result of walking a gap list against the exchange."""

    candles: List[Candle]
    requests_made: int
    duplicates: int
    gaps_abandoned: int


@dataclass
class HistoryResult:
    """Column-oriented bars for a chart history response."""

    t: List[int] = field(default_factory=list)
    o: List[float] = field(default_factory=list)
    h: List[float] = field(default_factory=list)
    l: List[float] = field(default_factory=list)
    c: List[float] = field(default_factory=list)
    v: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.t)

    def to_dict(self) -> Dict[str, Any]:
        """Render the UDF history envelope."""
        return {
            "s": "ok",
            "t": self.t,
            "o": self.o,
            "h": self.h,
            "l": self.l,
            "c": self.c,
            "v": self.v,
        }


@dataclass
class PrimeResult:
    """Result of warming the cache for one symbol."""

    symbol: str
    interval: str
    gaps_found: int
    candles_fetched: int
    candles_stored: int
    status: str  # "success", "cache_hit", "error"
    execution_time_ms: int
    errors: Optional[List[str]] = None

    def __post_init__(self):
        """Initialize errors list if None."""
        if self.errors is None:
            self.errors = []
