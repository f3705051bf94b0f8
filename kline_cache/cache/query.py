"""Range queries over a candle sequence."""

from typing import List, Sequence

from ..models.candle import Candle
from ..models.results import HistoryResult


def slice_candles(candles: Sequence[Candle], from_ms: int, to_ms: int) -> List[Candle]:
    """Candles with ``from_ms <= timestamp < to_ms``."""
    return [candle for candle in candles if from_ms <= candle.timestamp < to_ms]


def to_columns(candles: Sequence[Candle]) -> HistoryResult:
    """Project candles into chart columns (seconds and floats)."""
    return HistoryResult(
        t=[candle.timestamp // 1000 for candle in candles],
        o=[float(candle.open) for candle in candles],
        h=[float(candle.high) for candle in candles],
        l=[float(candle.low) for candle in candles],
        c=[float(candle.close) for candle in candles],
        v=[float(candle.volume) for candle in candles],
    )
