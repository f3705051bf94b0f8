"""Merging fetched candles into a stored sequence."""

from typing import List, Sequence

from ..models.candle import Candle


def merge_candles(stored: Sequence[Candle], fetched: Sequence[Candle]) -> List[Candle]:
    """Combine two candle sequences into one sorted, timestamp-unique list.

    The sort is stable and stored candles come first, so on a timestamp tie
    the stored candle is kept.
    """
    combined = sorted([*stored, *fetched], key=lambda c: c.timestamp)

    merged: List[Candle] = []
    for candle in combined:
        if merged and merged[-1].timestamp == candle.timestamp:
            continue
        merged.append(candle)
    return merged
