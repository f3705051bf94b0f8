"""Gap detection over a stored candle sequence."""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..models.candle import Candle

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGE = 999


@dataclass(frozen=True)
class Gap:
    """Inclusive span ``[from_ms, to_ms]`` of missing candle open times."""

    from_ms: int
    to_ms: int


def split_gap(gap: Gap, step_ms: int, max_page: int = DEFAULT_MAX_PAGE) -> List[Gap]:
    """Split a gap into sub-gaps of at most ``max_page`` candles each."""
    pages = []
    cursor = gap.from_ms
    while cursor <= gap.to_ms:
        page = Gap(cursor, min(cursor + step_ms * (max_page - 1), gap.to_ms))
        if page.from_ms <= page.to_ms:
            pages.append(page)
        cursor += step_ms * max_page
    return pages


def find_gaps(
    stored: Sequence[Candle],
    from_ms: int,
    to_ms: int,
    step_ms: int,
    max_page: int = DEFAULT_MAX_PAGE,
) -> List[Gap]:
    """Find the page-sized spans missing from ``stored`` for a request window.

    Args:
        stored: Stored candles, sorted ascending and unique by timestamp
        from_ms: Window start (inclusive)
        to_ms: Window end (exclusive)
        step_ms: Interval step in milliseconds
        max_page: Maximum candles per returned gap

    Returns:
        Gaps in chronological order: before the first stored candle, between
        stored candles, then after the last one. Empty on a cache hit.
    """
    raw: List[Gap] = []

    if not stored:
        raw.append(Gap(from_ms, to_ms - step_ms))
    else:
        first_ts = stored[0].timestamp
        last_ts = stored[-1].timestamp

        if first_ts > from_ms:
            raw.append(Gap(from_ms, min(first_ts - step_ms, to_ms)))

        for prev, nxt in zip(stored, stored[1:]):
            if nxt.timestamp - prev.timestamp > step_ms:
                gap = Gap(prev.timestamp + step_ms, nxt.timestamp - step_ms)
                if gap.to_ms < from_ms or gap.from_ms >= to_ms:
                    logger.info(
                        f"Refetching interior gap outside window from_ms={gap.from_ms} "
                        f"to_ms={gap.to_ms} (window from_ms={from_ms} to_ms={to_ms})"
                    )
                raw.append(gap)

        if last_ts < to_ms - step_ms:
            raw.append(Gap(last_ts + step_ms, to_ms - step_ms))

    gaps = [page for gap in raw for page in split_gap(gap, step_ms, max_page)]

    if gaps:
        for gap in gaps:
            logger.debug(f"Gap from_ms={gap.from_ms} to_ms={gap.to_ms}")
    else:
        logger.debug(f"Cache covers window from_ms={from_ms} to_ms={to_ms}")
    return gaps
