"""Kline intervals and the chart resolution table."""

from enum import Enum
from typing import Dict, List

from ..errors import InvalidResolution


class Interval(str, Enum):
    """Exchange kline interval."""

    ONE_MINUTE = "1m"
    THREE_MINUTE = "3m"
    FIVE_MINUTE = "5m"
    FIFTEEN_MINUTE = "15m"
    THIRTY_MINUTE = "30m"
    ONE_HOUR = "1h"
    TWO_HOUR = "2h"
    FOUR_HOUR = "4h"
    SIX_HOUR = "6h"
    EIGHT_HOUR = "8h"
    TWELVE_HOUR = "12h"
    ONE_DAY = "1d"
    THREE_DAY = "3d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1M"

    @property
    def ms(self) -> int:
        """Step size in milliseconds."""
        return interval_to_ms(self.value)


RESOLUTION_INTERVALS: Dict[str, Interval] = {
    "1": Interval.ONE_MINUTE,
    "3": Interval.THREE_MINUTE,
    "5": Interval.FIVE_MINUTE,
    "15": Interval.FIFTEEN_MINUTE,
    "30": Interval.THIRTY_MINUTE,
    "60": Interval.ONE_HOUR,
    "120": Interval.TWO_HOUR,
    "240": Interval.FOUR_HOUR,
    "360": Interval.SIX_HOUR,
    "480": Interval.EIGHT_HOUR,
    "720": Interval.TWELVE_HOUR,
    "D": Interval.ONE_DAY,
    "1D": Interval.ONE_DAY,
    "3D": Interval.THREE_DAY,
    "W": Interval.ONE_WEEK,
    "1W": Interval.ONE_WEEK,
    "M": Interval.ONE_MONTH,
    "1M": Interval.ONE_MONTH,
}

# Advertised to the chart; the single-letter aliases are accepted but not listed
SUPPORTED_RESOLUTIONS: List[str] = [
    "1", "3", "5", "15", "30", "60", "120", "240", "360", "480", "720", "1D", "3D", "1W", "1M",
]

_UNIT_MS = {
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    # Fixed 30-day month; calendar months are not modelled
    "M": 30 * 24 * 60 * 60 * 1000,
}


def parse_resolution(resolution: str) -> Interval:
    """Map a chart resolution (e.g. "60", "1D") to an interval.

    Raises:
        InvalidResolution: If the resolution is not in the table
    """
    interval = RESOLUTION_INTERVALS.get(str(resolution).strip()) if resolution is not None else None
    if interval is None:
        raise InvalidResolution(f"Unsupported resolution: {resolution!r}")
    return interval


def interval_to_ms(interval: str) -> int:
    """Convert an interval string such as "15m" or "1M" to milliseconds.

    Raises:
        InvalidResolution: If the unit suffix or the count is malformed
    """
    if not interval or len(interval) < 2:
        raise InvalidResolution(f"Malformed interval: {interval!r}")

    unit = interval[-1]
    count = interval[:-1]
    if unit not in _UNIT_MS or not count.isdigit() or int(count) <= 0:
        raise InvalidResolution(f"Malformed interval: {interval!r}")

    return int(count) * _UNIT_MS[unit]
