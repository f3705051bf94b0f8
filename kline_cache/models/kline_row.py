"""Validated kline row for the cache file and upstream boundaries."""

from decimal import Decimal
from typing import Any, List, Sequence, Tuple

from pydantic import BaseModel, Field, field_validator

from .candle import Candle


class KlineRow(BaseModel):
    """Validated ``[timestamp_ms, open, high, low, close, volume, ...]`` row."""

    timestamp: int = Field(..., ge=0, description="Open time in epoch milliseconds")
    open: Decimal = Field(..., ge=0, description="Open price")
    high: Decimal = Field(..., ge=0, description="High price")
    low: Decimal = Field(..., ge=0, description="Low price")
    close: Decimal = Field(..., ge=0, description="Close price")
    volume: Decimal = Field(..., ge=0, description="Base volume")
    extra: Tuple[Any, ...] = Field(default=(), description="Trailing upstream fields")

    @field_validator("low")
    @classmethod
    def low_must_not_exceed_high(cls, v, info):
        """Validate that low <= high."""
        if "high" in info.data and v > info.data["high"]:
            raise ValueError(f"Low ({v}) must be <= high ({info.data['high']})")
        return v

    @classmethod
    def from_list(cls, row: Sequence[Any]) -> "KlineRow":
        """Build from a raw row as stored on disk or returned by the exchange.

        Raises:
            ValueError: If the row is not a list of at least six fields
            pydantic.ValidationError: If a field fails validation
        """
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
            raise ValueError(f"Kline row must be a list, got {type(row).__name__}")
        if len(row) < 6:
            raise ValueError(f"Kline row needs at least 6 fields, got {len(row)}")

        # Floats go through str() so Decimal sees the short repr, not the binary expansion
        def as_decimal_input(value: Any) -> Any:
            return str(value) if isinstance(value, float) else value

        return cls(
            timestamp=row[0],
            open=as_decimal_input(row[1]),
            high=as_decimal_input(row[2]),
            low=as_decimal_input(row[3]),
            close=as_decimal_input(row[4]),
            volume=as_decimal_input(row[5]),
            extra=tuple(row[6:]),
        )

    def to_candle(self) -> Candle:
        """Convert to the canonical candle."""
        return Candle(
            timestamp=self.timestamp,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
            extra=self.extra,
        )


def parse_rows(rows: List[Sequence[Any]]) -> List[Candle]:
    """Validate raw rows and convert them to candles."""
    return [KlineRow.from_list(row).to_candle() for row in rows]
