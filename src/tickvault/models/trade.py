"""Trade - executed trade as stored in the trades table."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tickvault.errors import ValidationError

# DECIMAL(38, 18) storage bounds
MAX_DIGITS = 38
DECIMAL_PLACES = 18
INT64_MAX = 2**63 - 1


class MarketType(str, Enum):
    """Venue market segment."""

    SPOT = "SPOT"
    FUTURES = "FUTURES"


def coerce_market_type(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def reject_float(value: Any) -> Any:
    """Exact decimals only: venue prices arrive as strings, never binary floats."""
    if isinstance(value, float):
        raise ValueError("binary float is not an exact decimal; pass str or Decimal")
    return value


class Trade(BaseModel):
    """Executed trade. Unique per (trade_id, symbol, market_type)."""

    model_config = ConfigDict(frozen=True)

    event_time: int = Field(..., ge=0, le=INT64_MAX)  # ms epoch, venue clock
    symbol: str = Field(..., min_length=1, max_length=20)
    trade_id: int = Field(..., ge=0, le=INT64_MAX)
    price: Decimal = Field(..., ge=0, max_digits=MAX_DIGITS, decimal_places=DECIMAL_PLACES)
    quantity: Decimal = Field(..., ge=0, max_digits=MAX_DIGITS, decimal_places=DECIMAL_PLACES)
    buyer_order_id: int = Field(..., ge=0, le=INT64_MAX)
    seller_order_id: int = Field(..., ge=0, le=INT64_MAX)
    is_buyer_maker: bool
    market_type: MarketType = MarketType.SPOT
    # Assigned by the store on write
    id: UUID | None = None
    created_at: datetime | None = None

    @field_validator("market_type", mode="before")
    @classmethod
    def normalize_market_type(cls, v: Any) -> Any:
        return coerce_market_type(v)

    @field_validator("price", "quantity", mode="before")
    @classmethod
    def exact_decimal(cls, v: Any) -> Any:
        return reject_float(v)

    @property
    def key(self) -> tuple[int, str, str]:
        """Dedup key."""
        return (self.trade_id, self.symbol, self.market_type.value)


def market_value(market_type: MarketType | str) -> str:
    """Column value for a MarketType or its name ('spot' -> 'SPOT')."""
    if isinstance(market_type, MarketType):
        return market_type.value
    try:
        return MarketType(market_type.strip().upper()).value
    except ValueError as e:
        raise ValidationError(f"unknown market type {market_type!r}") from e
