"""OrderBookSnapshot, PriceLevel - captured L2 book state."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tickvault.models.trade import (
    DECIMAL_PLACES,
    INT64_MAX,
    MAX_DIGITS,
    MarketType,
    coerce_market_type,
    reject_float,
)


class PriceLevel(BaseModel):
    """Single price level (price, quantity). Accepts the venue's [price, qty] pair form."""

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(..., ge=0, max_digits=MAX_DIGITS, decimal_places=DECIMAL_PLACES)
    quantity: Decimal = Field(..., ge=0, max_digits=MAX_DIGITS, decimal_places=DECIMAL_PLACES)

    @field_validator("price", "quantity", mode="before")
    @classmethod
    def exact_decimal(cls, v: Any) -> Any:
        return reject_float(v)

    @model_validator(mode="before")
    @classmethod
    def from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("price level must be a [price, quantity] pair")
            return {"price": data[0], "quantity": data[1]}
        return data

    def as_pair(self) -> list[str]:
        # Fixed-point text keeps every digit and avoids exponent notation
        return [format(self.price, "f"), format(self.quantity, "f")]


def _check_order(levels: list[PriceLevel], descending: bool, side: str) -> list[PriceLevel]:
    for prev, cur in zip(levels, levels[1:]):
        ok = cur.price < prev.price if descending else cur.price > prev.price
        if not ok:
            order = "descending" if descending else "ascending"
            raise ValueError(f"{side} must be strictly {order} by price ({prev.price} then {cur.price})")
    return levels


class OrderBookSnapshot(BaseModel):
    """Full L2 book capture. Bids best-first (descending), asks best-first (ascending)."""

    model_config = ConfigDict(frozen=True)

    last_update_id: int = Field(..., ge=0, le=INT64_MAX)
    symbol: str = Field(..., min_length=1, max_length=20)
    bids: list[PriceLevel]
    asks: list[PriceLevel]
    market_type: MarketType = MarketType.SPOT
    # Assigned by the store on write
    id: UUID | None = None
    created_at: datetime | None = None

    @field_validator("market_type", mode="before")
    @classmethod
    def normalize_market_type(cls, v: Any) -> Any:
        return coerce_market_type(v)

    @field_validator("bids")
    @classmethod
    def bids_descending(cls, v: list[PriceLevel]) -> list[PriceLevel]:
        return _check_order(v, descending=True, side="bids")

    @field_validator("asks")
    @classmethod
    def asks_ascending(cls, v: list[PriceLevel]) -> list[PriceLevel]:
        return _check_order(v, descending=False, side="asks")


def levels_to_json(levels: list[PriceLevel]) -> str:
    """Serialize levels as a JSON array of [price, quantity] decimal strings."""
    return json.dumps([lvl.as_pair() for lvl in levels])


def levels_from_json(raw: str | list[Any]) -> list[PriceLevel]:
    """Decode the stored array-of-arrays document back into PriceLevels."""
    data = json.loads(raw) if isinstance(raw, str) else raw
    return [PriceLevel(price=Decimal(p), quantity=Decimal(q)) for p, q in data]
