"""Canonical records (Pydantic) - Trade, OrderBookSnapshot, PriceLevel."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic

from tickvault.errors import ValidationError
from tickvault.models.orderbook import OrderBookSnapshot, PriceLevel, levels_from_json, levels_to_json
from tickvault.models.trade import MarketType, Trade, market_value

__all__ = [
    "MarketType",
    "OrderBookSnapshot",
    "PriceLevel",
    "Trade",
    "levels_from_json",
    "levels_to_json",
    "market_value",
    "parse_snapshot",
    "parse_trade",
]


def parse_trade(data: Trade | Mapping[str, Any]) -> Trade:
    """Return a validated Trade; raise ValidationError on malformed input."""
    if isinstance(data, Trade):
        return data
    try:
        return Trade.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid trade: {e}") from e


def parse_snapshot(data: OrderBookSnapshot | Mapping[str, Any]) -> OrderBookSnapshot:
    """Return a validated OrderBookSnapshot; raise ValidationError on malformed input."""
    if isinstance(data, OrderBookSnapshot):
        return data
    try:
        return OrderBookSnapshot.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid order book snapshot: {e}") from e
