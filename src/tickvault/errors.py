"""Exception hierarchy for the storage core."""

from __future__ import annotations


class TickVaultError(Exception):
    """Base class for all tickvault errors."""


class ValidationError(TickVaultError, ValueError):
    """Record or argument rejected before any write attempt."""


class DuplicateTradeKey(TickVaultError):
    """Unique (trade_id, symbol, market_type) already stored."""

    def __init__(self, trade_id: int, symbol: str, market_type: str) -> None:
        super().__init__(f"duplicate trade key ({trade_id}, {symbol}, {market_type})")
        self.trade_id = trade_id
        self.symbol = symbol
        self.market_type = market_type


class SchemaApplyError(TickVaultError):
    """A schema change failed; later changes were not applied."""

    def __init__(self, version: int | None, message: str) -> None:
        prefix = f"schema change {version} failed" if version is not None else "schema apply failed"
        super().__init__(f"{prefix}: {message}")
        self.version = version
