"""TickVault - idempotent storage of venue trades and order-book snapshots."""

__version__ = "0.1.0"
