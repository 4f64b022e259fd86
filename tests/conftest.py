"""Shared fixtures: temporary DuckDB files and a deterministic clock."""

import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from tickvault.storage.db import get_connection, init_schema

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class StepClock:
    """Returns T0, T0+step, T0+2*step, ... on successive calls."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


@pytest.fixture
def db_path():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    yield path
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def raw_db(db_path):
    """Connection to an empty database (no migrations applied)."""
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def temp_db(raw_db):
    """Connection with the full schema applied."""
    init_schema(raw_db)
    return raw_db


@pytest.fixture
def clock():
    return StepClock()


def make_trade(**overrides):
    trade = {
        "event_time": 1000,
        "symbol": "BTCUSDT",
        "trade_id": 100,
        "price": "42000.12345678",
        "quantity": "0.00150000",
        "buyer_order_id": 555,
        "seller_order_id": 556,
        "is_buyer_maker": True,
        "market_type": "SPOT",
    }
    trade.update(overrides)
    return trade


def make_snapshot(**overrides):
    snap = {
        "last_update_id": 1027024,
        "symbol": "BTCUSDT",
        "bids": [["4.00000000", "431.00000000"], ["3.99000000", "12.50000000"]],
        "asks": [["4.00000200", "12.00000000"], ["4.10000000", "1.00000000"]],
        "market_type": "SPOT",
    }
    snap.update(overrides)
    return snap
