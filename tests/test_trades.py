"""Trade store: dedup under replay, validation, range scans."""

import uuid
from decimal import Decimal

import duckdb
import pytest
from conftest import T0, make_trade

from tickvault.errors import ValidationError
from tickvault.models import MarketType, Trade
from tickvault.storage.results import WriteOutcome
from tickvault.storage.trades import TradeStore


@pytest.fixture
def store(temp_db, clock):
    return TradeStore(temp_db, clock=clock)


def test_replayed_trade_stored_once(store):
    """Example scenario: same key twice -> one row, visible in [900, 1100]."""
    assert store.insert(make_trade(trade_id=100, event_time=1000)) is WriteOutcome.INSERTED
    assert store.insert(make_trade(trade_id=100, event_time=1000)) is WriteOutcome.DUPLICATE
    assert store.count() == 1
    rows = store.query_range("BTCUSDT", "SPOT", 900, 1100)
    assert len(rows) == 1
    assert rows[0].trade_id == 100
    assert rows[0].event_time == 1000


def test_first_write_wins(store):
    store.insert(make_trade(price="100.5", quantity="1", event_time=1000))
    outcome = store.insert(make_trade(price="999", quantity="7", event_time=2000, is_buyer_maker=False))
    assert outcome is WriteOutcome.DUPLICATE
    (row,) = store.query_range("BTCUSDT", MarketType.SPOT, None, None)
    assert row.price == Decimal("100.5")
    assert row.quantity == Decimal("1")
    assert row.event_time == 1000
    assert row.is_buyer_maker is True


def test_distinct_keys_stored_independently(store):
    store.insert(make_trade(trade_id=1))
    store.insert(make_trade(trade_id=2))
    store.insert(make_trade(trade_id=1, symbol="ETHUSDT"))
    store.insert(make_trade(trade_id=1, market_type="FUTURES"))
    assert store.count() == 4
    assert store.count(symbol="BTCUSDT") == 3
    assert store.count(market_type="futures") == 1


def test_range_is_inclusive_and_ordered(store):
    for i, t in enumerate([1200, 900, 1100, 500, 1000]):
        store.insert(make_trade(trade_id=i, event_time=t))
    rows = store.query_range("BTCUSDT", "SPOT", 900, 1100)
    assert [r.event_time for r in rows] == [900, 1000, 1100]
    assert store.query_range("BTCUSDT", "SPOT", 1300, 2000) == []
    assert store.query_range("BTCUSDT", "FUTURES", 0, 2000) == []
    assert [r.event_time for r in store.query_range("BTCUSDT", "SPOT", None, 900)] == [500, 900]


def test_inverted_window_rejected(store):
    with pytest.raises(ValidationError):
        store.query_range("BTCUSDT", "SPOT", 2000, 1000)


def test_writer_assigns_id_and_created_at(temp_db, clock):
    fixed = uuid.UUID("12345678-1234-5678-1234-567812345678")
    store = TradeStore(temp_db, clock=clock, id_factory=lambda: fixed)
    store.insert(make_trade())
    (row,) = store.query_range("BTCUSDT", "SPOT", None, None)
    assert row.id == fixed
    assert row.created_at == T0


def test_decimal_precision_preserved(store):
    store.insert(make_trade(price="0.000000012345678901", quantity="123456789.000000000000000001"))
    (row,) = store.query_range("BTCUSDT", "SPOT", None, None)
    assert row.price == Decimal("0.000000012345678901")
    assert row.quantity == Decimal("123456789.000000000000000001")


@pytest.mark.parametrize(
    "overrides",
    [
        {"price": 42000.5},
        {"price": "not-a-number"},
        {"quantity": "-1"},
        {"price": "0.0000000000000000001"},
        {"symbol": "X" * 21},
        {"symbol": ""},
        {"market_type": "OPTIONS"},
        {"event_time": None},
    ],
)
def test_invalid_trade_rejected_before_write(store, overrides):
    with pytest.raises(ValidationError):
        store.insert(make_trade(**overrides))
    assert store.count() == 0


def test_missing_field_rejected(store):
    data = make_trade()
    del data["seller_order_id"]
    with pytest.raises(ValidationError):
        store.insert(data)
    assert store.count() == 0


def test_insert_accepts_model(store):
    trade = Trade.model_validate(make_trade(market_type="futures"))
    assert trade.market_type is MarketType.FUTURES
    assert store.insert(trade) is WriteOutcome.INSERTED
    assert store.insert(trade) is WriteOutcome.DUPLICATE


def test_insert_many_counts_duplicates(store):
    batch = [make_trade(trade_id=i, event_time=1000 + i) for i in range(5)]
    store.insert_many(batch[:2])
    summary = store.insert_many(batch)
    assert summary.inserted == 3
    assert summary.duplicates == 2
    assert summary.total == 5
    assert store.count() == 5


def test_other_constraint_violations_propagate(temp_db, clock):
    fixed = uuid.uuid4()
    store = TradeStore(temp_db, clock=clock, id_factory=lambda: fixed)
    store.insert(make_trade(trade_id=1))
    # Primary key collision on a new dedup key is not a replay
    with pytest.raises(duckdb.ConstraintException):
        store.insert(make_trade(trade_id=2))
    assert store.count() == 1


@pytest.mark.parametrize(
    "price, expected",
    [
        ("1E+5", Decimal("100000")),
        ("4.2E+4", Decimal("42000")),
        (Decimal("42000").normalize(), Decimal("42000")),
        (Decimal("1.5E+3"), Decimal("1500")),
        ("1.25E-7", Decimal("0.000000125")),
    ],
)
def test_exponent_form_decimals_stored_exactly(store, price, expected):
    store.insert(make_trade(price=price, quantity="1E+1"))
    (row,) = store.query_range("BTCUSDT", "SPOT", None, None)
    assert row.price == expected
    assert row.quantity == Decimal("10")


def test_insert_many_writes_in_event_time_order(temp_db, store):
    batch = [make_trade(trade_id=i, event_time=t) for i, t in enumerate([5000, 1000, 3000, 2000, 4000])]
    batch.append(make_trade(trade_id=1, event_time=9000))
    summary = store.insert_many(batch)
    assert summary.inserted == 5
    assert summary.duplicates == 1
    stored = temp_db.execute("SELECT event_time FROM trades ORDER BY rowid").fetchall()
    assert [r[0] for r in stored] == [1000, 2000, 3000, 4000, 5000]
