"""Time-ordered range access over trades (event_time) and order_books (created_at)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from tickvault.errors import ValidationError
from tickvault.models import MarketType, OrderBookSnapshot, Trade, levels_from_json, market_value
from tickvault.storage.db import from_epoch_us, to_db_timestamp

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Created by the init migration
RANGE_INDEXES = {
    "trades": "idx_trades_event_time",
    "order_books": "idx_order_books_created_at",
}

BUCKET_WIDTH_MS = {
    "minute": 60_000,
    "hour": 3_600_000,
}

TRADE_COLUMNS = (
    "CAST(id AS VARCHAR), event_time, symbol, trade_id, price, quantity, "
    "buyer_order_id, seller_order_id, is_buyer_maker, market_type, epoch_us(created_at)"
)
SNAPSHOT_COLUMNS = (
    "CAST(id AS VARCHAR), last_update_id, symbol, bids, asks, market_type, epoch_us(created_at)"
)


def as_timestamp(value: datetime | int) -> datetime:
    """Epoch-ms ints and naive datetimes both become aware UTC datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    return from_epoch_us(int(value) * 1000)


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive [start, end]; None leaves that side open."""

    start: Any = None
    end: Any = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValidationError(f"window start {self.start} is after end {self.end}")

    @classmethod
    def of_timestamps(cls, start: datetime | int | None, end: datetime | int | None) -> TimeWindow:
        return cls(
            as_timestamp(start) if start is not None else None,
            as_timestamp(end) if end is not None else None,
        )


@dataclass(frozen=True)
class TradeBucket:
    timestamp: int  # bucket start, epoch seconds
    close: Decimal
    volume: Decimal


def trade_from_row(row: tuple) -> Trade:
    return Trade(
        id=row[0],
        event_time=row[1],
        symbol=row[2],
        trade_id=row[3],
        price=row[4],
        quantity=row[5],
        buyer_order_id=row[6],
        seller_order_id=row[7],
        is_buyer_maker=row[8],
        market_type=row[9],
        created_at=from_epoch_us(row[10]) if row[10] is not None else None,
    )


def snapshot_from_row(row: tuple) -> OrderBookSnapshot:
    return OrderBookSnapshot(
        id=row[0],
        last_update_id=row[1],
        symbol=row[2],
        bids=levels_from_json(row[3]),
        asks=levels_from_json(row[4]),
        market_type=row[5],
        created_at=from_epoch_us(row[6]) if row[6] is not None else None,
    )


class RangeQueryIndex:
    """
    Bounded time-window scans. DuckDB does not use the ART indexes for >= / <=
    predicates; the filters are pushed into the table scan and pruned by row-group
    zonemaps (min/max of event_time / created_at). Pruning holds while rows are
    stored roughly in time order: live appends and TradeStore.insert_many (which
    sorts each batch) keep that. Rows inserted one by one far out of order widen
    the zonemaps and a window degrades to a full scan.
    """

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self.conn = conn

    def index_names(self) -> list[str]:
        """Range indexes currently present."""
        rows = self.conn.execute(
            "SELECT index_name FROM duckdb_indexes() WHERE index_name IN (?, ?) ORDER BY index_name",
            list(RANGE_INDEXES.values()),
        ).fetchall()
        return [r[0] for r in rows]

    def trades(self, symbol: str, market_type: MarketType | str, window: TimeWindow) -> list[Trade]:
        conditions = ["symbol = ?", "market_type = ?"]
        params: list[Any] = [symbol, market_value(market_type)]
        if window.start is not None:
            conditions.append("event_time >= ?")
            params.append(int(window.start))
        if window.end is not None:
            conditions.append("event_time <= ?")
            params.append(int(window.end))
        where = " AND ".join(conditions)
        rows = self.conn.execute(
            f"SELECT {TRADE_COLUMNS} FROM trades WHERE {where} ORDER BY event_time ASC, trade_id ASC",
            params,
        ).fetchall()
        return [trade_from_row(r) for r in rows]

    def snapshots(
        self, symbol: str, market_type: MarketType | str, window: TimeWindow
    ) -> list[OrderBookSnapshot]:
        conditions = ["symbol = ?", "market_type = ?"]
        params: list[Any] = [symbol, market_value(market_type)]
        if window.start is not None:
            conditions.append("created_at >= CAST(? AS TIMESTAMPTZ)")
            params.append(to_db_timestamp(window.start))
        if window.end is not None:
            conditions.append("created_at <= CAST(? AS TIMESTAMPTZ)")
            params.append(to_db_timestamp(window.end))
        where = " AND ".join(conditions)
        rows = self.conn.execute(
            f"SELECT {SNAPSHOT_COLUMNS} FROM order_books WHERE {where} ORDER BY created_at ASC, last_update_id ASC",
            params,
        ).fetchall()
        return [snapshot_from_row(r) for r in rows]

    def trade_bounds(self, symbol: str, market_type: MarketType | str) -> tuple[int | None, int | None]:
        """Earliest and latest stored event_time for a symbol/market."""
        row = self.conn.execute(
            "SELECT MIN(event_time), MAX(event_time) FROM trades WHERE symbol = ? AND market_type = ?",
            [symbol, market_value(market_type)],
        ).fetchone()
        return row[0], row[1]

    def bucketed_trades(
        self,
        symbol: str,
        market_type: MarketType | str,
        interval: str = "minute",
        window: TimeWindow | None = None,
    ) -> list[TradeBucket]:
        """
        Close price (last trade in bucket) and summed quantity per time bucket.
        interval: 'minute' or 'hour'. Buckets are keyed by their start in epoch seconds.
        """
        width = BUCKET_WIDTH_MS.get(interval)
        if width is None:
            raise ValidationError(f"unsupported interval {interval!r}; use one of {sorted(BUCKET_WIDTH_MS)}")
        window = window or TimeWindow()
        conditions = ["symbol = ?", "market_type = ?"]
        params: list[Any] = [symbol, market_value(market_type)]
        if window.start is not None:
            conditions.append("event_time >= ?")
            params.append(int(window.start))
        if window.end is not None:
            conditions.append("event_time <= ?")
            params.append(int(window.end))
        where = " AND ".join(conditions)
        rows = self.conn.execute(
            f"""
            SELECT
                (event_time // {width}) * {width} // 1000 AS bucket,
                first(price ORDER BY event_time DESC, trade_id DESC) AS close,
                SUM(quantity) AS volume
            FROM trades
            WHERE {where}
            GROUP BY bucket
            ORDER BY bucket ASC
            """,
            params,
        ).fetchall()
        return [TradeBucket(timestamp=int(r[0]), close=r[1], volume=r[2]) for r in rows]
