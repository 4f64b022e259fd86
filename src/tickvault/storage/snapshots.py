"""Persist order book snapshots - append-only time series, no dedup."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from tickvault.errors import ValidationError
from tickvault.models import MarketType, OrderBookSnapshot, levels_to_json, market_value, parse_snapshot
from tickvault.storage.db import Clock, to_db_timestamp, utc_now
from tickvault.storage.range_index import (
    SNAPSHOT_COLUMNS,
    RangeQueryIndex,
    TimeWindow,
    snapshot_from_row,
)
from tickvault.storage.results import WriteOutcome

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from tickvault.config.settings import Settings

log = structlog.get_logger(__name__)


class SnapshotStore:
    """
    Appends book captures. Many rows per symbol (even per last_update_id) are expected;
    the caller owns capture cadence.
    With enforce_sequence=True a last_update_id lower than the latest stored one for the
    same symbol/market is rejected.
    """

    def __init__(
        self,
        conn: DuckDBPyConnection,
        clock: Clock = utc_now,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
        enforce_sequence: bool = False,
    ) -> None:
        self.conn = conn
        self.clock = clock
        self.id_factory = id_factory
        self.enforce_sequence = enforce_sequence
        self.index = RangeQueryIndex(conn)

    @classmethod
    def from_settings(cls, conn: DuckDBPyConnection, settings: Settings, **kwargs: Any) -> SnapshotStore:
        return cls(conn, enforce_sequence=settings.enforce_snapshot_sequence, **kwargs)

    def append(self, snapshot: OrderBookSnapshot | Mapping[str, Any]) -> WriteOutcome:
        """Append one snapshot row."""
        snapshot = parse_snapshot(snapshot)
        if self.enforce_sequence:
            self._check_sequence(snapshot)
        self.conn.execute(
            """
            INSERT INTO order_books (id, last_update_id, symbol, market_type, bids, asks, created_at)
            VALUES (CAST(? AS UUID), ?, ?, ?, ?, ?, CAST(? AS TIMESTAMPTZ))
            """,
            [
                str(self.id_factory()),
                snapshot.last_update_id,
                snapshot.symbol,
                snapshot.market_type.value,
                levels_to_json(snapshot.bids),
                levels_to_json(snapshot.asks),
                to_db_timestamp(self.clock()),
            ],
        )
        return WriteOutcome.INSERTED

    def _check_sequence(self, snapshot: OrderBookSnapshot) -> None:
        row = self.conn.execute(
            "SELECT MAX(last_update_id) FROM order_books WHERE symbol = ? AND market_type = ?",
            [snapshot.symbol, snapshot.market_type.value],
        ).fetchone()
        latest = row[0]
        if latest is not None and snapshot.last_update_id < latest:
            log.warning(
                "snapshot_sequence_regression",
                symbol=snapshot.symbol,
                market_type=snapshot.market_type.value,
                last_update_id=snapshot.last_update_id,
                latest=latest,
            )
            raise ValidationError(
                f"last_update_id {snapshot.last_update_id} is behind stored {latest} for {snapshot.symbol}"
            )

    def query_range(
        self,
        symbol: str,
        market_type: MarketType | str,
        start_time: datetime | int | None,
        end_time: datetime | int | None,
    ) -> list[OrderBookSnapshot]:
        """Snapshots captured within [start_time, end_time], ascending by created_at.
        Bounds are datetimes or epoch-ms ints."""
        return self.index.snapshots(symbol, market_type, TimeWindow.of_timestamps(start_time, end_time))

    def latest(self, symbol: str, market_type: MarketType | str = MarketType.SPOT) -> OrderBookSnapshot | None:
        row = self.conn.execute(
            f"""
            SELECT {SNAPSHOT_COLUMNS} FROM order_books
            WHERE symbol = ? AND market_type = ?
            ORDER BY created_at DESC, last_update_id DESC
            LIMIT 1
            """,
            [symbol, market_value(market_type)],
        ).fetchone()
        return snapshot_from_row(row) if row else None
