"""Trade persistence - append-only, deduplicated on (trade_id, symbol, market_type)."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

import duckdb
import structlog

from tickvault.errors import DuplicateTradeKey
from tickvault.models import MarketType, Trade, market_value, parse_trade
from tickvault.storage.db import Clock, to_db_timestamp, utc_now
from tickvault.storage.range_index import RangeQueryIndex, TimeWindow
from tickvault.storage.results import BulkWriteSummary, WriteOutcome

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

INSERT_TRADE_SQL = """
INSERT INTO trades (
    id, event_time, symbol, market_type, trade_id, price, quantity,
    buyer_order_id, seller_order_id, is_buyer_maker, created_at
) VALUES (
    CAST(? AS UUID), ?, ?, ?, ?, CAST(? AS DECIMAL(38, 18)), CAST(? AS DECIMAL(38, 18)),
    ?, ?, ?, CAST(? AS TIMESTAMPTZ)
)
"""


class TradeStore:
    """Writes and reads executed trades. Replays of the same trade are reported as DUPLICATE."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        clock: Clock = utc_now,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ) -> None:
        self.conn = conn
        self.clock = clock
        self.id_factory = id_factory
        self.index = RangeQueryIndex(conn)

    def insert(self, trade: Trade | Mapping[str, Any]) -> WriteOutcome:
        """Store one trade. First write wins; a repeated key returns DUPLICATE."""
        trade = parse_trade(trade)
        try:
            self._write(trade, self.clock())
        except DuplicateTradeKey as e:
            log.debug("trade_duplicate", trade_id=e.trade_id, symbol=e.symbol, market_type=e.market_type)
            return WriteOutcome.DUPLICATE
        return WriteOutcome.INSERTED

    def insert_many(self, trades: Iterable[Trade | Mapping[str, Any]]) -> BulkWriteSummary:
        """
        Store a batch. Each row is its own statement so duplicates do not abort the rest.
        Rows are written in event_time order so backfilled batches stay clustered for
        zonemap pruning; a key repeated inside the batch keeps its first occurrence.
        """
        summary = BulkWriteSummary()
        first: dict[tuple[int, str, str], Trade] = {}
        for item in trades:
            trade = parse_trade(item)
            if trade.key in first:
                summary.duplicates += 1
            else:
                first[trade.key] = trade
        for trade in sorted(first.values(), key=lambda t: (t.event_time, t.trade_id)):
            if self.insert(trade) is WriteOutcome.INSERTED:
                summary.inserted += 1
            else:
                summary.duplicates += 1
        log.info("trades_batch_stored", inserted=summary.inserted, duplicates=summary.duplicates)
        return summary

    def _write(self, trade: Trade, created_at: datetime) -> None:
        try:
            self.conn.execute(
                INSERT_TRADE_SQL,
                [
                    str(self.id_factory()),
                    trade.event_time,
                    trade.symbol,
                    trade.market_type.value,
                    trade.trade_id,
                    # Fixed-point text: the driver drops positive exponents (1E+5 -> 1)
                    format(trade.price, "f"),
                    format(trade.quantity, "f"),
                    trade.buyer_order_id,
                    trade.seller_order_id,
                    trade.is_buyer_maker,
                    to_db_timestamp(created_at),
                ],
            )
        except duckdb.ConstraintException as e:
            # Only the dedup index maps to DuplicateTradeKey; other violations propagate
            if self._key_stored(trade):
                raise DuplicateTradeKey(*trade.key) from e
            raise

    def _key_stored(self, trade: Trade) -> bool:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM trades WHERE trade_id = ? AND symbol = ? AND market_type = ?",
            list(trade.key),
        ).fetchone()
        return row[0] > 0

    def query_range(
        self,
        symbol: str,
        market_type: MarketType | str,
        start_time: int | None,
        end_time: int | None,
    ) -> list[Trade]:
        """Trades with start_time <= event_time <= end_time, ascending by event_time."""
        return self.index.trades(symbol, market_type, TimeWindow(start_time, end_time))

    def count(self, symbol: str | None = None, market_type: MarketType | str | None = None) -> int:
        conditions = ["1=1"]
        params: list[Any] = []
        if symbol:
            conditions.append("symbol = ?")
            params.append(symbol)
        if market_type:
            conditions.append("market_type = ?")
            params.append(market_value(market_type))
        where = " AND ".join(conditions)
        return self.conn.execute(f"SELECT COUNT(*) FROM trades WHERE {where}", params).fetchone()[0]
