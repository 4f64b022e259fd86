"""Schema evolution - ordered, re-runnable, additive changes with an applied-versions ledger."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import duckdb
import structlog

from tickvault.errors import SchemaApplyError
from tickvault.storage.db import Clock, to_db_timestamp, utc_now

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

LEDGER_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version         BIGINT PRIMARY KEY,
    name            VARCHAR NOT NULL,
    applied_at      TIMESTAMPTZ NOT NULL
)
"""


@dataclass(frozen=True)
class SchemaChange:
    """One schema step. apply() must be a no-op when the change is already present."""

    version: int  # YYYYMMDDhhmmss
    name: str
    apply: Callable[[DuckDBPyConnection], None]


@dataclass
class MigrationReport:
    applied: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


def table_exists(conn: DuckDBPyConnection, table: str) -> bool:
    row = conn.execute(
        "SELECT COUNT(*) FROM information_schema.tables WHERE table_schema = 'main' AND table_name = ?",
        [table],
    ).fetchone()
    return row[0] > 0


def column_exists(conn: DuckDBPyConnection, table: str, column: str) -> bool:
    row = conn.execute(
        """
        SELECT COUNT(*) FROM information_schema.columns
        WHERE table_schema = 'main' AND table_name = ? AND column_name = ?
        """,
        [table, column],
    ).fetchone()
    return row[0] > 0


def table_indexes(conn: DuckDBPyConnection, table: str) -> list[tuple[str, str]]:
    """Return (index_name, create_sql) for explicit indexes on table."""
    rows = conn.execute(
        "SELECT index_name, sql FROM duckdb_indexes() WHERE schema_name = 'main' AND table_name = ? ORDER BY index_name",
        [table],
    ).fetchall()
    return [(r[0], r[1]) for r in rows]


# --- built-in changes -------------------------------------------------------

INIT_SQL = """
CREATE TABLE IF NOT EXISTS trades (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    event_time      BIGINT NOT NULL,
    symbol          VARCHAR(20) NOT NULL,
    trade_id        BIGINT NOT NULL,
    price           DECIMAL(38, 18) NOT NULL,
    quantity        DECIMAL(38, 18) NOT NULL,
    buyer_order_id  BIGINT NOT NULL,
    seller_order_id BIGINT NOT NULL,
    is_buyer_maker  BOOLEAN NOT NULL,
    created_at      TIMESTAMPTZ DEFAULT current_timestamp
);

-- Order book snapshots (append-only time series)
CREATE TABLE IF NOT EXISTS order_books (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    last_update_id  BIGINT NOT NULL,
    symbol          VARCHAR(20) NOT NULL,
    bids            JSON NOT NULL,
    asks            JSON NOT NULL,
    created_at      TIMESTAMPTZ DEFAULT current_timestamp
);

-- Range scans for backtesting
CREATE INDEX IF NOT EXISTS idx_trades_event_time ON trades (event_time);
CREATE INDEX IF NOT EXISTS idx_order_books_created_at ON order_books (created_at)
"""


def _run_script(conn: DuckDBPyConnection, script: str) -> None:
    for stmt in script.split(";"):
        stmt = stmt.strip()
        if stmt:
            conn.execute(stmt)


def create_base_tables(conn: DuckDBPyConnection) -> None:
    _run_script(conn, INIT_SQL)


def add_market_type(conn: DuckDBPyConnection) -> None:
    for table in ("trades", "order_books"):
        if column_exists(conn, table, "market_type"):
            continue
        # DuckDB will not ALTER a table that has dependent indexes
        indexes = table_indexes(conn, table)
        for name, _ in indexes:
            conn.execute(f'DROP INDEX "{name}"')
        conn.execute(f"ALTER TABLE {table} ADD COLUMN market_type VARCHAR(10) DEFAULT 'SPOT'")
        for _, create_sql in indexes:
            conn.execute(create_sql)
        log.info("column_added", table=table, column="market_type", rebuilt_indexes=[n for n, _ in indexes])


def add_trade_unique_index(conn: DuckDBPyConnection) -> None:
    # Fails on pre-existing duplicate keys; dedup those rows before running
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_trades_unique ON trades (trade_id, symbol, market_type)"
    )


MIGRATIONS: tuple[SchemaChange, ...] = (
    SchemaChange(20251228000000, "init", create_base_tables),
    SchemaChange(20251229000000, "add_market_type", add_market_type),
    SchemaChange(20251229000001, "add_trade_unique_idx", add_trade_unique_index),
)


class SchemaEvolutionManager:
    """Applies SchemaChanges in version order, one transaction per change."""

    def __init__(self, conn: DuckDBPyConnection, clock: Clock = utc_now) -> None:
        self.conn = conn
        self.clock = clock

    def ensure_ledger(self) -> None:
        self.conn.execute(LEDGER_SQL)

    def applied_versions(self) -> list[int]:
        self.ensure_ledger()
        rows = self.conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
        return [r[0] for r in rows]

    def pending(self, changes: Sequence[SchemaChange]) -> list[SchemaChange]:
        done = set(self.applied_versions())
        return [c for c in changes if c.version not in done]

    def apply(self, changes: Sequence[SchemaChange]) -> MigrationReport:
        """Apply every change not yet in the ledger. Raises SchemaApplyError and stops at the first failure."""
        versions = [c.version for c in changes]
        for prev, cur in zip(versions, versions[1:]):
            if cur <= prev:
                raise SchemaApplyError(cur, f"versions must be strictly increasing ({prev} then {cur})")
        try:
            done = set(self.applied_versions())
        except duckdb.Error as e:
            raise SchemaApplyError(None, f"cannot read migration ledger: {e}") from e

        report = MigrationReport()
        for change in changes:
            if change.version in done:
                report.skipped.append(change.version)
                continue
            self._apply_one(change)
            report.applied.append(change.version)
        log.info("schema_up_to_date", applied=report.applied, skipped=len(report.skipped))
        return report

    def _apply_one(self, change: SchemaChange) -> None:
        conn = self.conn
        try:
            conn.begin()
        except duckdb.Error as e:
            # Caller's open transaction is left alone
            log.error("migration_failed", version=change.version, name=change.name, error=str(e))
            raise SchemaApplyError(change.version, f"cannot start transaction: {e}") from e
        try:
            change.apply(conn)
            conn.execute(
                """
                INSERT INTO schema_migrations (version, name, applied_at)
                VALUES (?, ?, CAST(? AS TIMESTAMPTZ))
                ON CONFLICT (version) DO NOTHING
                """,
                [change.version, change.name, to_db_timestamp(self.clock())],
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            log.error("migration_failed", version=change.version, name=change.name, error=str(e))
            raise SchemaApplyError(change.version, str(e)) from e
        log.info("migration_applied", version=change.version, name=change.name)
