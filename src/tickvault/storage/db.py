"""DuckDB connection, clock and startup schema hook."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from tickvault.storage.migrations import MigrationReport

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """ISO text for CAST(? AS TIMESTAMPTZ). Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_epoch_us(us: int) -> datetime:
    """Rebuild an aware UTC datetime from epoch_us(created_at)."""
    seconds, micros = divmod(us, 1_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=micros)


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True for backtest readers while an ingestion process holds the write lock."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(str(path), read_only=read_only)
    # created_at round-trips through epoch_us; keep session time in UTC
    conn.execute("SET TimeZone = 'UTC'")
    return conn


def init_schema(conn: DuckDBPyConnection) -> MigrationReport:
    """Bring the database to the current schema. Run before any writer starts."""
    from tickvault.storage.migrations import MIGRATIONS, SchemaEvolutionManager

    return SchemaEvolutionManager(conn).apply(MIGRATIONS)
