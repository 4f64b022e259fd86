"""DuckDB-backed stores for trades and order book snapshots."""

from tickvault.storage.db import get_connection, init_schema
from tickvault.storage.migrations import MIGRATIONS, SchemaChange, SchemaEvolutionManager
from tickvault.storage.range_index import RangeQueryIndex, TimeWindow
from tickvault.storage.results import BulkWriteSummary, WriteOutcome
from tickvault.storage.snapshots import SnapshotStore
from tickvault.storage.trades import TradeStore

__all__ = [
    "MIGRATIONS",
    "BulkWriteSummary",
    "RangeQueryIndex",
    "SchemaChange",
    "SchemaEvolutionManager",
    "SnapshotStore",
    "TimeWindow",
    "TradeStore",
    "WriteOutcome",
    "get_connection",
    "init_schema",
]
