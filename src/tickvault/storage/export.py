"""Export stored trades to Parquet for offline backtesting."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from tickvault.models import MarketType, market_value
from tickvault.storage.range_index import TimeWindow

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _quote(s: str) -> str:
    return "'" + s.replace("'", "''") + "'"


def export_trades_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    symbol: str,
    market_type: MarketType | str = MarketType.SPOT,
    start_time: int | None = None,
    end_time: int | None = None,
) -> int:
    """Export one symbol/market trade window to a Parquet file, ordered by event_time. Returns row count."""
    window = TimeWindow(start_time, end_time)
    market = market_value(market_type)
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path_str = str(path)

    # COPY takes no bound parameters; values are inlined as literals
    conditions = [f"symbol = {_quote(symbol)}", f"market_type = {_quote(market)}"]
    if window.start is not None:
        conditions.append(f"event_time >= {int(window.start)}")
    if window.end is not None:
        conditions.append(f"event_time <= {int(window.end)}")
    where = " AND ".join(conditions)

    row = conn.execute(
        f"""
        COPY (
            SELECT CAST(id AS VARCHAR) AS id, event_time, symbol, market_type, trade_id, price, quantity,
                   buyer_order_id, seller_order_id, is_buyer_maker, created_at
            FROM trades WHERE {where} ORDER BY event_time ASC, trade_id ASC
        ) TO {_quote(path_str)} (FORMAT PARQUET)
        """
    ).fetchone()
    # COPY reports the rows it wrote
    count = int(row[0])
    log.info("trades_exported", symbol=symbol, market_type=market, rows=count, path=str(path))
    return count
