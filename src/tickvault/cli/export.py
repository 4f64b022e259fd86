"""Export subcommand: trades."""

from __future__ import annotations

from pathlib import Path

import typer

from tickvault.errors import ValidationError
from tickvault.storage.db import get_connection, init_schema
from tickvault.storage.export import export_trades_to_parquet

app = typer.Typer(help="Export stored data to Parquet")


@app.command("trades")
def trades(
    ctx: typer.Context,
    symbol: str = typer.Option(..., "--symbol", "-s", help="Instrument symbol, e.g. BTCUSDT"),
    market_type: str = typer.Option("SPOT", "--market-type", "-m", help="SPOT or FUTURES"),
    start: int | None = typer.Option(None, "--start", help="Start event_time (ms epoch, inclusive)"),
    end: int | None = typer.Option(None, "--end", help="End event_time (ms epoch, inclusive)"),
    output: str | None = typer.Option(None, "--output", "-o", help="Output path"),
) -> None:
    """Export a symbol's trades in a time window to Parquet."""
    settings = ctx.obj["settings"]
    path = output or str(Path(settings.export_dir) / f"trades_{symbol}_{market_type.upper()}.parquet")
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
        count = export_trades_to_parquet(conn, path, symbol, market_type, start, end)
    except ValidationError as e:
        typer.echo(f"Invalid request: {e}", err=True)
        raise typer.Exit(code=2)
    finally:
        conn.close()
    typer.echo(f"Exported {count} trades to {path}")
