"""Db subcommand: migrate, status."""

from __future__ import annotations

import typer

from tickvault.errors import SchemaApplyError
from tickvault.storage.db import get_connection, init_schema
from tickvault.storage.migrations import MIGRATIONS, SchemaEvolutionManager
from tickvault.storage.range_index import RangeQueryIndex

app = typer.Typer(help="Schema migrations and status")


@app.command("migrate")
def migrate(ctx: typer.Context) -> None:
    """Apply pending schema changes. Safe to run on every deployment."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    try:
        report = init_schema(conn)
    except SchemaApplyError as e:
        typer.echo(f"Migration failed: {e}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()
    typer.echo(f"Applied {len(report.applied)} change(s), {len(report.skipped)} already present")
    for version in report.applied:
        typer.echo(f"  applied {version}")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show applied and pending schema versions, and row counts."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    try:
        manager = SchemaEvolutionManager(conn)
        applied = set(manager.applied_versions())
        for change in MIGRATIONS:
            state = "applied" if change.version in applied else "pending"
            typer.echo(f"{change.version}  {change.name:<24} {state}")
        if not manager.pending(MIGRATIONS):
            trades = conn.execute("SELECT COUNT(*) FROM trades").fetchone()[0]
            books = conn.execute("SELECT COUNT(*) FROM order_books").fetchone()[0]
            typer.echo(f"Trades: {trades}")
            typer.echo(f"Order book snapshots: {books}")
            typer.echo(f"Range indexes: {', '.join(RangeQueryIndex(conn).index_names())}")
    finally:
        conn.close()
