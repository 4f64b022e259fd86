"""CLI: migrate, status, export."""

import pytest
from typer.testing import CliRunner

from tickvault.cli.app import app
from tickvault.storage.db import get_connection
from tickvault.storage.migrations import MIGRATIONS

runner = CliRunner()


@pytest.fixture(autouse=True)
def configured(monkeypatch):
    """Record logging setup instead of binding structlog to the runner's captured streams."""
    calls = []
    monkeypatch.setattr("tickvault.cli.app.configure_logging", calls.append)
    return calls


@pytest.fixture
def config_dir(tmp_path):
    cfg = tmp_path / "config"
    cfg.mkdir()
    db = (tmp_path / "cli.duckdb").as_posix()
    exports = (tmp_path / "exports").as_posix()
    (cfg / "default.toml").write_text(
        f'[storage]\ndb_path = "{db}"\nexport_dir = "{exports}"\n\n[logging]\nlevel = "WARNING"\n'
    )
    return cfg


def test_migrate_then_status(config_dir, configured):
    result = runner.invoke(app, ["--config-dir", str(config_dir), "db", "migrate"])
    assert result.exit_code == 0, result.output
    assert configured[0].logging_level == "WARNING"
    assert f"Applied {len(MIGRATIONS)} change(s)" in result.output

    again = runner.invoke(app, ["--config-dir", str(config_dir), "db", "migrate"])
    assert again.exit_code == 0
    assert "Applied 0 change(s)" in again.output

    status = runner.invoke(app, ["--config-dir", str(config_dir), "db", "status"])
    assert status.exit_code == 0
    assert "pending" not in status.output
    assert "Trades: 0" in status.output


def test_migrate_reports_failure(config_dir, tmp_path):
    runner.invoke(app, ["--config-dir", str(config_dir), "db", "migrate"])
    conn = get_connection(tmp_path / "cli.duckdb")
    conn.execute("DROP INDEX idx_trades_unique")
    conn.execute("DELETE FROM schema_migrations WHERE version = ?", [MIGRATIONS[-1].version])
    for _ in range(2):
        conn.execute(
            "INSERT INTO trades (event_time, symbol, trade_id, price, quantity, buyer_order_id, seller_order_id, is_buyer_maker) "
            "VALUES (1, 'BTCUSDT', 7, 1, 1, 1, 1, true)"
        )
    conn.close()
    result = runner.invoke(app, ["--config-dir", str(config_dir), "db", "migrate"])
    assert result.exit_code == 1


def test_export_trades(config_dir, tmp_path):
    result = runner.invoke(app, ["--config-dir", str(config_dir), "export", "trades", "--symbol", "BTCUSDT"])
    assert result.exit_code == 0, result.output
    assert "Exported 0 trades" in result.output
    assert (tmp_path / "exports" / "trades_BTCUSDT_SPOT.parquet").exists()

    bad = runner.invoke(
        app, ["--config-dir", str(config_dir), "export", "trades", "-s", "BTCUSDT", "--start", "5", "--end", "1"]
    )
    assert bad.exit_code == 2
