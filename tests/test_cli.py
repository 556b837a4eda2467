"""
tests/test_cli.py
-----------------
Exit codes and output of the tablesync command line.
"""
from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakeExecutor
from tablesync import main as cli
from tablesync.core.config import MigrationConfig
from tablesync.core.exceptions import QueryError
from tablesync.core.logging import get_migration_logger
from tablesync.domain.models import TableStat
from tablesync.services.engine import MigrationEngine

REQUEST_ARGS = [
    "--source-conn", "src", "--source-db", "shop",
    "--target-conn", "tgt", "--target-db", "shop_copy",
]


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(
        "connections:\n"
        "  - {id: src, host: db1, port: 3306, user: root}\n"
        "  - {id: tgt, host: db2, port: 3306, user: root}\n"
        "ui:\n"
        "  type: plain\n"
    )
    return str(path)


@pytest.fixture
def run_cli(executor: FakeExecutor, config_path: str):
    def run(*argv: str) -> int:
        def build(config, ui=None):
            return MigrationEngine(executor, MigrationConfig(parallel_workers=2), ui=ui)

        with patch.object(MigrationEngine, "from_config", side_effect=build), \
                patch("tablesync.main.setup_logging"), \
                patch("tablesync.main.signal.signal"):
            return cli.main(["--config", config_path, *argv])
    return run


def test_stats_json(run_cli, capsys) -> None:
    assert run_cli("stats", "--conn", "src", "--db", "shop", "--json") == 0
    data = json.loads(capsys.readouterr().out)
    assert [t["name"] for t in data] == ["customers", "orders", "products"]
    assert data[0] == {"name": "customers", "row_count": 10, "size_bytes": 4096}


def test_stats_plain_output(run_cli, capsys) -> None:
    assert run_cli("stats", "--conn", "src", "--db", "shop") == 0
    assert "orders: 25 rows" in capsys.readouterr().out


def test_precheck_clear(run_cli, capsys) -> None:
    assert run_cli("precheck", *REQUEST_ARGS) == 0
    assert "passed (target absent)" in capsys.readouterr().out


def test_precheck_blocked(run_cli, executor: FakeExecutor) -> None:
    executor.tables[("tgt", "shop_copy")] = [TableStat("orders", 0)]
    assert run_cli("precheck", *REQUEST_ARGS) == 1


def test_precheck_json(run_cli, capsys) -> None:
    assert run_cli("precheck", *REQUEST_ARGS, "--mode", "schema", "--json") == 0
    data = json.loads(capsys.readouterr().out)
    assert data["request"]["mode"] == "schema"
    assert data["verdict"]["blocked"] is False


def test_migrate_success_json(run_cli, executor: FakeExecutor, capsys) -> None:
    assert run_cli("migrate", *REQUEST_ARGS, "--exclude", "products", "--json") == 0
    data = json.loads(capsys.readouterr().out)
    assert data["state"] == "completed"
    assert data["summary"]["succeeded"] == 2
    assert data["summary"]["skipped"] == 1
    assert "products" not in [c[1] for c in executor.copy_calls]


def test_migrate_with_failed_table(run_cli, executor: FakeExecutor, capsys) -> None:
    executor.failures["orders"] = QueryError("lock wait timeout")
    assert run_cli("migrate", *REQUEST_ARGS) == 1
    out = capsys.readouterr().out
    assert "orders failed: lock wait timeout" in out
    assert "Migration Summary" in out


def test_migrate_blocked_copies_nothing(run_cli, executor: FakeExecutor) -> None:
    executor.tables[("tgt", "shop_copy")] = [TableStat("customers", 2)]
    assert run_cli("migrate", *REQUEST_ARGS, "--mode", "data") == 1
    assert executor.copy_calls == []


def test_invalid_request_exit_code(run_cli) -> None:
    args = ["--source-conn", "src", "--source-db", "shop", "--target-conn", "src", "--target-db", "shop"]
    assert run_cli("precheck", *args) == 2


def test_unknown_table_exit_code(run_cli) -> None:
    assert run_cli("migrate", *REQUEST_ARGS, "--tables", "ghost") == 2


def test_unknown_connection_exit_code(run_cli, executor: FakeExecutor) -> None:
    executor.unknown_connections.add("tgt")
    assert run_cli("precheck", *REQUEST_ARGS) == 1


def test_missing_config_exit_code(tmp_path: Path) -> None:
    with patch("tablesync.main.signal.signal"):
        assert cli.main(["--config", str(tmp_path / "nope.yaml"), "stats", "--conn", "a", "--db", "b"]) == 1


def test_negative_timeout_rejected(run_cli) -> None:
    assert run_cli("migrate", *REQUEST_ARGS, "--table-timeout", "-5") == 1


def test_migrate_shows_migration_log(run_cli, capsys) -> None:
    assert run_cli("migrate", *REQUEST_ARGS) == 0
    out = capsys.readouterr().out
    assert "] Processing table: customers" in out
    assert "] Table orders done" in out
    assert get_migration_logger().handlers == []


def test_migration_log_hidden_without_progress(run_cli, config_path: str, capsys) -> None:
    with open(config_path, "a") as f:
        f.write("  show_progress: false\n")
    assert run_cli("migrate", *REQUEST_ARGS) == 0
    assert "Processing table" not in capsys.readouterr().out
