"""
tests/conftest.py
-----------------
Shared fixtures: an in-memory executor that records every call.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

import pytest

from tablesync.core.config import MigrationConfig
from tablesync.core.exceptions import DatabaseConnectionError, OperationCancelled, QueryError
from tablesync.domain.interfaces import ConnectionExecutor
from tablesync.domain.models import MigrationMode, MigrationRequest, TableStat
from tablesync.services.conflicts import ConflictDetector
from tablesync.services.engine import MigrationEngine
from tablesync.services.stats import TableStatsCollector
from tablesync.services.sync import SyncCoordinator


class FakeExecutor(ConnectionExecutor):
    """Executor backed by dictionaries, keyed by (conn_id, database).

    ``failures`` maps a table name to an exception raised by copy_data,
    ``delays`` maps a table name to seconds copy_data sleeps first.
    ``peak`` is the most copy_data calls seen running at once and
    ``completed`` lists the tables whose copy_data returned normally.
    """

    def __init__(self, tables: Optional[Dict[tuple, List[TableStat]]] = None):
        self.tables: Dict[tuple, List[TableStat]] = dict(tables or {})
        self.unknown_connections: set = set()
        self.failing_stats: set = set()
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple] = []
        self.active = 0
        self.peak = 0
        self.completed: List[str] = []
        self._lock = threading.Lock()

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    @property
    def copy_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("copy_schema", "copy_data")]

    def resolve_connection(self, conn_id: str) -> str:
        self._record("resolve_connection", conn_id)
        if conn_id in self.unknown_connections:
            raise DatabaseConnectionError(f"Unknown connection: {conn_id}")
        return conn_id

    def list_table_stats(self, handle: str, database: str) -> List[TableStat]:
        self._record("list_table_stats", handle, database)
        if (handle, database) in self.failing_stats:
            raise QueryError(f"Failed to read table statistics for {database}")
        return list(self.tables.get((handle, database), []))

    def copy_schema(self, source, source_db, target, target_db, table_name) -> None:
        self._record("copy_schema", table_name)

    def copy_data(self, source, source_db, target, target_db, table_name, cancel_token=None) -> int:
        self._record("copy_data", table_name)
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            rows = self._copy_rows(source, source_db, table_name, cancel_token)
        finally:
            with self._lock:
                self.active -= 1
        with self._lock:
            self.completed.append(table_name)
        return rows

    def _copy_rows(self, source, source_db, table_name, cancel_token) -> int:
        delay = self.delays.get(table_name, 0)
        deadline = time.monotonic() + delay
        while time.monotonic() < deadline:
            if cancel_token is not None and cancel_token.is_cancelled():
                raise OperationCancelled()
            time.sleep(0.01)
        if table_name in self.failures:
            raise self.failures[table_name]
        for stat in self.tables.get((source, source_db), []):
            if stat.name == table_name:
                return stat.row_count
        return 0


def make_request(**overrides) -> MigrationRequest:
    fields = dict(
        source_conn="src",
        source_db="shop",
        target_conn="tgt",
        target_db="shop_copy",
        mode=MigrationMode.BOTH,
    )
    fields.update(overrides)
    return MigrationRequest(**fields)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor({
        ("src", "shop"): [
            TableStat("customers", 10, 4096),
            TableStat("orders", 25, 8192),
            TableStat("products", 5, 2048),
        ],
        ("tgt", "shop_copy"): [],
    })


@pytest.fixture
def migration_request() -> MigrationRequest:
    return make_request()


@pytest.fixture
def detector(executor: FakeExecutor) -> ConflictDetector:
    return ConflictDetector(TableStatsCollector(executor))


@pytest.fixture
def coordinator(executor: FakeExecutor, detector: ConflictDetector) -> SyncCoordinator:
    return SyncCoordinator(executor, detector, parallel_workers=2)


@pytest.fixture
def engine(executor: FakeExecutor) -> MigrationEngine:
    return MigrationEngine(executor, MigrationConfig(parallel_workers=2))
