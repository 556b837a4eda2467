"""Caller-facing entry point of the migration engine."""
from typing import Any, Iterable, List, Optional

from tablesync.core.config import Config, MigrationConfig
from tablesync.core.logging import get_logger
from tablesync.infrastructure.mariadb import MariaDBExecutor
from tablesync.infrastructure.parallel import CancelToken
from ..domain.interfaces import ConnectionExecutor
from ..domain.models import MigrationRequest, RunVerdict, TableStat, TableSyncOutcome
from .conflicts import ConflictDetector
from .run import MigrationRun
from .stats import TableStatsCollector
from .sync import SyncCoordinator

logger = get_logger(__name__)


class MigrationEngine:
    """Precheck and execute migration requests against one executor."""

    def __init__(
        self,
        executor: ConnectionExecutor,
        migration_config: Optional[MigrationConfig] = None,
        ui: Any = None
    ):
        self.executor = executor
        self.migration_config = migration_config or MigrationConfig()
        self.ui = ui

        self.collector = TableStatsCollector(executor)
        self.detector = ConflictDetector(self.collector)
        self.coordinator = SyncCoordinator(
            executor,
            self.detector,
            parallel_workers=self.migration_config.parallel_workers,
            table_timeout=self.migration_config.table_timeout,
            ui=ui
        )

    @classmethod
    def from_config(cls, config: Config, ui: Any = None) -> "MigrationEngine":
        """Build an engine backed by mysql.connector for the configured profiles."""
        migration = config.migration
        executor = MariaDBExecutor(
            config.connections,
            batch_size=migration.batch_size,
            disable_foreign_keys=migration.disable_foreign_keys,
            statement_timeout=migration.table_timeout
        )
        logger.debug(f"Engine configured with {len(config.connections)} connection profile(s)")
        return cls(executor, migration, ui=ui)

    def list_table_stats(self, conn_id: str, database: str) -> List[TableStat]:
        return self.collector.list_table_stats(conn_id, database)

    def precheck(self, request: MigrationRequest) -> RunVerdict:
        """Classify every table of the request without writing anything."""
        verdict = self.detector.precheck(request)
        if self.ui and hasattr(self.ui, 'display_verdict'):
            self.ui.display_verdict(verdict)
        return verdict

    def execute(
        self,
        request: MigrationRequest,
        excluded_tables: Iterable[str] = (),
        cancel_token: Optional[CancelToken] = None
    ) -> List[TableSyncOutcome]:
        """Re-check and copy the request's tables.

        Raises:
            BlockedError: If the fresh precheck is blocked; nothing is copied
        """
        outcomes = self.coordinator.execute(request, excluded_tables, cancel_token)
        if outcomes and self.ui and hasattr(self.ui, 'display_summary'):
            self.ui.display_summary(outcomes)
        return outcomes

    def new_run(self, request: MigrationRequest) -> MigrationRun:
        return MigrationRun(request)
