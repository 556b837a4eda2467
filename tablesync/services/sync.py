"""Execution of approved migration requests."""
import time
from typing import Any, Iterable, List, Optional

from tablesync.core.exceptions import BlockedError, OperationCancelled, TableTimeoutError
from tablesync.core.logging import get_logger, get_migration_logger
from tablesync.infrastructure.parallel import CancelToken, ParallelWorker, TaskResult, WorkerConfig
from tablesync.ui.progress import ProgressTracker
from ..domain.interfaces import ConnectionExecutor
from ..domain.models import MigrationRequest, OutcomeStatus, TableSyncOutcome
from .conflicts import ConflictDetector, PrecheckResult

logger = get_logger(__name__)
migration_log = get_migration_logger()

EXCLUDED_DETAIL = "excluded by caller"
NOT_STARTED_DETAIL = "cancelled before start"
CANCELLED_DETAIL = "cancelled"


class SyncCoordinator:
    """Copies the tables of a request once a fresh precheck clears it.

    Tables are independent units of work: one table's failure is recorded
    in its outcome and never stops the others.
    """

    def __init__(
        self,
        executor: ConnectionExecutor,
        detector: ConflictDetector,
        parallel_workers: int = 4,
        table_timeout: float = 0,
        ui: Any = None
    ):
        self.executor = executor
        self.detector = detector
        self.parallel_workers = max(1, parallel_workers)
        self.table_timeout = table_timeout
        self.ui = ui

    def execute(
        self,
        request: MigrationRequest,
        excluded_tables: Iterable[str] = (),
        cancel_token: Optional[CancelToken] = None
    ) -> List[TableSyncOutcome]:
        """Run the request and return one outcome per table.

        Args:
            request: The migration request
            excluded_tables: Tables of the working set the caller no longer wants copied
            cancel_token: Token the caller may set to stop between tables

        Returns:
            Outcomes in working-set order

        Raises:
            InvalidRequest: If the request is malformed
            BlockedError: If the fresh precheck finds any blocking table; nothing is copied
            DatabaseConnectionError, QueryError: If the precheck cannot be computed
        """
        precheck = self.detector.precheck_resolved(request)
        verdict = precheck.verdict
        if verdict.blocked:
            migration_log.info("Migration aborted: target database has conflicting tables or rows")
            raise BlockedError(verdict)

        if not verdict.checks:
            migration_log.info(f"Source database {request.source_db} has no tables to migrate")
            return []

        excluded = set(excluded_tables or ())
        to_copy = [name for name in verdict.table_names if name not in excluded]
        cancel_token = cancel_token or CancelToken()

        migration_log.info(
            f"Starting migration: {request.source_db} -> {request.target_db} "
            f"({len(to_copy)} tables, mode {request.mode.value})"
        )
        start_time = time.time()

        tracker = ProgressTracker(
            total_tables=len(to_copy),
            update_callback=getattr(self.ui, 'display_progress', None)
        )

        copied = {}

        def on_result(index: int, result: TaskResult) -> None:
            outcome = self._to_outcome(to_copy[index], result)
            copied[outcome.name] = outcome
            self._report(outcome)
            tracker.table_finished(outcome.name, failed=not outcome.success)

        pool = ParallelWorker(
            WorkerConfig(num_workers=self.parallel_workers, timeout=self.table_timeout),
            cancel_token
        )
        pool.map(
            lambda name, task_token: self._copy_table(precheck, request, name, task_token),
            to_copy,
            on_result=on_result
        )

        outcomes = []
        for name in verdict.table_names:
            if name in copied:
                outcomes.append(copied[name])
            else:
                outcome = TableSyncOutcome(name=name, status=OutcomeStatus.SKIPPED, error_detail=EXCLUDED_DETAIL)
                self._report(outcome)
                outcomes.append(outcome)

        failed = sum(1 for o in outcomes if o.status == OutcomeStatus.FAILED)
        skipped = sum(1 for o in outcomes if o.status == OutcomeStatus.SKIPPED)
        migration_log.info(
            f"Migration finished in {time.time() - start_time:.1f}s: "
            f"{len(outcomes) - failed - skipped} succeeded, {failed} failed, {skipped} skipped"
        )
        return outcomes

    def _copy_table(
        self,
        precheck: PrecheckResult,
        request: MigrationRequest,
        table_name: str,
        cancel_token: CancelToken
    ) -> int:
        """Copy one table's structure and/or rows. Returns rows copied."""
        migration_log.info(f"Processing table: {table_name}")
        rows = 0
        if request.mode.copies_schema:
            self.executor.copy_schema(
                precheck.source_handle, request.source_db,
                precheck.target_handle, request.target_db,
                table_name
            )
        if request.mode.copies_data:
            if cancel_token.is_cancelled():
                raise OperationCancelled()
            rows = self.executor.copy_data(
                precheck.source_handle, request.source_db,
                precheck.target_handle, request.target_db,
                table_name, cancel_token
            )
        return rows or 0

    def _to_outcome(self, table_name: str, result: TaskResult) -> TableSyncOutcome:
        if not result.started:
            return TableSyncOutcome(name=table_name, status=OutcomeStatus.SKIPPED, error_detail=NOT_STARTED_DETAIL)

        if result.error is not None:
            if isinstance(result.error, OperationCancelled):
                detail = CANCELLED_DETAIL
            elif isinstance(result.error, TableTimeoutError):
                detail = str(result.error)
            else:
                detail = str(result.error) or type(result.error).__name__
            return TableSyncOutcome(
                name=table_name,
                status=OutcomeStatus.FAILED,
                error_detail=detail,
                duration=result.duration
            )

        if result.cancelled:
            return TableSyncOutcome(
                name=table_name,
                status=OutcomeStatus.FAILED,
                error_detail=CANCELLED_DETAIL,
                rows_copied=result.value or 0,
                duration=result.duration
            )

        return TableSyncOutcome(
            name=table_name,
            status=OutcomeStatus.SUCCEEDED,
            rows_copied=result.value or 0,
            duration=result.duration
        )

    def _report(self, outcome: TableSyncOutcome) -> None:
        if outcome.status == OutcomeStatus.FAILED:
            logger.error(f"Failed to migrate table {outcome.name}: {outcome.error_detail}")
            migration_log.info(f"Table {outcome.name} failed: {outcome.error_detail}")
        elif outcome.status == OutcomeStatus.SKIPPED:
            migration_log.info(f"Table {outcome.name} skipped: {outcome.error_detail}")
        else:
            migration_log.info(f"Table {outcome.name} done")

        if self.ui and hasattr(self.ui, 'display_outcome'):
            self.ui.display_outcome(outcome)
