"""Conflict detection between source and target table inventories."""
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from tablesync.core.logging import get_logger, get_migration_logger
from ..domain.models import (
    MigrationMode,
    MigrationRequest,
    RunVerdict,
    TableCheckResult,
    TableStat,
    index_by_name,
    REASON_TARGET_ABSENT,
    REASON_TARGET_EXISTS,
    REASON_TARGET_HAS_ROWS,
)
from .stats import TableStatsCollector
from .validation import validate_request, resolve_working_set

logger = get_logger(__name__)
migration_log = get_migration_logger()


def classify_table(
    source_stat: TableStat,
    target_stat: Optional[TableStat],
    mode: MigrationMode
) -> TableCheckResult:
    """Classify one table of the working set.

    A missing target table is informational. An existing target table
    blocks schema copies; existing target rows block data copies.
    """
    reasons = []
    blocking = False

    if target_stat is None:
        reasons.append(REASON_TARGET_ABSENT)
    else:
        if mode.copies_schema:
            reasons.append(REASON_TARGET_EXISTS)
            blocking = True
        if mode.copies_data and target_stat.row_count > 0:
            reasons.append(REASON_TARGET_HAS_ROWS)
            blocking = True

    return TableCheckResult(
        name=source_stat.name,
        source_rows=source_stat.row_count,
        target_rows=target_stat.row_count if target_stat is not None else 0,
        blocking=blocking,
        reasons=tuple(reasons)
    )


@dataclass
class PrecheckResult:
    """A verdict together with the handles it was computed with."""
    verdict: RunVerdict
    source_handle: Any
    target_handle: Any


class ConflictDetector:
    """Computes the run verdict for a migration request.

    Read-only: a precheck never writes to either database.
    """

    def __init__(self, collector: TableStatsCollector):
        self.collector = collector

    def precheck(self, request: MigrationRequest) -> RunVerdict:
        """Classify every table of the request's working set.

        Raises:
            InvalidRequest: If the request is malformed or selects unknown tables
            DatabaseConnectionError: If either connection cannot be resolved
            QueryError: If table statistics cannot be read
        """
        return self.precheck_resolved(request).verdict

    def precheck_resolved(self, request: MigrationRequest) -> PrecheckResult:
        validate_request(request)

        source_handle = self.collector.resolve(request.source_conn)
        target_handle = self.collector.resolve(request.target_conn)

        source_stats = self.collector.list_table_stats(
            request.source_conn, request.source_db, handle=source_handle
        )
        target_stats = self.collector.list_table_stats(
            request.target_conn, request.target_db, handle=target_handle
        )

        verdict = self.evaluate(request, source_stats, target_stats)
        return PrecheckResult(verdict, source_handle, target_handle)

    def evaluate(
        self,
        request: MigrationRequest,
        source_stats: Sequence[TableStat],
        target_stats: Sequence[TableStat]
    ) -> RunVerdict:
        """Build the verdict from already collected statistics."""
        targets = index_by_name(target_stats)
        working_set = resolve_working_set(request, source_stats)

        checks = tuple(
            classify_table(stat, targets.get(stat.name), request.mode)
            for stat in working_set
        )
        verdict = RunVerdict(checks=checks)

        for check in verdict.blocking_checks:
            logger.warning(f"Table {check.name} blocks the run: {check.status}")

        if verdict.blocked:
            migration_log.info(
                f"Precheck failed: {len(verdict.blocking_checks)} of {len(checks)} tables conflict with "
                f"{request.target_conn}/{request.target_db}"
            )
        else:
            migration_log.info(
                f"Precheck passed: {len(checks)} tables from {request.source_conn}/{request.source_db} "
                f"to {request.target_conn}/{request.target_db} ({request.mode.value})"
            )
        return verdict
