"""
tests/test_conflicts.py
-----------------------
Unit tests for services/conflicts.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import itertools

import pytest

from conftest import FakeExecutor, make_request
from tablesync.core.exceptions import DatabaseConnectionError, InvalidRequest, QueryError
from tablesync.domain.models import (
    MigrationMode,
    RunVerdict,
    TableCheckResult,
    TableStat,
    REASON_TARGET_ABSENT,
    REASON_TARGET_EXISTS,
    REASON_TARGET_HAS_ROWS,
)
from tablesync.services.conflicts import ConflictDetector, classify_table
from tablesync.services.stats import TableStatsCollector


def _detector(source, target) -> ConflictDetector:
    executor = FakeExecutor({("src", "shop"): source, ("tgt", "shop_copy"): target})
    return ConflictDetector(TableStatsCollector(executor))


# ---------------------------------------------------------------------------
# classify_table
# ---------------------------------------------------------------------------

class TestClassifyTable:
    def test_absent_target_passes_in_every_mode(self) -> None:
        for mode in MigrationMode:
            check = classify_table(TableStat("users", 10), None, mode)
            assert not check.blocking
            assert check.reasons == (REASON_TARGET_ABSENT,)
            assert check.target_rows == 0
            assert check.status == "passed (target absent)"

    @pytest.mark.parametrize("mode", [MigrationMode.SCHEMA_ONLY, MigrationMode.BOTH])
    def test_existing_table_blocks_schema_copy(self, mode: MigrationMode) -> None:
        check = classify_table(TableStat("users", 10), TableStat("users", 0), mode)
        assert check.blocking
        assert REASON_TARGET_EXISTS in check.reasons

    def test_existing_empty_table_passes_data_only(self) -> None:
        check = classify_table(TableStat("users", 10), TableStat("users", 0), MigrationMode.DATA_ONLY)
        assert not check.blocking
        assert check.reasons == ()
        assert check.status == "passed"

    @pytest.mark.parametrize("mode", [MigrationMode.DATA_ONLY, MigrationMode.BOTH])
    def test_target_rows_block_data_copy(self, mode: MigrationMode) -> None:
        check = classify_table(TableStat("users", 10), TableStat("users", 3), mode)
        assert check.blocking
        assert REASON_TARGET_HAS_ROWS in check.reasons
        assert check.target_rows == 3

    def test_schema_only_ignores_target_rows(self) -> None:
        check = classify_table(TableStat("users", 10), TableStat("users", 3), MigrationMode.SCHEMA_ONLY)
        assert check.reasons == (REASON_TARGET_EXISTS,)

    def test_both_mode_reports_both_reasons(self) -> None:
        check = classify_table(TableStat("users", 10), TableStat("users", 3), MigrationMode.BOTH)
        assert check.reasons == (REASON_TARGET_EXISTS, REASON_TARGET_HAS_ROWS)
        assert check.status == f"blocked - {REASON_TARGET_EXISTS}, {REASON_TARGET_HAS_ROWS}"

    def test_empty_source_table_still_checked(self) -> None:
        check = classify_table(TableStat("audit", 0), None, MigrationMode.BOTH)
        assert check.source_rows == 0
        assert not check.blocking


# ---------------------------------------------------------------------------
# RunVerdict
# ---------------------------------------------------------------------------

class TestRunVerdict:
    def test_empty_verdict_is_not_blocked(self) -> None:
        assert not RunVerdict().blocked

    def test_blocked_is_or_over_checks(self) -> None:
        for flags in itertools.product([False, True], repeat=3):
            checks = tuple(
                TableCheckResult(name=f"t{i}", source_rows=1, target_rows=0, blocking=flag)
                for i, flag in enumerate(flags)
            )
            verdict = RunVerdict(checks=checks)
            assert verdict.blocked == any(flags)
            assert len(verdict.blocking_checks) == sum(flags)

    def test_to_dict(self) -> None:
        verdict = RunVerdict(checks=(
            TableCheckResult(name="users", source_rows=2, target_rows=0, blocking=False,
                             reasons=(REASON_TARGET_ABSENT,)),
        ))
        data = verdict.to_dict()
        assert data["blocked"] is False
        assert data["checks"][0]["status"] == "passed (target absent)"


# ---------------------------------------------------------------------------
# ConflictDetector.precheck
# ---------------------------------------------------------------------------

class TestPrecheck:
    def test_all_tables_absent_is_clear(self, detector: ConflictDetector, migration_request) -> None:
        verdict = detector.precheck(migration_request)
        assert not verdict.blocked
        assert verdict.table_names == ["customers", "orders", "products"]

    def test_one_existing_table_blocks_run(self) -> None:
        detector = _detector(
            [TableStat("users", 10), TableStat("orders", 4)],
            [TableStat("users", 0)],
        )
        verdict = detector.precheck(make_request(mode=MigrationMode.SCHEMA_ONLY))
        assert verdict.blocked
        assert [c.name for c in verdict.blocking_checks] == ["users"]

    def test_data_only_with_empty_target_tables_is_clear(self) -> None:
        detector = _detector(
            [TableStat("users", 10), TableStat("orders", 4)],
            [TableStat("users", 0), TableStat("orders", 0)],
        )
        verdict = detector.precheck(make_request(mode=MigrationMode.DATA_ONLY))
        assert not verdict.blocked

    def test_target_only_tables_are_not_reported(self) -> None:
        detector = _detector([TableStat("users", 1)], [TableStat("legacy", 100)])
        verdict = detector.precheck(make_request())
        assert verdict.table_names == ["users"]
        assert not verdict.blocked

    def test_selection_limits_working_set(self) -> None:
        detector = _detector(
            [TableStat("users", 1), TableStat("orders", 1)],
            [TableStat("orders", 5)],
        )
        verdict = detector.precheck(make_request(selected_tables={"users"}))
        assert verdict.table_names == ["users"]
        assert not verdict.blocked

    def test_unknown_selected_table_is_invalid(self, detector: ConflictDetector) -> None:
        with pytest.raises(InvalidRequest, match="missing_table"):
            detector.precheck(make_request(selected_tables={"customers", "missing_table"}))

    def test_empty_source_gives_empty_verdict(self) -> None:
        verdict = _detector([], []).precheck(make_request())
        assert verdict.checks == ()
        assert not verdict.blocked

    def test_precheck_is_idempotent(self) -> None:
        detector = _detector(
            [TableStat("users", 10), TableStat("orders", 4)],
            [TableStat("orders", 2)],
        )
        request = make_request()
        assert detector.precheck(request) == detector.precheck(request)

    def test_precheck_never_copies(self, executor: FakeExecutor, detector: ConflictDetector,
                                   migration_request) -> None:
        detector.precheck(migration_request)
        assert executor.copy_calls == []

    def test_invalid_request_makes_no_calls(self, executor: FakeExecutor, detector: ConflictDetector) -> None:
        with pytest.raises(InvalidRequest):
            detector.precheck(make_request(target_conn="src", target_db="shop"))
        assert executor.calls == []

    def test_unknown_connection_propagates(self, executor: FakeExecutor, detector: ConflictDetector,
                                           migration_request) -> None:
        executor.unknown_connections.add("tgt")
        with pytest.raises(DatabaseConnectionError):
            detector.precheck(migration_request)

    def test_stats_failure_propagates(self, executor: FakeExecutor, detector: ConflictDetector,
                                      migration_request) -> None:
        executor.failing_stats.add(("tgt", "shop_copy"))
        with pytest.raises(QueryError):
            detector.precheck(migration_request)
