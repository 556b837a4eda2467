"""
tests/test_validation.py
------------------------
Unit tests for services/validation.py and the request model.
"""
from __future__ import annotations

import pytest

from conftest import make_request
from tablesync.core.exceptions import InvalidRequest
from tablesync.domain.models import MigrationMode, MigrationRequest, TableStat
from tablesync.services.validation import resolve_working_set, validate_request


class TestValidateRequest:
    def test_valid_request_passes(self) -> None:
        validate_request(make_request())

    def test_same_connection_different_database_is_allowed(self) -> None:
        validate_request(make_request(target_conn="src", target_db="shop_archive"))

    @pytest.mark.parametrize("field,value,message", [
        ("source_conn", "", "Source connection"),
        ("target_conn", "  ", "Target connection"),
        ("source_db", "", "Source database"),
        ("target_db", "\t", "Target database"),
    ])
    def test_blank_fields_rejected(self, field: str, value: str, message: str) -> None:
        with pytest.raises(InvalidRequest, match=message):
            validate_request(make_request(**{field: value}))

    def test_self_migration_rejected(self) -> None:
        with pytest.raises(InvalidRequest, match="same database"):
            validate_request(make_request(target_conn="src", target_db="shop"))

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(InvalidRequest, match="mode"):
            validate_request(make_request(mode="everything"))

    def test_blank_selected_table_rejected(self) -> None:
        with pytest.raises(InvalidRequest, match="table names"):
            validate_request(make_request(selected_tables={"users", ""}))

    def test_non_request_rejected(self) -> None:
        with pytest.raises(InvalidRequest):
            validate_request({"source_db": "shop"})


class TestResolveWorkingSet:
    stats = [TableStat("a", 1), TableStat("b", 2), TableStat("c", 3)]

    def test_no_selection_means_all_tables(self) -> None:
        assert resolve_working_set(make_request(), self.stats) == self.stats

    def test_selection_keeps_source_order(self) -> None:
        request = make_request(selected_tables=["c", "a"])
        assert [s.name for s in resolve_working_set(request, self.stats)] == ["a", "c"]

    def test_missing_tables_named_in_error(self) -> None:
        request = make_request(selected_tables=["a", "x", "y"])
        with pytest.raises(InvalidRequest, match="x, y"):
            resolve_working_set(request, self.stats)


class TestMigrationRequest:
    def test_selected_tables_coerced_to_frozenset(self) -> None:
        request = make_request(selected_tables=["a", "b", "a"])
        assert request.selected_tables == frozenset({"a", "b"})

    def test_with_changes_returns_new_request(self) -> None:
        request = make_request()
        changed = request.with_changes(mode=MigrationMode.DATA_ONLY, selected_tables=["a"])
        assert changed.mode is MigrationMode.DATA_ONLY
        assert changed.selected_tables == frozenset({"a"})
        assert request.mode is MigrationMode.BOTH

    def test_single_table_name_is_one_table(self) -> None:
        request = make_request(selected_tables="orders")
        assert request.selected_tables == frozenset({"orders"})
        assert request.with_changes(selected_tables="customers").selected_tables == frozenset({"customers"})
        assert make_request(selected_tables="").selected_tables == frozenset()

    def test_to_dict(self) -> None:
        data = make_request(selected_tables={"b", "a"}).to_dict()
        assert data["mode"] == "both"
        assert data["selected_tables"] == ["a", "b"]


class TestMigrationMode:
    @pytest.mark.parametrize("text,mode", [
        ("schema", MigrationMode.SCHEMA_ONLY),
        ("DATA", MigrationMode.DATA_ONLY),
        ("both", MigrationMode.BOTH),
        ("SCHEMA_ONLY", MigrationMode.SCHEMA_ONLY),
    ])
    def test_parse(self, text: str, mode: MigrationMode) -> None:
        assert MigrationMode.parse(text) is mode

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            MigrationMode.parse("all")

    def test_copy_flags(self) -> None:
        assert MigrationMode.SCHEMA_ONLY.copies_schema and not MigrationMode.SCHEMA_ONLY.copies_data
        assert MigrationMode.DATA_ONLY.copies_data and not MigrationMode.DATA_ONLY.copies_schema
        assert MigrationMode.BOTH.copies_schema and MigrationMode.BOTH.copies_data
