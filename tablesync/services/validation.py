"""Validation of migration requests."""
import logging
from typing import List, Sequence

from tablesync.core.exceptions import InvalidRequest
from ..domain.models import MigrationMode, MigrationRequest, TableStat

logger = logging.getLogger(__name__)


def _is_blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_request(request: MigrationRequest) -> None:
    """Reject malformed or self-referential requests.

    Runs before any connection is resolved.

    Raises:
        InvalidRequest: Naming the first problem found
    """
    if not isinstance(request, MigrationRequest):
        raise InvalidRequest(f"Expected a MigrationRequest, got {type(request).__name__}")
    if _is_blank(request.source_conn):
        raise InvalidRequest("Source connection is required")
    if _is_blank(request.target_conn):
        raise InvalidRequest("Target connection is required")
    if _is_blank(request.source_db):
        raise InvalidRequest("Source database is required")
    if _is_blank(request.target_db):
        raise InvalidRequest("Target database is required")
    if not isinstance(request.mode, MigrationMode):
        raise InvalidRequest(f"Unknown migration mode: {request.mode!r}")
    if request.source_conn == request.target_conn and request.source_db == request.target_db:
        raise InvalidRequest(
            f"Source and target are the same database ({request.source_conn}/{request.source_db})"
        )
    for table in request.selected_tables:
        if _is_blank(table):
            raise InvalidRequest("Selected table names cannot be empty")


def resolve_working_set(request: MigrationRequest, source_stats: Sequence[TableStat]) -> List[TableStat]:
    """Return the source stats of the tables a run considers.

    The explicit selection when there is one, otherwise every source table.
    Either way the result follows the source listing order.

    Raises:
        InvalidRequest: If a selected table is not in the source database
    """
    if not request.selected_tables:
        return list(source_stats)

    source_names = {stat.name for stat in source_stats}
    missing = sorted(request.selected_tables - source_names)
    if missing:
        raise InvalidRequest(
            f"Selected table(s) not found in {request.source_conn}/{request.source_db}: {', '.join(missing)}"
        )

    working_set = [stat for stat in source_stats if stat.name in request.selected_tables]
    logger.debug(f"Working set: {len(working_set)} of {len(source_stats)} source tables")
    return working_set
