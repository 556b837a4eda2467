"""Table statistics collection for source and target databases."""
from typing import Any, List, Optional

from tablesync.core.exceptions import DatabaseError, QueryError
from tablesync.core.logging import get_logger
from ..domain.interfaces import ConnectionExecutor
from ..domain.models import TableStat

logger = get_logger(__name__)


class TableStatsCollector:
    """Lists tables of a database with row count and size.

    Statistics are read fresh on every call; row counts reported by the
    server can be approximate and change under concurrent writers.
    """

    def __init__(self, executor: ConnectionExecutor):
        self.executor = executor

    def resolve(self, conn_id: str) -> Any:
        """Resolve a connection id into a handle (DatabaseConnectionError on failure)."""
        return self.executor.resolve_connection(conn_id)

    def list_table_stats(self, conn_id: str, database: str, handle: Optional[Any] = None) -> List[TableStat]:
        """List table statistics for ``database`` on connection ``conn_id``.

        Args:
            conn_id: Connection profile id
            database: Database name
            handle: Already resolved handle for ``conn_id``, if any

        Returns:
            Table statistics in the order the server listed them

        Raises:
            DatabaseConnectionError: If the connection cannot be resolved or opened
            QueryError: If the statistics query fails
        """
        if handle is None:
            handle = self.resolve(conn_id)

        try:
            stats = list(self.executor.list_table_stats(handle, database) or [])
        except DatabaseError:
            raise
        except Exception as e:
            raise QueryError(f"Failed to list tables of {conn_id}/{database}: {str(e)}") from e

        seen = set()
        for stat in stats:
            if stat.name in seen:
                raise QueryError(f"Duplicate table {stat.name} in statistics for {conn_id}/{database}")
            seen.add(stat.name)

        logger.debug(f"{conn_id}/{database}: {len(stats)} tables")
        return stats
