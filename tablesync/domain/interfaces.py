"""Abstract interfaces for the table sync tool."""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .models import TableStat, TableSyncOutcome


class ConnectionExecutor(ABC):
    """Interface for the database operations the sync engine relies on.

    Handles returned by ``resolve_connection`` are shared read-only between
    worker threads. Implementations must not run two operations on one
    session concurrently.
    """

    @abstractmethod
    def resolve_connection(self, conn_id: str) -> Any:
        """Resolve a connection id into a handle."""
        # Implementation contract: raise DatabaseConnectionError when the id is
        # unknown or the connection cannot be opened
        pass

    @abstractmethod
    def list_table_stats(self, handle: Any, database: str) -> List[TableStat]:
        """List base tables of a database with row count and size."""
        # Implementation contract: stable order, empty list for an empty
        # database, QueryError when the statistics query fails
        pass

    @abstractmethod
    def copy_schema(
        self,
        source: Any,
        source_db: str,
        target: Any,
        target_db: str,
        table_name: str
    ) -> None:
        """Create the source table's structure on the target."""
        pass

    @abstractmethod
    def copy_data(
        self,
        source: Any,
        source_db: str,
        target: Any,
        target_db: str,
        table_name: str,
        cancel_token: Optional[Any] = None
    ) -> int:
        """Copy every row of a table and return the number of rows copied."""
        # Implementation contract: check cancel_token between batches and
        # raise OperationCancelled once it is set
        pass


class OutcomeInterface(ABC):
    """Interface for displaying migration progress and results."""

    @abstractmethod
    def display_verdict(self, verdict) -> None:
        """Display the result of a precheck."""
        pass

    @abstractmethod
    def display_outcome(self, outcome: TableSyncOutcome) -> None:
        """Display the result of one table attempt."""
        pass

    @abstractmethod
    def display_summary(self, outcomes: List[TableSyncOutcome]) -> None:
        """Display a summary of an execution."""
        pass
