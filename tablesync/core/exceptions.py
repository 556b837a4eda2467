"""Custom exceptions for the table sync tool."""


class TableSyncError(Exception):
    """Base class for all errors raised by the tool."""
    pass


class ConfigError(TableSyncError):
    """Configuration error."""
    # Raised when there are issues with configuration loading or validation
    # e.g., missing config file, duplicate connection ids, invalid values
    pass


class InvalidRequest(TableSyncError):
    """Malformed or self-referential migration request."""
    # Always raised before any connection is opened
    pass


class DatabaseError(TableSyncError):
    """Database operation error."""
    # Wraps underlying mysql.connector exceptions with contextual information
    pass


class DatabaseConnectionError(DatabaseError):
    """A named connection could not be resolved or opened."""
    pass


class QueryError(DatabaseError):
    """A statistics query or copy statement failed."""
    pass


class TableTimeoutError(TableSyncError):
    """A single table attempt exceeded its time budget."""

    def __init__(self, table_name: str, timeout: float):
        self.table_name = table_name
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s")


class OperationCancelled(TableSyncError):
    """The caller cancelled the run while a table was being copied."""

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


class BlockedError(TableSyncError):
    """Execution refused because the precheck found blocking conflicts."""

    def __init__(self, verdict):
        self.verdict = verdict
        blocking = [check.name for check in verdict.blocking_checks]
        super().__init__(
            f"Migration blocked by {len(blocking)} table(s): {', '.join(blocking)}"
        )


class InvalidStateError(TableSyncError):
    """An operation was invoked from the wrong lifecycle state."""
    pass
