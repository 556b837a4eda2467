"""Domain models for the table sync tool."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, FrozenSet, Iterable, List, Optional, Tuple

# Check reasons shown to the operator
REASON_TARGET_ABSENT = "target table absent"
REASON_TARGET_EXISTS = "target already has a table of this name"
REASON_TARGET_HAS_ROWS = "target table already has rows"

BLOCKING_REASONS = frozenset({REASON_TARGET_EXISTS, REASON_TARGET_HAS_ROWS})


@dataclass
class ConnectionProfile:
    """Connection profile for one database instance."""
    id: str
    host: str
    port: int
    user: str
    password: str = ""
    name: str = ""
    database: str = ""  # Default database, overridden per run
    use_pure: bool = True
    auth_plugin: Optional[str] = None
    ssl: bool = False
    ssl_ca: Optional[str] = None
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None
    connect_timeout: int = 10

    @property
    def is_complete(self) -> bool:
        """Host, user and port are required to open a session."""
        return bool(self.host and self.user and self.port)

    @property
    def display_name(self) -> str:
        return self.name or f"{self.user}@{self.host}:{self.port}"


class MigrationMode(Enum):
    """What a run copies for each table."""
    SCHEMA_ONLY = "schema"
    DATA_ONLY = "data"
    BOTH = "both"

    @property
    def copies_schema(self) -> bool:
        return self in (MigrationMode.SCHEMA_ONLY, MigrationMode.BOTH)

    @property
    def copies_data(self) -> bool:
        return self in (MigrationMode.DATA_ONLY, MigrationMode.BOTH)

    @classmethod
    def parse(cls, value: Any) -> "MigrationMode":
        """Parse a mode from its value ("schema") or member name ("SCHEMA_ONLY")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for mode in cls:
            if text.lower() == mode.value or text.upper() == mode.name:
                return mode
        raise ValueError(f"Unknown migration mode: {value!r}")


@dataclass(frozen=True)
class TableStat:
    """Row count and on-disk size of one table."""
    name: str
    row_count: int = 0
    size_bytes: int = 0


def _table_set(value: Any) -> FrozenSet[str]:
    """Normalise a table selection; a single name counts as one table."""
    if isinstance(value, str):
        return frozenset({value}) if value else frozenset()
    return frozenset(value or ())


@dataclass(frozen=True)
class MigrationRequest:
    """A request to copy tables from one database to another.

    An empty ``selected_tables`` means every table in ``source_db``.
    """
    source_conn: str
    source_db: str
    target_conn: str
    target_db: str
    mode: MigrationMode = MigrationMode.BOTH
    selected_tables: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        # Accept any iterable of names but always store a frozenset
        if not isinstance(self.selected_tables, frozenset):
            object.__setattr__(self, 'selected_tables', _table_set(self.selected_tables))

    def with_changes(self, **changes) -> "MigrationRequest":
        """Return a new request with the given fields replaced."""
        if 'selected_tables' in changes:
            changes['selected_tables'] = _table_set(changes['selected_tables'])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_conn': self.source_conn,
            'source_db': self.source_db,
            'target_conn': self.target_conn,
            'target_db': self.target_db,
            'mode': self.mode.value if isinstance(self.mode, MigrationMode) else self.mode,
            'selected_tables': sorted(self.selected_tables),
        }


@dataclass(frozen=True)
class TableCheckResult:
    """Precheck classification of one table."""
    name: str
    source_rows: int
    target_rows: int
    blocking: bool
    reasons: Tuple[str, ...] = ()

    @property
    def status(self) -> str:
        """Operator-facing status text."""
        if self.blocking:
            blocking = [r for r in self.reasons if r in BLOCKING_REASONS]
            return f"blocked - {', '.join(blocking)}"
        if REASON_TARGET_ABSENT in self.reasons:
            return "passed (target absent)"
        return "passed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'source_rows': self.source_rows,
            'target_rows': self.target_rows,
            'blocking': self.blocking,
            'reasons': list(self.reasons),
            'status': self.status,
        }


@dataclass(frozen=True)
class RunVerdict:
    """Result of a precheck; the gate for execution."""
    checks: Tuple[TableCheckResult, ...] = ()

    @property
    def blocked(self) -> bool:
        return any(check.blocking for check in self.checks)

    @property
    def blocking_checks(self) -> List[TableCheckResult]:
        return [check for check in self.checks if check.blocking]

    @property
    def table_names(self) -> List[str]:
        return [check.name for check in self.checks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'blocked': self.blocked,
            'checks': [check.to_dict() for check in self.checks],
        }


class OutcomeStatus(Enum):
    """Terminal status of one table in an execution."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TableSyncOutcome:
    """Result of attempting to copy one table."""
    name: str
    status: OutcomeStatus
    error_detail: Optional[str] = None
    rows_copied: int = 0
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'error_detail': self.error_detail,
            'rows_copied': self.rows_copied,
            'duration': round(self.duration, 3),
        }


def index_by_name(stats: Iterable[TableStat]) -> Dict[str, TableStat]:
    """Index table stats by table name."""
    return {stat.name: stat for stat in stats}
