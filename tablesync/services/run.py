"""Lifecycle of a single migration attempt."""
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from tablesync.core.exceptions import BlockedError, DatabaseError, InvalidRequest, InvalidStateError
from tablesync.core.logging import get_logger
from tablesync.infrastructure.parallel import CancelToken
from ..domain.models import MigrationRequest, OutcomeStatus, RunVerdict, TableSyncOutcome
from .conflicts import ConflictDetector
from .sync import SyncCoordinator

logger = get_logger(__name__)


class RunState(Enum):
    DRAFT = "draft"
    CHECKED_BLOCKED = "checked_blocked"
    CHECKED_CLEAR = "checked_clear"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


_EDITABLE = (RunState.DRAFT, RunState.CHECKED_BLOCKED, RunState.CHECKED_CLEAR)


class MigrationRun:
    """One migration attempt, from drafting the request to its outcomes.

    A run moves DRAFT -> CHECKED_BLOCKED | CHECKED_CLEAR -> RUNNING ->
    COMPLETED | ABORTED. Any change to the request while it is still
    editable drops the verdict and sends the run back to DRAFT.
    """

    def __init__(self, request: MigrationRequest):
        self.request = request
        self.state = RunState.DRAFT
        self.verdict: Optional[RunVerdict] = None
        self.outcomes: List[TableSyncOutcome] = []
        self.error: Optional[str] = None

    def precheck(self, detector: ConflictDetector) -> RunVerdict:
        """Compute and store a verdict for the current request."""
        if self.state not in _EDITABLE:
            raise InvalidStateError(f"Cannot precheck a run in state {self.state.value}")

        self.verdict = None
        self.state = RunState.DRAFT
        verdict = detector.precheck(self.request)

        self.verdict = verdict
        self.state = RunState.CHECKED_BLOCKED if verdict.blocked else RunState.CHECKED_CLEAR
        logger.debug(f"Run prechecked: {self.state.value}")
        return verdict

    def update_request(self, **changes) -> MigrationRequest:
        """Edit the request; a real change invalidates the verdict."""
        if self.state not in _EDITABLE:
            raise InvalidStateError(f"Cannot edit a run in state {self.state.value}")

        updated = self.request.with_changes(**changes)
        if updated != self.request:
            self.request = updated
            self.verdict = None
            self.state = RunState.DRAFT
            logger.debug("Request changed, verdict invalidated")
        return self.request

    def execute(
        self,
        coordinator: SyncCoordinator,
        excluded_tables: Iterable[str] = (),
        cancel_token: Optional[CancelToken] = None
    ) -> List[TableSyncOutcome]:
        """Execute a cleared run.

        Raises:
            InvalidStateError: Unless the run is CHECKED_CLEAR
            BlockedError: If the fresh precheck is blocked; the run is ABORTED
            DatabaseError, InvalidRequest: If the fresh precheck fails; the run returns to DRAFT
        """
        if self.state != RunState.CHECKED_CLEAR:
            raise InvalidStateError(f"Cannot execute a run in state {self.state.value}")

        self.state = RunState.RUNNING
        try:
            outcomes = coordinator.execute(self.request, excluded_tables, cancel_token)
        except BlockedError as e:
            self.verdict = e.verdict
            self.outcomes = []
            self.error = str(e)
            self.state = RunState.ABORTED
            raise
        except (DatabaseError, InvalidRequest):
            self.verdict = None
            self.state = RunState.DRAFT
            raise
        except Exception:
            self.state = RunState.CHECKED_CLEAR
            raise

        self.outcomes = outcomes
        self.state = RunState.COMPLETED
        return outcomes

    def _with_status(self, status: OutcomeStatus) -> List[TableSyncOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> List[TableSyncOutcome]:
        return self._with_status(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> List[TableSyncOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> List[TableSyncOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def is_successful(self) -> bool:
        return self.state == RunState.COMPLETED and not self.failed

    def summary(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'tables': len(self.outcomes),
            'succeeded': len(self.succeeded),
            'failed': len(self.failed),
            'skipped': len(self.skipped),
            'rows_copied': sum(o.rows_copied for o in self.outcomes),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'request': self.request.to_dict(),
            'state': self.state.value,
            'verdict': self.verdict.to_dict() if self.verdict is not None else None,
            'outcomes': [o.to_dict() for o in self.outcomes],
            'summary': self.summary(),
            'error': self.error,
        }
