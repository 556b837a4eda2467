"""Console output for prechecks and migration results."""
import sys
import threading
from typing import Any, List, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich import box

from ..core.logging import get_logger
from ..domain.interfaces import OutcomeInterface
from ..domain.models import OutcomeStatus, RunVerdict, TableStat, TableSyncOutcome
from .progress import ProgressStats

logger = get_logger(__name__)

_STATUS_STYLES = {
    OutcomeStatus.SUCCEEDED: "green",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.SKIPPED: "yellow",
}


def format_time(seconds: float) -> str:
    """Format time in seconds to a human-readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def format_size(size_bytes: float) -> str:
    """Format size in bytes to a human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024:
            return f"{size_bytes:.2f}{unit}"
        size_bytes /= 1024
    return f"{size_bytes:.2f}PB"


class RichInterface(OutcomeInterface):
    """Renders verdicts and outcomes as rich tables."""

    def __init__(self, console: Optional[Console] = None, show_progress: bool = True):
        self.console = console or Console()
        self.show_progress = show_progress

    def display_table_stats(self, title: str, stats: Sequence[TableStat]) -> None:
        table = Table(title=title, box=box.ROUNDED)
        table.add_column("Table", style="blue")
        table.add_column("Rows", style="magenta", justify="right")
        table.add_column("Size", style="yellow", justify="right")

        for stat in stats:
            table.add_row(stat.name, str(stat.row_count), format_size(stat.size_bytes))

        self.console.print(table)

    def display_verdict(self, verdict: RunVerdict) -> None:
        table = Table(title="Precheck", box=box.ROUNDED)
        table.add_column("Table", style="blue")
        table.add_column("Source Rows", style="magenta", justify="right")
        table.add_column("Target Rows", style="magenta", justify="right")
        table.add_column("Status", style="cyan")

        for check in verdict.checks:
            status = f"[red]{check.status}" if check.blocking else f"[green]{check.status}"
            table.add_row(check.name, str(check.source_rows), str(check.target_rows), status)

        self.console.print(table)
        if not verdict.checks:
            self.console.print("[yellow]No tables to migrate")
        elif verdict.blocked:
            self.console.print(
                f"[red]Blocked: {len(verdict.blocking_checks)} of {len(verdict.checks)} tables conflict with the target"
            )
        else:
            self.console.print(f"[green]Clear: {len(verdict.checks)} tables can be migrated")

    def display_progress(self, stats: ProgressStats) -> None:
        if not self.show_progress:
            return
        failed = f", {stats.failed_tables} failed" if stats.failed_tables else ""
        self.console.print(
            f"[cyan]{stats.finished_tables}/{stats.total_tables}[/cyan] tables "
            f"({stats.percentage_complete:.0f}%{failed}) last: {stats.last_table}"
        )

    def display_outcome(self, outcome: TableSyncOutcome) -> None:
        style = _STATUS_STYLES[outcome.status]
        detail = f": {outcome.error_detail}" if outcome.error_detail else ""
        self.console.print(f"[{style}]{outcome.status.value}[/{style}] {outcome.name}{detail}")

    def display_log(self, line: str) -> None:
        """Print one migration log line; table names are not markup."""
        self.console.print(line, style="dim", markup=False, highlight=False)

    def display_summary(self, outcomes: List[TableSyncOutcome]) -> None:
        total_rows = sum(o.rows_copied for o in outcomes)
        succeeded = sum(1 for o in outcomes if o.status == OutcomeStatus.SUCCEEDED)
        failed = sum(1 for o in outcomes if o.status == OutcomeStatus.FAILED)
        skipped = sum(1 for o in outcomes if o.status == OutcomeStatus.SKIPPED)

        summary_table = Table(title="Migration Summary", box=box.ROUNDED)
        summary_table.add_column("Metric", style="cyan")
        summary_table.add_column("Value", style="yellow")

        summary_table.add_row("Total Tables", str(len(outcomes)))
        summary_table.add_row("Succeeded", f"{succeeded}/{len(outcomes)}")
        summary_table.add_row("Failed", str(failed))
        summary_table.add_row("Skipped", str(skipped))
        summary_table.add_row("Total Rows Copied", str(total_rows))

        results_table = Table(title="Detailed Results", box=box.ROUNDED)
        results_table.add_column("Table", style="blue")
        results_table.add_column("Status", style="cyan")
        results_table.add_column("Rows", style="magenta", justify="right")
        results_table.add_column("Duration", style="green")
        results_table.add_column("Detail")

        for outcome in outcomes:
            style = _STATUS_STYLES[outcome.status]
            results_table.add_row(
                outcome.name,
                f"[{style}]{outcome.status.value}",
                str(outcome.rows_copied),
                format_time(outcome.duration),
                outcome.error_detail or ""
            )

        self.console.print(summary_table)
        self.console.print(results_table)

        logger.info(
            f"Migration Summary: {succeeded}/{len(outcomes)} tables, "
            f"{failed} failed, {skipped} skipped, {total_rows} rows"
        )


class PlainInterface(OutcomeInterface):
    """Line-oriented output for logs and non-interactive terminals."""

    def __init__(self, stream: Any = None, show_progress: bool = True):
        self.stream = stream or sys.stdout
        self.show_progress = show_progress
        # Log lines arrive from worker threads
        self._lock = threading.Lock()

    def _write(self, line: str) -> None:
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()

    def display_table_stats(self, title: str, stats: Sequence[TableStat]) -> None:
        self._write(f"{title}:")
        for stat in stats:
            self._write(f"  {stat.name}: {stat.row_count} rows, {format_size(stat.size_bytes)}")

    def display_verdict(self, verdict: RunVerdict) -> None:
        for check in verdict.checks:
            self._write(
                f"  {check.name}: {check.status} "
                f"(source {check.source_rows} rows, target {check.target_rows} rows)"
            )
        state = "blocked" if verdict.blocked else "clear"
        self._write(f"Precheck {state}: {len(verdict.checks)} tables")

    def display_progress(self, stats: ProgressStats) -> None:
        if self.show_progress:
            self._write(
                f"Progress: {stats.finished_tables}/{stats.total_tables} "
                f"({stats.percentage_complete:.0f}%)"
            )

    def display_outcome(self, outcome: TableSyncOutcome) -> None:
        detail = f": {outcome.error_detail}" if outcome.error_detail else ""
        self._write(f"{outcome.name} {outcome.status.value}{detail}")

    def display_log(self, line: str) -> None:
        self._write(line)

    def display_summary(self, outcomes: List[TableSyncOutcome]) -> None:
        succeeded = sum(1 for o in outcomes if o.success)
        self._write(
            f"Migration Summary:\n"
            f"  Total tables: {len(outcomes)}\n"
            f"  Succeeded: {succeeded}\n"
            f"  Total rows copied: {sum(o.rows_copied for o in outcomes)}"
        )


def create_interface(ui_config=None, **kwargs) -> OutcomeInterface:
    """Create the console interface named by ``ui_config.type``.

    Args:
        ui_config: UI configuration options (from config.ui)
        **kwargs: Additional arguments to pass to the interface constructor

    Returns:
        UI interface instance
    """
    interface_type = "rich"
    if ui_config:
        interface_type = getattr(ui_config, 'type', 'rich') or 'rich'
        kwargs.setdefault('show_progress', getattr(ui_config, 'show_progress', True))

    if interface_type.lower() == "plain":
        logger.debug("Using plain console interface")
        return PlainInterface(**kwargs)
    logger.debug("Using rich console interface")
    return RichInterface(**kwargs)
