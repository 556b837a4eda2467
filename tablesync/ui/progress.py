"""Progress tracking for table-by-table execution."""
from typing import Optional, Callable
from dataclasses import dataclass
from datetime import datetime


@dataclass
class ProgressStats:
    """Statistics about the progress of a run."""
    total_tables: int
    finished_tables: int
    failed_tables: int
    start_time: datetime
    current_speed: float  # tables per second
    estimated_time_remaining: float  # seconds
    percentage_complete: float
    last_table: str = ""


class ProgressTracker:
    """Tracks finished tables and notifies a display callback."""

    def __init__(
        self,
        total_tables: int,
        update_callback: Optional[Callable[[ProgressStats], None]] = None
    ):
        self.total_tables = total_tables
        self.finished_tables = 0
        self.failed_tables = 0
        self.start_time = datetime.now()
        self.update_callback = update_callback

    def table_finished(self, table_name: str, failed: bool = False) -> ProgressStats:
        """Record one finished table and notify the callback."""
        self.finished_tables += 1
        if failed:
            self.failed_tables += 1
        stats = self._calculate(datetime.now(), table_name)
        if self.update_callback:
            self.update_callback(stats)
        return stats

    def _calculate(self, current_time: datetime, table_name: str) -> ProgressStats:
        elapsed_time = (current_time - self.start_time).total_seconds()
        current_speed = self.finished_tables / elapsed_time if elapsed_time > 0 else 0

        remaining = self.total_tables - self.finished_tables
        estimated_time_remaining = remaining / current_speed if current_speed > 0 else 0

        percentage_complete = (self.finished_tables / self.total_tables) * 100 if self.total_tables > 0 else 100

        return ProgressStats(
            total_tables=self.total_tables,
            finished_tables=self.finished_tables,
            failed_tables=self.failed_tables,
            start_time=self.start_time,
            current_speed=current_speed,
            estimated_time_remaining=estimated_time_remaining,
            percentage_complete=percentage_complete,
            last_table=table_name
        )
