"""Parallel processing utilities for the table sync tool."""
import time
import threading
import queue
import multiprocessing
from typing import List, Any, Optional, Callable, Union
from dataclasses import dataclass

from tablesync.core.exceptions import TableTimeoutError
from tablesync.core.logging import get_logger

logger = get_logger(__name__)


def parse_worker_count(worker_count: Union[str, int]) -> int:
    """Parse worker count setting from configuration.

    Supports:
    - Integer value (e.g., "4")
    - Percentage of available CPUs (e.g., "50%")
    - "auto" for default of min(4, cpu_count)

    Args:
        worker_count: Worker count value to parse

    Returns:
        Number of workers to use
    """
    cpu_count = multiprocessing.cpu_count()
    default_workers = min(4, cpu_count)

    if not worker_count:
        return default_workers

    if isinstance(worker_count, int):
        return max(1, worker_count)

    worker_str = str(worker_count).strip().lower()

    if worker_str.endswith('%'):
        try:
            percentage = float(worker_str[:-1])
            return max(1, int(cpu_count * percentage / 100))
        except ValueError:
            logger.warning(f"Invalid worker count percentage: {worker_str}, using default: {default_workers}")
            return default_workers

    if worker_str == 'auto':
        return default_workers

    try:
        return max(1, int(worker_str))
    except ValueError:
        logger.warning(f"Invalid worker count: {worker_str}, using default: {default_workers}")
        return default_workers


class CancelToken:
    """Cooperative cancellation flag shared between a caller and the workers.

    A token created with a ``parent`` also reports cancelled once the
    parent is cancelled, so one task can be stopped without stopping the run.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self.parent = parent
        self.cancelled_at: Optional[float] = None

    def cancel(self) -> None:
        if not self._event.is_set():
            self.cancelled_at = time.monotonic()
            self._event.set()
            if self.parent is None:
                logger.info("Cancellation requested")

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.parent is not None and self.parent.is_cancelled()


@dataclass
class WorkerConfig:
    """Configuration for parallel workers."""
    num_workers: int = 4
    timeout: float = 0  # Per task, in seconds; 0 disables
    poll_interval: float = 0.05


@dataclass
class TaskResult:
    """What happened to one submitted item."""
    item: Any
    value: Any = None
    error: Optional[BaseException] = None
    started: bool = True
    duration: float = 0.0
    finished_at: Optional[float] = None
    # Finished after cancellation was requested
    cancelled: bool = False


class ParallelWorker:
    """Bounded worker pool that runs each item on its own thread.

    Results are returned in input order. Every task gets its own cancel
    token chained to the pool's token. A task running longer than
    ``config.timeout`` is reported with a TableTimeoutError and its token
    is cancelled; it keeps its slot until its thread returns, so no more
    than ``num_workers`` tasks ever run at once. Once the pool's token is
    set no new task is started.
    """

    def __init__(self, config: WorkerConfig, cancel_token: Optional[CancelToken] = None):
        self.config = config
        self.cancel_token = cancel_token or CancelToken()

    def map(
        self,
        func: Callable[[Any, CancelToken], Any],
        items: List[Any],
        on_result: Optional[Callable[[int, TaskResult], None]] = None
    ) -> List[TaskResult]:
        """Apply ``func(item, task_token)`` to every item with at most ``num_workers`` running at once.

        Args:
            func: Function to apply to each item; must stop once its token is cancelled
            items: Items to process
            on_result: Called from the calling thread as each item's result is final

        Returns:
            One TaskResult per item, in input order, once every thread has returned
        """
        items = list(items)
        results: List[Optional[TaskResult]] = [None] * len(items)

        def record(index: int, result: TaskResult) -> None:
            results[index] = result
            if on_result:
                on_result(index, result)

        done = queue.Queue()
        running = {}  # index -> (start time, task token)
        timed_out = set()
        next_index = 0
        num_workers = max(1, self.config.num_workers)

        while next_index < len(items) or running:
            while (next_index < len(items)
                   and len(running) < num_workers
                   and not self.cancel_token.is_cancelled()):
                index = next_index
                next_index += 1
                task_token = CancelToken(parent=self.cancel_token)
                running[index] = (time.monotonic(), task_token)
                worker = threading.Thread(
                    target=self._worker_thread,
                    args=(func, index, items[index], task_token, done),
                    daemon=True,
                    name=f"Worker-{index}"
                )
                worker.start()

            if self.cancel_token.is_cancelled() and next_index < len(items):
                logger.debug(f"Cancelled with {len(items) - next_index} task(s) not started")
                for index in range(next_index, len(items)):
                    record(index, TaskResult(item=items[index], started=False))
                next_index = len(items)

            if not running:
                continue

            try:
                index, result = done.get(timeout=self.config.poll_interval)
                del running[index]
                if index in timed_out:
                    # Already reported as timed out
                    if result.error is None:
                        logger.warning(f"Task {items[index]} finished after its timeout was reported")
                else:
                    result.cancelled = self._finished_after_cancel(result)
                    record(index, result)
            except queue.Empty:
                pass

            if self.config.timeout:
                now = time.monotonic()
                for index, (started, task_token) in list(running.items()):
                    if index not in timed_out and now - started > self.config.timeout:
                        logger.warning(f"Task {items[index]} exceeded {self.config.timeout:g}s, cancelling it")
                        timed_out.add(index)
                        task_token.cancel()
                        record(index, TaskResult(
                            item=items[index],
                            error=TableTimeoutError(str(items[index]), self.config.timeout),
                            duration=now - started,
                            finished_at=now
                        ))

        return results

    def _finished_after_cancel(self, result: TaskResult) -> bool:
        cancelled_at = self.cancel_token.cancelled_at
        if cancelled_at is None or result.finished_at is None:
            return False
        return result.finished_at >= cancelled_at

    def _worker_thread(
        self,
        func: Callable[[Any, CancelToken], Any],
        index: int,
        item: Any,
        task_token: CancelToken,
        done: queue.Queue
    ) -> None:
        """Worker thread function."""
        start = time.monotonic()
        try:
            value = func(item, task_token)
            result = TaskResult(item=item, value=value)
        except Exception as e:
            logger.debug(f"Worker {index} failed on {item}: {str(e)}")
            result = TaskResult(item=item, error=e)
        result.finished_at = time.monotonic()
        result.duration = result.finished_at - start
        done.put((index, result))
