"""Execution context for one run: worker pool, time budget and cancellation."""

from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from typing import Any, Callable, Iterator, Optional
import logging
import threading
import time

from ..utils.exceptions import RunTimeoutError

logger = logging.getLogger(__name__)


class RunContext:
    """
    Carries the optional executor, deadline and cancellation flag through
    the stages.

    Per-date work is handed to ``map_by_date``; results always come back in
    the order the dates were given, whether run inline or on workers. Long
    searches call ``checkpoint`` so that work already running on a worker
    stops once the run is cancelled.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.clock = clock
        self.started_at = clock()
        self.timeout_seconds = timeout_seconds
        self.deadline = (
            self.started_at + timeout_seconds if timeout_seconds is not None else None
        )
        self.cancelled = threading.Event()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock())

    def cancel(self) -> None:
        """Ask in-flight work of this run to stop at its next checkpoint."""
        self.cancelled.set()

    def check_deadline(self, where: str) -> None:
        """
        Raises:
            RunTimeoutError: If the run's time budget is spent
        """
        if self.deadline is not None and self.clock() > self.deadline:
            raise RunTimeoutError(
                f"Reconciliation exceeded {self.timeout_seconds}s budget during {where}"
            )

    def checkpoint(self, where: str) -> None:
        """
        Stop point inside a long computation.

        Raises:
            RunTimeoutError: If the run was cancelled or its budget is spent
        """
        if self.cancelled.is_set():
            raise RunTimeoutError(f"Reconciliation cancelled during {where}")
        self.check_deadline(where)

    def map_by_date(
        self,
        func: Callable[[date, Any], Any],
        work: list[tuple[date, Any]],
        where: str,
    ) -> Iterator[tuple[date, Any]]:
        """Apply ``func(day, item)`` to each entry, yielding ``(day, result)`` in input order."""
        if self.executor is None:
            for day, item in work:
                self.check_deadline(where)
                yield day, func(day, item)
            return

        futures = [(day, self.executor.submit(func, day, item)) for day, item in work]
        try:
            for day, future in futures:
                self.check_deadline(where)
                try:
                    result = future.result(timeout=self.remaining())
                except FutureTimeoutError as e:
                    raise RunTimeoutError(
                        f"Reconciliation exceeded {self.timeout_seconds}s budget during {where}"
                    ) from e
                yield day, result
        except RunTimeoutError:
            self.cancel()
            raise
        finally:
            for _, future in futures:
                future.cancel()
