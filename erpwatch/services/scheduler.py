"""
Periodic background work for the alert engine.

Each PeriodicTask runs one unit of work at a fixed interval. Runs of the
same task never overlap: the next wait only starts once the current run
has returned. Failures are logged and the loop moves on to the next tick;
only shutdown (or cancellation) ends a task.

Example:
    >>> scheduler = TaskScheduler()
    >>> scheduler.add_task("correlation", 120, engine.correlate)
    >>> scheduler.start()
    >>> ...
    >>> await scheduler.stop()
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


Work = Callable[[], Awaitable[Any]]


@dataclass
class TaskStatus:
    """Snapshot of a periodic task's run history."""

    name: str
    interval_seconds: float
    run_count: int
    consecutive_failures: int
    last_run_at: Optional[datetime]
    last_success_at: Optional[datetime]
    last_error: Optional[str]
    running: bool


class PeriodicTask:
    """
    Runs ``work`` every ``interval_seconds`` until ``shutdown_event`` is set.

    Attributes:
        name: Task name used in logs.
        interval_seconds: Seconds to wait between the end of one run and the
            start of the next.
        run_on_start: Run once immediately instead of waiting a full interval.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        work: Work,
        shutdown_event: Optional[asyncio.Event] = None,
        run_on_start: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.work = work
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.run_on_start = run_on_start

        self.run_count = 0
        self.consecutive_failures = 0
        self.last_run_at: Optional[datetime] = None
        self.last_success_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._running = False

    async def run_once(self) -> bool:
        """
        Execute the unit of work once.

        Returns:
            bool: True if the work completed without raising.
        """
        start = time.monotonic()
        self.last_run_at = datetime.now(timezone.utc)
        self.run_count += 1

        try:
            await self.work()
        except Exception as e:
            self.consecutive_failures += 1
            self.last_error = str(e)
            logger.error(
                "periodic_task_failed",
                task=self.name,
                error=str(e),
                error_type=type(e).__name__,
                consecutive_failures=self.consecutive_failures,
            )
            return False

        self.consecutive_failures = 0
        self.last_error = None
        self.last_success_at = datetime.now(timezone.utc)
        logger.debug(
            "periodic_task_completed",
            task=self.name,
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return True

    async def _wait_interval(self) -> bool:
        """Wait one interval; returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self) -> None:
        """Loop until shutdown. CancelledError propagates to the caller."""
        self._running = True
        logger.info(
            "periodic_task_started",
            task=self.name,
            interval_seconds=self.interval_seconds,
        )
        try:
            if not self.run_on_start and await self._wait_interval():
                return
            while not self.shutdown_event.is_set():
                await self.run_once()
                if await self._wait_interval():
                    break
        finally:
            self._running = False
            logger.info("periodic_task_stopped", task=self.name, run_count=self.run_count)

    def status(self) -> TaskStatus:
        return TaskStatus(
            name=self.name,
            interval_seconds=self.interval_seconds,
            run_count=self.run_count,
            consecutive_failures=self.consecutive_failures,
            last_run_at=self.last_run_at,
            last_success_at=self.last_success_at,
            last_error=self.last_error,
            running=self._running,
        )


class TaskScheduler:
    """
    Owns a set of PeriodicTasks sharing one shutdown event.

    Attributes:
        shutdown_event: Event that stops every registered task.
    """

    def __init__(self, shutdown_event: Optional[asyncio.Event] = None) -> None:
        self.shutdown_event = shutdown_event or asyncio.Event()
        self._tasks: Dict[str, PeriodicTask] = {}
        self._handles: List["asyncio.Task[None]"] = []

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks.values())

    def add_task(
        self,
        name: str,
        interval_seconds: float,
        work: Work,
        run_on_start: bool = True,
    ) -> PeriodicTask:
        """
        Register a periodic task.

        Raises:
            ValueError: If a task with the same name is already registered.
        """
        if name in self._tasks:
            raise ValueError(f"task already registered: {name}")
        task = PeriodicTask(
            name=name,
            interval_seconds=interval_seconds,
            work=work,
            shutdown_event=self.shutdown_event,
            run_on_start=run_on_start,
        )
        self._tasks[name] = task
        return task

    def get_task(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    def start(self) -> None:
        """Start every registered task on the running loop."""
        if self._handles:
            logger.warning("scheduler_already_started")
            return
        for task in self._tasks.values():
            self._handles.append(asyncio.create_task(task.run(), name=task.name))
        logger.info("scheduler_started", tasks=list(self._tasks))

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Signal shutdown and wait for tasks to finish their current run.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        self.shutdown_event.set()
        if not self._handles:
            return

        done, pending = await asyncio.wait(self._handles, timeout=timeout)
        for handle in pending:
            handle.cancel()
        if pending:
            logger.warning(
                "scheduler_tasks_cancelled",
                tasks=[h.get_name() for h in pending],
            )
            await asyncio.gather(*pending, return_exceptions=True)

        for handle in done:
            if not handle.cancelled() and handle.exception() is not None:
                logger.error(
                    "scheduler_task_crashed",
                    task=handle.get_name(),
                    error=str(handle.exception()),
                )

        self._handles = []
        logger.info("scheduler_stopped")

    def status(self) -> Dict[str, TaskStatus]:
        return {name: task.status() for name, task in self._tasks.items()}
