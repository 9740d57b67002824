"""
Interval scheduler driving the periodic refresh.

Tasks are named async callbacks with a fixed period. Due times come from an
injectable monotonic clock so the loop can be stepped deterministically.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger


@dataclass
class ScheduledTask:
    name: str
    interval_seconds: float
    callback: Callable[[], Awaitable[None]]
    next_run: float = 0.0
    last_run: Optional[datetime] = None
    run_count: int = 0
    enabled: bool = True


class Scheduler:
    """
    Runs each enabled task once its period has elapsed.

    A callback that raises is logged under the task's name and keeps its
    place in the rotation.
    """

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.monotonic,
        max_sleep_seconds: float = 60.0,
    ) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._logger = logger
        self._clock = clock
        # longest single idle wait, so newly added tasks are noticed
        self._max_sleep_seconds = max_sleep_seconds
        self._wakeup: Optional[asyncio.Event] = None

    def schedule(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        run_immediately: bool = False,
    ) -> ScheduledTask:
        """
        Register ``callback`` under ``name`` with a period of ``interval_seconds``.

        The first run happens one period from now, or on the next loop pass
        with ``run_immediately``. Raises ValueError for a non-positive period
        or a name already in use.
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive, got {interval_seconds}")
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already exists")

        first_run = self._clock()
        if not run_immediately:
            first_run += interval_seconds

        task = ScheduledTask(
            name=name,
            interval_seconds=interval_seconds,
            callback=callback,
            next_run=first_run,
        )
        self._tasks[name] = task
        return task

    def unschedule(self, name: str) -> bool:
        return self._tasks.pop(name, None) is not None

    def get_task(self, name: str) -> Optional[ScheduledTask]:
        return self._tasks.get(name)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def enable_task(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable_task(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        task = self._tasks.get(name)
        if task is None:
            return False
        task.enabled = enabled
        return True

    async def run_due(self) -> int:
        """Run the tasks that are due now and return how many ran."""
        ran = 0
        for task in list(self._tasks.values()):
            if not task.enabled or self._clock() < task.next_run:
                continue

            task.last_run = datetime.now(timezone.utc)
            task.next_run = self._clock() + task.interval_seconds
            task.run_count += 1
            ran += 1
            try:
                await task.callback()
            except Exception as e:
                if self._logger:
                    self._logger.log_error(
                        "Scheduler",
                        f"Scheduled task '{task.name}' failed",
                        error=e,
                        additional_data={"task": task.name},
                    )
        return ran

    def seconds_until_next(self) -> float:
        """Idle time before the next enabled task is due, bounded by max_sleep_seconds."""
        due = [t.next_run for t in self._tasks.values() if t.enabled]
        if not due:
            return self._max_sleep_seconds
        wait = min(due) - self._clock()
        return min(max(wait, 0.0), self._max_sleep_seconds)

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Loop until stop() is called or ``stop_event`` is set."""
        self._running = True
        self._wakeup = stop_event or asyncio.Event()

        try:
            while self._running and not self._wakeup.is_set():
                await self.run_due()

                if not self._running or self._wakeup.is_set():
                    break

                try:
                    await asyncio.wait_for(self._wakeup.wait(), self.seconds_until_next())
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self._wakeup = None

    def stop(self) -> None:
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()

    def is_running(self) -> bool:
        return self._running
