"""Background scheduler - runs periodic maintenance sweeps.

Sweeps (expiry, decay, consolidation, deduplication) share one asyncio task
and run one at a time, so they never interleave with each other. A failing
sweep is logged and retried at its next interval.
"""

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from mnemo.core.logging import get_logger

logger = get_logger("core.scheduler")


class TaskPriority(Enum):
    LOW = 1
    NORMAL = 2
    HIGH = 3


@dataclass
class ScheduledTask:
    """A sweep registered with the scheduler."""

    id: str
    name: str
    callback: Callable
    interval: timedelta | None = None  # None = one-shot
    priority: TaskPriority = TaskPriority.NORMAL
    next_run: datetime = field(default_factory=datetime.now)
    last_run: datetime | None = None
    last_result: Any = None
    last_error: str | None = None
    run_count: int = 0
    failure_count: int = 0
    enabled: bool = True
    running: bool = False

    def is_due(self, now: datetime) -> bool:
        return self.enabled and not self.running and self.next_run <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "interval_seconds": self.interval.total_seconds() if self.interval else None,
            "priority": self.priority.name.lower(),
            "next_run": self.next_run.isoformat(),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
        }


class Scheduler:
    """Runs due sweeps, highest priority first, on a single loop task."""

    def __init__(self, tick: float = 1.0):
        self._tasks: dict[str, ScheduledTask] = {}
        self._tick = tick
        self._loop_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def schedule_task(
        self,
        task_id: str,
        name: str,
        callback: Callable,
        interval: timedelta | None = None,
        priority: TaskPriority = TaskPriority.NORMAL,
        delay: timedelta | None = None,
    ) -> ScheduledTask:
        """Register a sweep. Re-using an id replaces the earlier registration."""
        task = ScheduledTask(
            id=task_id,
            name=name,
            callback=callback,
            interval=interval,
            priority=priority,
            next_run=datetime.now() + (delay or timedelta(0)),
        )
        self._tasks[task_id] = task
        logger.info(f"Scheduled {name} (interval: {interval}, priority: {priority.name.lower()})")
        return task

    def cancel_task(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def get_task(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def run_now(self, task_id: str) -> Any:
        """Run one sweep immediately, outside its schedule. Returns its result."""
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"No scheduled task: {task_id}")
        await self._run(task)
        return task.last_result

    async def run_pending(self) -> int:
        """Run every due sweep once. Returns how many ran."""
        now = datetime.now()
        due = sorted(
            (t for t in self._tasks.values() if t.is_due(now)),
            key=lambda t: t.priority.value,
            reverse=True,
        )
        for task in due:
            await self._run(task)
        return len(due)

    async def _run(self, task: ScheduledTask) -> None:
        task.running = True
        try:
            result = task.callback()
            if asyncio.iscoroutine(result):
                result = await result
            task.last_result = result
            task.last_error = None
            logger.debug(f"{task.name} finished: {result}")
        except Exception as e:
            task.failure_count += 1
            task.last_error = str(e)
            logger.error(f"{task.name} failed: {e}")
        finally:
            task.running = False
            task.run_count += 1
            task.last_run = datetime.now()
            if task.interval:
                task.next_run = task.last_run + task.interval
            else:
                self._tasks.pop(task.id, None)

    async def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._loop())
        logger.info(f"Scheduler started with {len(self._tasks)} tasks")

    async def stop(self) -> None:
        """Stop the loop, cancelling any sweep in progress."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
            logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await self.run_pending()
            await asyncio.sleep(self._tick)
