"""Async scheduler: drives tasks through the router and resumes suspensions.

Each task is driven under its own lock, so a task never has two steps running
against its document. Distinct tasks (a parent and its subtasks, or unrelated
tasks) run concurrently as asyncio tasks. Parked tasks and deadlines are
resumed by timers; waiting parents are resumed when their last awaited child
reaches a terminal state.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .document import deep_merge, set_path
from .task import Task, TaskStatus
from ..errors import TaskNotFoundError
from ..utils.atomic_io import atomic_write_model, read_model
from ..utils.rich_logging import TaskContextLogger
from ..workflow.executor import TaskRouter

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Owns every task instance and decides when each one is driven."""

    def __init__(
        self,
        router: TaskRouter,
        archive_dir: Optional[Path] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.router = router
        self.archive_dir = Path(archive_dir) if archive_dir else None
        self._sleep = sleep
        self.tasks: Dict[str, Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Set[asyncio.Future] = set()
        # At most one armed timer per task; rescheduling cancels the old one
        self._timers: Dict[str, asyncio.Future] = {}
        self._active: Set[str] = set()

    @property
    def clock(self) -> Callable[[], datetime]:
        return self.router.clock

    @property
    def active_count(self) -> int:
        """Tasks currently executing steps (parked or waiting tasks don't count)."""
        return len(self._active)

    def get(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Unknown task: {task_id}")
        return task

    def children_of(self, task_id: str) -> List[Task]:
        return [self.tasks[c] for c in self.get(task_id).subtask_ids if c in self.tasks]

    def archived(self, task_id: str) -> Task:
        """Load a finished task from the archive directory."""
        if self.archive_dir is None:
            raise TaskNotFoundError("No archive directory configured")
        path = self.archive_dir / f"{task_id}.json"
        if not path.exists():
            raise TaskNotFoundError(f"Task {task_id} is not archived")
        return read_model(path, Task)

    async def submit(self, document: Dict[str, Any], name: str = "", tags: Optional[List[str]] = None) -> Task:
        """Create a task for an inbound trigger and start driving it."""
        task = Task(name=name, document=document, tags=list(tags or []))
        self._register(task)
        self._spawn(self._drive(task.id))
        return task

    async def run(self, document: Dict[str, Any], name: str = "") -> Task:
        """Submit a task and wait until nothing is left to do."""
        task = await self.submit(document, name=name)
        await self.run_until_idle()
        return task

    async def run_until_idle(self) -> None:
        """Wait for every pending drive and timer to finish."""
        while self._pending:
            done, _ = await asyncio.wait(list(self._pending))
            for finished in done:
                # Cancelled futures are superseded timers
                if not finished.cancelled() and finished.exception() is not None:
                    raise finished.exception()

    async def update(self, task_id: str, patch: Dict[str, Any]) -> Task:
        """Merge external data into an idle task's document and drive it again."""
        task = self.get(task_id)
        if task.is_terminal:
            raise ValueError(f"Task {task_id} is {task.status}; cannot update")
        async with self._lock(task_id):
            deep_merge(task.document, patch)
        if TaskStatus(task.status) == TaskStatus.RUNNING:
            self._spawn(self._drive(task_id))
        return task

    async def retry(self, task_id: str) -> Task:
        """Manual intervention: resume a failed task, re-arming the failed step."""
        task = self.get(task_id)
        if TaskStatus(task.status) != TaskStatus.FAILED:
            raise ValueError(f"Task {task_id} is {task.status}; only failed tasks can be retried")
        failed_step = task.failure.step if task.failure else None
        task.failure = None
        task.expires_at = None
        task.redo_streak, task.redo_streak_step = 0, None
        task.resume()
        if failed_step and failed_step not in task.rearmed_steps:
            task.rearmed_steps.append(failed_step)
        logger.info(f"Retrying task {task_id[:8]} (failed step: {failed_step})")
        self._spawn(self._drive(task_id))
        return task

    def _register(self, task: Task) -> None:
        self.tasks[task.id] = task
        self._locks[task.id] = asyncio.Lock()

    def _lock(self, task_id: str) -> asyncio.Lock:
        return self._locks[task_id]

    def _spawn(self, coro) -> asyncio.Future:
        pending = asyncio.ensure_future(coro)
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)
        return pending

    def _cancel_timer(self, task_id: str) -> None:
        timer = self._timers.pop(task_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _drive(self, task_id: str) -> None:
        task = self.tasks[task_id]
        async with self._lock(task_id):
            if TaskStatus(task.status) != TaskStatus.RUNNING:
                return
            self._active.add(task_id)
            try:
                run = await self.router.run(task)
            finally:
                self._active.discard(task_id)

        for child in run.spawned:
            self._register(child)
            self._spawn(self._drive(child.id))

        self._after_run(task)

    def _after_run(self, task: Task) -> None:
        if task.is_terminal:
            self._on_terminal(task)
            return
        self._schedule_wake(task)

    def _schedule_wake(self, task: Task) -> None:
        """Arm a timer for the earliest of park-until and the deadline."""
        self._cancel_timer(task.id)

        times = []
        if task.expires_at is not None:
            times.append(task.expires_at)
        if TaskStatus(task.status) == TaskStatus.PARKED and task.parked_until is not None:
            times.append(task.parked_until)
        if not times:
            return
        self._timers[task.id] = self._spawn(self._wake_at(task.id, min(times)))

    async def _wake_at(self, task_id: str, when: datetime) -> None:
        delay = max(0.0, (when - self.clock()).total_seconds())
        await self._sleep(delay)
        if self._timers.get(task_id) is asyncio.current_task():
            del self._timers[task_id]

        task = self.tasks[task_id]
        now = self.clock()
        if task.expires_at is not None and now >= task.expires_at:
            async with self._lock(task_id):
                if task.is_terminal:
                    return
                self.router.expire(task)
            self._after_run(task)
            return

        if TaskStatus(task.status) == TaskStatus.PARKED and task.parked_until and now >= task.parked_until:
            TaskContextLogger(logger, task_id=task_id).info("Park elapsed; resuming")
            task.resume()
            self._spawn(self._drive(task_id))
            return

        if not task.is_terminal:
            # Woke early (clock skew); try again
            self._schedule_wake(task)

    def _on_terminal(self, task: Task) -> None:
        self._cancel_timer(task.id)
        self._archive(task)

        if not task.parent_id or task.parent_id not in self.tasks:
            return
        parent = self.tasks[task.parent_id]
        if TaskStatus(parent.status) != TaskStatus.WAITING:
            return
        if task.id not in {link.child_id for link in parent.waiting_on}:
            return

        if all(self.tasks[link.child_id].is_terminal for link in parent.waiting_on):
            self._resume_parent(parent)

    def _resume_parent(self, parent: Task) -> None:
        log = TaskContextLogger(logger, task_id=parent.id)
        for link in parent.waiting_on:
            child = self.tasks[link.child_id]
            if TaskStatus(child.status) != TaskStatus.COMPLETED:
                log.warning(f"Subtask {child.id[:8]} ended {child.status}; no result merged")
                continue
            if link.into:
                set_path(parent.document, link.into, child.result)
        log.info(f"All {len(parent.waiting_on)} subtask(s) finished; resuming")
        parent.resume()
        self._spawn(self._drive(parent.id))

    def _archive(self, task: Task) -> None:
        if self.archive_dir is None or TaskStatus(task.status) == TaskStatus.FAILED:
            return
        atomic_write_model(self.archive_dir / f"{task.id}.json", task)
