"""Task router: matches step conditions against a task document and runs them."""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

if TYPE_CHECKING:
    from ..connectors.facade import ConnectorFacade
    from ..core.config import RouterConfig

from .conditions import ConditionMatcher
from .steps import Step, StepRegistry
from ..core.blobs import BlobStore
from ..core.controls import StepContext, StepControl, StepOutcome, TaskControl
from ..core.document import snapshot
from ..core.task import StepRun, SubtaskLink, Task, TaskStatus
from ..errors import HandlerError, LoopRunawayError
from ..utils.rich_logging import TaskContextLogger

logger = logging.getLogger(__name__)

# Hard ceiling on router cycles per run; a cycle runs every matching step once
MAX_CYCLES = 1000

# Cap consecutive redo runs of the same step
MAX_REDO = 500


class MatchPolicy(str, Enum):
    """Which matching steps run in one cycle."""
    ALL = "all"  # every eligible match, in registration order
    FIRST = "first"  # only the first eligible match


@dataclass
class RouterRun:
    """What happened during one ``TaskRouter.run`` call."""
    task: Task
    cycles: int = 0
    executed: List[str] = field(default_factory=list)
    spawned: List[Task] = field(default_factory=list)

    @property
    def status(self) -> str:
        return TaskStatus(self.task.status).value


class TaskRouter:
    """Runs the match / execute / re-evaluate loop for one task at a time.

    Rules:
    - A step runs at most once per task unless its last run called
      ``step.redo()``. A redo step gets the first look in the next cycle and
      runs alone if it still matches.
    - Hand-off between steps is purely through document writes; there is no
      "next step" pointer.
    - An uncaught handler exception fails the task (fail-stop). Mutations made
      before the exception are kept.
    """

    def __init__(
        self,
        registry: StepRegistry,
        matcher: Optional[ConditionMatcher] = None,
        connectors: Optional["ConnectorFacade"] = None,
        blobs: Optional[BlobStore] = None,
        config_lookup: Optional[Callable[[str], Any]] = None,
        match_policy: MatchPolicy = MatchPolicy.ALL,
        max_cycles: int = MAX_CYCLES,
        max_redo: int = MAX_REDO,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if connectors is None:
            from ..connectors.facade import ConnectorFacade
            connectors = ConnectorFacade()

        self.registry = registry
        self.matcher = matcher or ConditionMatcher()
        self.connectors = connectors
        self.blobs = blobs or BlobStore()
        self.config_lookup = config_lookup or (lambda key: None)
        self.match_policy = MatchPolicy(match_policy)
        self.max_cycles = max_cycles
        self.max_redo = max_redo
        self.clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_config(
        cls,
        registry: StepRegistry,
        config: "RouterConfig",
        connectors: Optional["ConnectorFacade"] = None,
        **kwargs,
    ) -> "TaskRouter":
        """Build a router from loaded configuration."""
        return cls(
            registry,
            matcher=ConditionMatcher(array_policy=config.matching.array_policy),
            connectors=connectors,
            config_lookup=config.lookup,
            match_policy=MatchPolicy(config.router.match_policy),
            max_cycles=config.router.max_cycles,
            max_redo=config.router.max_redo,
            **kwargs,
        )

    def matching_steps(self, document: dict) -> List[Step]:
        """All valid steps whose condition matches ``document`` (ignores run-once)."""
        snap = snapshot(document)
        return [s for s in self.registry if s.is_valid and self.matcher.match_node(s.pattern, snap, snap)]

    def select(self, task: Task) -> List[Step]:
        """Steps to run in the next cycle, per redo priority and match policy."""
        snap = snapshot(task.document)

        if task.redo_step:
            redo_step = self.registry.get(task.redo_step)
            task.redo_step = None
            if redo_step and redo_step.is_valid and self.matcher.match_node(redo_step.pattern, snap, snap):
                return [redo_step]

        candidates = [
            s for s in self.registry
            if s.is_valid
            and task.is_eligible(s.name)
            and self.matcher.match_node(s.pattern, snap, snap)
        ]
        if self.match_policy == MatchPolicy.FIRST:
            return candidates[:1]
        return candidates

    async def run(self, task: Task) -> RouterRun:
        """Drive a RUNNING task until it is idle, suspended, terminal or failed."""
        run = RouterRun(task=task)
        if TaskStatus(task.status) != TaskStatus.RUNNING:
            return run

        self.registry.freeze()
        log = TaskContextLogger(logger, task_id=task.id)

        while TaskStatus(task.status) == TaskStatus.RUNNING:
            now = self.clock()
            if task.expires_at is not None and now >= task.expires_at:
                self.expire(task)
                break

            cycle_steps = self.select(task)
            if not cycle_steps:
                log.debug("No step matches; task is idle")
                break

            run.cycles += 1
            if run.cycles > self.max_cycles:
                self._fail(task, LoopRunawayError(cycle_steps[0].name, "max_cycles", self.max_cycles), log)
                break

            for current in cycle_steps:
                outcome = await self._execute(task, current, run.cycles, log)
                run.executed.append(current.name)
                if outcome is None:
                    break

                if task.record_redo(current.name, outcome.redo) > self.max_redo:
                    self._fail(task, LoopRunawayError(current.name, "max_redo", self.max_redo), log)
                    break

                if self._apply(task, current, outcome, run, log):
                    break

        if task.is_terminal:
            log.task_finished(TaskStatus(task.status).value, run.cycles)
        return run

    async def _execute(
        self, task: Task, current: Step, cycle: int, log: TaskContextLogger
    ) -> Optional[StepOutcome]:
        """Run one handler. Returns None if it raised (the task is failed)."""
        outcome = StepOutcome()
        ctx = StepContext(
            data=task.document,
            task=TaskControl(task, outcome, self.config_lookup),
            step=StepControl(current.name, outcome),
            connectors=self.connectors.bind(task.document),
            blob=self.blobs,
            logger=log.for_step(task.id, current.name),
        )

        record = StepRun(step=current.name, cycle=cycle, started_at=self.clock())
        task.history.append(record)
        if current.name in task.rearmed_steps:
            task.rearmed_steps.remove(current.name)

        log.step_started(current.name, cycle)
        try:
            result = current.handler(ctx)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            record.finished_at = self.clock()
            record.error = f"{type(e).__name__}: {e}"
            log.debug("Handler raised", exc_info=True)
            self._fail(task, HandlerError(current.name, e), log)
            return None

        record.finished_at = self.clock()
        record.redo = outcome.redo
        return outcome

    def _apply(
        self, task: Task, current: Step, outcome: StepOutcome, run: RouterRun, log: TaskContextLogger
    ) -> bool:
        """Apply a step's signals. Returns True if the cycle must stop."""
        now = self.clock()

        if outcome.timeout_ms is not None:
            task.expires_at = now + timedelta(milliseconds=outcome.timeout_ms)
        if outcome.complete_on_expire:
            task.complete_on_expire = True

        if outcome.redo:
            if current.name not in task.rearmed_steps:
                task.rearmed_steps.append(current.name)
            task.redo_step = current.name

        links: List[SubtaskLink] = []
        for request in outcome.subtasks:
            child = Task(name=request.name, document=request.document, parent_id=task.id)
            task.subtask_ids.append(child.id)
            run.spawned.append(child)
            if request.wait_for:
                links.append(SubtaskLink(child_id=child.id, into=request.into))
            log.info(f"Spawned subtask '{request.name}' ({child.id[:8]})")

        if outcome.terminal == "complete":
            task.mark_completed(outcome.result, now=now)
            return True
        if outcome.terminal == "ignore":
            task.mark_ignored(now=now)
            return True

        if links:
            if outcome.park_ms is not None:
                log.warning("park() ignored: task is waiting on subtasks")
            task.mark_waiting(links)
            return True

        if outcome.park_ms is not None:
            task.mark_parked(now + timedelta(milliseconds=outcome.park_ms))
            log.info(f"Parked for {outcome.park_ms}ms")
            return True

        return outcome.redo

    def expire(self, task: Task) -> None:
        """Handle a passed deadline: complete or fail the task."""
        if task.is_terminal:
            return
        log = TaskContextLogger(logger, task_id=task.id)
        if task.complete_on_expire:
            log.info("Deadline reached; completing task")
            task.mark_completed(None, now=self.clock())
        else:
            log.warning("Deadline reached; task timed out")
            task.mark_failed("Task timed out", "TimeoutError", now=self.clock())

    def _fail(self, task: Task, error: HandlerError, log: TaskContextLogger) -> None:
        error_type = type(error.cause).__name__ if error.cause is not None else type(error).__name__
        task.mark_failed(str(error), error_type, step=error.step_name, now=self.clock())
        log.task_failed(error.step_name, str(error))
