"""Control objects handed to step handlers.

Handlers never change task status directly. Calls on ``TaskControl`` and
``StepControl`` are recorded as signals on a ``StepOutcome`` and applied by
the router once the handler returns.
"""

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from .blobs import BlobStore
    from .task import Task
    from ..connectors.facade import BoundConnectors
    from ..utils.rich_logging import TaskContextLogger


@dataclass
class SubtaskRequest:
    """A child task requested by ``task.subtask``."""
    name: str
    document: Dict[str, Any]
    into: Optional[str] = None
    wait_for: bool = False


@dataclass
class StepOutcome:
    """Signals issued during one handler execution."""
    terminal: Optional[str] = None  # "complete" or "ignore"; first one issued wins
    result: Any = None
    redo: bool = False
    park_ms: Optional[int] = None
    subtasks: List[SubtaskRequest] = field(default_factory=list)
    timeout_ms: Optional[int] = None
    complete_on_expire: bool = False


class TaskControl:
    """The ``task`` object of a step handler."""

    def __init__(
        self,
        task: "Task",
        outcome: StepOutcome,
        config_lookup: Callable[[str], Any],
    ):
        self._task = task
        self._outcome = outcome
        self._config_lookup = config_lookup

    def complete(self, result: Any = None) -> None:
        """Finish the task; ``result`` is handed to a waiting parent."""
        if self._outcome.terminal is None:
            self._outcome.terminal = "complete"
            self._outcome.result = result

    def ignore(self) -> None:
        """Drop the task; no further steps run."""
        if self._outcome.terminal is None:
            self._outcome.terminal = "ignore"

    def park(self, duration_ms: int) -> None:
        """Suspend the task for at least ``duration_ms`` milliseconds."""
        if duration_ms < 0:
            raise ValueError(f"park duration must be >= 0, got {duration_ms}")
        self._outcome.park_ms = int(duration_ms)

    def subtask(
        self,
        name: str,
        document: Dict[str, Any],
        into: Optional[str] = None,
        wait_for: bool = False,
    ) -> None:
        """Spawn a child task seeded with a copy of ``document``."""
        self._outcome.subtasks.append(
            SubtaskRequest(name=name, document=copy.deepcopy(document), into=into, wait_for=wait_for)
        )

    def timeout(self, duration_ms: int) -> None:
        """Set a deadline for the task, counted from now."""
        if duration_ms < 0:
            raise ValueError(f"timeout must be >= 0, got {duration_ms}")
        self._outcome.timeout_ms = int(duration_ms)

    def complete_on_expire(self) -> None:
        """Complete instead of failing when the deadline passes."""
        self._outcome.complete_on_expire = True

    def name(self, value: Optional[str] = None) -> str:
        """Get or set the task's display name."""
        if value is not None:
            self._task.name = value
        return self._task.name

    def tags(self, values: Optional[List[str]] = None) -> List[str]:
        """Get or replace the task's tags."""
        if values is not None:
            self._task.tags = [str(v) for v in values]
        return list(self._task.tags)

    def id(self) -> str:
        return self._task.id

    def config(self, key: str, default: Any = None) -> Any:
        """Read a named configuration value."""
        value = self._config_lookup(key)
        return default if value is None else value

    def visualize(self, item: Dict[str, Any]) -> None:
        """Attach a visualization (document, table...) for observers."""
        self._task.visualizations.append(dict(item))


class StepControl:
    """The ``step`` object of a step handler."""

    def __init__(self, step_name: str, outcome: StepOutcome):
        self._step_name = step_name
        self._outcome = outcome

    @property
    def name(self) -> str:
        return self._step_name

    def redo(self) -> None:
        """Allow this step to run again, ahead of other steps."""
        self._outcome.redo = True


@dataclass
class StepContext:
    """Everything a handler can reach."""
    data: Dict[str, Any]
    task: TaskControl
    step: StepControl
    connectors: "BoundConnectors"
    blob: "BlobStore"
    logger: "TaskContextLogger"
