"""Task model: one document, one identity, one status, an ordered step history."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class TaskStatus(str, Enum):
    """Task status values.

    RUNNING tasks are eligible for evaluation (an idle task is RUNNING with no
    matching step). PARKED and WAITING are suspensions resumed by the
    scheduler. COMPLETED, IGNORED and FAILED are terminal for automatic
    progress; FAILED tasks can be resumed manually.
    """
    RUNNING = "running"
    PARKED = "parked"
    WAITING = "waiting"
    COMPLETED = "completed"
    IGNORED = "ignored"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.IGNORED, TaskStatus.FAILED})


class StepRun(BaseModel):
    """Record of a single step execution."""

    step: str
    cycle: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    redo: bool = False
    error: Optional[str] = None


class TaskFailure(BaseModel):
    """Why a task stopped making automatic progress."""

    step: Optional[str] = None
    error_type: str
    message: str
    failed_at: datetime


class SubtaskLink(BaseModel):
    """A child task the parent is waiting on, and where its result goes."""

    child_id: str
    into: Optional[str] = None


class Task(BaseModel):
    """One execution instance of the step cycle over one document."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    tags: list[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.RUNNING
    document: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    history: List[StepRun] = Field(default_factory=list)
    result: Any = None
    failure: Optional[TaskFailure] = None

    # Parent-child hierarchy for subtasks
    parent_id: Optional[str] = None
    subtask_ids: list[str] = Field(default_factory=list)
    waiting_on: List[SubtaskLink] = Field(default_factory=list)

    # Suspension and expiry
    parked_until: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    complete_on_expire: bool = False

    # Steps allowed to run again (set by step.redo()); redo_step gets first look next cycle
    rearmed_steps: list[str] = Field(default_factory=list)
    redo_step: Optional[str] = None

    # Consecutive redo runs of one step, carried across park/resume
    redo_streak: int = 0
    redo_streak_step: Optional[str] = None

    visualizations: list[dict[str, Any]] = Field(default_factory=list)
    finished_at: Optional[datetime] = None

    @field_serializer("created_at", "parked_until", "expires_at", "finished_at")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    @property
    def is_terminal(self) -> bool:
        return TaskStatus(self.status) in TERMINAL_STATUSES

    def has_run(self, step_name: str) -> bool:
        """True if the step already executed in this task."""
        return any(run.step == step_name for run in self.history)

    def is_eligible(self, step_name: str) -> bool:
        """Steps run once per task unless re-armed by redo."""
        return step_name in self.rearmed_steps or not self.has_run(step_name)

    def record_redo(self, step_name: str, redo: bool) -> int:
        """Update the consecutive-redo streak after a step ran. Returns the streak."""
        if not redo:
            self.redo_streak, self.redo_streak_step = 0, None
        elif step_name == self.redo_streak_step:
            self.redo_streak += 1
        else:
            self.redo_streak, self.redo_streak_step = 1, step_name
        return self.redo_streak

    def mark_completed(self, result: Any = None, now: Optional[datetime] = None) -> None:
        """Mark task as completed."""
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.finished_at = now or datetime.now(UTC)
        self._clear_suspension()

    def mark_ignored(self, now: Optional[datetime] = None) -> None:
        """Mark task as ignored; no further steps run."""
        self.status = TaskStatus.IGNORED
        self.finished_at = now or datetime.now(UTC)
        self._clear_suspension()

    def mark_failed(
        self,
        error_message: str,
        error_type: str,
        step: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Mark task as failed (fail-stop) and record why."""
        now = now or datetime.now(UTC)
        self.status = TaskStatus.FAILED
        self.failure = TaskFailure(step=step, error_type=error_type, message=error_message, failed_at=now)
        self._clear_suspension()

    def mark_parked(self, until: datetime) -> None:
        """Suspend until ``until``."""
        self.status = TaskStatus.PARKED
        self.parked_until = until

    def mark_waiting(self, links: List[SubtaskLink]) -> None:
        """Suspend until the linked children are terminal."""
        self.status = TaskStatus.WAITING
        self.waiting_on = list(links)

    def resume(self) -> None:
        """Return a suspended or failed task to RUNNING."""
        self.status = TaskStatus.RUNNING
        self.parked_until = None
        self.waiting_on = []

    def _clear_suspension(self) -> None:
        self.parked_until = None
        self.waiting_on = []
        self.redo_step = None
