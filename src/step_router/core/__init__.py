"""Task model, document helpers and configuration."""

from .task import StepRun, Task, TaskFailure, TaskStatus
from .config import RouterConfig, load_config

__all__ = [
    "Task",
    "TaskStatus",
    "TaskFailure",
    "StepRun",
    "RouterConfig",
    "load_config",
]
