"""Shared utility functions for the step router."""

from .atomic_io import atomic_write_json, atomic_write_model, read_model
from .rich_logging import TaskContextLogger, TaskJsonFormatter, TaskLogFormatter, setup_rich_logging

__all__ = [
    # Atomic I/O
    "atomic_write_json",
    "atomic_write_model",
    "read_model",
    # Logging
    "TaskContextLogger",
    "TaskLogFormatter",
    "TaskJsonFormatter",
    "setup_rich_logging",
]
