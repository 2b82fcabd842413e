"""Exception taxonomy for matching, routing and connector calls."""

from typing import Optional


class StepRouterError(Exception):
    """Base class for all step router errors."""


class PatternError(StepRouterError):
    """A condition pattern could not be compiled.

    Malformed conditions fail closed: the step is registered but never matches.
    """

    def __init__(self, message: str, path: str = ""):
        self.path = path
        location = f" at '{path}'" if path else ""
        super().__init__(f"{message}{location}")


class HandlerError(StepRouterError):
    """A step handler raised an exception the step did not catch."""

    def __init__(self, step_name: str, cause: Optional[BaseException] = None, message: str = ""):
        self.step_name = step_name
        self.cause = cause
        detail = message or (f"{type(cause).__name__}: {cause}" if cause else "handler failed")
        super().__init__(f"Step '{step_name}' failed: {detail}")


class LoopRunawayError(HandlerError):
    """A task exceeded the router's cycle or redo safety bound."""

    def __init__(self, step_name: str, limit_name: str, limit: int):
        self.limit_name = limit_name
        self.limit = limit
        super().__init__(step_name, message=f"{limit_name} exceeded ({limit})")


class ConnectorError(StepRouterError):
    """An external connector call failed."""

    def __init__(
        self,
        connector_id: str,
        operation: str,
        message: str,
        status: Optional[int] = None,
    ):
        self.connector_id = connector_id
        self.operation = operation
        self.status = status
        super().__init__(f"Connector {connector_id}.{operation} failed: {message}")


class TaskNotFoundError(StepRouterError):
    """No task with the given id is known to the scheduler."""


class ConfigError(StepRouterError):
    """Configuration could not be loaded or is invalid."""
