"""Error taxonomy and user-facing error translation."""

from .exceptions import (
    ConfigError,
    ConnectorError,
    HandlerError,
    LoopRunawayError,
    PatternError,
    StepRouterError,
    TaskNotFoundError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "StepRouterError",
    "PatternError",
    "HandlerError",
    "LoopRunawayError",
    "ConnectorError",
    "TaskNotFoundError",
    "ConfigError",
    "ErrorTranslator",
    "UserFriendlyError",
]
