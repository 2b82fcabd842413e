"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional

from .exceptions import StepRouterError


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    documentation: Optional[str] = None
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        # Runaway loops (must precede generic handler pattern)
        r"LoopRunawayError|max_cycles exceeded|max_redo exceeded": {
            "title": "Task stopped after too many cycles",
            "explanation": "A step kept matching (or kept calling redo) without the task ever reaching a terminal state.",
            "actions": [
                "Make the step clear or change the field its condition matches on",
                "Check the exit condition of any step that calls step.redo()",
                "Raise router.max_cycles / router.max_redo if the loop is legitimately long",
            ],
        },

        r"PatternError": {
            "title": "Invalid step condition",
            "explanation": "A step condition uses a value that cannot be matched. The step will never run.",
            "actions": [
                "Use literals, str/int/float/bool/dict/list, callables or re.compile(...) in conditions",
                "List steps and their condition status: step-router steps --steps <dir>",
            ],
        },

        r"ConnectorError": {
            "title": "Connector call failed",
            "explanation": "A step called an external connector and the call failed without being handled by the step.",
            "actions": [
                "Catch ConnectorError in the step and write an error field for a recovery step",
                "Check the connector configuration and credentials",
                "Retry the task once the service is reachable",
            ],
        },

        r"timed out|TimeoutError": {
            "title": "Task timed out",
            "explanation": "The task reached its timeout without completing.",
            "actions": [
                "Call task.complete_on_expire() if expiry should complete the task",
                "Increase the value passed to task.timeout()",
            ],
        },

        r"HandlerError|Step '[^']+' failed": {
            "title": "Step failed",
            "explanation": "A step raised an exception. The task has stopped and needs attention.",
            "actions": [
                "Inspect the task history and document",
                "Fix the step and retry the task",
            ],
        },

        # Config errors
        r"config.*not.*found|no such file.*config|ConfigError|validation error for RouterConfig": {
            "title": "Configuration problem",
            "explanation": "The configuration file could not be read or is invalid.",
            "actions": [
                "Check the path passed with --config",
                "Run without --config to use defaults",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_str = str(error)
        error_type = type(error).__name__
        full_error = f"{error_type}: {error_str}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    documentation=translation.get("documentation"),
                    show_technical=True,
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=[
                "Check logs for details",
                "Run with --log-level DEBUG",
            ],
            show_technical=True,
        )

    def translate_failure(self, failure) -> UserFriendlyError:
        """Translate a recorded ``TaskFailure`` from a task that already stopped."""
        return self.translate(StepRouterError(f"{failure.error_type}: {failure.message}"))

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.documentation:
            output += f"\n[dim]Learn more: {friendly_error.documentation}[/]"

        if friendly_error.show_technical:
            output += f"\n\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
