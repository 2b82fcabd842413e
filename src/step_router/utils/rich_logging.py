"""Rich logging with task/step context and better formatting."""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# ANSI colors per level name
LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


def _context_prefix(record: logging.LogRecord) -> str:
    parts = []
    task_id = getattr(record, "task_id", None)
    if task_id:
        parts.append(f"[{task_id[:8]}]")
    step = getattr(record, "step", None)
    if step:
        parts.append(f"[{step}]")
    return " ".join(parts) + " " if parts else ""


class TaskLogFormatter(logging.Formatter):
    """One line per record: time, level, component, task and step."""

    def __init__(self, component: str, use_colors: bool = True):
        super().__init__()
        self.component = component
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:8s}"
        if self.use_colors and record.levelname in LEVEL_COLORS:
            level = f"{LEVEL_COLORS[record.levelname]}{level}{RESET}"

        message = f"{timestamp} {level} [{self.component}] {_context_prefix(record)}{record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class TaskJsonFormatter(logging.Formatter):
    """Structured JSON lines for log shipping."""

    def __init__(self, component: str):
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "component": self.component,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("task_id", "step"):
            value = getattr(record, key, None)
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TaskContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps task id and step name on every record."""

    def __init__(self, logger: logging.Logger, task_id: Optional[str] = None, step: Optional[str] = None):
        super().__init__(logger, {})
        self.current_task_id = task_id
        self.current_step = step

    def set_task_context(self, task_id: Optional[str] = None, step: Optional[str] = None):
        """Switch the step (and optionally the task) attached to later records."""
        if task_id:
            self.current_task_id = task_id
        self.current_step = step

    def clear_context(self):
        self.current_task_id = None
        self.current_step = None

    def process(self, msg, kwargs):
        context = {"task_id": self.current_task_id, "step": self.current_step}
        extra = dict(kwargs.get("extra") or {})
        extra.update({k: v for k, v in context.items() if v})
        kwargs["extra"] = extra
        return msg, kwargs

    def for_step(self, task_id: str, step: str) -> "TaskContextLogger":
        """Child adapter bound to one step execution (handed to handlers)."""
        return TaskContextLogger(self.logger, task_id=task_id, step=step)

    def step_started(self, step: str, cycle: int):
        self.set_task_context(step=step)
        self.debug(f"▶️ Running step (cycle {cycle})")

    def task_finished(self, status: str, cycles: int):
        """Log terminal status with cycle count."""
        self.set_task_context(step=None)
        emoji = {"completed": "✅", "ignored": "🚫", "failed": "❌"}.get(status, "⏸️")
        self.info(f"{emoji} Task {status} after {cycles} cycle(s)")

    def task_failed(self, step: Optional[str], error: str):
        self.set_task_context(step=step)
        self.error(f"❌ Task halted: {error}")


def setup_rich_logging(
    component: str = "step-router",
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    use_file: bool = False,
    use_json: bool = False,
) -> TaskContextLogger:
    """
    Configure the ``step_router`` logger hierarchy.

    Args:
        component: Name shown in every line
        log_dir: Directory for the log file (defaults to ./logs)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_file: Also write plain lines to ``<log_dir>/<component>-<pid>.log``
        use_json: Emit JSON lines on stderr instead of colored text

    Returns:
        TaskContextLogger without task context
    """
    logger = logging.getLogger("step_router")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close replaced handlers so repeated setup doesn't leak file descriptors
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    if use_json:
        console_handler.setFormatter(TaskJsonFormatter(component))
    else:
        console_handler.setFormatter(TaskLogFormatter(component, use_colors=sys.stderr.isatty()))
    logger.addHandler(console_handler)

    if use_file:
        log_dir = Path(log_dir or "logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{component}-{os.getpid()}.log")
        file_handler.setFormatter(TaskLogFormatter(component, use_colors=False))
        logger.addHandler(file_handler)

    return TaskContextLogger(logger)
