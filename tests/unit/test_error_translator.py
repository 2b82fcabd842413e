"""Tests for error translation into user-facing messages."""

from datetime import datetime

from step_router.core.task import TaskFailure
from step_router.errors import (
    ConfigError,
    ConnectorError,
    ErrorTranslator,
    HandlerError,
    LoopRunawayError,
    PatternError,
    StepRouterError,
)


class TestErrorTranslator:
    def setup_method(self):
        self.translator = ErrorTranslator()

    def test_loop_runaway(self):
        friendly = self.translator.translate(LoopRunawayError("spin", "max_redo", 500))
        assert friendly.title == "Task stopped after too many cycles"

    def test_pattern_error(self):
        friendly = self.translator.translate(PatternError("Unsupported condition value", "a.b"))
        assert friendly.title == "Invalid step condition"

    def test_connector_error(self):
        friendly = self.translator.translate(ConnectorError("crm", "find", "HTTP 500"))
        assert friendly.title == "Connector call failed"

    def test_connector_error_inside_handler_error(self):
        cause = ConnectorError("crm", "find", "HTTP 500")
        friendly = self.translator.translate(HandlerError("sync_contact", cause))
        assert friendly.title == "Connector call failed"

    def test_handler_error(self):
        friendly = self.translator.translate(HandlerError("parse_rows", ValueError("bad row")))
        assert friendly.title == "Step failed"

    def test_recorded_step_failure(self):
        error = StepRouterError("ValueError: Step 'parse_rows' failed: ValueError: bad row")
        assert self.translator.translate(error).title == "Step failed"

    def test_timeout(self):
        error = StepRouterError("TimeoutError: Task timed out")
        assert self.translator.translate(error).title == "Task timed out"

    def test_config_error(self):
        friendly = self.translator.translate(ConfigError("Invalid YAML in step-router.yaml"))
        assert friendly.title == "Configuration problem"

    def test_unknown_error(self):
        friendly = self.translator.translate(RuntimeError("something odd"))
        assert friendly.title == "Unexpected error"
        assert friendly.explanation == "something odd"

    def test_format_for_cli(self):
        friendly = self.translator.translate(LoopRunawayError("spin", "max_cycles", 10))
        output = self.translator.format_for_cli(friendly)

        assert "How to fix:" in output
        assert "1. " in output
        assert "max_cycles exceeded (10)" in output

    def test_translate_failure_record(self):
        failure = TaskFailure(
            step="spin",
            error_type="LoopRunawayError",
            message="Step 'spin' failed: max_redo exceeded (500)",
            failed_at=datetime(2026, 1, 1),
        )
        assert self.translator.translate_failure(failure).title == "Task stopped after too many cycles"

    def test_translate_timeout_failure_record(self):
        failure = TaskFailure(error_type="TimeoutError", message="Task timed out", failed_at=datetime(2026, 1, 1))
        assert self.translator.translate_failure(failure).title == "Task timed out"
