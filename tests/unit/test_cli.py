"""Tests for the step-router CLI."""

import json
import textwrap
from pathlib import Path

from click.testing import CliRunner

from step_router.cli.main import cli


def _write_steps(base: Path) -> Path:
    """Release-bump steps plus one step with a malformed condition."""
    steps_dir = base / "steps"
    steps_dir.mkdir()
    (steps_dir / "10_bump_patch.py").write_text(textwrap.dedent("""
        condition = {"release": {"latest": dict, "next": None}}

        def content(ctx):
            major, minor, patch = ctx.data["release"]["latest"]["name"].split(".")
            ctx.data["release"]["next"] = f"{major}.{minor}.{int(patch) + 1}"
    """))
    (steps_dir / "20_publish.py").write_text(textwrap.dedent("""
        condition = {"release": {"next": str}}

        async def content(ctx):
            ctx.task.complete({"published": ctx.data["release"]["next"]})
    """))
    (steps_dir / "30_broken.py").write_text(textwrap.dedent("""
        condition = {"release": {"next": object()}}

        def content(ctx):
            pass
    """))
    return steps_dir


def _write_document(base: Path, document: dict, name: str = "doc.json") -> Path:
    path = base / name
    path.write_text(json.dumps(document))
    return path


def _invoke(base: Path, *args):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(base / "missing.yaml"), *args])


RELEASE = {"release": {"latest": {"name": "1.2.3"}}}


class TestStepsCommand:
    def test_lists_steps_in_order(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        result = _invoke(tmp_path, "steps", "--steps", str(steps_dir))

        assert result.exit_code == 0, result.output
        assert result.output.index("10_bump_patch") < result.output.index("20_publish")
        assert "invalid" in result.output

    def test_missing_directory(self, tmp_path):
        result = _invoke(tmp_path, "steps", "--steps", str(tmp_path / "nope"))

        assert result.exit_code != 0
        assert "Steps directory not found" in result.output


class TestMatchCommand:
    def test_shows_matching_steps(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        doc = _write_document(tmp_path, RELEASE)

        result = _invoke(tmp_path, "match", "--steps", str(steps_dir), str(doc))

        assert result.exit_code == 0, result.output
        assert "10_bump_patch" in result.output
        assert "20_publish" not in result.output

    def test_no_match(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        doc = _write_document(tmp_path, {"unrelated": True})

        result = _invoke(tmp_path, "match", "--steps", str(steps_dir), str(doc))

        assert "No step matches" in result.output

    def test_rejects_non_object_document(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        doc = tmp_path / "list.json"
        doc.write_text("[1, 2]")

        result = _invoke(tmp_path, "match", "--steps", str(steps_dir), str(doc))

        assert result.exit_code != 0


class TestRunCommand:
    def test_runs_to_completion(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        doc = _write_document(tmp_path, RELEASE)

        result = _invoke(tmp_path, "run", "--steps", str(steps_dir), str(doc))

        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "1.2.4" in result.output

    def test_failed_task_exits_non_zero(self, tmp_path):
        steps_dir = tmp_path / "steps"
        steps_dir.mkdir()
        (steps_dir / "explode.py").write_text(textwrap.dedent("""
            condition = {}

            def content(ctx):
                raise ValueError("bad input")
        """))
        doc = _write_document(tmp_path, {})

        result = _invoke(tmp_path, "run", "--steps", str(steps_dir), str(doc))

        assert result.exit_code == 1
        assert "failed" in result.output
        assert "Step failed" in result.output


class TestConfigOption:
    def test_invalid_config_exits(self, tmp_path):
        steps_dir = _write_steps(tmp_path)
        config = tmp_path / "bad.yaml"
        config.write_text("router: [unclosed\n")

        result = CliRunner().invoke(cli, ["--config", str(config), "steps", "--steps", str(steps_dir)])

        assert result.exit_code == 1
        assert "Configuration problem" in result.output

    def test_config_limits_apply(self, tmp_path):
        steps_dir = tmp_path / "steps"
        steps_dir.mkdir()
        (steps_dir / "spin.py").write_text(textwrap.dedent("""
            condition = {"n": int}

            def content(ctx):
                ctx.data["n"] += 1
                ctx.step.redo()
        """))
        config = tmp_path / "step-router.yaml"
        config.write_text("router:\n  max_redo: 5\n")
        doc = _write_document(tmp_path, {"n": 0})

        result = CliRunner().invoke(cli, ["--config", str(config), "run", "--steps", str(steps_dir), str(doc)])

        assert result.exit_code == 1
        assert "Task stopped after too many cycles" in result.output
