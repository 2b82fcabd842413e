"""Main CLI for the step router."""

import asyncio
import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..connectors import ConnectorFacade, FetchConnector
from ..core.config import load_config
from ..core.scheduler import TaskScheduler
from ..core.task import TaskStatus
from ..errors import ConfigError, ErrorTranslator, StepRouterError
from ..utils.rich_logging import setup_rich_logging
from ..workflow.conditions import ConditionMatcher
from ..workflow.executor import TaskRouter
from ..workflow.patterns import describe
from ..workflow.steps import load_steps_from_directory


console = Console()


def _load_document(path: Path) -> dict:
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}")
    if not isinstance(document, dict):
        raise click.BadParameter(f"{path} must contain a JSON object")
    return document


def _load_registry(steps_dir: Path):
    try:
        return load_steps_from_directory(steps_dir)
    except (FileNotFoundError, ValueError, ImportError) as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR); overrides config")
@click.option("--config", "-c", "config_path", default="step-router.yaml", type=click.Path(path_type=Path),
              help="Router config file")
@click.pass_context
def cli(ctx, log_level, config_path):
    """Step Router - condition-matched steps over a task document."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except (ConfigError, ValidationError) as e:
        translator = ErrorTranslator()
        console.print(translator.format_for_cli(translator.translate(e)))
        sys.exit(1)

    ctx.obj["config"] = config
    setup_rich_logging(
        log_level=log_level or config.logging.level,
        use_file=config.logging.use_file,
        log_dir=config.logging.log_dir,
        use_json=config.logging.use_json,
    )


@cli.command()
@click.option("--steps", "-s", "steps_dir", required=True, type=click.Path(path_type=Path), help="Steps directory")
def steps(steps_dir):
    """List registered steps and their conditions."""
    registry = _load_registry(steps_dir)

    table = Table(title=f"Steps ({len(registry)})")
    table.add_column("#", style="dim")
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Condition")

    for i, step_def in enumerate(registry, 1):
        if step_def.is_valid:
            condition = escape(describe(step_def.pattern))
        else:
            condition = f"[red]invalid: {escape(step_def.pattern_error)}[/]"
        table.add_row(str(i), step_def.name, condition)

    console.print(table)


@cli.command()
@click.option("--steps", "-s", "steps_dir", required=True, type=click.Path(path_type=Path), help="Steps directory")
@click.argument("document_path", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def match(ctx, steps_dir, document_path):
    """Show which steps match a document (ignores run-once history)."""
    config = ctx.obj["config"]
    registry = _load_registry(steps_dir)
    document = _load_document(document_path)

    router = TaskRouter(registry, matcher=ConditionMatcher(array_policy=config.matching.array_policy))
    matched = router.matching_steps(document)

    if not matched:
        console.print("[yellow]No step matches this document[/]")
        return
    for step_def in matched:
        console.print(f"  [green]✓[/] {step_def.name}")


@cli.command()
@click.option("--steps", "-s", "steps_dir", required=True, type=click.Path(path_type=Path), help="Steps directory")
@click.option("--name", "-n", default="", help="Task name")
@click.argument("document_path", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def run(ctx, steps_dir, name, document_path):
    """Run a task over a document until it is idle or finished."""
    config = ctx.obj["config"]
    registry = _load_registry(steps_dir)
    document = _load_document(document_path)

    fetch = FetchConnector()
    connectors = ConnectorFacade({"fetch": fetch})
    router = TaskRouter.from_config(registry, config, connectors=connectors)
    scheduler = TaskScheduler(router, archive_dir=config.scheduler.archive_dir)

    async def _run():
        try:
            return await scheduler.run(document, name=name or document_path.stem)
        finally:
            await fetch.close()

    try:
        task = asyncio.run(_run())
    except StepRouterError as e:
        translator = ErrorTranslator()
        console.print(translator.format_for_cli(translator.translate(e)))
        sys.exit(1)

    status = TaskStatus(task.status)
    color = {"completed": "green", "ignored": "yellow", "failed": "red"}.get(status.value, "cyan")
    console.print(f"[bold]Task {task.id[:8]}[/] [{color}]{status.value}[/]")

    table = Table(title="History")
    table.add_column("Cycle", style="dim")
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Redo")
    table.add_column("Error", style="red")
    for record in task.history:
        table.add_row(str(record.cycle), record.step, "yes" if record.redo else "", record.error or "")
    console.print(table)

    if task.result is not None:
        console.print("[bold]Result:[/]")
        console.print_json(data=task.result, default=str)
    console.print("[bold]Document:[/]")
    console.print_json(data=task.document, default=str)

    children = scheduler.children_of(task.id)
    for child in children:
        console.print(f"  subtask {child.id[:8]} {child.name}: {TaskStatus(child.status).value}")

    if status == TaskStatus.FAILED:
        translator = ErrorTranslator()
        console.print(translator.format_for_cli(translator.translate_failure(task.failure)))
        sys.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
