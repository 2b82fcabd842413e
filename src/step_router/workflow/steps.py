"""Step registration: (name, condition, handler) triples."""

import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Union

from .patterns import Pattern, compile_pattern
from ..errors import PatternError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[Awaitable[Any], Any]]


@dataclass
class Step:
    """A condition plus the handler that runs when it matches.

    A condition that doesn't compile leaves ``pattern`` unset and records the
    error; the step stays registered but never matches.
    """
    name: str
    condition: Any
    handler: Handler
    pattern: Optional[Pattern] = None
    pattern_error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Compile the condition once, at registration."""
        if not self.name:
            raise ValueError("Step name must not be empty")
        if not callable(self.handler):
            raise ValueError(f"Step '{self.name}' handler is not callable")
        if self.pattern is None and self.pattern_error is None:
            try:
                self.pattern = compile_pattern(self.condition)
            except PatternError as e:
                self.pattern_error = str(e)
                logger.error(f"Step '{self.name}' has a malformed condition and will never match: {e}")

    @property
    def is_valid(self) -> bool:
        return self.pattern is not None


class StepRegistry:
    """Ordered, name-unique set of steps.

    Registration order is the evaluation order inside a router cycle.
    """

    def __init__(self, steps: Optional[List[Step]] = None):
        self._steps: Dict[str, Step] = {}
        self._frozen = False
        for s in steps or []:
            self.add(s)

    def add(self, step_def: Step) -> Step:
        if self._frozen:
            raise RuntimeError("Steps cannot be registered while tasks are running")
        if step_def.name in self._steps:
            raise ValueError(f"Duplicate step name: '{step_def.name}'")
        self._steps[step_def.name] = step_def
        return step_def

    def register(self, name: str, condition: Any, handler: Handler, **metadata) -> Step:
        """Register a step from its parts."""
        return self.add(Step(name=name, condition=condition, handler=handler, metadata=metadata))

    def step(self, condition: Any, name: Optional[str] = None, **metadata):
        """Decorator form of ``register``.

        >>> registry = StepRegistry()
        >>> @registry.step({"release": {"released": {"url": str}}})
        ... async def check_release_done(ctx):
        ...     ctx.task.complete()
        """
        def decorator(handler: Handler) -> Handler:
            self.register(name or handler.__name__, condition, handler, **metadata)
            return handler
        return decorator

    def freeze(self) -> None:
        """Make the registry immutable (called when a router starts using it)."""
        self._frozen = True

    def get(self, name: str) -> Optional[Step]:
        return self._steps.get(name)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, name: str) -> bool:
        return name in self._steps

    @property
    def names(self) -> List[str]:
        return list(self._steps)


def load_step_module(path: Path) -> Step:
    """Load one step from a Python file exposing ``condition`` and ``content``.

    An optional module-level ``name`` overrides the file stem.
    """
    path = Path(path)
    module_name = f"step_router_steps.{path.stem.replace(' ', '_').replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load step module: {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise

    if not hasattr(module, "condition") or not hasattr(module, "content"):
        raise ValueError(f"Step module {path} must define 'condition' and 'content'")

    return Step(
        name=getattr(module, "name", path.stem),
        condition=module.condition,
        handler=module.content,
        metadata={"source": str(path)},
    )


def load_steps_from_directory(directory: Path, registry: Optional[StepRegistry] = None) -> StepRegistry:
    """Load every ``*.py`` step module in a directory, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Steps directory not found: {directory}")

    registry = registry if registry is not None else StepRegistry()
    for path in sorted(directory.glob("*.py")):
        if path.name.startswith("_"):
            continue
        registry.add(load_step_module(path))
        logger.debug(f"Loaded step from {path.name}")
    logger.info(f"Loaded {len(registry)} step(s) from {directory}")
    return registry
