"""Condition matching and step routing."""

from .patterns import ArrayPolicy, TypeTag, compile_pattern, contains, predicate
from .conditions import ConditionMatcher
from .steps import Step, StepRegistry, load_steps_from_directory
from .executor import MatchPolicy, RouterRun, TaskRouter

__all__ = [
    "ArrayPolicy",
    "TypeTag",
    "compile_pattern",
    "contains",
    "predicate",
    "ConditionMatcher",
    "Step",
    "StepRegistry",
    "load_steps_from_directory",
    "MatchPolicy",
    "RouterRun",
    "TaskRouter",
]
