"""Condition pattern representation.

Step authors write conditions as plain Python values shaped like a partial
document. ``compile_pattern`` turns them into a closed tree of pattern nodes
so the matcher can dispatch on ``PatternKind`` instead of inspecting raw
author values on every evaluation.
"""

import inspect
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from ..errors import PatternError


class PatternKind(str, Enum):
    """Kinds of pattern nodes."""
    LITERAL = "literal"
    TYPE = "type"
    PREDICATE = "predicate"
    REGEX = "regex"
    OBJECT = "object"
    ARRAY = "array"


class TypeTag(str, Enum):
    """Built-in "any value of this type" sentinels."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class ArrayPolicy(str, Enum):
    """How an array pattern is matched against a document list.

    POSITIONAL: element i of the pattern must match element i of the list;
    the list may be longer than the pattern.
    EXISTENTIAL: every pattern element must match at least one list member.
    """
    POSITIONAL = "positional"
    EXISTENTIAL = "existential"


# Python classes accepted as type sentinels in author conditions
TYPE_SENTINELS: Dict[type, TypeTag] = {
    str: TypeTag.STRING,
    int: TypeTag.NUMBER,
    float: TypeTag.NUMBER,
    bool: TypeTag.BOOLEAN,
    dict: TypeTag.OBJECT,
    list: TypeTag.ARRAY,
}


@dataclass(frozen=True)
class LiteralPattern:
    """Value must be present and equal (type-strict for booleans). ``None`` also matches absent."""
    value: Union[str, int, float, bool, None]
    kind: PatternKind = field(default=PatternKind.LITERAL, init=False)


@dataclass(frozen=True)
class TypePattern:
    """Value must be present and of the tagged runtime type."""
    tag: TypeTag
    kind: PatternKind = field(default=PatternKind.TYPE, init=False)


@dataclass(frozen=True)
class PredicatePattern:
    """Callable that must return truthy for the value.

    When ``with_document`` is set the root document snapshot is passed as a
    second argument.
    """
    fn: Callable[..., Any]
    with_document: bool = False
    kind: PatternKind = field(default=PatternKind.PREDICATE, init=False)


@dataclass(frozen=True)
class RegexPattern:
    """String value that must contain a match for the expression."""
    regex: "re.Pattern[str]"
    kind: PatternKind = field(default=PatternKind.REGEX, init=False)


@dataclass(frozen=True)
class ObjectPattern:
    """Partial object match: listed keys must exist and match."""
    fields: Tuple[Tuple[str, "Pattern"], ...] = ()
    kind: PatternKind = field(default=PatternKind.OBJECT, init=False)


@dataclass(frozen=True)
class ArrayPattern:
    """Array match. ``policy=None`` defers to the matcher's default policy."""
    elements: Tuple["Pattern", ...] = ()
    policy: Optional[ArrayPolicy] = None
    kind: PatternKind = field(default=PatternKind.ARRAY, init=False)


Pattern = Union[
    LiteralPattern, TypePattern, PredicatePattern, RegexPattern, ObjectPattern, ArrayPattern
]

PATTERN_NODE_TYPES = (
    LiteralPattern, TypePattern, PredicatePattern, RegexPattern, ObjectPattern, ArrayPattern
)


def contains(*elements: Any) -> ArrayPattern:
    """Array pattern whose elements may appear anywhere in the list."""
    return ArrayPattern(
        elements=tuple(compile_pattern(e, _path=f"[{i}]") for i, e in enumerate(elements)),
        policy=ArrayPolicy.EXISTENTIAL,
    )


def predicate(fn: Callable[..., Any], with_document: bool = False) -> PredicatePattern:
    """Explicit predicate leaf, for callables whose arity can't be inspected."""
    return PredicatePattern(fn=fn, with_document=with_document)


def _accepts_document(fn: Callable[..., Any]) -> bool:
    """True if the predicate takes a second positional argument."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    return len(positional) >= 2


def compile_pattern(condition: Any, _path: str = "") -> Pattern:
    """Compile an author condition into a pattern tree.

    Raises:
        PatternError: if any leaf is not a supported literal, type sentinel,
            callable, compiled regex, dict or list.
    """
    if isinstance(condition, PATTERN_NODE_TYPES):
        return condition

    if isinstance(condition, TypeTag):
        return TypePattern(condition)

    if condition is None or isinstance(condition, (str, bool, int, float)):
        return LiteralPattern(condition)

    if isinstance(condition, type):
        tag = TYPE_SENTINELS.get(condition)
        if tag is None:
            raise PatternError(f"Unsupported type sentinel {condition.__name__}", _path)
        return TypePattern(tag)

    if isinstance(condition, re.Pattern):
        if not isinstance(condition.pattern, str):
            raise PatternError("Byte regular expressions are not supported", _path)
        return RegexPattern(condition)

    if isinstance(condition, dict):
        fields = []
        for key, sub in condition.items():
            if not isinstance(key, str):
                raise PatternError(f"Condition keys must be strings, got {key!r}", _path)
            child_path = f"{_path}.{key}" if _path else key
            fields.append((key, compile_pattern(sub, child_path)))
        return ObjectPattern(fields=tuple(fields))

    if isinstance(condition, (list, tuple)):
        return ArrayPattern(
            elements=tuple(
                compile_pattern(e, f"{_path}[{i}]") for i, e in enumerate(condition)
            )
        )

    if callable(condition):
        return PredicatePattern(fn=condition, with_document=_accepts_document(condition))

    raise PatternError(f"Unsupported condition value {condition!r}", _path)


def describe(pattern: Pattern) -> str:
    """Short human-readable rendering of a pattern (for CLI tables and logs)."""
    if pattern.kind == PatternKind.LITERAL:
        return repr(pattern.value)
    if pattern.kind == PatternKind.TYPE:
        return f"<{pattern.tag.value}>"
    if pattern.kind == PatternKind.PREDICATE:
        return f"<fn {getattr(pattern.fn, '__name__', 'predicate')}>"
    if pattern.kind == PatternKind.REGEX:
        return f"/{pattern.regex.pattern}/"
    if pattern.kind == PatternKind.OBJECT:
        inner = ", ".join(f"{k}: {describe(v)}" for k, v in pattern.fields)
        return "{" + inner + "}"
    inner = ", ".join(describe(e) for e in pattern.elements)
    prefix = "any" if pattern.policy == ArrayPolicy.EXISTENTIAL else ""
    return f"{prefix}[{inner}]"
