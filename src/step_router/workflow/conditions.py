"""Condition matcher: evaluates compiled patterns against a document."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Dict, Optional

from .patterns import (
    PATTERN_NODE_TYPES,
    ArrayPattern,
    ArrayPolicy,
    LiteralPattern,
    ObjectPattern,
    Pattern,
    PatternKind,
    PredicatePattern,
    RegexPattern,
    TypePattern,
    TypeTag,
    compile_pattern,
)
from ..errors import PatternError

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_null_literal(pattern: Pattern) -> bool:
    return isinstance(pattern, LiteralPattern) and pattern.value is None


_TYPE_CHECKS = {
    TypeTag.STRING: lambda v: isinstance(v, str),
    TypeTag.NUMBER: _is_number,
    TypeTag.BOOLEAN: lambda v: isinstance(v, bool),
    TypeTag.OBJECT: lambda v: isinstance(v, Mapping),
    TypeTag.ARRAY: lambda v: isinstance(v, list),
}


class PatternMatcher(ABC):
    """Base class for per-kind pattern matchers."""

    @abstractmethod
    def matches(self, pattern: Pattern, value: Any, matcher: "ConditionMatcher", document: Any) -> bool:
        """Return True if ``value`` (known to be present) satisfies ``pattern``."""
        pass


class LiteralMatcher(PatternMatcher):
    """Exact equality. Booleans never equal numbers."""

    def matches(self, pattern: LiteralPattern, value, matcher, document) -> bool:
        expected = pattern.value
        if expected is None or value is None:
            return expected is None and value is None
        if isinstance(expected, bool) or isinstance(value, bool):
            return isinstance(expected, bool) and isinstance(value, bool) and expected == value
        if _is_number(expected):
            return _is_number(value) and expected == value
        return type(value) is type(expected) and value == expected


class TypeMatcher(PatternMatcher):
    """Runtime type check; content is not inspected."""

    def matches(self, pattern: TypePattern, value, matcher, document) -> bool:
        return _TYPE_CHECKS[pattern.tag](value)


class PredicateMatcher(PatternMatcher):
    """Truthiness of a user predicate."""

    def matches(self, pattern: PredicatePattern, value, matcher, document) -> bool:
        if pattern.with_document:
            return bool(pattern.fn(value, document))
        return bool(pattern.fn(value))


class RegexMatcher(PatternMatcher):
    """String value searched with the compiled expression."""

    def matches(self, pattern: RegexPattern, value, matcher, document) -> bool:
        if not isinstance(value, str):
            return False
        return pattern.regex.search(value) is not None


class ObjectMatcher(PatternMatcher):
    """Partial match: every pattern key must exist and match.

    A ``None`` literal also matches a key that is absent, so ``{"next": None}``
    reads as "next not set yet".
    """

    def matches(self, pattern: ObjectPattern, value, matcher, document) -> bool:
        if not isinstance(value, Mapping):
            return False
        for key, sub in pattern.fields:
            if key not in value:
                if _is_null_literal(sub):
                    continue
                return False
            if not matcher.match_node(sub, value[key], document):
                return False
        return True


class ArrayMatcher(PatternMatcher):
    """Positional-subset or existential array match."""

    def matches(self, pattern: ArrayPattern, value, matcher, document) -> bool:
        if not isinstance(value, list):
            return False
        policy = pattern.policy or matcher.array_policy

        if policy == ArrayPolicy.EXISTENTIAL:
            return all(
                any(matcher.match_node(element, item, document) for item in value)
                for element in pattern.elements
            )

        if len(value) < len(pattern.elements):
            return False
        return all(
            matcher.match_node(element, item, document)
            for element, item in zip(pattern.elements, value)
        )


def _default_matchers() -> Dict[PatternKind, PatternMatcher]:
    """Build a fresh matcher map so registering a custom matcher in one
    ConditionMatcher doesn't leak into others."""
    return {
        PatternKind.LITERAL: LiteralMatcher(),
        PatternKind.TYPE: TypeMatcher(),
        PatternKind.PREDICATE: PredicateMatcher(),
        PatternKind.REGEX: RegexMatcher(),
        PatternKind.OBJECT: ObjectMatcher(),
        PatternKind.ARRAY: ArrayMatcher(),
    }


class ConditionMatcher:
    """Decides whether a condition pattern is satisfied by a document.

    Matching never mutates the document and never raises: a predicate that
    throws, or a condition that doesn't compile, counts as a non-match.
    """

    def __init__(self, array_policy: ArrayPolicy = ArrayPolicy.POSITIONAL):
        self.array_policy = ArrayPolicy(array_policy)
        self._matchers = _default_matchers()

    def register(self, kind: PatternKind, pattern_matcher: PatternMatcher) -> None:
        """Replace the matcher used for one pattern kind."""
        self._matchers[kind] = pattern_matcher

    def matches(self, pattern: Any, document: Any) -> bool:
        """Evaluate a pattern (compiled or raw author condition) against a document."""
        if not isinstance(pattern, PATTERN_NODE_TYPES):
            try:
                pattern = compile_pattern(pattern)
            except PatternError as e:
                logger.warning(f"Malformed condition treated as non-matching: {e}")
                return False
        return self.match_node(pattern, document, document)

    def match_node(self, pattern: Pattern, value: Any, document: Any) -> bool:
        """Match one node. ``value`` is the document node the pattern applies to."""
        evaluator: Optional[PatternMatcher] = self._matchers.get(pattern.kind)
        if evaluator is None:
            logger.error(f"No matcher found for pattern kind: {pattern.kind}")
            return False

        try:
            return evaluator.matches(pattern, value, self, document)
        except Exception as e:
            logger.warning(f"Error evaluating {pattern.kind.value} pattern: {e}")
            return False
