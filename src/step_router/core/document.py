"""Helpers for the per-task JSON-like document."""

import copy
from typing import Any, Dict, List, Union

Document = Dict[str, Any]

_MISSING = object()


def split_path(path: str) -> List[str]:
    """Split a dotted path ("companies.3.response") into segments."""
    if not path or not isinstance(path, str):
        raise ValueError(f"Document path must be a non-empty string, got {path!r}")
    segments = path.split(".")
    if any(not s for s in segments):
        raise ValueError(f"Document path has an empty segment: {path!r}")
    return segments


def _index(segment: str) -> Union[int, None]:
    if segment.isdigit():
        return int(segment)
    return None


def get_path(document: Document, path: str, default: Any = None) -> Any:
    """Read a dotted path; list segments are numeric indexes."""
    node: Any = document
    for segment in split_path(path):
        if isinstance(node, dict):
            node = node.get(segment, _MISSING)
        elif isinstance(node, list):
            idx = _index(segment)
            node = node[idx] if idx is not None and idx < len(node) else _MISSING
        else:
            node = _MISSING
        if node is _MISSING:
            return default
    return node


def set_path(document: Document, path: str, value: Any) -> None:
    """Write a value at a dotted path, creating intermediate objects.

    Numeric segments index into existing lists (appending when the index is
    one past the end); everywhere else missing segments become dicts.
    """
    segments = split_path(path)
    node: Any = document
    for i, segment in enumerate(segments):
        last = i == len(segments) - 1
        if isinstance(node, list):
            idx = _index(segment)
            if idx is None or idx > len(node):
                raise ValueError(f"Cannot write list index '{segment}' in path {path!r}")
            if idx == len(node):
                node.append({} if not last else value)
                if last:
                    return
            elif last:
                node[idx] = value
                return
            if not isinstance(node[idx], (dict, list)):
                node[idx] = {}
            node = node[idx]
        elif isinstance(node, dict):
            if last:
                node[segment] = value
                return
            if not isinstance(node.get(segment), (dict, list)):
                node[segment] = {}
            node = node[segment]
        else:
            raise ValueError(f"Cannot write through non-container at '{segment}' in path {path!r}")


def deep_merge(target: Document, patch: Document) -> Document:
    """Merge ``patch`` into ``target`` in place; nested dicts merge, other values replace."""
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def snapshot(document: Document) -> Document:
    """Independent deep copy used for condition evaluation."""
    return copy.deepcopy(document)
