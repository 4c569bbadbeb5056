"""Dotted-path helpers for external object graphs.

Paths like ``"game.modules.my-module"`` are walked through mappings, list
indices and plain attributes, so the same helpers work on nested dicts,
``SimpleNamespace`` trees and arbitrary host objects.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

from contextkit.errors import ValidationError

SEPARATOR = "."

_SCALARS = (str, bytes, int, float, bool, type(None))


def split_path(path: str) -> list[str]:
    """Split a dotted path. The empty path has no segments."""
    if not isinstance(path, str):
        raise ValidationError(f"path must be a string, got {type(path).__name__}")
    if not path.strip():
        return []
    return path.split(SEPARATOR)


def join_path(*parts: str | None) -> str:
    """Join path fragments, skipping empty ones and stray separators."""
    return SEPARATOR.join(p.strip(SEPARATOR) for p in parts if p and p.strip(SEPARATOR))


def _step(current: Any, segment: str, use_getter: bool) -> tuple[bool, Any]:
    if current is None:
        return False, None
    if isinstance(current, Mapping):
        if segment in current:
            return True, current[segment]
    elif isinstance(current, (list, tuple)):
        if segment.isdigit() and int(segment) < len(current):
            return True, current[int(segment)]
    elif not isinstance(current, _SCALARS) and hasattr(current, segment):
        return True, getattr(current, segment)
    if use_getter and not isinstance(current, Mapping):
        getter = getattr(current, "get", None)
        if callable(getter):
            value = getter(segment)
            if value is not None:
                return True, value
    return False, None


def get_path(obj: Any, path: str, default: Any = None, *, use_getter: bool = False) -> Any:
    """Resolve ``path`` inside ``obj``; return ``default`` when any segment is missing.

    With ``use_getter`` a non-mapping object exposing ``get(key)`` (a module
    registry, for instance) is queried when attribute lookup fails.
    """
    current = obj
    for segment in split_path(path):
        found, current = _step(current, segment, use_getter)
        if not found:
            return default
    return current


def has_path(obj: Any, path: str, *, use_getter: bool = False) -> bool:
    parts = split_path(path)
    if not parts:
        return obj is not None
    current = obj
    for segment in parts:
        found, current = _step(current, segment, use_getter)
        if not found:
            return False
    return True


def _is_traversable(value: Any) -> bool:
    if isinstance(value, (MutableMapping, list)):
        return True
    return not isinstance(value, _SCALARS) and hasattr(value, "__dict__")


def _assign(container: Any, segment: str, value: Any) -> None:
    if isinstance(container, MutableMapping):
        container[segment] = value
    elif isinstance(container, list) and segment.isdigit():
        index = int(segment)
        if index == len(container):
            container.append(value)
        elif index < len(container):
            container[index] = value
        else:
            raise ValidationError(f"Index {index} is out of range for a list of {len(container)}")
    elif isinstance(container, (Mapping, tuple, list)) or isinstance(container, _SCALARS):
        raise ValidationError(f'Cannot write "{segment}" on a {type(container).__name__}')
    else:
        setattr(container, segment, value)


def set_path(obj: Any, path: str, value: Any) -> Any:
    """Write ``value`` at ``path``, creating missing or scalar intermediates as dicts."""
    parts = split_path(path)
    if not parts:
        raise ValidationError("path must be a non-empty dotted string")
    current = obj
    for segment in parts[:-1]:
        found, child = _step(current, segment, False)
        if not found or not _is_traversable(child):
            child = {}
            _assign(current, segment, child)
        current = child
    _assign(current, parts[-1], value)
    return value


def unset_path(obj: Any, path: str) -> bool:
    """Delete the entry at ``path`` from its parent. Returns False if absent."""
    parts = split_path(path)
    if not parts:
        raise ValidationError("path must be a non-empty dotted string")
    parent = get_path(obj, SEPARATOR.join(parts[:-1])) if len(parts) > 1 else obj
    last = parts[-1]
    found, _ = _step(parent, last, False)
    if not found:
        return False
    if isinstance(parent, MutableMapping):
        del parent[last]
    elif isinstance(parent, list):
        del parent[int(last)]
    elif isinstance(parent, (Mapping, tuple)):
        raise ValidationError(f'Cannot delete "{last}" from a {type(parent).__name__}')
    else:
        delattr(parent, last)
    return True
