"""Resolve root-map entries against a host namespace."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from contextkit.errors import NotFoundError, ValidationError
from contextkit.paths import get_path
from contextkit.validation import validate_mapping

logger = logging.getLogger(__name__)

MODULE_MARKER = "module"

_MISSING = object()


def get_module(namespace: Any, module_id: str | None, modules_location: str = "game.modules") -> Any:
    """Look up a host module by id in the registry found at ``modules_location``."""
    if not module_id:
        raise ValidationError("module_id must be a non-empty string to resolve a module entry")
    registry = get_path(namespace, modules_location)
    if registry is None:
        raise NotFoundError(f'Module "{module_id}" not found in namespace')
    getter = getattr(registry, "get", None)
    module = getter(module_id) if callable(getter) else getattr(registry, module_id, None)
    if module is None:
        raise NotFoundError(f'Module "{module_id}" not found in namespace')
    return module


def _resolve_entry(
    key: str,
    entry: Any,
    namespace: Any,
    module_id: str | None,
    modules_location: str,
) -> Any:
    if entry is None:
        return None
    if entry == MODULE_MARKER:
        return get_module(namespace, module_id, modules_location)
    if isinstance(entry, str):
        if not entry:
            return namespace
        resolved = get_path(namespace, entry, _MISSING)
        if resolved is _MISSING or resolved is None:
            raise NotFoundError(f'Path "{entry}" could not be resolved for key "{key}"')
        return resolved
    if isinstance(entry, Mapping):
        return {
            k: _resolve_entry(k, v, namespace, module_id, modules_location) for k, v in entry.items()
        }
    raise ValidationError(f'Invalid value type for key "{key}": {type(entry).__name__}')


def parse_root_map(
    root_map: Mapping[str, Any],
    *,
    key: str | None = None,
    namespace: Any,
    module_id: str | None = None,
    modules_location: str = "game.modules",
) -> Any:
    """Resolve every entry of ``root_map`` (or only ``key``) against ``namespace``.

    Entries may be ``None``, the module marker, a dotted path (the empty path
    is the namespace itself) or a nested mapping, which is resolved
    recursively. Resolution failures propagate to the caller.
    """
    validate_mapping(root_map, "root_map", allow_empty=False, log=logger)
    if key is not None:
        if key not in root_map:
            raise NotFoundError(f'Key "{key}" not found in root map')
        return _resolve_entry(key, root_map[key], namespace, module_id, modules_location)
    return {
        k: _resolve_entry(k, v, namespace, module_id, modules_location) for k, v in root_map.items()
    }
