"""Keyed collections of items and nested containers."""

from __future__ import annotations

import logging
from collections.abc import ItemsView, KeysView, Mapping, ValuesView
from copy import deepcopy
from datetime import datetime
from typing import Any

from contextkit.errors import FrozenItemError, ValidationError
from contextkit.paths import SEPARATOR, get_path
from contextkit.store.item import ContextItem
from contextkit.store.wrapper import Node, WrapAs, WrapOptions, wrap
from contextkit.validation import validate_key, validate_mapping

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset(
    {
        "value",
        "metadata",
        "size",
        "created_at",
        "modified_at",
        "last_accessed_at",
        "record_access",
        "record_access_for_metadata",
    }
)

CIRCULAR_MARKER = "__circular__"

_OPTION_KEYS = frozenset({"record_access", "record_access_for_metadata", "default_item_options"})


class ContextContainer:
    """A metadata-bearing node holding keyed ``ContextItem``/``ContextContainer`` children.

    The container's own metadata, flags and timestamps live in an embedded
    ``ContextItem`` record; the children live in a plain dict. Keys may be
    dotted (``"player.stats.hp"``), in which case intermediate containers are
    created on write and traversed on read.
    """

    def __init__(
        self,
        initial: Any = None,
        metadata: dict | None = None,
        *,
        record_access: bool = True,
        record_access_for_metadata: bool = False,
        default_item_options: WrapOptions | None = None,
    ) -> None:
        self._record = ContextItem(
            None,
            metadata,
            record_access=record_access,
            record_access_for_metadata=record_access_for_metadata,
        )
        self._default_item_options = default_item_options or WrapOptions()
        self._items: dict[str, Node] = {}
        if initial is not None:
            self._items = self._stage(initial)

    def __repr__(self) -> str:
        return f"ContextContainer(keys={list(self._items)})"

    # ── Record delegation ────────────────────────────────────

    @property
    def metadata(self) -> dict:
        return self._record.metadata

    def set_metadata(self, patch: dict, merge: bool = True) -> None:
        self._record.set_metadata(patch, merge)

    @property
    def created_at(self) -> datetime:
        return self._record.created_at

    @property
    def modified_at(self) -> datetime:
        return self._record.modified_at

    @property
    def last_accessed_at(self) -> datetime:
        return self._record.last_accessed_at

    @property
    def record_access(self) -> bool:
        return self._record.record_access

    @record_access.setter
    def record_access(self, enabled: bool) -> None:
        self._record.record_access = enabled

    @property
    def record_access_for_metadata(self) -> bool:
        return self._record.record_access_for_metadata

    @record_access_for_metadata.setter
    def record_access_for_metadata(self, enabled: bool) -> None:
        self._record.record_access_for_metadata = enabled

    @property
    def default_item_options(self) -> WrapOptions:
        return self._default_item_options

    def change_access_record(
        self,
        record_access: bool | None = None,
        record_access_for_metadata: bool | None = None,
    ) -> None:
        self._record.change_access_record(record_access, record_access_for_metadata)

    def freeze(self) -> None:
        self._record.freeze()

    def unfreeze(self) -> None:
        self._record.unfreeze()

    def is_frozen(self) -> bool:
        return self._record.is_frozen()

    def _update_access_timestamp(self, at: datetime | None = None) -> None:
        self._record._update_access_timestamp(at)

    def _update_modification_timestamps(self, at: datetime | None = None) -> None:
        self._record._update_modification_timestamps(at)

    def _touch(self) -> None:
        if self.record_access:
            self._record._update_access_timestamp()

    # ── Keys & internal writes ───────────────────────────────

    def _key_parts(self, key: Any) -> list[str]:
        validate_key(key, log=logger)
        parts = key.split(SEPARATOR)
        for part in parts:
            validate_key(part, RESERVED_KEYS, field=f'segment "{part}" of key "{key}"', log=logger)
        return parts

    def _new_nested(self) -> ContextContainer:
        return ContextContainer(
            record_access=self._default_item_options.record_access,
            record_access_for_metadata=self._default_item_options.record_access_for_metadata,
            default_item_options=self._default_item_options,
        )

    def _check_writable(self, parts: list[str], ignore_frozen: bool) -> None:
        node: ContextContainer = self
        for index, part in enumerate(parts):
            if node.is_frozen() and not ignore_frozen:
                raise FrozenItemError(f'Cannot write "{part}" into a frozen container')
            child = node._items.get(part)
            if child is None:
                return
            if index == len(parts) - 1:
                if child.is_frozen() and not ignore_frozen:
                    raise FrozenItemError(f'Cannot overwrite frozen item "{part}"')
                return
            if not isinstance(child, ContextContainer):
                raise ValidationError(f'Cannot set nested value on non-container item at key "{part}"')
            node = child

    def _write(self, parts: list[str], value: Any, options: WrapOptions) -> None:
        head = parts[0]
        if len(parts) == 1:
            self._items[head] = wrap(value, options)
        else:
            nested = self._items.get(head)
            if nested is None:
                nested = self._new_nested()
                self._items[head] = nested
            elif not isinstance(nested, ContextContainer):
                raise ValidationError(f'Cannot set nested value on non-container item at key "{head}"')
            nested._write(parts[1:], value, options)
        self._record._update_modification_timestamps()

    def _stage(self, values: Any) -> dict[str, Node]:
        """Build a children dict from ``values`` without touching this container."""
        staging = ContextContainer(default_item_options=self._default_item_options)
        if isinstance(values, Mapping):
            for key, value in values.items():
                staging._write(staging._key_parts(key), value, self._default_item_options)
        else:
            staging._write(["default"], values, self._default_item_options)
        return staging._items

    def _managed_items(self) -> dict[str, Node]:
        return self._items

    def _adopt(self, key: str, node: Node) -> None:
        self._items[key] = node
        self._record._update_modification_timestamps()

    def _replace_children(self, children: dict[str, Node]) -> None:
        self._items = dict(children)
        self._record._update_modification_timestamps()

    def _resolve(self, key: Any) -> Node | None:
        if not isinstance(key, str) or not key:
            return None
        node: Node | None = self
        for part in key.split(SEPARATOR):
            if not isinstance(node, ContextContainer):
                return None
            node = node._items.get(part)
            if node is None:
                return None
        return node

    # ── Public item API ──────────────────────────────────────

    def set_item(
        self,
        key: str,
        value: Any,
        *,
        metadata: dict | None = None,
        wrap_as: WrapAs | None = None,
        record_access: bool | None = None,
        record_access_for_metadata: bool | None = None,
        ignore_frozen: bool = False,
    ) -> ContextContainer:
        """Store ``value`` under ``key`` and return ``self`` for chaining."""
        parts = self._key_parts(key)
        options = self._default_item_options.override(
            wrap_as=wrap_as,
            record_access=record_access,
            record_access_for_metadata=record_access_for_metadata,
            metadata=metadata,
        )
        self._check_writable(parts, ignore_frozen)
        self._write(parts, value, options)
        return self

    def get_item(self, key: str) -> Node | None:
        """Return the child node at ``key`` without dereferencing it."""
        self._touch()
        return self._resolve(key)

    def get_value(self, key: str, default: Any = None) -> Any:
        """Return the unwrapped value at ``key``.

        Dotted keys descend through nested containers and then into mapping
        values held by items.
        """
        self._touch()
        if not isinstance(key, str) or not key:
            return default
        parts = key.split(SEPARATOR)
        node: Node = self
        for index, part in enumerate(parts):
            if isinstance(node, ContextContainer):
                child = node._items.get(part)
                if child is None:
                    return default
                node = child
            else:
                return get_path(node.value, SEPARATOR.join(parts[index:]), default)
        return node.value

    def has_item(self, key: str) -> bool:
        self._touch()
        return self._resolve(key) is not None

    def remove_item(self, key: str, *, ignore_frozen: bool = False) -> bool:
        """Remove ``key``; ``modified_at`` moves only when something was removed."""
        if not isinstance(key, str) or not key:
            return False
        parts = key.split(SEPARATOR)
        chain: list[ContextContainer] = [self]
        for part in parts[:-1]:
            child = chain[-1]._items.get(part)
            if not isinstance(child, ContextContainer):
                return False
            chain.append(child)
        parent = chain[-1]
        target = parent._items.get(parts[-1])
        if target is None:
            return False
        if not ignore_frozen:
            if any(container.is_frozen() for container in chain):
                raise FrozenItemError(f'Cannot remove "{key}" from a frozen container')
            if target.is_frozen():
                raise FrozenItemError(f'Cannot remove frozen item "{key}"')
        del parent._items[parts[-1]]
        for container in reversed(chain):
            container._record._update_modification_timestamps()
        return True

    def clear_items(self) -> None:
        if self.is_frozen():
            raise FrozenItemError("Cannot clear a frozen container")
        if self._items:
            self._items.clear()
            self._record._update_modification_timestamps()

    @property
    def size(self) -> int:
        self._touch()
        return len(self._items)

    def keys(self) -> KeysView[str]:
        """Snapshot of the keys at call time."""
        self._touch()
        return dict(self._items).keys()

    def items(self) -> ValuesView[Node]:
        """Snapshot of the child nodes at call time."""
        self._touch()
        return dict(self._items).values()

    def entries(self) -> ItemsView[str, Node]:
        """Snapshot of ``(key, node)`` pairs at call time."""
        self._touch()
        return dict(self._items).items()

    # ── Whole-value access ───────────────────────────────────

    def _collect(self, visited: set[int], record: bool) -> dict:
        if id(self) in visited:
            return {CIRCULAR_MARKER: True}
        visited.add(id(self))
        result: dict[str, Any] = {}
        try:
            for key, node in self._items.items():
                if isinstance(node, ContextContainer):
                    if record:
                        node._touch()
                    result[key] = node._collect(visited, record)
                else:
                    result[key] = node.value if record else node.peek()
        finally:
            visited.discard(id(self))
        return result

    @property
    def value(self) -> dict:
        self._touch()
        return self._collect(set(), record=True)

    @value.setter
    def value(self, new_items: Mapping) -> None:
        validate_mapping(new_items, "value", log=logger)
        if self.is_frozen():
            raise FrozenItemError("Cannot replace the value of a frozen container")
        staged = self._stage(new_items)
        self._items = staged
        self._record._update_modification_timestamps()

    def peek(self) -> dict:
        """Plain-dict value without recording access anywhere."""
        return self._collect(set(), record=False)

    # ── Lifecycle ────────────────────────────────────────────

    def reinitialize(
        self,
        new_value: Any = None,
        new_metadata: dict | None = None,
        new_options: Mapping | None = None,
    ) -> None:
        """Reset children, metadata and timestamps in place, keeping identity."""
        options = dict(new_options or {})
        unknown = set(options) - _OPTION_KEYS
        if unknown:
            raise ValidationError(f"Unknown container options: {sorted(unknown)}")
        default_options = options.get("default_item_options", self._default_item_options)
        if not isinstance(default_options, WrapOptions):
            raise ValidationError("default_item_options must be a WrapOptions")
        self._default_item_options = default_options
        staged = self._stage(new_value) if new_value is not None else {}
        self._record.reinitialize(
            None,
            new_metadata,
            record_access=options.get("record_access", self.record_access),
            record_access_for_metadata=options.get(
                "record_access_for_metadata", self.record_access_for_metadata
            ),
        )
        self._items = staged

    def clear(self) -> None:
        self._items = {}
        self._record.clear()

    def copy(self) -> ContextContainer:
        """Deep copy of the whole subtree, timestamps included."""
        return deepcopy(self)
