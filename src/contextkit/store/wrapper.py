"""Scalar-vs-subtree decision for values entering a container."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from contextkit.store.item import ContextItem

if TYPE_CHECKING:
    from contextkit.store.container import ContextContainer

Node = Union[ContextItem, "ContextContainer"]


class WrapAs(Enum):
    """The two node variants a raw value can become."""

    ITEM = "item"
    CONTAINER = "container"


@dataclass(frozen=True)
class WrapOptions:
    """Per-node options; containers keep one as their default for new children."""

    wrap_as: WrapAs = WrapAs.ITEM
    record_access: bool = True
    record_access_for_metadata: bool = False
    metadata: dict = field(default_factory=dict)

    def override(self, **changes: Any) -> WrapOptions:
        """Return a copy with the non-None ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def wrap(value: Any, options: WrapOptions | None = None) -> Node:
    """Turn ``value`` into a node.

    Existing nodes are returned as-is (same object, nested state intact).
    A plain mapping becomes a ``ContextContainer`` when the options ask for
    containers; everything else becomes a ``ContextItem``.
    """
    from contextkit.store.container import ContextContainer

    options = options or WrapOptions()
    if is_node(value):
        return value
    if options.wrap_as is WrapAs.CONTAINER and isinstance(value, Mapping):
        return ContextContainer(
            value,
            options.metadata,
            record_access=options.record_access,
            record_access_for_metadata=options.record_access_for_metadata,
            default_item_options=replace(options, metadata={}),
        )
    return ContextItem(
        value,
        options.metadata,
        record_access=options.record_access,
        record_access_for_metadata=options.record_access_for_metadata,
    )


def is_node(value: Any) -> bool:
    from contextkit.store.container import ContextContainer

    return isinstance(value, (ContextItem, ContextContainer))
