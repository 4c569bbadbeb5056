"""Structural and freshness comparison between context-like trees.

Nothing in this module records access: trees are walked through the
containers' internal child maps and items are read with ``peek()``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from contextkit.errors import IncompatibleStructureError, ValidationError
from contextkit.paths import join_path

if TYPE_CHECKING:
    from contextkit.store.container import ContextContainer
    from contextkit.store.item import ContextItem


@runtime_checkable
class ContextLike(Protocol):
    """Anything that exposes a closed set of named containers."""

    component_names: tuple[str, ...]

    def component(self, name: str) -> ContextContainer: ...


@runtime_checkable
class ContextProvider(Protocol):
    """A manager-style wrapper that hands out its context."""

    context: Any


def resolve_context(target: Any) -> ContextLike:
    """Accept a context or a context provider; reject anything else."""
    if isinstance(target, ContextLike):
        return target
    if isinstance(target, ContextProvider) and isinstance(target.context, ContextLike):
        return target.context
    raise ValidationError(
        f"target must be a context or expose one through .context, got {type(target).__name__}"
    )


# ── Timestamps ───────────────────────────────────────────────


class ComparisonResult(Enum):
    SOURCE_NEWER = "source_newer"
    TARGET_NEWER = "target_newer"
    EQUAL = "equal"
    SOURCE_MISSING = "source_missing"
    TARGET_MISSING = "target_missing"
    BOTH_MISSING = "both_missing"


@dataclass(frozen=True)
class TimestampComparison:
    result: ComparisonResult
    source_timestamp: datetime | None
    target_timestamp: datetime | None
    difference: timedelta | None


def _stamp_of(obj: Any, compare_by: str) -> datetime | None:
    if obj is None:
        return None
    stamp = obj if isinstance(obj, datetime) else getattr(obj, compare_by, None)
    if stamp is not None and not isinstance(stamp, datetime):
        raise ValidationError(f"{compare_by} must be a datetime, got {type(stamp).__name__}")
    return stamp


def compare_timestamps(source: Any, target: Any, compare_by: str = "modified_at") -> TimestampComparison:
    """Compare two nodes (or two datetimes) by the named timestamp attribute."""
    if compare_by not in ("created_at", "modified_at", "last_accessed_at"):
        raise ValidationError(f'Invalid timestamp field "{compare_by}"')
    a = _stamp_of(source, compare_by)
    b = _stamp_of(target, compare_by)
    if a is None and b is None:
        result = ComparisonResult.BOTH_MISSING
    elif a is None:
        result = ComparisonResult.SOURCE_MISSING
    elif b is None:
        result = ComparisonResult.TARGET_MISSING
    elif a > b:
        result = ComparisonResult.SOURCE_NEWER
    elif b > a:
        result = ComparisonResult.TARGET_NEWER
    else:
        result = ComparisonResult.EQUAL
    difference = a - b if a is not None and b is not None else None
    return TimestampComparison(result, a, b, difference)


# ── Tree walking ─────────────────────────────────────────────


def iter_leaves(container: ContextContainer, prefix: str = "") -> Iterator[tuple[str, ContextItem]]:
    """Yield ``(path, item)`` for every item below ``container``."""
    from contextkit.store.container import ContextContainer

    for key, node in container._managed_items().items():
        path = join_path(prefix, key)
        if isinstance(node, ContextContainer):
            yield from iter_leaves(node, path)
        else:
            yield path, node


def select_components(
    context: ContextLike,
    components: Iterable[str] | None = None,
    exclude_components: Iterable[str] | None = None,
) -> list[str]:
    names = list(context.component_names) if components is None else list(components)
    unknown = [name for name in names if name not in context.component_names]
    if unknown:
        raise ValidationError(f"Unknown components: {', '.join(unknown)}")
    excluded = set(exclude_components or ())
    return [name for name in names if name not in excluded]


def _shape_conflicts(source: ContextContainer, target: ContextContainer, prefix: str) -> list[str]:
    from contextkit.store.container import ContextContainer

    conflicts: list[str] = []
    theirs = target._managed_items()
    for key, node in source._managed_items().items():
        other = theirs.get(key)
        if other is None:
            continue
        path = join_path(prefix, key)
        mine_is_container = isinstance(node, ContextContainer)
        if mine_is_container != isinstance(other, ContextContainer):
            conflicts.append(path)
        elif mine_is_container:
            conflicts.extend(_shape_conflicts(node, other, path))
    return conflicts


def incompatibilities(
    source: ContextLike,
    target: ContextLike,
    components: Iterable[str] | None = None,
) -> list[str]:
    """Describe every reason the two trees cannot be merged; empty when compatible."""
    if tuple(source.component_names) != tuple(target.component_names):
        return [
            f"component sets differ: {list(source.component_names)} vs {list(target.component_names)}"
        ]
    problems: list[str] = []
    for name in select_components(source, components):
        for path in _shape_conflicts(source.component(name), target.component(name), name):
            problems.append(f"{path} is a container on one side and an item on the other")
    return problems


def is_compatible(source: ContextLike, target: ContextLike, components: Iterable[str] | None = None) -> bool:
    return not incompatibilities(source, target, components)


def ensure_compatible(
    source: ContextLike,
    target: ContextLike,
    components: Iterable[str] | None = None,
) -> None:
    problems = incompatibilities(source, target, components)
    if problems:
        raise IncompatibleStructureError("Contexts are not compatible: " + "; ".join(problems))


# ── Reports ──────────────────────────────────────────────────


@dataclass
class ComparisonReport:
    """Differences between two trees, by leaf path."""

    compare_by: str
    only_in_source: list[str] = field(default_factory=list)
    only_in_target: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    newer_in_source: list[str] = field(default_factory=list)
    newer_in_target: list[str] = field(default_factory=list)
    result: ComparisonResult = ComparisonResult.BOTH_MISSING

    @property
    def identical(self) -> bool:
        differences = self.only_in_source or self.only_in_target
        if self.compare_by == "freshness":
            return not (differences or self.newer_in_source or self.newer_in_target)
        return not (differences or self.changed)


def _latest(leaves: dict[str, ContextItem]) -> datetime | None:
    return max((item.modified_at for item in leaves.values()), default=None)


def compare_contexts(
    source: ContextLike,
    target: ContextLike,
    compare_by: str = "structure",
    components: Iterable[str] | None = None,
) -> ComparisonReport:
    """Diff two context-like trees leaf by leaf.

    ``structure`` compares values; ``freshness`` compares ``modified_at``.
    Either way the report's ``result`` tells which side holds the most
    recently modified leaf overall.
    """
    if compare_by not in ("structure", "freshness"):
        raise ValidationError(f'compare_by must be "structure" or "freshness", got "{compare_by}"')
    mine: dict[str, ContextItem] = {}
    theirs: dict[str, ContextItem] = {}
    for name in select_components(source, components):
        mine.update(iter_leaves(source.component(name), name))
        theirs.update(iter_leaves(target.component(name), name))

    report = ComparisonReport(compare_by=compare_by)
    report.only_in_source = [path for path in mine if path not in theirs]
    report.only_in_target = [path for path in theirs if path not in mine]
    for path, item in mine.items():
        other = theirs.get(path)
        if other is None:
            continue
        if item.peek() != other.peek():
            report.changed.append(path)
        outcome = compare_timestamps(item, other).result
        if outcome is ComparisonResult.SOURCE_NEWER:
            report.newer_in_source.append(path)
        elif outcome is ComparisonResult.TARGET_NEWER:
            report.newer_in_target.append(path)
    report.result = compare_timestamps(_latest(mine), _latest(theirs)).result
    return report
