"""Leaf-by-leaf merging of two context-like trees.

A merge is planned completely before anything is written: the planner walks
both trees, decides each leaf, and records a step per change. Only then are
the steps applied, so a failure while planning leaves both trees untouched.
Winners are deep-copied into the losing side with their timestamps intact,
which makes both trees converge on the same values.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from contextkit.errors import ValidationError
from contextkit.paths import SEPARATOR, join_path
from contextkit.sync.comparison import ContextLike, ensure_compatible, select_components

if TYPE_CHECKING:
    from contextkit.store.container import ContextContainer
    from contextkit.store.item import ContextItem
    from contextkit.store.wrapper import Node

logger = logging.getLogger(__name__)

SOURCE = "source"
TARGET = "target"


class MergeStrategy(Enum):
    MERGE_NEWER_WINS = "merge_newer_wins"
    MERGE_SOURCE_PRIORITY = "merge_source_priority"
    MERGE_TARGET_PRIORITY = "merge_target_priority"
    UPDATE_TARGET = "update_target"
    UPDATE_TO_MATCH = "update_to_match"


@dataclass(frozen=True)
class MergeChange:
    """One planned step. ``action`` is ``create``, ``update`` or ``skip``."""

    path: str
    action: str
    applied_to: str | None = None
    winner: str | None = None
    reason: str = ""


@dataclass(frozen=True)
class MergeConflict:
    path: str
    source_value: Any
    target_value: Any
    source_modified_at: Any
    target_modified_at: Any


@dataclass
class MergeStatistics:
    source_preferred: int = 0
    target_preferred: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deferred: int = 0


@dataclass
class MergeResult:
    success: bool
    strategy: MergeStrategy
    dry_run: bool = False
    items_processed: int = 0
    conflicts: list[MergeConflict] = field(default_factory=list)
    changes: list[MergeChange] = field(default_factory=list)
    deferred: list[MergeConflict] = field(default_factory=list)
    statistics: MergeStatistics = field(default_factory=MergeStatistics)

    @property
    def applied(self) -> list[MergeChange]:
        """Changes that were (or, in a dry run, would be) written."""
        return [change for change in self.changes if change.action != "skip"]


# A decider sees both items of a conflicting leaf and names the winning side,
# or returns None to defer the leaf.
Decider = Callable[["ContextItem", "ContextItem"], "str | None"]


def newer_wins(source: ContextItem, target: ContextItem) -> str:
    """Strictly newer ``modified_at`` wins; a tie stays with the source."""
    return TARGET if target.modified_at > source.modified_at else SOURCE


def prefer(side: str) -> Decider:
    if side not in (SOURCE, TARGET):
        raise ValidationError(f'priority must be "source" or "target", got "{side}"')
    return lambda source, target: side


def defer(source: ContextItem, target: ContextItem) -> None:
    return None


@dataclass
class _Step:
    change: MergeChange
    container: ContextContainer
    key: str
    node: Node


class _PathFilter:
    def __init__(self, allow_only: Iterable[str] | None, block_only: Iterable[str] | None) -> None:
        self.allow = list(allow_only or ())
        self.block = list(block_only or ())

    @staticmethod
    def _under(path: str, prefix: str) -> bool:
        return path == prefix or path.startswith(prefix + SEPARATOR)

    def blocked(self, path: str) -> bool:
        return any(self._under(path, prefix) for prefix in self.block)

    def allowed(self, path: str) -> bool:
        if not self.allow:
            return True
        return any(self._under(path, prefix) for prefix in self.allow)

    def leads_to_allowed(self, path: str) -> bool:
        if not self.allow:
            return True
        return any(self._under(path, p) or self._under(p, path) for p in self.allow)


class _Planner:
    def __init__(self, decide: Decider, path_filter: _PathFilter) -> None:
        self.decide = decide
        self.filter = path_filter
        self.steps: list[_Step] = []
        self.skips: list[MergeChange] = []
        self.conflicts: list[MergeConflict] = []
        self.deferred: list[MergeConflict] = []
        self.processed = 0

    def _skip(self, path: str, reason: str) -> None:
        self.skips.append(MergeChange(path, "skip", reason=reason))

    def _copy_over(
        self,
        path: str,
        into: ContextContainer,
        key: str,
        node: Node,
        winner: str,
        locked: bool,
    ) -> None:
        if locked:
            self._skip(path, "frozen")
            return
        loser = TARGET if winner == SOURCE else SOURCE
        change = MergeChange(path, "create", applied_to=loser, winner=winner, reason=f"missing in {loser}")
        self.steps.append(_Step(change, into, key, node))

    def walk(
        self,
        source: ContextContainer,
        target: ContextContainer,
        prefix: str,
        source_locked: bool = False,
        target_locked: bool = False,
    ) -> None:
        """Plan ``source`` against ``target``; ``*_locked`` marks a frozen ancestor."""
        from contextkit.store.container import ContextContainer

        source_locked = source_locked or source.is_frozen()
        target_locked = target_locked or target.is_frozen()
        mine = source._managed_items()
        theirs = target._managed_items()
        keys = list(mine) + [key for key in theirs if key not in mine]
        for key in keys:
            path = join_path(prefix, key)
            if self.filter.blocked(path):
                self._skip(path, "blocked")
                continue
            if not self.filter.leads_to_allowed(path):
                continue
            left, right = mine.get(key), theirs.get(key)
            both_containers = isinstance(left, ContextContainer) and isinstance(right, ContextContainer)
            if both_containers:
                self.walk(left, right, path, source_locked, target_locked)
                continue
            if not self.filter.allowed(path):
                continue
            self.processed += 1
            if right is None:
                self._copy_over(path, target, key, left, SOURCE, target_locked)
            elif left is None:
                self._copy_over(path, source, key, right, TARGET, source_locked)
            else:
                self._resolve(path, source, target, key, left, right, source_locked, target_locked)

    def _resolve(
        self,
        path: str,
        source: ContextContainer,
        target: ContextContainer,
        key: str,
        left: ContextItem,
        right: ContextItem,
        source_locked: bool,
        target_locked: bool,
    ) -> None:
        if left.peek() == right.peek():
            self._skip(path, "equal")
            return
        conflict = MergeConflict(path, left.peek(), right.peek(), left.modified_at, right.modified_at)
        self.conflicts.append(conflict)
        winner = self.decide(left, right)
        if winner is None:
            self.deferred.append(conflict)
            return
        if winner == SOURCE:
            loser_node, into, node, applied_to = right, target, left, TARGET
            locked = target_locked
        else:
            loser_node, into, node, applied_to = left, source, right, SOURCE
            locked = source_locked
        if locked or loser_node.is_frozen():
            self._skip(path, "frozen")
            return
        change = MergeChange(path, "update", applied_to=applied_to, winner=winner, reason="conflict")
        self.steps.append(_Step(change, into, key, node))


def merge(
    source: ContextLike,
    target: ContextLike,
    decide: Decider,
    strategy: MergeStrategy,
    *,
    dry_run: bool = False,
    components: Iterable[str] | None = None,
    exclude_components: Iterable[str] | None = None,
    allow_only: Iterable[str] | None = None,
    block_only: Iterable[str] | None = None,
) -> MergeResult:
    """Plan and (unless ``dry_run``) apply a merge of ``source`` and ``target``."""
    names = select_components(source, components, exclude_components)
    ensure_compatible(source, target, names)

    planner = _Planner(decide, _PathFilter(allow_only, block_only))
    for name in names:
        planner.walk(source.component(name), target.component(name), name)

    if not dry_run:
        for step in planner.steps:
            step.container._adopt(step.key, step.node.copy())

    stats = MergeStatistics(skipped=len(planner.skips), deferred=len(planner.deferred))
    for step in planner.steps:
        if step.change.winner == SOURCE:
            stats.source_preferred += 1
        else:
            stats.target_preferred += 1
        if step.change.action == "create":
            stats.created += 1
        else:
            stats.updated += 1

    result = MergeResult(
        success=True,
        strategy=strategy,
        dry_run=dry_run,
        items_processed=planner.processed,
        conflicts=planner.conflicts,
        changes=[step.change for step in planner.steps] + planner.skips,
        deferred=planner.deferred,
        statistics=stats,
    )
    logger.info(
        "%s %s: %d applied, %d skipped, %d deferred",
        "Planned" if dry_run else "Completed",
        strategy.value,
        len(result.applied),
        stats.skipped,
        stats.deferred,
    )
    return result
