"""Sync dispatch: named operations and strategies on top of the merger."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from contextkit.errors import UnsupportedOperationError, ValidationError
from contextkit.sync.comparison import (
    ContextLike,
    ensure_compatible,
    incompatibilities,
    resolve_context,
    select_components,
)
from contextkit.sync.merger import (
    SOURCE,
    TARGET,
    MergeResult,
    MergeStrategy,
    defer,
    merge,
    newer_wins,
    prefer,
)

logger = logging.getLogger(__name__)

OPERATIONS = {
    "merge": MergeStrategy.MERGE_NEWER_WINS,
    "replace": MergeStrategy.UPDATE_TARGET,
    "update": MergeStrategy.UPDATE_TO_MATCH,
}


@dataclass
class SyncResult:
    success: bool
    operation: str
    details: MergeResult | dict | None = None
    error: str | None = None


def merge_newer_wins(source: ContextLike, target: ContextLike, **options: Any) -> MergeResult:
    return merge(source, target, newer_wins, MergeStrategy.MERGE_NEWER_WINS, **options)


def merge_with_priority(
    source: ContextLike,
    target: ContextLike,
    priority: str = SOURCE,
    conflict_resolution: str = "auto",
    **options: Any,
) -> MergeResult:
    """Let ``priority`` win every conflict, or defer conflicts when resolution is manual."""
    decide = prefer(priority)
    if conflict_resolution == "manual":
        decide = defer
    elif conflict_resolution != "auto":
        raise ValidationError(
            f'conflict_resolution must be "auto" or "manual", got "{conflict_resolution}"'
        )
    strategy = (
        MergeStrategy.MERGE_SOURCE_PRIORITY if priority == SOURCE else MergeStrategy.MERGE_TARGET_PRIORITY
    )
    return merge(source, target, decide, strategy, **options)


def _holds_frozen(container: Any) -> bool:
    if container.is_frozen():
        return True
    for node in container._managed_items().values():
        if hasattr(node, "_managed_items"):
            if _holds_frozen(node):
                return True
        elif node.is_frozen():
            return True
    return False


def _copy_components(
    origin: ContextLike,
    destination: ContextLike,
    components: Iterable[str] | None,
    exclude_components: Iterable[str] | None,
    dry_run: bool,
) -> tuple[list[str], list[str]]:
    """Copy whole components; destinations holding frozen nodes are skipped."""
    names = select_components(origin, components, exclude_components)
    ensure_compatible(origin, destination, names)
    skipped = [name for name in names if _holds_frozen(destination.component(name))]
    copied = [name for name in names if name not in skipped]
    if skipped:
        logger.warning("Skipped frozen components: %s", ", ".join(skipped))
    if not dry_run:
        for name in copied:
            children = origin.component(name)._managed_items()
            destination.component(name)._replace_children(
                {key: node.copy() for key, node in children.items()}
            )
    return copied, skipped


def update_target(
    source: ContextLike,
    target: ContextLike,
    *,
    components: Iterable[str] | None = None,
    exclude_components: Iterable[str] | None = None,
    dry_run: bool = False,
) -> dict:
    """Make ``target`` a full copy of ``source`` (per selected component)."""
    names, skipped = _copy_components(source, target, components, exclude_components, dry_run)
    logger.info("Replaced %s in target from source", ", ".join(names))
    return {
        "direction": f"{SOURCE}->{TARGET}",
        "components": names,
        "skipped": skipped,
        "dry_run": dry_run,
    }


def update_to_match(
    source: ContextLike,
    target: ContextLike,
    *,
    components: Iterable[str] | None = None,
    exclude_components: Iterable[str] | None = None,
    dry_run: bool = False,
) -> dict:
    """Make ``source`` a full copy of ``target`` (per selected component)."""
    names, skipped = _copy_components(target, source, components, exclude_components, dry_run)
    logger.info("Updated %s in source to match target", ", ".join(names))
    return {
        "direction": f"{TARGET}->{SOURCE}",
        "components": names,
        "skipped": skipped,
        "dry_run": dry_run,
    }


def as_strategy(value: MergeStrategy | str) -> MergeStrategy:
    try:
        return MergeStrategy(value)
    except ValueError:
        raise UnsupportedOperationError(f'Unsupported merge strategy "{value}"') from None


def run_strategy(
    strategy: MergeStrategy | str,
    source: ContextLike,
    target: ContextLike,
    **options: Any,
) -> MergeResult | dict:
    strategy = as_strategy(strategy)
    if strategy is MergeStrategy.MERGE_NEWER_WINS:
        return merge_newer_wins(source, target, **options)
    if strategy is MergeStrategy.MERGE_SOURCE_PRIORITY:
        return merge_with_priority(source, target, SOURCE, **options)
    if strategy is MergeStrategy.MERGE_TARGET_PRIORITY:
        return merge_with_priority(source, target, TARGET, **options)
    if strategy is MergeStrategy.UPDATE_TARGET:
        return update_target(source, target, **options)
    return update_to_match(source, target, **options)


def sync(source: ContextLike, target: Any, operation: str = "merge", **options: Any) -> SyncResult:
    """Run ``merge``, ``replace`` or ``update`` between ``source`` and ``target``."""
    strategy = OPERATIONS.get(operation)
    if strategy is None:
        raise UnsupportedOperationError(
            f'Unsupported sync operation "{operation}"; expected one of {", ".join(OPERATIONS)}'
        )
    details = run_strategy(strategy, source, resolve_context(target), **options)
    return SyncResult(success=True, operation=operation, details=details)


def auto_sync(
    source: ContextLike,
    target: Any,
    strategy: MergeStrategy | str | None = None,
    **options: Any,
) -> SyncResult:
    """Merge newer-wins (or ``strategy``) when compatible; report failure otherwise."""
    target = resolve_context(target)
    chosen = as_strategy(strategy) if strategy else MergeStrategy.MERGE_NEWER_WINS
    problems = incompatibilities(source, target, options.get("components"))
    if problems:
        logger.warning("Auto sync skipped: %s", "; ".join(problems))
        return SyncResult(success=False, operation=chosen.value, error="; ".join(problems))
    details = run_strategy(chosen, source, target, **options)
    return SyncResult(success=True, operation=chosen.value, details=details)
