"""The Context aggregate: seven fixed containers behind one dotted-path API."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from contextkit.config import StoreConfig
from contextkit.errors import UnsupportedOperationError, ValidationError
from contextkit.paths import SEPARATOR
from contextkit.store.container import ContextContainer
from contextkit.store.item import ContextItem
from contextkit.store.wrapper import Node, WrapAs, WrapOptions
from contextkit.sync import engine
from contextkit.sync.comparison import ComparisonReport, compare_contexts, is_compatible, resolve_context
from contextkit.sync.merger import SOURCE, TARGET, MergeResult, MergeStrategy
from contextkit.sync.snapshot import ExperimentalSnapshot, take_snapshot
from contextkit.validation import require_non_empty, require_type, validate, validate_mapping

logger = logging.getLogger(__name__)

COMPONENTS = ("schema", "constants", "manifest", "flags", "state", "data", "settings")


def _component(name: str) -> property:
    def getter(self: Context) -> ContextContainer:
        return self._components[name]

    getter.__name__ = name
    return property(getter, doc=f"The ``{name}`` container.")


class Context:
    """An aggregate of exactly seven named containers.

    Paths are ``"<component>.<key...>"``: the first segment picks the
    container, the rest is resolved inside it. The component set is closed;
    components can be read and mutated but never reassigned or extended.
    """

    __slots__ = ("_config", "_components", "_record")

    component_names = COMPONENTS

    schema = _component("schema")
    constants = _component("constants")
    manifest = _component("manifest")
    flags = _component("flags")
    state = _component("state")
    data = _component("data")
    settings = _component("settings")

    def __init__(
        self,
        initialization_params: Mapping[str, Any] | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        params = {} if initialization_params is None else initialization_params
        validate_mapping(params, "initialization_params", log=logger)
        unknown = [name for name in params if name not in COMPONENTS]
        if unknown:
            raise ValidationError(
                f"Unknown components in initialization_params: {', '.join(map(str, unknown))}"
            )
        self._config = config or StoreConfig()
        options = WrapOptions(
            wrap_as=WrapAs.CONTAINER if self._config.wrap_mappings else WrapAs.ITEM,
            record_access=self._config.record_access,
            record_access_for_metadata=self._config.record_access_for_metadata,
        )
        self._record = ContextItem(
            None,
            record_access=self._config.record_access,
            record_access_for_metadata=self._config.record_access_for_metadata,
        )
        self._components: dict[str, ContextContainer] = {}
        for name in COMPONENTS:
            initial = params.get(name)
            if initial is not None:
                validate_mapping(initial, f"initialization_params.{name}", log=logger)
            self._components[name] = ContextContainer(
                initial,
                record_access=self._config.record_access,
                record_access_for_metadata=self._config.record_access_for_metadata,
                default_item_options=options,
            )

    def __repr__(self) -> str:
        sizes = ", ".join(f"{n}={len(c._managed_items())}" for n, c in self._components.items())
        return f"Context({sizes})"

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def created_at(self) -> datetime:
        return self._record.created_at

    @property
    def modified_at(self) -> datetime:
        return self._record.modified_at

    @property
    def last_accessed_at(self) -> datetime:
        return self._record.last_accessed_at

    # ── Path access ──────────────────────────────────────────

    def component(self, name: str) -> ContextContainer:
        if name not in self._components:
            raise ValidationError(f'Unknown component "{name}"; expected one of {", ".join(COMPONENTS)}')
        return self._components[name]

    def _split(self, path: Any) -> tuple[ContextContainer, str]:
        validate(
            lambda: require_type(path, str, "path", "a non-empty dotted string"),
            lambda: require_non_empty(path, "path", "a non-empty dotted string"),
            log=logger,
        )
        name, _, rest = path.partition(SEPARATOR)
        return self.component(name), rest

    def get_item(self, path: str, default: Any = None) -> Any:
        """Return the value at ``path``; a bare component name returns its whole value."""
        container, rest = self._split(path)
        if not rest:
            return container.value
        return container.get_value(rest, default)

    def get_wrapped_item(self, path: str) -> Node | None:
        container, rest = self._split(path)
        if not rest:
            return container
        return container.get_item(rest)

    def set_item(self, path: str, value: Any, **options: Any) -> Context:
        """Write ``value`` at ``path``; a bare component name replaces the container's value."""
        container, rest = self._split(path)
        if not rest:
            if options:
                raise ValidationError(
                    f'Item options ({", ".join(sorted(options))}) do not apply when replacing component "{path}"'
                )
            container.value = value
        else:
            container.set_item(rest, value, **options)
        self._record._update_modification_timestamps()
        return self

    def has_item(self, path: str) -> bool:
        if not isinstance(path, str) or not path:
            return False
        name, _, rest = path.partition(SEPARATOR)
        if name not in self._components:
            return False
        return not rest or self._components[name].has_item(rest)

    def remove_item(self, path: str) -> bool:
        container, rest = self._split(path)
        if not rest:
            raise ValidationError(f'Cannot remove component "{path}"; use clear_items on it instead')
        removed = container.remove_item(rest)
        if removed:
            self._record._update_modification_timestamps()
        return removed

    @property
    def value(self) -> dict[str, dict]:
        return {name: container.value for name, container in self._components.items()}

    def peek(self) -> dict[str, dict]:
        return {name: container.peek() for name, container in self._components.items()}

    # ── Comparison ───────────────────────────────────────────

    def compare(
        self,
        other: Any,
        compare_by: str = "structure",
        components: Iterable[str] | None = None,
    ) -> ComparisonReport:
        """Diff against ``other`` without mutating or touching either side."""
        return compare_contexts(self, resolve_context(other), compare_by, components)

    def is_compatible_with(self, other: Any, components: Iterable[str] | None = None) -> bool:
        return is_compatible(self, resolve_context(other), components)

    # ── Sync & merge ─────────────────────────────────────────

    def sync(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return engine.sync(self, target, operation, **options)

    def auto_sync(
        self,
        target: Any,
        strategy: MergeStrategy | str | None = None,
        **options: Any,
    ) -> engine.SyncResult:
        return engine.auto_sync(self, target, strategy, **options)

    def merge_newer_wins(self, target: Any, **options: Any) -> MergeResult:
        """Per leaf, the strictly newer side wins; ties keep this context's value."""
        return engine.merge_newer_wins(self, resolve_context(target), **options)

    def merge_with_priority(
        self,
        target: Any,
        priority: str = SOURCE,
        conflict_resolution: str = "auto",
        **options: Any,
    ) -> MergeResult:
        return engine.merge_with_priority(
            self, resolve_context(target), priority, conflict_resolution, **options
        )

    def merge_with_target_priority(self, target: Any, **options: Any) -> MergeResult:
        return self.merge_with_priority(target, TARGET, **options)

    def analyze(self, target: Any, **options: Any) -> MergeResult:
        """Dry-run newer-wins merge: what would change, with nothing written."""
        return self.merge_newer_wins(target, dry_run=True, **options)

    def sync_components(
        self,
        target: Any,
        names: Iterable[str],
        operation: str = "merge",
        **options: Any,
    ) -> engine.SyncResult:
        return self.sync(target, operation, components=list(names), **options)

    def sync_component(self, target: Any, name: str, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_components(target, [name], operation, **options)

    def sync_schema(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_component(target, "schema", operation, **options)

    def sync_data(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_component(target, "data", operation, **options)

    def sync_state(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_component(target, "state", operation, **options)

    def sync_flags(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_component(target, "flags", operation, **options)

    def sync_settings(self, target: Any, operation: str = "merge", **options: Any) -> engine.SyncResult:
        return self.sync_component(target, "settings", operation, **options)

    # ── Snapshots ────────────────────────────────────────────

    def create_snapshot(
        self,
        experimental: bool = False,
        components: Iterable[str] | None = None,
    ) -> ExperimentalSnapshot:
        """Capture the current values. Experimental: the format may change without notice."""
        if not (experimental or self._config.experimental_snapshots):
            raise UnsupportedOperationError(
                "create_snapshot is experimental; pass experimental=True or enable "
                "experimental_snapshots in the store configuration"
            )
        logger.warning("create_snapshot is experimental and its format is not stable")
        return take_snapshot(self, components)
