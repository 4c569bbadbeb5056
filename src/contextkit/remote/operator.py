"""Path-based reads and writes against a bound remote root."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from contextkit.errors import UnsupportedOperationError, ValidationError
from contextkit.paths import SEPARATOR, get_path, has_path, join_path, set_path
from contextkit.remote.root_manager import RootManager
from contextkit.validation import require_non_empty, require_type, validate, validate_key

if TYPE_CHECKING:
    from contextkit.config import RemoteContextDefaults

logger = logging.getLogger(__name__)

BEHAVIORS = ("set", "push", "replace", "set_if_absent")


def epoch_millis() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True)
class RemoteReadout:
    """A value read from the remote root plus its modification and retrieval stamps."""

    response: Any
    modified: int | None
    retrieved: int


def _identity(entry: Any) -> Any:
    if isinstance(entry, Mapping):
        return entry.get("id")
    return getattr(entry, "id", None)


class RemoteContextOperator:
    """Reads and writes the context object living inside a remote root.

    All paths are relative to the bound root. ``context_object_path`` is the
    base location; the data/flags/settings zones sit beneath it.
    """

    def __init__(
        self,
        config: RemoteContextDefaults,
        root_identifier: str | None = None,
        *,
        namespace: Any = None,
    ) -> None:
        self.config = config
        self.root_manager = RootManager(config, root_identifier, namespace=namespace)
        self.timestamp_key = config.timestamp_key
        self.update_paths()

    @property
    def remote_root(self) -> Any:
        return self.root_manager.root

    def update_paths(
        self,
        path: str | None = None,
        data_path: str | None = None,
        flags_path: str | None = None,
        settings_path: str | None = None,
    ) -> None:
        """Recompute the context object path and the three zone paths beneath it."""
        self.context_object_path = self.config.path if path is None else path
        self.data_path = join_path(self.context_object_path, data_path or self.config.data_path)
        self.flags_path = join_path(self.context_object_path, flags_path or self.config.flags_path)
        self.settings_path = join_path(
            self.context_object_path, settings_path or self.config.settings_path
        )

    def _source(self, source: Any) -> Any:
        return self.remote_root if source is None else source

    def _location(self, location: str | None) -> str:
        return self.context_object_path if location is None else location

    # ── Reads ────────────────────────────────────────────────

    def get(
        self,
        path_or_key: str | None = None,
        *,
        location: str | None = None,
        source: Any = None,
        default: Any = None,
    ) -> Any:
        """Read ``location`` (or ``location.path_or_key``) from the root."""
        return get_path(self._source(source), join_path(self._location(location), path_or_key), default)

    def get_data(self, path_or_key: str | None = None, **kwargs: Any) -> Any:
        return self.get(path_or_key, location=self.data_path, **kwargs)

    def get_flags(self, path_or_key: str | None = None, **kwargs: Any) -> Any:
        return self.get(path_or_key, location=self.flags_path, **kwargs)

    def get_settings(self, path_or_key: str | None = None, **kwargs: Any) -> Any:
        return self.get(path_or_key, location=self.settings_path, **kwargs)

    def get_timestamp(self, source: Any = None) -> int | None:
        return get_path(self._source(source), join_path(self.context_object_path, self.timestamp_key))

    def read_with_timestamps(
        self,
        path_or_key: str | None = None,
        *,
        location: str | None = None,
        source: Any = None,
    ) -> RemoteReadout:
        return RemoteReadout(
            response=self.get(path_or_key, location=location, source=source),
            modified=self.get_timestamp(source),
            retrieved=epoch_millis(),
        )

    # ── Writes ───────────────────────────────────────────────

    def stamp(self, source: Any = None, value: int | None = None) -> int:
        """Write the modification stamp (epoch milliseconds) on the context object."""
        value = epoch_millis() if value is None else value
        set_path(self._source(source), join_path(self.context_object_path, self.timestamp_key), value)
        return value

    def _push(self, root: Any, path: str, value: Any) -> None:
        current = get_path(root, path)
        if current is None:
            set_path(root, path, [value])
        elif isinstance(current, list):
            current.append(value)
        else:
            raise ValidationError(f"Cannot push to non-list value at {path}")

    def _replace(self, root: Any, path: str, value: Any) -> None:
        current = get_path(root, path, [])
        if not isinstance(current, list):
            raise ValidationError(f"Cannot replace in non-list value at {path}")
        wanted = _identity(value)
        for index, entry in enumerate(current):
            if _identity(entry) == wanted:
                current[index] = value
                return
        logger.warning("Cannot replace item with id %r at %s: not found", wanted, path)

    def _apply_behavior(self, behavior: str, root: Any, path: str, value: Any) -> None:
        if behavior == "set":
            set_path(root, path, value)
        elif behavior == "push":
            self._push(root, path, value)
        elif behavior == "replace":
            self._replace(root, path, value)
        elif behavior == "set_if_absent":
            if not has_path(root, path):
                set_path(root, path, value)
        else:
            raise UnsupportedOperationError(
                f'Unsupported set behavior "{behavior}"; expected one of {", ".join(BEHAVIORS)}'
            )

    def _write(
        self,
        path: str,
        value: Any,
        source: Any,
        behavior: str,
        timestamp: bool,
    ) -> Any:
        root = self._source(source)
        self._apply_behavior(behavior, root, path, value)
        if timestamp:
            self.stamp(root)
        return value

    def set_object(
        self,
        value: Any,
        *,
        location: str | None = None,
        source: Any = None,
        timestamp: bool = True,
    ) -> Any:
        """Replace the whole object at ``location``."""
        return self._write(self._location(location), value, source, "set", timestamp)

    def set_item(
        self,
        key: str,
        value: Any,
        *,
        location: str | None = None,
        source: Any = None,
        behavior: str = "set",
        timestamp: bool = True,
    ) -> Any:
        validate_key(key, log=logger)
        if SEPARATOR in key:
            raise ValidationError(f'Key "{key}" must not contain "{SEPARATOR}"; use set_property')
        return self._write(join_path(self._location(location), key), value, source, behavior, timestamp)

    def set_property(
        self,
        path: str,
        value: Any,
        *,
        location: str | None = None,
        source: Any = None,
        behavior: str = "set",
        timestamp: bool = True,
    ) -> Any:
        validate(
            lambda: require_type(path, str, "path", "a non-empty dotted string"),
            lambda: require_non_empty(path, "path", "a non-empty dotted string"),
            log=logger,
        )
        return self._write(join_path(self._location(location), path), value, source, behavior, timestamp)

    def set_data(self, path_or_key: str, value: Any, **kwargs: Any) -> Any:
        return self.set_property(path_or_key, value, location=self.data_path, **kwargs)

    def set_flags(self, path_or_key: str, value: Any, **kwargs: Any) -> Any:
        return self.set_property(path_or_key, value, location=self.flags_path, **kwargs)

    def set_settings(self, path_or_key: str, value: Any, **kwargs: Any) -> Any:
        return self.set_property(path_or_key, value, location=self.settings_path, **kwargs)
