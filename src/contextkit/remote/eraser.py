"""Clear and remove operations on the remote root."""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableMapping
from typing import Any

from contextkit.errors import UnsupportedOperationError, ValidationError
from contextkit.paths import get_path, join_path, set_path, unset_path
from contextkit.remote.operator import RemoteContextOperator
from contextkit.validation import validate_key

logger = logging.getLogger(__name__)


class RemoteContextEraser(RemoteContextOperator):
    """Erase entries under the context object.

    ``clear`` keeps the entry and empties it (an existing mapping is emptied
    in place so callers holding a reference see the change); ``remove``
    deletes the entry from its parent.
    """

    def _actions(self) -> dict[str, Callable[..., Any]]:
        return {
            "clear": self.clear,
            "clear_item": self.clear_item,
            "clear_property": self.clear_property,
            "clear_data": self.clear_data,
            "clear_flags": self.clear_flags,
            "clear_settings": self.clear_settings,
            "remove": self.remove,
            "remove_item": self.remove_item,
            "remove_property": self.remove_property,
            "remove_data": self.remove_data,
            "remove_flags": self.remove_flags,
            "remove_settings": self.remove_settings,
        }

    def erase(self, action: str = "clear", **kwargs: Any) -> Any:
        handler = self._actions().get(action)
        if handler is None:
            raise UnsupportedOperationError(f'Unsupported erase action "{action}"')
        return handler(**kwargs)

    # ── Clear ────────────────────────────────────────────────

    def _clear_at(self, path: str, source: Any) -> Any:
        root = self._source(source)
        current = get_path(root, path) if path else root
        if isinstance(current, MutableMapping):
            current.clear()
            return current
        if not path:
            raise ValidationError("Cannot clear the remote root itself unless it is a mutable mapping")
        return set_path(root, path, {})

    def clear(
        self,
        path_or_key: str | None = None,
        *,
        location: str | None = None,
        source: Any = None,
    ) -> Any:
        return self._clear_at(join_path(self._location(location), path_or_key), source)

    def clear_item(self, key: str, *, location: str | None = None, source: Any = None) -> Any:
        validate_key(key, log=logger)
        return self.clear(key, location=location, source=source)

    def clear_property(self, path: str, *, location: str | None = None, source: Any = None) -> Any:
        return self.clear(path, location=location, source=source)

    def clear_data(self, path_or_key: str | None = None, *, source: Any = None) -> Any:
        return self.clear(path_or_key, location=self.data_path, source=source)

    def clear_flags(self, path_or_key: str | None = None, *, source: Any = None) -> Any:
        return self.clear(path_or_key, location=self.flags_path, source=source)

    def clear_settings(self, path_or_key: str | None = None, *, source: Any = None) -> Any:
        return self.clear(path_or_key, location=self.settings_path, source=source)

    # ── Remove ───────────────────────────────────────────────

    def remove(
        self,
        path_or_key: str | None = None,
        *,
        location: str | None = None,
        source: Any = None,
    ) -> bool:
        path = join_path(self._location(location), path_or_key)
        if not path:
            raise ValidationError("Cannot remove the remote root itself")
        removed = unset_path(self._source(source), path)
        if not removed:
            logger.debug("Nothing to remove at %s", path)
        return removed

    def remove_item(self, key: str, *, location: str | None = None, source: Any = None) -> bool:
        validate_key(key, log=logger)
        return self.remove(key, location=location, source=source)

    def remove_property(self, path: str, *, location: str | None = None, source: Any = None) -> bool:
        return self.remove(path, location=location, source=source)

    def remove_data(self, path_or_key: str | None = None, *, source: Any = None) -> bool:
        return self.remove(path_or_key, location=self.data_path, source=source)

    def remove_flags(self, path_or_key: str | None = None, *, source: Any = None) -> bool:
        return self.remove(path_or_key, location=self.flags_path, source=source)

    def remove_settings(self, path_or_key: str | None = None, *, source: Any = None) -> bool:
        return self.remove(path_or_key, location=self.settings_path, source=source)
