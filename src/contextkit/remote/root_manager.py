"""Selects and re-binds the external object that acts as the remote context root."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

from contextkit.errors import ContextError, NotFoundError
from contextkit.remote.root_map import MODULE_MARKER
from contextkit.validation import (
    forbid,
    require,
    require_non_empty,
    require_type,
    validate,
    validate_mapping,
)

if TYPE_CHECKING:
    from contextkit.config import RemoteContextDefaults

logger = logging.getLogger(__name__)


class RootManager:
    """Holds the parsed root map and the currently selected ``root``.

    The root map is built once, from ``config.build_root_map(namespace)``,
    and must be a non-empty mapping. Entries are kept as references; the
    manager never copies or owns the objects they point to.
    """

    def __init__(
        self,
        config: RemoteContextDefaults,
        root_identifier: str | None = None,
        *,
        namespace: Any = None,
    ) -> None:
        validate(lambda: require(config, "config"), log=logger)
        self.config = config
        self.namespace = namespace
        self.root_identifier = root_identifier or config.root or MODULE_MARKER
        root_map = config.build_root_map(namespace)
        validate_mapping(root_map, "root map", allow_empty=False, log=logger)
        self.root_map: dict[str, Any] = dict(root_map)
        self.root = self.determine_root(self.root_identifier)
        logger.info("Remote context root bound to %r", self.root_identifier)

    def determine_root(self, source: Any, throw_error: bool = True, log_error: bool = True) -> Any:
        """Return the root-map entry for ``source``, or None when it cannot be found."""
        found = validate(
            lambda: require_type(source, str, "source", "a non-empty string"),
            lambda: require_non_empty(source, "source", "a non-empty string"),
            lambda: forbid(
                source not in self.root_map,
                "source",
                "a root map key",
                f"Could not determine remote context root. Source string '{source}' "
                "is not a valid key in the root map",
                NotFoundError,
            ),
            throw_error=throw_error,
            console_log=log_error,
            log=logger,
        )
        if not found:
            return None
        logger.debug("Determined remote root for %r", source)
        return self.root_map[source]

    def _assign_root(self, target: Any, root: Any) -> None:
        if isinstance(target, MutableMapping):
            target["root"] = root
        else:
            target.root = root

    def manage_root(
        self,
        source: Any,
        target: Any = None,
        return_value: bool = False,
        set_property: bool = True,
        operation_name: str = "manage",
        throw_error: bool = True,
        log_error: bool = True,
    ) -> Any:
        """Resolve ``source`` and optionally assign it to ``target.root`` and/or return it.

        Failures while determining or assigning are raised when
        ``throw_error`` is set, logged when ``log_error`` is set, and
        otherwise turned into ``None``.
        """
        target = self if target is None else target
        try:
            root = self.determine_root(source, throw_error=True, log_error=False)
            if set_property:
                self._assign_root(target, root)
        except (ContextError, AttributeError, TypeError, KeyError) as exc:
            if throw_error:
                raise
            if log_error:
                logger.error("Error during %s root: %s", operation_name, exc)
            return None
        return root if return_value else None

    def set_root(
        self,
        source: str,
        target: Any = None,
        *,
        return_value: bool = False,
        set_property: bool = True,
        throw_error: bool = True,
        log_error: bool = True,
    ) -> Any:
        return self.manage_root(
            source,
            target,
            return_value=return_value,
            set_property=set_property,
            operation_name="set",
            throw_error=throw_error,
            log_error=log_error,
        )

    def get_root(
        self,
        source: str,
        target: Any = None,
        *,
        return_value: bool = True,
        set_property: bool = False,
        throw_error: bool = True,
        log_error: bool = True,
    ) -> Any:
        return self.manage_root(
            source,
            target,
            return_value=return_value,
            set_property=set_property,
            operation_name="get",
            throw_error=throw_error,
            log_error=log_error,
        )
