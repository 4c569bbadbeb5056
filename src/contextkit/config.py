"""Configuration loading from environment variables and contextkit.toml."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from contextkit.remote.root_map import MODULE_MARKER, parse_root_map

_CONFIG_FILENAME = "contextkit.toml"
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_ROOT_MAP: dict[str, Any] = {"module": MODULE_MARKER}

RootMapFactory = Callable[[Any, str | None], dict[str, Any]]


def root_map_factory(
    table: Mapping[str, Any],
    modules_location: str = "game.modules",
) -> RootMapFactory:
    """Turn a static root-map table into a ``(namespace, module_id) -> dict`` factory."""
    entries = dict(table)

    def build(namespace: Any, module_id: str | None) -> dict[str, Any]:
        return parse_root_map(
            entries,
            namespace=namespace,
            module_id=module_id,
            modules_location=modules_location,
        )

    return build


@dataclass
class StoreConfig:
    """Behaviour of Context instances."""

    record_access: bool = True
    record_access_for_metadata: bool = False
    wrap_mappings: bool = True
    experimental_snapshots: bool = False


@dataclass
class RemoteContextDefaults:
    """Where the remote context lives inside the host namespace."""

    root: str = "module"
    path: str = "overhead"
    data_path: str = "data"
    flags_path: str = "flags"
    settings_path: str = "settings"
    timestamp_key: str = "dateModified"
    module_id: str = ""
    modules_location: str = "game.modules"
    root_map: RootMapFactory | None = None

    def build_root_map(self, namespace: Any) -> dict[str, Any]:
        factory = self.root_map or root_map_factory(DEFAULT_ROOT_MAP, self.modules_location)
        return factory(namespace, self.module_id or None)


@dataclass
class ContextKitConfig:
    """Top-level contextkit configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    remote: RemoteContextDefaults = field(default_factory=RemoteContextDefaults)
    log_level: str = "INFO"


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def load_config(config_path: Path | None = None) -> ContextKitConfig:
    """Load configuration from environment variables and optional contextkit.toml.

    Priority: environment variables > contextkit.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".contextkit" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    store_data = file_data.get("store", {})
    remote_data = file_data.get("remote", {})
    modules_location = remote_data.get("modules_location", "game.modules")
    table = remote_data.get("root_map")

    config = ContextKitConfig(
        store=StoreConfig(
            record_access=_flag(store_data.get("record_access", True)),
            record_access_for_metadata=_flag(store_data.get("record_access_for_metadata", False)),
            wrap_mappings=_flag(store_data.get("wrap_mappings", True)),
            experimental_snapshots=_flag(
                os.getenv(
                    "CONTEXTKIT_EXPERIMENTAL_SNAPSHOTS",
                    store_data.get("experimental_snapshots", False),
                )
            ),
        ),
        remote=RemoteContextDefaults(
            root=os.getenv("CONTEXTKIT_REMOTE_ROOT", remote_data.get("root", "module")),
            path=os.getenv("CONTEXTKIT_REMOTE_PATH", remote_data.get("path", "overhead")),
            data_path=remote_data.get("data_path", "data"),
            flags_path=remote_data.get("flags_path", "flags"),
            settings_path=remote_data.get("settings_path", "settings"),
            timestamp_key=remote_data.get("timestamp_key", "dateModified"),
            module_id=os.getenv("CONTEXTKIT_MODULE_ID", remote_data.get("module_id", "")),
            modules_location=modules_location,
            root_map=root_map_factory(table, modules_location) if table else None,
        ),
        log_level=os.getenv("CONTEXTKIT_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
