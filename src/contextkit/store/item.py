"""Leaf values with metadata and created/modified/accessed timestamps."""

from __future__ import annotations

import logging
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any

from contextkit.errors import FrozenItemError, ValidationError
from contextkit.validation import validate_mapping

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_stamp(previous: datetime | None) -> datetime:
    """Current time, nudged past ``previous`` when the clock has not advanced."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + _TICK
    return now


def _check_stamp(at: datetime) -> datetime:
    if not isinstance(at, datetime):
        raise ValidationError(f"timestamp must be a datetime, got {type(at).__name__}")
    return at


class ContextItem:
    """A value plus metadata and access/modification timestamps.

    Reading ``value`` bumps ``last_accessed_at`` only when ``record_access``
    is set; reading ``metadata`` only when ``record_access_for_metadata`` is
    set. Writes always bump ``modified_at`` (and ``last_accessed_at`` with
    it). Successive stamps on the same item are strictly increasing.
    """

    def __init__(
        self,
        value: Any = None,
        metadata: dict | None = None,
        *,
        frozen: bool = False,
        record_access: bool = True,
        record_access_for_metadata: bool = False,
    ) -> None:
        metadata = {} if metadata is None else metadata
        validate_mapping(metadata, "metadata", log=logger)
        now = utcnow()
        self._value = value
        self._metadata = dict(metadata)
        self._created_at = now
        self._modified_at = now
        self._last_accessed_at = now
        self._frozen = frozen
        self.record_access = record_access
        self.record_access_for_metadata = record_access_for_metadata

    def __repr__(self) -> str:
        return f"ContextItem(value={self._value!r}, modified_at={self._modified_at.isoformat()})"

    # ── Timestamps ───────────────────────────────────────────

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def modified_at(self) -> datetime:
        return self._modified_at

    @property
    def last_accessed_at(self) -> datetime:
        return self._last_accessed_at

    def _update_access_timestamp(self, at: datetime | None = None) -> None:
        self._last_accessed_at = _check_stamp(at) if at else next_stamp(self._last_accessed_at)

    def _update_modification_timestamps(self, at: datetime | None = None) -> None:
        stamp = _check_stamp(at) if at else next_stamp(self._last_accessed_at)
        self._modified_at = stamp
        self._last_accessed_at = stamp

    # ── Value & metadata ─────────────────────────────────────

    @property
    def value(self) -> Any:
        if self.record_access:
            self._update_access_timestamp()
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        if self._frozen:
            raise FrozenItemError("Cannot modify a frozen ContextItem")
        self._value = new_value
        self._update_modification_timestamps()

    def peek(self) -> Any:
        """Return the value without recording access."""
        return self._value

    @property
    def metadata(self) -> dict:
        """A copy of the metadata; use ``set_metadata`` to change it."""
        if self.record_access_for_metadata:
            self._update_access_timestamp()
        return dict(self._metadata)

    def set_metadata(self, patch: dict, merge: bool = True) -> None:
        """Shallow-merge ``patch`` into the metadata (or replace it)."""
        if self._frozen:
            raise FrozenItemError("Cannot modify metadata of a frozen ContextItem")
        validate_mapping(patch, "metadata", log=logger)
        self._metadata = {**self._metadata, **patch} if merge else dict(patch)
        self._update_modification_timestamps()

    def change_access_record(
        self,
        record_access: bool | None = None,
        record_access_for_metadata: bool | None = None,
    ) -> None:
        """Toggle the record flags given; timestamps are left alone."""
        if record_access is not None:
            self.record_access = record_access
        if record_access_for_metadata is not None:
            self.record_access_for_metadata = record_access_for_metadata

    # ── Freezing ─────────────────────────────────────────────

    def freeze(self) -> None:
        self._frozen = True

    def unfreeze(self) -> None:
        self._frozen = False

    def is_frozen(self) -> bool:
        return self._frozen

    # ── Lifecycle ────────────────────────────────────────────

    def reinitialize(
        self,
        value: Any = None,
        metadata: dict | None = None,
        *,
        frozen: bool = False,
        record_access: bool = True,
        record_access_for_metadata: bool = False,
    ) -> None:
        """Reset value, metadata, flags and all three timestamps in place."""
        metadata = {} if metadata is None else metadata
        validate_mapping(metadata, "metadata", log=logger)
        self._value = value
        self._metadata = dict(metadata)
        self._frozen = frozen
        self.record_access = record_access
        self.record_access_for_metadata = record_access_for_metadata
        now = next_stamp(self._last_accessed_at)
        self._created_at = now
        self._modified_at = now
        self._last_accessed_at = now

    def clear(self) -> None:
        self.reinitialize(None, {})

    def copy(self) -> ContextItem:
        """Deep copy, timestamps and flags included."""
        return deepcopy(self)
