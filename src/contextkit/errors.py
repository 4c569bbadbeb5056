"""Error taxonomy for the context store, sync engine and remote binding layer."""

from __future__ import annotations


class ContextError(Exception):
    """Base class for all contextkit failures."""


class ValidationError(ContextError, ValueError):
    """Raised when an input has the wrong shape or type."""


class NotFoundError(ContextError, LookupError):
    """Raised when a root-map key, module or path cannot be found."""


class IncompatibleStructureError(ContextError):
    """Raised when two contexts cannot be merged or synced."""


class UnsupportedOperationError(ContextError):
    """Raised for unknown sync/erase/write actions or gated features."""


class FrozenItemError(ContextError):
    """Raised when writing to a frozen item or container."""
