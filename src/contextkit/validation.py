"""Shared validation contract.

Every validator in the package has the same call shape::

    validate_x(*args, throw_error=True, console_log=True, log_level="error") -> bool

A validator is a sequence of lazy checks run in a fixed order (existence,
then type, then shape). The first failing check stops the sequence, so later
checks never see input that an earlier one rejected. The failure is then
surfaced according to a ``FailurePolicy``: raised, logged, or silently
turned into ``False``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from contextkit.errors import ContextError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationFailure:
    """Structured description of a failed check."""

    field: str
    expected: str
    message: str
    error: type[ContextError] = ValidationError

    def to_exception(self) -> ContextError:
        return self.error(self.message)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a success value or a ``ValidationFailure``."""

    value: T | None = None
    failure: ValidationFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        field: str,
        expected: str,
        message: str | None = None,
        error: type[ContextError] = ValidationError,
    ) -> Outcome[T]:
        return cls(
            failure=ValidationFailure(
                field=field,
                expected=expected,
                message=message or f"{field} must be {expected}",
                error=error,
            )
        )


@dataclass(frozen=True)
class FailurePolicy:
    """How a failed outcome is reported to the caller."""

    throw_error: bool = True
    console_log: bool = True
    log_level: str = "error"

    def surface(self, outcome: Outcome, log: logging.Logger | None = None) -> bool:
        """Return True for success; raise, log or return False otherwise."""
        if outcome.ok:
            return True
        failure = outcome.failure
        if self.throw_error:
            raise failure.to_exception()
        if self.console_log:
            (log or logger).log(level_number(self.log_level), failure.message)
        return False


def level_number(name: str) -> int:
    """Map a level name such as ``"warn"`` or ``"debug"`` to its number."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.ERROR


Check = Callable[[], Outcome]


def first_failure(*checks: Check) -> Outcome:
    """Run checks in order and stop at the first failure."""
    outcome: Outcome = Outcome.success()
    for check in checks:
        outcome = check()
        if not outcome.ok:
            return outcome
    return outcome


def validate(
    *checks: Check,
    throw_error: bool = True,
    console_log: bool = True,
    log_level: str = "error",
    log: logging.Logger | None = None,
) -> bool:
    policy = FailurePolicy(throw_error, console_log, log_level)
    return policy.surface(first_failure(*checks), log)


# ── Building blocks ──────────────────────────────────────────


def require(value: Any, field: str, message: str | None = None) -> Outcome:
    if value is None:
        return Outcome.fail(field, "provided", message or f"{field} must be provided")
    return Outcome.success(value)


def require_type(
    value: Any,
    types: type | tuple[type, ...],
    field: str,
    expected: str,
    message: str | None = None,
) -> Outcome:
    if not isinstance(value, types):
        return Outcome.fail(
            field,
            expected,
            message or f"{field} must be {expected}, got {type(value).__name__}",
        )
    return Outcome.success(value)


def require_non_empty(value: Any, field: str, expected: str, message: str | None = None) -> Outcome:
    if isinstance(value, str):
        empty = not value.strip()
    else:
        empty = len(value) == 0
    if empty:
        return Outcome.fail(field, expected, message or f"{field} must be {expected}, got an empty value")
    return Outcome.success(value)


def forbid(
    condition: bool,
    field: str,
    expected: str,
    message: str,
    error: type[ContextError] = ValidationError,
) -> Outcome:
    if condition:
        return Outcome.fail(field, expected, message, error)
    return Outcome.success()


# ── Shared validators ────────────────────────────────────────


def validate_mapping(
    value: Any,
    field: str,
    *,
    allow_empty: bool = True,
    throw_error: bool = True,
    console_log: bool = True,
    log_level: str = "error",
    log: logging.Logger | None = None,
) -> bool:
    """Validate that ``value`` is a (optionally non-empty) mapping."""
    checks: list[Check] = [
        lambda: require(value, field),
        lambda: require_type(value, Mapping, field, "a mapping"),
    ]
    if not allow_empty:
        checks.append(lambda: require_non_empty(value, field, "a non-empty mapping"))
    return validate(
        *checks,
        throw_error=throw_error,
        console_log=console_log,
        log_level=log_level,
        log=log,
    )


def validate_key(
    key: Any,
    reserved: frozenset[str] = frozenset(),
    *,
    field: str = "key",
    throw_error: bool = True,
    console_log: bool = True,
    log_level: str = "error",
    log: logging.Logger | None = None,
) -> bool:
    """Validate an item key: non-empty string, not a reserved name."""
    return validate(
        lambda: require(key, field),
        lambda: require_type(key, str, field, "a non-empty string"),
        lambda: require_non_empty(key, field, "a non-empty string"),
        lambda: forbid(
            key in reserved,
            field,
            "a non-reserved name",
            f'Key "{key}" is reserved and cannot be used for an item',
        ),
        throw_error=throw_error,
        console_log=console_log,
        log_level=log_level,
        log=log,
    )
