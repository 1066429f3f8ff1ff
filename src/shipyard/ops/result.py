"""
Operation result envelope.

Every operation returns an :class:`OperationResult`; list operations return
a :class:`PagedResult` paged by ``skip``/``take`` like the ledger history.
:func:`fail_from_error` maps a domain exception onto its error code, so the
API and CLI only ever branch on codes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, TypeVar

from shipyard.core.errors import (
    ErrorCategory,
    InvalidTransitionError,
    NoRollbackTargetError,
    NotFoundError,
    ShipyardError,
    ValidationError,
)

T = TypeVar("T")

ERROR_CODES: tuple[tuple[type[ShipyardError], str], ...] = (
    (ValidationError, "VALIDATION_FAILED"),
    (NotFoundError, "NOT_FOUND"),
    (InvalidTransitionError, "INVALID_TRANSITION"),
    (NoRollbackTargetError, "NO_ROLLBACK_TARGET"),
)


@dataclass(frozen=True, slots=True)
class OperationError:
    """Why an operation failed.

    ``code`` is one of ``VALIDATION_FAILED``, ``NOT_FOUND``,
    ``INVALID_TRANSITION``, ``NOT_CANCELLABLE``, ``NO_ROLLBACK_TARGET``,
    ``ROLLBACK_TARGET_INVALID`` or ``INTERNAL``.  ``details`` carries the
    error context (application id, deployment token, ...).
    """

    code: str
    message: str
    category: ErrorCategory | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class OperationResult[T]:
    """Success payload or :class:`OperationError`, plus non-fatal warnings."""

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, *, warnings: list[str] | None = None, elapsed_ms: float = 0.0) -> OperationResult[T]:
        return cls(success=True, data=data, warnings=list(warnings or ()), elapsed_ms=elapsed_ms)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        elapsed_ms: float = 0.0,
    ) -> OperationResult[T]:
        error = OperationError(code, message, category, dict(details or {}), retryable)
        return cls(success=False, error=error, elapsed_ms=elapsed_ms)


@dataclass
class PagedResult(OperationResult[list[T]]):
    """One page of a newest-first history."""

    total: int = 0
    skip: int = 0
    take: int = 20

    @property
    def has_more(self) -> bool:
        return self.skip + self.take < self.total

    @classmethod
    def page(cls, items: list[T], *, total: int, skip: int, take: int, elapsed_ms: float = 0.0) -> PagedResult[T]:
        return cls(success=True, data=items, total=total, skip=skip, take=take, elapsed_ms=elapsed_ms)


def fail_from_error(
    exc: ShipyardError,
    *,
    code: str | None = None,
    message: str | None = None,
    elapsed_ms: float = 0.0,
) -> OperationResult[Any]:
    """Failed result for a domain error.

    *code* and *message* override the defaults for operations that give an
    error a more specific meaning (``NOT_CANCELLABLE`` for a cancel that hit
    a terminal entry, for instance).
    """
    if code is None:
        code = next((c for cls, c in ERROR_CODES if isinstance(exc, cls)), "INTERNAL")
    return OperationResult.fail(
        code,
        message or exc.message,
        category=exc.category,
        details=exc.context.to_dict(),
        retryable=exc.retryable,
        elapsed_ms=elapsed_ms,
    )


class Stopwatch:
    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> Stopwatch:
    return Stopwatch()
