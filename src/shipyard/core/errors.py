"""
Structured error types for the deployment core.

Every failure that crosses a component boundary is a ``ShipyardError``
subclass.  Each one carries a category (what kind of failure), a retry
flag, structured context (application, deployment token, server) and an
optional chained cause.

Manifesto:
    - **Typed taxonomy:** callers branch on the error type, never on message text
    - **Explicit retry semantics:** nothing in the deployment path is retried
      automatically; every error here defaults to ``retryable=False``
    - **Rich context:** errors carry the identifiers needed for logs and audit
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      ShipyardError                           │
        │     (category, retryable, context, cause)                    │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ValidationError        NotFoundError     ConfigError        │
        │  (VALIDATION)           (NOT_FOUND)       (CONFIG)           │
        │                                                              │
        │  InvalidTransitionError NoRollbackTargetError TimeoutExpired │
        │  (STATE, ValueError)    (ROLLBACK)            (TIMEOUT)      │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> err = NotFoundError("deployment", "d-123")
    >>> err.category
    <ErrorCategory.NOT_FOUND: 'NOT_FOUND'>
    >>> err.with_context(application_id="app-1").to_dict()["context"]
    {'application_id': 'app-1'}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Attributes:
        VALIDATION: Bad input (no resolvable destination, empty commit)
        NOT_FOUND: Unknown application or deployment token
        STATE: State machine violation
        ROLLBACK: No eligible rollback target
        TIMEOUT: Collaborator or probe did not answer in time
        NETWORK: Connection errors to collaborators
        CONFIG: Missing or invalid settings
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STATE = "STATE"
    ROLLBACK = "ROLLBACK"
    TIMEOUT = "TIMEOUT"

    NETWORK = "NETWORK"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    ``to_dict()`` only emits the fields that were set, so the logged
    context stays small.

    Attributes:
        application_id: Application the failing operation concerned
        deployment_token: Deployment token, if one was involved
        server: Server name or id
        destination: Destination id
        metadata: Additional key/value pairs
    """

    application_id: str | None = None
    deployment_token: str | None = None
    server: str | None = None
    destination: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["application_id", "deployment_token", "server", "destination"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ShipyardError(Exception):
    """
    Base exception for all deployment-core errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    call sites only pass what differs from the defaults.

    Guardrails:
        ❌ DON'T: Raise bare ``Exception`` from the ledger or scheduler
        ✅ DO: Raise the matching subclass so the ops layer can map it

        ❌ DON'T: Swallow the original exception
        ✅ DO: Pass it as ``cause=`` for error chaining
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ShipyardError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("deployment", token).with_context(
                application_id=app_id,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# INPUT ERRORS
# =============================================================================


class ValidationError(ShipyardError):
    """
    Bad input, e.g. an application with no resolvable destination.

    Never retryable. The input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class NotFoundError(ShipyardError):
    """Unknown application, server, destination or deployment token."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, resource: str, identifier: Any, message: str | None = None, **kwargs: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(message or f"{resource.capitalize()} not found: {identifier}", **kwargs)


class ConfigError(ShipyardError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================


class InvalidTransitionError(ShipyardError, ValueError):
    """Raised when an illegal status transition is attempted.

    Transitions out of a terminal status always land here: deployment
    history is immutable once closed.  If a legitimate transition is
    blocked, add it to ``VALID_TRANSITIONS`` explicitly; never remove the
    guard at the call site.
    """

    default_category = ErrorCategory.STATE

    def __init__(self, current: str, target: str, enum_name: str = "DeploymentStatus", **kwargs: Any) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}", **kwargs)


class NoRollbackTargetError(ShipyardError):
    """No earlier finished deployment is eligible as a rollback target.

    A user-facing condition, not a system fault.
    """

    default_category = ErrorCategory.ROLLBACK

    def __init__(self, application_id: str, message: str | None = None, **kwargs: Any):
        self.application_id = application_id
        super().__init__(
            message or f"No rollback target available for application {application_id}",
            **kwargs,
        )
        self.context.application_id = application_id


class TimeoutExpired(ShipyardError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before giving up
        operation: Name/description of the operation
    """

    default_category = ErrorCategory.TIMEOUT

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
        **kwargs: Any,
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg, **kwargs)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ShipyardError):
        return error.retryable
    return isinstance(error, (ConnectionError, BrokenPipeError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ShipyardError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ShipyardError",
    "ValidationError",
    "NotFoundError",
    "ConfigError",
    "InvalidTransitionError",
    "NoRollbackTargetError",
    "TimeoutExpired",
    "is_retryable",
    "categorize_error",
]
