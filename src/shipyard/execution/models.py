"""Deployment domain models.

Defines the core data structures for the deployment core:

- DeploymentStatus + VALID_TRANSITIONS: the status state machine
- Server / Destination / Application: inventory snapshots (read-only here)
- DeploymentQueueEntry: one deployment attempt and its history record
- RollbackEvent: immutable audit row linking a rollback to its target
- FailedJob: a background job that failed permanently

These models are used by DeploymentLedger, DeploymentScheduler,
RollbackEngine and the ops/API layers.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from shipyard.core.errors import InvalidTransitionError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def generate_deployment_token() -> str:
    """Return a fresh deployment token.

    ``uuid4`` carries 122 random bits; the token is the hex form so it is
    URL-safe and fixed-width.
    """
    return uuid.uuid4().hex


def generate_id() -> str:
    """Identifier for inventory rows (servers, destinations, applications)."""
    return secrets.token_hex(12)


class DeploymentStatus(str, Enum):
    """Status of a deployment queue entry.

    Valid transition graph::

        QUEUED      → IN_PROGRESS | CANCELLED_BY_USER
        IN_PROGRESS → FINISHED | FAILED | CANCELLED_BY_USER
        FINISHED          → (terminal)
        FAILED            → (terminal)
        CANCELLED_BY_USER → (terminal)
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    FAILED = "failed"
    CANCELLED_BY_USER = "cancelled_by_user"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


VALID_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.QUEUED: frozenset({
        DeploymentStatus.IN_PROGRESS,
        DeploymentStatus.CANCELLED_BY_USER,
    }),
    DeploymentStatus.IN_PROGRESS: frozenset({
        DeploymentStatus.FINISHED,
        DeploymentStatus.FAILED,
        DeploymentStatus.CANCELLED_BY_USER,
    }),
    DeploymentStatus.FINISHED: frozenset(),  # terminal
    DeploymentStatus.FAILED: frozenset(),  # terminal
    DeploymentStatus.CANCELLED_BY_USER: frozenset(),  # terminal
}

TERMINAL_STATUSES: frozenset[DeploymentStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


def validate_transition(current: DeploymentStatus, target: DeploymentStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_transition(DeploymentStatus.IN_PROGRESS, DeploymentStatus.FINISHED)
        >>> # OK, no exception
        >>> validate_transition(DeploymentStatus.FINISHED, DeploymentStatus.IN_PROGRESS)
        InvalidTransitionError: Invalid DeploymentStatus transition: finished → in_progress
    """
    allowed = VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value, "DeploymentStatus")


class TriggerReason(str, Enum):
    """Why a rollback was triggered."""

    MANUAL = "manual"
    CRASH_LOOP = "crash_loop"
    HEALTH_CHECK_FAILED = "health_check_failed"


class TriggerType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class RollbackOutcome(str, Enum):
    """Outcome of a rollback, derived from its rollback deployment's status."""

    TRIGGERED = "triggered"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_deployment_status(cls, status: DeploymentStatus | None) -> "RollbackOutcome":
        if status is None:
            return cls.TRIGGERED
        if status == DeploymentStatus.FINISHED:
            return cls.SUCCESS
        if status in (DeploymentStatus.FAILED, DeploymentStatus.CANCELLED_BY_USER):
            return cls.FAILED
        return cls.IN_PROGRESS


# ── Inventory snapshots ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Server:
    """A deployment target host."""

    id: str
    name: str
    ip: str = ""
    private_key_id: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def deployment_timeout_s(self) -> float | None:
        """Per-server deadline override, if configured.

        Non-numeric or non-positive values are ignored.
        """
        try:
            value = float(self.settings.get("deployment_timeout_s") or 0)
        except (TypeError, ValueError):
            return None
        return value if value > 0 else None


@dataclass(frozen=True)
class Destination:
    """A container-runtime endpoint (network) on one server."""

    id: str
    name: str
    network: str
    server_id: str | None


@dataclass(frozen=True)
class Application:
    id: str
    name: str
    destination_id: str | None
    ports_exposes: str = ""
    last_successful_deployment_token: str | None = None


# ── Deployment queue ────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeploymentOptions:
    """Optional knobs for a new queue entry.

    Attributes:
        force_rebuild: Build without cache.
        is_webhook: Entry was created by a git webhook.
        rollback: Entry replays an earlier deployment.
        deployment_url: Override for the human-readable location.
    """

    force_rebuild: bool = False
    is_webhook: bool = False
    rollback: bool = False
    deployment_url: str | None = None


@dataclass
class DeploymentQueueEntry:
    """One deployment attempt.

    Example:
        >>> entry = ledger.enqueue(app, server, destination, commit="abc123def456")
        >>> entry.status
        <DeploymentStatus.QUEUED: 'queued'>
    """

    id: int
    deployment_token: str
    application_id: str
    server_id: str
    destination_id: str
    server_name: str
    application_name: str
    commit: str
    pull_request_id: int
    deployment_url: str
    status: DeploymentStatus
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    force_rebuild: bool = False
    is_webhook: bool = False
    rollback: bool = False
    failure_reason: str | None = None
    cancel_requested_at: datetime | None = None
    worker_id: str | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_requested_at is not None


@dataclass(frozen=True)
class ListFilters:
    """Filters for :meth:`DeploymentLedger.list_for_application`.

    ``take=None`` means no limit.  ``include_pull_requests=False`` keeps
    only entries with ``pull_request_id == 0``; ``pull_request_id`` narrows
    to one PR and wins over that flag.
    """

    statuses: frozenset[DeploymentStatus] | None = None
    pull_request_id: int | None = None
    include_pull_requests: bool = True
    rollback: bool | None = None
    skip: int = 0
    take: int | None = None


# ── Rollback audit ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class RollbackEvent:
    """Audit record linking a rollback deployment to the entry it restores.

    Immutable.  ``outcome`` is not stored: it is derived on read from the
    status of the rollback deployment.
    """

    id: int
    application_id: str
    from_deployment_id: int | None
    to_deployment_id: int
    rollback_deployment_id: int | None
    from_commit: str | None
    to_commit: str
    trigger_reason: TriggerReason
    trigger_type: TriggerType
    triggered_by: str | None
    triggered_at: datetime
    metrics_snapshot: dict[str, Any] | None = None
    rollback_deployment_status: DeploymentStatus | None = None
    completed_at: datetime | None = None

    @property
    def outcome(self) -> RollbackOutcome:
        return RollbackOutcome.from_deployment_status(self.rollback_deployment_status)

    @property
    def error_message(self) -> str | None:
        if self.outcome == RollbackOutcome.FAILED:
            return "Rollback deployment failed"
        return None


@dataclass(frozen=True)
class FailedJob:
    """A background job that failed permanently (the queue's dead letters)."""

    id: int
    job_id: str
    task_name: str
    queue: str
    payload: dict[str, Any]
    exception: str
    failed_at: datetime
    resolved_at: datetime | None = None
