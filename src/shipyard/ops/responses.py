"""
Typed response objects for operations.

Each dataclass represents the *output* of a single operation beyond the
generic :class:`OperationResult` envelope.  Responses carry only domain
data, no HTTP status codes, no CLI formatting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# ------------------------------------------------------------------ #
# Database responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class DatabaseInitResult:
    """Result payload for :func:`shipyard.ops.database.initialize_database`."""

    tables_created: list[str]
    dry_run: bool = False


# ------------------------------------------------------------------ #
# Deployment responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class DeployAccepted:
    """Result payload for :func:`shipyard.ops.deployments.trigger_deploy`."""

    deployment_uuid: str
    application_id: str
    status: str = "queued"
    deployment_url: str = ""
    message: str = "Deployment queued."
    dry_run: bool = False


@dataclass(slots=True)
class DeploymentView:
    """One deployment queue entry, as callers see it."""

    id: int
    deployment_uuid: str
    application_id: str
    application_name: str
    server_id: str
    server_name: str
    destination_id: str
    commit: str
    pull_request_id: int
    deployment_url: str
    status: str
    force_rebuild: bool = False
    is_webhook: bool = False
    rollback: bool = False
    failure_reason: str | None = None
    cancel_requested: bool = False
    worker_id: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CancelResult:
    """Result payload for :func:`shipyard.ops.deployments.cancel_deployment`.

    ``status`` is ``cancelled_by_user`` for a queued entry, or
    ``in_progress`` while its worker finalizes the cancellation.
    """

    deployment_uuid: str
    status: str
    message: str = "Deployment cancelled successfully."


# ------------------------------------------------------------------ #
# Rollback responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class RollbackAccepted:
    """Result payload for the rollback operations."""

    deployment_uuid: str
    rollback_event_id: int
    from_commit: str | None
    to_commit: str
    message: str = "Rollback initiated successfully"


@dataclass(slots=True)
class RollbackEventView:
    """One rollback audit event with its derived outcome."""

    id: int
    application_id: str
    from_deployment_id: int | None
    to_deployment_id: int
    rollback_deployment_id: int | None
    from_commit: str | None
    to_commit: str
    trigger_reason: str
    trigger_type: str
    status: str
    error_message: str | None = None
    triggered_by: str | None = None
    triggered_at: datetime | None = None
    completed_at: datetime | None = None
