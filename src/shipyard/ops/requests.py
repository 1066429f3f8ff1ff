"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function.  Requests carry only validated, transport-agnostic data, no
raw HTTP bodies, no Typer params.
"""

from __future__ import annotations

from dataclasses import dataclass

# ------------------------------------------------------------------ #
# Database operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class DatabaseInitRequest:
    """Request for :func:`shipyard.ops.database.initialize_database`."""


# ------------------------------------------------------------------ #
# Deployment operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class TriggerDeployRequest:
    """Request for :func:`shipyard.ops.deployments.trigger_deploy`.

    Attributes:
        application_id: Application to deploy.
        commit: Source revision; ``HEAD`` means the branch tip.
        pull_request_id: ``0`` for a regular deployment.
        force_rebuild: Build without cache.
        is_webhook: Entry was created by a git webhook.
    """

    application_id: str = ""
    commit: str = "HEAD"
    pull_request_id: int = 0
    force_rebuild: bool = False
    is_webhook: bool = False


@dataclass(frozen=True, slots=True)
class GetDeploymentRequest:
    """Request for :func:`shipyard.ops.deployments.get_deployment`."""

    deployment_uuid: str = ""
    include_logs: bool = True


@dataclass(frozen=True, slots=True)
class ListDeploymentsRequest:
    """Request for :func:`shipyard.ops.deployments.list_deployments`.

    Attributes:
        application_id: Owning application.
        skip: Entries to skip (newest first).
        take: Page size.
        include_pull_requests: Include PR builds (``pull_request_id != 0``).
        status: Optional status filter.
    """

    application_id: str = ""
    skip: int = 0
    take: int = 20
    include_pull_requests: bool = False
    status: str | None = None


@dataclass(frozen=True, slots=True)
class ListActiveDeploymentsRequest:
    """Request for :func:`shipyard.ops.deployments.list_active_deployments`."""

    application_id: str | None = None


@dataclass(frozen=True, slots=True)
class CancelDeploymentRequest:
    """Request for :func:`shipyard.ops.deployments.cancel_deployment`."""

    deployment_uuid: str = ""


@dataclass(frozen=True, slots=True)
class AddDeploymentLogRequest:
    """Request for :func:`shipyard.ops.deployments.add_deployment_log`."""

    deployment_uuid: str = ""
    output: str = ""
    type: str = "stdout"
    hidden: bool = False


# ------------------------------------------------------------------ #
# Rollback operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class RollbackRequest:
    """Request for :func:`shipyard.ops.rollbacks.rollback_application`."""

    application_id: str = ""
    trigger_reason: str = "manual"
    trigger_type: str = "manual"


@dataclass(frozen=True, slots=True)
class RollbackToRequest:
    """Request for :func:`shipyard.ops.rollbacks.rollback_to_deployment`."""

    application_id: str = ""
    deployment_uuid: str = ""


@dataclass(frozen=True, slots=True)
class ListRollbackEventsRequest:
    """Request for :func:`shipyard.ops.rollbacks.list_rollback_events`."""

    application_id: str = ""
