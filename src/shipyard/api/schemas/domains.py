"""
Deployment and rollback schemas for the API layer.

These mirror the ops-layer dataclasses in :mod:`shipyard.ops.responses`
as Pydantic models so they get JSON serialisation and OpenAPI schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

# ── Status values (documented) ───────────────────────────────────────────

DeploymentStatusValue = Literal["queued", "in_progress", "finished", "failed", "cancelled_by_user"]
"""
Deployment status values:

- ``queued``: waiting for the application's previous deployment to finish
- ``in_progress``: claimed by a worker and being built/started
- ``finished``: containers started successfully
- ``failed``: build or start failed, or the deadline was reached
- ``cancelled_by_user``: cancelled before or during execution
"""

RollbackStatusValue = Literal["triggered", "in_progress", "success", "failed"]


# ── Deployments ──────────────────────────────────────────────────────────


class DeployAcceptedSchema(BaseModel):
    """Returned by ``POST /deploy``: the new entry's token."""

    deployment_uuid: str
    application_id: str
    status: str = "queued"
    deployment_url: str = ""
    dry_run: bool = False


class DeploymentLogLineSchema(BaseModel):
    order: int
    output: str
    type: Literal["stdout", "stderr"] = "stdout"
    hidden: bool = False
    timestamp: str | None = None


class DeploymentSchema(BaseModel):
    """One deployment queue entry."""

    id: int
    deployment_uuid: str
    application_id: str
    application_name: str
    server_id: str
    server_name: str
    destination_id: str
    commit: str
    pull_request_id: int = 0
    deployment_url: str = ""
    status: DeploymentStatusValue
    force_rebuild: bool = False
    is_webhook: bool = False
    rollback: bool = False
    failure_reason: str | None = None
    cancel_requested: bool = False
    worker_id: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    logs: list[DeploymentLogLineSchema] = Field(default_factory=list)


class CancelResultSchema(BaseModel):
    deployment_uuid: str
    status: DeploymentStatusValue


# ── Rollbacks ────────────────────────────────────────────────────────────


class RollbackAcceptedSchema(BaseModel):
    """Returned by the rollback endpoints: the new rollback entry and its audit event."""

    deployment_uuid: str
    rollback_event_id: int
    from_commit: str | None = None
    to_commit: str


class RollbackEventSchema(BaseModel):
    id: int
    application_id: str
    from_deployment_id: int | None = None
    to_deployment_id: int
    rollback_deployment_id: int | None = None
    from_commit: str | None = None
    to_commit: str
    trigger_reason: str
    trigger_type: str
    status: RollbackStatusValue
    error_message: str | None = None
    triggered_by: str | None = None
    triggered_at: datetime | None = None
    completed_at: datetime | None = None
