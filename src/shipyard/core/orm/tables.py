"""Table definitions: inventory, deployment queue, rollback events, failed jobs."""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from shipyard.core.orm.base import ShipyardBase

# ── Inventory (administratively managed, referenced only) ───────────────


class ServerTable(ShipyardBase):
    __tablename__ = "servers"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str] = mapped_column(Text, default="", nullable=False)
    private_key_id: Mapped[str | None] = mapped_column(Text)
    settings: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)


class DestinationTable(ShipyardBase):
    __tablename__ = "destinations"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    network: Mapped[str] = mapped_column(Text, nullable=False)
    server_id: Mapped[str | None] = mapped_column(Text, ForeignKey("servers.id", ondelete="SET NULL"))
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)


class ApplicationTable(ShipyardBase):
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    ports_exposes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    destination_id: Mapped[str | None] = mapped_column(
        Text, ForeignKey("destinations.id", ondelete="SET NULL")
    )
    last_successful_deployment_token: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)


# ── Deployment ledger (append-only history) ─────────────────────────────


class DeploymentQueueTable(ShipyardBase):
    __tablename__ = "deployment_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deployment_token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    # No foreign keys on purpose: history outlives the live inventory rows.
    application_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    server_id: Mapped[str] = mapped_column(Text, nullable=False)
    destination_id: Mapped[str] = mapped_column(Text, nullable=False)

    # snapshot fields
    server_name: Mapped[str] = mapped_column(Text, nullable=False)
    application_name: Mapped[str] = mapped_column(Text, nullable=False)

    commit: Mapped[str] = mapped_column(Text, default="HEAD", nullable=False)
    pull_request_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deployment_url: Mapped[str] = mapped_column(Text, default="", nullable=False)
    force_rebuild: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_webhook: Mapped[bool] = mapped_column(default=False, nullable=False)
    rollback: Mapped[bool] = mapped_column(default=False, nullable=False)

    status: Mapped[str] = mapped_column(Text, default="queued", nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    cancel_requested_at: Mapped[datetime.datetime | None] = mapped_column()
    worker_id: Mapped[str | None] = mapped_column(Text)
    logs: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # Number of log lines; appends are compare-and-set on it.
    log_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    started_at: Mapped[datetime.datetime | None] = mapped_column()
    finished_at: Mapped[datetime.datetime | None] = mapped_column()

    __table_args__ = (
        Index("ix_deployment_queue_app_status_created", "application_id", "status", "created_at"),
        # Backstop for "at most one in_progress entry per application".
        Index(
            "uq_deployment_queue_one_in_progress",
            "application_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )


class RollbackEventTable(ShipyardBase):
    __tablename__ = "rollback_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    from_deployment_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("deployment_queue.id"))
    to_deployment_id: Mapped[int] = mapped_column(Integer, ForeignKey("deployment_queue.id"), nullable=False)
    rollback_deployment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("deployment_queue.id")
    )
    from_commit: Mapped[str | None] = mapped_column(Text)
    to_commit: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_reason: Mapped[str] = mapped_column(Text, default="manual", nullable=False)
    trigger_type: Mapped[str] = mapped_column(Text, default="manual", nullable=False)
    triggered_by: Mapped[str | None] = mapped_column(Text)
    triggered_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    metrics_snapshot: Mapped[dict | None] = mapped_column(JSON)


# ── Background job dead letters ─────────────────────────────────────────


class FailedJobTable(ShipyardBase):
    __tablename__ = "failed_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(Text, nullable=False)
    task_name: Mapped[str] = mapped_column(Text, nullable=False)
    queue: Mapped[str] = mapped_column(Text, default="default", nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    exception: Mapped[str] = mapped_column(Text, nullable=False)
    failed_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime.datetime | None] = mapped_column()
