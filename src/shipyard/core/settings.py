"""Settings for every shipyard process.

``ShipyardBaseSettings`` carries the knobs every process shares (bind
address, log level).  ``ShipyardSettings`` adds the deployment-core
configuration: store and cache URLs, realtime-gateway endpoint, job-queue
broker, deadlines and the rollback target rule.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first use
    - **Environment-driven:** ``SHIPYARD_*`` env vars and ``.env`` files
    - **Sensible defaults:** Works out of the box against a local SQLite file

Examples:
    >>> from shipyard.core.settings import ShipyardSettings
    >>> settings = ShipyardSettings(database_url="sqlite:///:memory:")
    >>> settings.rollback_target_rule
    'skip_current_commit'
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShipyardBaseSettings(BaseSettings):
    """Common settings shared across all shipyard processes.

    Fields
    ──────
    host         : Bind address for the HTTP transport
    port         : Bind port for the HTTP transport
    debug        : Enable debug mode (verbose errors, console logs)
    log_level    : Structlog log level
    log_json     : Force JSON (True) or console (False) logs; None auto-detects
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPYARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Network ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = None


class ShipyardSettings(ShipyardBaseSettings):
    """Deployment-core configuration.

    Order of precedence (highest → lowest):
        1. Constructor keyword arguments
        2. Environment variables (``SHIPYARD_DATABASE_URL``, etc.)
        3. ``.env`` file
        4. Defaults below
    """

    # ── Persistent store ─────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///shipyard.db",
        description="SQLAlchemy connection URL for the deployment ledger",
    )

    # ── Cache / broker ───────────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", description="Cache store URL")
    celery_broker_url: str = Field(
        default="redis://localhost:6379/1",
        description="Broker for the durable job queue",
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2",
        description="Result backend for the durable job queue",
    )
    dispatch_on_enqueue: bool = Field(
        default=True,
        description="Send scheduling work to the job queue after each enqueue",
    )

    # ── Realtime gateway ─────────────────────────────────────────────────
    soketi_url: str = Field(default="http://localhost:6001", description="Realtime gateway base URL")
    soketi_ready_path: str = Field(default="/ready", description="Readiness endpoint path")

    # ── Health ───────────────────────────────────────────────────────────
    probe_timeout_s: float = Field(default=3.0, gt=0, description="Per-probe timeout")
    failed_jobs_warning_threshold: int = Field(
        default=100,
        ge=1,
        description="Failed-job count at which the queue probe reports 'warning'",
    )

    # ── Scheduling ───────────────────────────────────────────────────────
    deployment_timeout_s: float = Field(
        default=3600.0,
        gt=0,
        description="Deadline for one deployment unless the server overrides it",
    )
    cancel_grace_s: float = Field(
        default=30.0,
        ge=0,
        description="How long to wait for the collaborator to acknowledge an abort",
    )
    check_in_interval_s: float = Field(
        default=1.0,
        gt=0,
        description="How often an executing worker re-reads the entry for cancellation",
    )

    deployment_runner: str | None = Field(
        default=None,
        description="Import path (module:callable) of the runner that builds and starts containers",
    )

    # ── Rollback ─────────────────────────────────────────────────────────
    rollback_target_rule: Literal["skip_current_commit", "skip_latest_entry"] = Field(
        default="skip_current_commit",
        description="How the automatic rollback picks the entry it replaces",
    )
