"""Celery task definitions for the deployment queue.

Enqueueing a deployment sends ``shipyard.deployments.process`` for its
application (see :func:`shipyard.execution.hooks.dispatch_to_queue`).  A
Celery worker running that task drains the application's queue through
the same :class:`DeploymentScheduler` the polling worker uses, so the
ledger's atomic claim is the only coordination between them.

Setup::

    # Start a Celery worker:
    celery -A shipyard.execution.tasks worker --loglevel=info -Q deployments

Configuration::

    SHIPYARD_CELERY_BROKER_URL, SHIPYARD_CELERY_RESULT_BACKEND,
    SHIPYARD_DATABASE_URL and SHIPYARD_DEPLOYMENT_RUNNER.

Tasks are never retried automatically: a failed task lands in
``failed_jobs`` through the ``task_failure`` signal.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from celery import Celery
from celery.signals import task_failure
from sqlalchemy.orm import Session, sessionmaker

from shipyard.core.logging import bind_context, clear_context
from shipyard.core.orm import create_shipyard_engine, shipyard_session_factory
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.dlq import FailedJobStore
from shipyard.execution.executors.local import LocalExecutor
from shipyard.execution.hooks import default_hooks
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.scheduler import DeploymentScheduler

logger = logging.getLogger(__name__)

PROCESS_TASK = "shipyard.deployments.process"
DEPLOYMENTS_QUEUE = "deployments"

# --------------------------------------------------------------------------- #
# Celery app factory
# --------------------------------------------------------------------------- #


def create_celery_app(settings: ShipyardSettings | None = None) -> Celery:
    settings = settings or ShipyardSettings()
    celery_app = Celery(
        "shipyard",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    celery_app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_default_queue=DEPLOYMENTS_QUEUE,
        task_routes={PROCESS_TASK: {"queue": DEPLOYMENTS_QUEUE}},
    )
    return celery_app


app = create_celery_app()


# --------------------------------------------------------------------------- #
# Worker-process services
# --------------------------------------------------------------------------- #


@lru_cache(maxsize=1)
def _settings() -> ShipyardSettings:
    return ShipyardSettings()


@lru_cache(maxsize=1)
def _session_factory() -> sessionmaker[Session]:
    return shipyard_session_factory(create_shipyard_engine(_settings().database_url))


@lru_cache(maxsize=1)
def _scheduler() -> DeploymentScheduler:
    settings = _settings()
    inventory = Inventory(_session_factory())
    # Draining already picks up entries queued meanwhile; no re-dispatch from here.
    ledger = DeploymentLedger(_session_factory(), default_hooks(inventory))
    return DeploymentScheduler(
        ledger,
        LocalExecutor.from_settings(settings),
        inventory=inventory,
        settings=settings,
    )


# --------------------------------------------------------------------------- #
# Task definitions
# --------------------------------------------------------------------------- #


@app.task(name=PROCESS_TASK, bind=True, max_retries=0)
def process_application(self, application_id: str) -> dict[str, Any]:
    """Drain the deployment queue of one application."""
    worker_id = f"celery@{self.request.hostname}" if self.request.hostname else "celery"
    # Prefork children run many tasks; start each from a clean log context.
    clear_context()
    bind_context(task_id=self.request.id)
    logger.info("Celery processing application %s (task %s)", application_id, self.request.id)
    processed = _scheduler().drain(application_id, worker_id)
    return {
        "application_id": application_id,
        "processed": [{"deployment_uuid": e.deployment_token, "status": e.status.value} for e in processed],
    }


def dispatch_application(application_id: str) -> None:
    """Send scheduling work for *application_id* to the job queue."""
    process_application.apply_async(args=[application_id], queue=DEPLOYMENTS_QUEUE)
    logger.debug("Dispatched %s for application %s", PROCESS_TASK, application_id)


# --------------------------------------------------------------------------- #
# Failure capture
# --------------------------------------------------------------------------- #


def record_failed_task(
    store: FailedJobStore,
    *,
    task_name: str,
    task_id: str | None,
    args: Any,
    kwargs: Any,
    error: str,
    queue: str = DEPLOYMENTS_QUEUE,
) -> None:
    store.record(
        task_name,
        {"args": list(args or []), "kwargs": dict(kwargs or {})},
        error,
        job_id=task_id,
        queue=queue,
    )
    logger.error("Task %s (%s) failed permanently: %s", task_name, task_id, error.splitlines()[0] if error else "")


@task_failure.connect
def _on_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
    record_failed_task(
        FailedJobStore(_session_factory()),
        task_name=getattr(sender, "name", PROCESS_TASK),
        task_id=task_id,
        args=args,
        kwargs=kwargs,
        error=str(einfo) if einfo is not None else f"{type(exception).__name__}: {exception}",
    )
