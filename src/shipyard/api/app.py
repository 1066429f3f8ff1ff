"""
FastAPI application factory.

``create_app()`` wires settings, the ledger database, hooks, health probes,
middleware, routers and error handlers into a single ``FastAPI`` instance.

Two ways to run deployments behind the API:

- **Job queue** (default): new entries are dispatched to Celery by the
  ``dispatch_to_queue`` hook and processed by ``shipyard.execution.tasks``.
- **In-process**: pass an *executor* and the lifespan runs a background
  :class:`~shipyard.execution.worker.WorkerLoop` instead.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from shipyard.api.deps import get_settings
from shipyard.api.middleware.errors import unhandled_exception_handler, validation_exception_handler
from shipyard.api.middleware.request_id import RequestIDMiddleware
from shipyard.api.middleware.timing import TimingMiddleware
from shipyard.api.settings import ShipyardAPISettings
from shipyard.core.health import Probe
from shipyard.core.health_checks import default_health_checks
from shipyard.core.logging import get_logger
from shipyard.core.orm import create_schema, create_shipyard_engine, shipyard_session_factory
from shipyard.execution.dlq import FailedJobStore
from shipyard.execution.executors.protocol import DeploymentExecutor
from shipyard.execution.hooks import default_hooks
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.scheduler import DeploymentScheduler
from shipyard.execution.worker import WorkerLoop

log = get_logger("shipyard.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: create the schema, start the in-process worker."""
    log.info("api_starting", version=app.version)
    create_schema(app.state.engine)

    worker: WorkerLoop | None = None
    if app.state.executor is not None:
        inventory = Inventory(app.state.session_factory)
        scheduler = DeploymentScheduler(
            DeploymentLedger(app.state.session_factory, app.state.hooks),
            app.state.executor,
            inventory=inventory,
            settings=app.state.settings,
        )
        worker = WorkerLoop(scheduler, failed_jobs=FailedJobStore(app.state.session_factory))
        worker.start_background()
        log.info("in_process_worker_started", worker_id=worker.worker_id)

    yield

    if worker is not None:
        worker.stop()
    app.state.engine.dispose()
    log.info("api_stopped")


def create_app(
    settings: ShipyardAPISettings | None = None,
    health_checks: Sequence[Probe] | None = None,
    executor: DeploymentExecutor | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : ShipyardAPISettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    health_checks : Sequence[Probe] | None
        Probes behind ``/health``.  Defaults to database, redis, soketi
        and the failed-jobs backlog.
    executor : DeploymentExecutor | None
        When given, deployments run in this process instead of on Celery.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    # ── Process-wide services ─────────────────────────────────────────
    engine = create_shipyard_engine(settings.database_url)
    session_factory = shipyard_session_factory(engine)
    send = None
    if executor is None and settings.dispatch_on_enqueue:
        from shipyard.execution.tasks import dispatch_application

        send = dispatch_application

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.executor = executor
    app.state.hooks = default_hooks(Inventory(session_factory), send=send)
    app.state.health_checks = (
        list(health_checks)
        if health_checks is not None
        else default_health_checks(settings, engine, FailedJobStore(session_factory).count_unresolved)
    )

    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (outermost → innermost) ────────────────────────────
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from shipyard.api.routers import applications, deployments, health

    prefix = settings.api_prefix

    # Health endpoints at root level (no prefix) for container healthchecks
    app.include_router(health.router, tags=["health"])
    app.include_router(deployments.router, prefix=prefix, tags=["deployments"])
    app.include_router(applications.router, prefix=prefix, tags=["applications"])

    return app
