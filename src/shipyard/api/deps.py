"""
FastAPI dependency injection: shared singletons and per-request factories.

Usage in routers::

    from shipyard.api.deps import OpContext

    @router.get("/deployments")
    def list_active(ctx: OpContext):
        ...

Process-wide services (engine, session factory, hooks, probes) are built
once by :func:`shipyard.api.app.create_app` and kept on ``app.state``;
the dependencies here only read them.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from shipyard.api.settings import ShipyardAPISettings
from shipyard.core.health import Probe
from shipyard.ops.context import OperationContext

INITIATOR_HEADER = "X-Shipyard-Initiator"


# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> ShipyardAPISettings:
    """Cached settings, loaded once per process."""
    return ShipyardAPISettings()


# ── Operation context (per-request) ──────────────────────────────────────


def get_operation_context(
    request: Request,
    settings: Annotated[ShipyardAPISettings, Depends(get_settings)],
) -> OperationContext:
    """Build an :class:`OperationContext` from the current request.

    The caller identity comes from the ``X-Shipyard-Initiator`` header set
    by the authenticating proxy in front of the API.
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return OperationContext(
        session_factory=request.app.state.session_factory,
        settings=settings,
        request_id=request_id,
        caller="api",
        initiator=request.headers.get(INITIATOR_HEADER),
        hooks=request.app.state.hooks,
    )


def get_health_checks(request: Request) -> Sequence[Probe]:
    return request.app.state.health_checks


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[ShipyardAPISettings, Depends(get_settings)]
OpContext = Annotated[OperationContext, Depends(get_operation_context)]
HealthChecks = Annotated[Sequence[Probe], Depends(get_health_checks)]
