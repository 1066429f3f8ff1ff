"""
Health router: ``GET /health`` and its versioned alias ``GET /v1/health``.

Both answer 200 whatever the dependency state; consumers read ``status``
in the body.  Neither requires credentials.
"""

from __future__ import annotations

from fastapi import APIRouter

from shipyard.api.deps import HealthChecks, OpContext
from shipyard.core.health import HealthReport
from shipyard.ops.health import get_health as _get_health

router = APIRouter()


@router.get("/health", response_model=HealthReport)
@router.get("/v1/health", response_model=HealthReport, include_in_schema=False)
async def get_health(ctx: OpContext, checks: HealthChecks) -> HealthReport:
    """Probe database, cache, realtime gateway and the failed-jobs backlog.

    Example:
        GET /health

        Response (200):
        {
            "status": "healthy",
            "checks": {
                "database": "ok",
                "redis": "ok",
                "soketi": "failing",
                "queue": {"status": "ok", "failed": 0}
            }
        }
    """
    result = await _get_health(ctx, checks)
    return result.data
