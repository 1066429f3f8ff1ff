"""
Applications router: per-application deployment history and rollbacks.

Endpoints:
    GET    /applications/{id}/deployments              Paged history, newest first
    POST   /applications/{id}/rollback                 Roll back (automatic target)
    POST   /applications/{id}/rollback/{uuid}          Roll back to one deployment
    GET    /applications/{id}/rollback-events          Rollback audit trail
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request

from shipyard.api.deps import OpContext
from shipyard.api.schemas.common import PagedResponse, PageMeta, SuccessResponse
from shipyard.api.schemas.domains import DeploymentSchema, RollbackAcceptedSchema, RollbackEventSchema
from shipyard.api.utils import _dc, _handle_error
from shipyard.ops.deployments import MAX_TAKE
from shipyard.ops.deployments import list_deployments as _list
from shipyard.ops.requests import (
    ListDeploymentsRequest,
    ListRollbackEventsRequest,
    RollbackRequest,
    RollbackToRequest,
)
from shipyard.ops.rollbacks import list_rollback_events as _list_events
from shipyard.ops.rollbacks import rollback_application as _rollback
from shipyard.ops.rollbacks import rollback_to_deployment as _rollback_to

router = APIRouter(prefix="/applications")


@router.get("/{application_id}/deployments", response_model=PagedResponse[DeploymentSchema])
def list_deployments(
    ctx: OpContext,
    request: Request,
    application_id: str = Path(..., description="Application id"),
    skip: int = Query(0, ge=0, description="Entries to skip"),
    take: int = Query(20, ge=1, le=MAX_TAKE, description="Page size"),
    status: str | None = Query(None, description="Only entries with this status"),
    include_pull_requests: bool = Query(False, description="Include pull-request previews"),
):
    """Deployment history of one application, newest first.

    Example:
        GET /api/v1/applications/app-1/deployments?skip=0&take=10
    """
    result = _list(
        ctx,
        ListDeploymentsRequest(
            application_id=application_id,
            skip=skip,
            take=take,
            include_pull_requests=include_pull_requests,
            status=status,
        ),
    )
    if not result.success:
        return _handle_error(result, str(request.url))
    return PagedResponse(
        data=[DeploymentSchema(**_dc(v)) for v in result.data or []],
        page=PageMeta(total=result.total, skip=result.skip, take=result.take, has_more=result.has_more),
        elapsed_ms=result.elapsed_ms,
    )


@router.post(
    "/{application_id}/rollback",
    response_model=SuccessResponse[RollbackAcceptedSchema],
    status_code=202,
)
def rollback(
    ctx: OpContext,
    request: Request,
    application_id: str = Path(..., description="Application id"),
):
    """Queue a rollback to the previous successful deployment.

    Raises:
        400 NO_ROLLBACK_TARGET: no earlier successful deployment exists.
        404 NOT_FOUND: unknown application.
    """
    result = _rollback(ctx, RollbackRequest(application_id=application_id))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _accepted(result)


@router.post(
    "/{application_id}/rollback/{deployment_uuid}",
    response_model=SuccessResponse[RollbackAcceptedSchema],
    status_code=202,
)
def rollback_to(
    ctx: OpContext,
    request: Request,
    application_id: str = Path(..., description="Application id"),
    deployment_uuid: str = Path(..., description="Token of the deployment to restore"),
):
    """Queue a rollback to one explicitly chosen deployment.

    Raises:
        400 ROLLBACK_TARGET_INVALID: the chosen deployment did not finish.
        404 NOT_FOUND: unknown application or deployment.
    """
    result = _rollback_to(ctx, RollbackToRequest(application_id=application_id, deployment_uuid=deployment_uuid))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _accepted(result)


@router.get("/{application_id}/rollback-events", response_model=SuccessResponse[list[RollbackEventSchema]])
def list_rollback_events(
    ctx: OpContext,
    request: Request,
    application_id: str = Path(..., description="Application id"),
):
    """Rollback audit events, newest first, with their derived outcome."""
    result = _list_events(ctx, ListRollbackEventsRequest(application_id=application_id))
    if not result.success:
        return _handle_error(result, str(request.url))
    return SuccessResponse(
        data=[RollbackEventSchema(**_dc(e)) for e in result.data or []],
        elapsed_ms=result.elapsed_ms,
    )


def _accepted(result) -> SuccessResponse[RollbackAcceptedSchema]:
    data = _dc(result.data)
    message = data.pop("message")
    return SuccessResponse(data=RollbackAcceptedSchema(**data), message=message, elapsed_ms=result.elapsed_ms)
