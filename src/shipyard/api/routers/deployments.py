"""
Deployments router: trigger, inspect and cancel deployments.

Endpoints:
    POST   /deploy                          Queue a deployment
    GET    /deployments                     Queued and in-progress deployments
    GET    /deployments/{uuid}              One deployment, with its log
    POST   /deployments/{uuid}/cancel       Cancel a deployment
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request
from pydantic import BaseModel, Field

from shipyard.api.deps import OpContext
from shipyard.api.schemas.common import SuccessResponse
from shipyard.api.schemas.domains import CancelResultSchema, DeployAcceptedSchema, DeploymentSchema
from shipyard.api.utils import _dc, _handle_error
from shipyard.ops.deployments import cancel_deployment as _cancel
from shipyard.ops.deployments import get_deployment as _get
from shipyard.ops.deployments import list_active_deployments as _list_active
from shipyard.ops.deployments import trigger_deploy as _trigger
from shipyard.ops.requests import (
    CancelDeploymentRequest,
    GetDeploymentRequest,
    ListActiveDeploymentsRequest,
    TriggerDeployRequest,
)

router = APIRouter()


class DeployBody(BaseModel):
    """Request body for queueing a deployment.

    Example:
        {"application_id": "app-1", "commit": "abc123def456", "force": true}
    """

    application_id: str = Field(min_length=1, description="Application to deploy")
    commit: str = Field(default="HEAD", min_length=1, description="Commit to deploy; HEAD is the branch tip")
    pull_request_id: int = Field(default=0, ge=0, description="0 for a regular deployment")
    force: bool = Field(default=False, description="Rebuild without cache")


@router.post("/deploy", response_model=SuccessResponse[DeployAcceptedSchema], status_code=202)
def deploy(ctx: OpContext, body: DeployBody, request: Request):
    """Queue a deployment and return its token.

    Raises:
        400 VALIDATION_FAILED: no destination resolvable for the application.
        404 NOT_FOUND: unknown application.
    """
    result = _trigger(
        ctx,
        TriggerDeployRequest(
            application_id=body.application_id,
            commit=body.commit,
            pull_request_id=body.pull_request_id,
            force_rebuild=body.force,
        ),
    )
    if not result.success:
        return _handle_error(result, str(request.url))
    data = _dc(result.data)
    message = data.pop("message")
    return SuccessResponse(
        data=DeployAcceptedSchema(**data),
        message=message,
        elapsed_ms=result.elapsed_ms,
        warnings=result.warnings,
    )


@router.get("/deployments", response_model=SuccessResponse[list[DeploymentSchema]])
def list_active(
    ctx: OpContext,
    application_id: str | None = Query(None, description="Only this application's deployments"),
):
    """Queued and in-progress deployments, oldest first."""
    result = _list_active(ctx, ListActiveDeploymentsRequest(application_id=application_id))
    if not result.success:
        return _handle_error(result)
    return SuccessResponse(
        data=[DeploymentSchema(**_dc(v)) for v in result.data or []],
        elapsed_ms=result.elapsed_ms,
    )


@router.get("/deployments/{deployment_uuid}", response_model=SuccessResponse[DeploymentSchema])
def get_deployment(
    ctx: OpContext,
    request: Request,
    deployment_uuid: str = Path(..., description="Deployment token"),
):
    """One deployment with its visible log lines.

    Raises:
        404 NOT_FOUND: ``Deployment not found.``
    """
    result = _get(ctx, GetDeploymentRequest(deployment_uuid=deployment_uuid))
    if not result.success:
        return _handle_error(result, str(request.url))
    return SuccessResponse(data=DeploymentSchema(**_dc(result.data)), elapsed_ms=result.elapsed_ms)


@router.post("/deployments/{deployment_uuid}/cancel", response_model=SuccessResponse[CancelResultSchema])
def cancel_deployment(
    ctx: OpContext,
    request: Request,
    deployment_uuid: str = Path(..., description="Deployment token"),
):
    """Cancel a queued deployment, or ask the worker to abort a running one.

    Raises:
        400 NOT_CANCELLABLE: the deployment already reached a terminal status.
        404 NOT_FOUND: unknown token.
    """
    result = _cancel(ctx, CancelDeploymentRequest(deployment_uuid=deployment_uuid))
    if not result.success:
        return _handle_error(result, str(request.url))
    data = _dc(result.data)
    message = data.pop("message")
    return SuccessResponse(
        data=CancelResultSchema(**data),
        message=message,
        elapsed_ms=result.elapsed_ms,
    )
