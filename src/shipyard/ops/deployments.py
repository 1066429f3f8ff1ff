"""
Deployment operations.

Trigger, inspect, list and cancel deployments.  These wrap the
:class:`~shipyard.execution.ledger.DeploymentLedger` with typed
request/response contracts; the transports (API, CLI) only translate
parameters and error codes.
"""

from __future__ import annotations

from shipyard.core.errors import InvalidTransitionError, ShipyardError
from shipyard.core.logging import get_logger
from shipyard.execution.models import DeploymentOptions, DeploymentQueueEntry, DeploymentStatus, ListFilters
from shipyard.ops.context import OperationContext
from shipyard.ops.requests import (
    AddDeploymentLogRequest,
    CancelDeploymentRequest,
    GetDeploymentRequest,
    ListActiveDeploymentsRequest,
    ListDeploymentsRequest,
    TriggerDeployRequest,
)
from shipyard.ops.responses import CancelResult, DeployAccepted, DeploymentView
from shipyard.ops.result import OperationResult, PagedResult, fail_from_error, start_timer

logger = get_logger(__name__)

MAX_TAKE = 100


def trigger_deploy(
    ctx: OperationContext,
    request: TriggerDeployRequest,
) -> OperationResult[DeployAccepted]:
    """Queue a deployment of one application."""
    timer = start_timer()

    if not request.application_id:
        return OperationResult.fail("VALIDATION_FAILED", "application_id is required", elapsed_ms=timer.elapsed_ms)
    if request.pull_request_id < 0:
        return OperationResult.fail(
            "VALIDATION_FAILED", "pull_request_id must be >= 0", elapsed_ms=timer.elapsed_ms
        )

    try:
        application, server, destination = ctx.inventory().resolve_target(request.application_id)
        if ctx.dry_run:
            return OperationResult.ok(
                DeployAccepted(
                    deployment_uuid="",
                    application_id=application.id,
                    status="dry_run",
                    message=f"Would deploy {request.commit} to {server.name}/{destination.name}.",
                    dry_run=True,
                ),
                elapsed_ms=timer.elapsed_ms,
            )

        entry = ctx.ledger().enqueue(
            application,
            server,
            destination,
            commit=request.commit,
            pull_request_id=request.pull_request_id,
            options=DeploymentOptions(force_rebuild=request.force_rebuild, is_webhook=request.is_webhook),
        )
        logger.info(
            "deployment_triggered",
            request_id=ctx.request_id,
            caller=ctx.caller,
            deployment_token=entry.deployment_token,
            application_id=entry.application_id,
        )
        return OperationResult.ok(
            DeployAccepted(
                deployment_uuid=entry.deployment_token,
                application_id=entry.application_id,
                status=entry.status.value,
                deployment_url=entry.deployment_url,
            ),
            elapsed_ms=timer.elapsed_ms,
        )
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to trigger deployment: {exc}", elapsed_ms=timer.elapsed_ms)


def get_deployment(
    ctx: OperationContext,
    request: GetDeploymentRequest,
) -> OperationResult[DeploymentView]:
    """Return one deployment by token."""
    timer = start_timer()

    if not request.deployment_uuid:
        return OperationResult.fail("VALIDATION_FAILED", "deployment_uuid is required", elapsed_ms=timer.elapsed_ms)

    try:
        entry = ctx.ledger().get(request.deployment_uuid)
        return OperationResult.ok(to_view(entry, include_logs=request.include_logs), elapsed_ms=timer.elapsed_ms)
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to get deployment: {exc}", elapsed_ms=timer.elapsed_ms)


def list_deployments(
    ctx: OperationContext,
    request: ListDeploymentsRequest,
) -> PagedResult[DeploymentView]:
    """List one application's deployments, newest first."""
    timer = start_timer()

    if request.skip < 0 or not 1 <= request.take <= MAX_TAKE:
        return PagedResult.fail(
            "VALIDATION_FAILED",
            f"skip must be >= 0 and take between 1 and {MAX_TAKE}",
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        statuses = frozenset({DeploymentStatus(request.status)}) if request.status else None
    except ValueError:
        return PagedResult.fail("VALIDATION_FAILED", f"Unknown status: {request.status}", elapsed_ms=timer.elapsed_ms)

    try:
        ctx.inventory().get_application(request.application_id)
        filters = ListFilters(
            statuses=statuses,
            include_pull_requests=request.include_pull_requests,
            skip=request.skip,
            take=request.take,
        )
        history = ctx.ledger().list_for_application(request.application_id, filters)
        items = [to_view(e) for e in history]
        return PagedResult.page(
            items,
            total=history.count(),
            skip=request.skip,
            take=request.take,
            elapsed_ms=timer.elapsed_ms,
        )
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return PagedResult.fail("INTERNAL", f"Failed to list deployments: {exc}", elapsed_ms=timer.elapsed_ms)


def list_active_deployments(
    ctx: OperationContext,
    request: ListActiveDeploymentsRequest,
) -> OperationResult[list[DeploymentView]]:
    """Queued and in-progress deployments, oldest first."""
    timer = start_timer()
    try:
        entries = ctx.ledger().list_active(request.application_id)
        return OperationResult.ok([to_view(e) for e in entries], elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to list active deployments: {exc}", elapsed_ms=timer.elapsed_ms
        )


def cancel_deployment(
    ctx: OperationContext,
    request: CancelDeploymentRequest,
) -> OperationResult[CancelResult]:
    """Cancel a queued deployment, or ask the worker to abort a running one."""
    timer = start_timer()

    if not request.deployment_uuid:
        return OperationResult.fail("VALIDATION_FAILED", "deployment_uuid is required", elapsed_ms=timer.elapsed_ms)

    try:
        ledger = ctx.ledger()
        if ctx.dry_run:
            entry = ledger.get(request.deployment_uuid)
            if entry.is_terminal:
                return OperationResult.fail(
                    "NOT_CANCELLABLE", "Deployment cannot be cancelled", elapsed_ms=timer.elapsed_ms
                )
            return OperationResult.ok(
                CancelResult(entry.deployment_token, entry.status.value), elapsed_ms=timer.elapsed_ms
            )

        entry = ledger.request_cancel(request.deployment_uuid)
        logger.info(
            "deployment_cancel_requested",
            request_id=ctx.request_id,
            caller=ctx.caller,
            deployment_token=entry.deployment_token,
            status=entry.status.value,
        )
        return OperationResult.ok(CancelResult(entry.deployment_token, entry.status.value), elapsed_ms=timer.elapsed_ms)
    except InvalidTransitionError as exc:
        return fail_from_error(
            exc,
            code="NOT_CANCELLABLE",
            message="Deployment cannot be cancelled",
            elapsed_ms=timer.elapsed_ms,
        )
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to cancel deployment: {exc}", elapsed_ms=timer.elapsed_ms)


def add_deployment_log(
    ctx: OperationContext,
    request: AddDeploymentLogRequest,
) -> OperationResult[dict]:
    """Append one line to a deployment's log."""
    timer = start_timer()

    if request.type not in ("stdout", "stderr"):
        return OperationResult.fail(
            "VALIDATION_FAILED", "type must be 'stdout' or 'stderr'", elapsed_ms=timer.elapsed_ms
        )

    try:
        line = ctx.ledger().add_log_entry(
            request.deployment_uuid, request.output, type=request.type, hidden=request.hidden
        )
        return OperationResult.ok(line, elapsed_ms=timer.elapsed_ms)
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to add log entry: {exc}", elapsed_ms=timer.elapsed_ms)


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def to_view(entry: DeploymentQueueEntry, *, include_logs: bool = False) -> DeploymentView:
    return DeploymentView(
        id=entry.id,
        deployment_uuid=entry.deployment_token,
        application_id=entry.application_id,
        application_name=entry.application_name,
        server_id=entry.server_id,
        server_name=entry.server_name,
        destination_id=entry.destination_id,
        commit=entry.commit,
        pull_request_id=entry.pull_request_id,
        deployment_url=entry.deployment_url,
        status=entry.status.value,
        force_rebuild=entry.force_rebuild,
        is_webhook=entry.is_webhook,
        rollback=entry.rollback,
        failure_reason=entry.failure_reason,
        cancel_requested=entry.cancel_requested,
        worker_id=entry.worker_id,
        created_at=entry.created_at,
        started_at=entry.started_at,
        finished_at=entry.finished_at,
        logs=[line for line in entry.logs if not line.get("hidden")] if include_logs else [],
    )
