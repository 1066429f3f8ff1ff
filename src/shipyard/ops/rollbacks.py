"""
Rollback operations.

Queue a rollback deployment (automatic target or an explicit one) and list
an application's rollback audit events.
"""

from __future__ import annotations

from shipyard.core.errors import NotFoundError, ShipyardError, ValidationError
from shipyard.core.logging import get_logger
from shipyard.execution.models import DeploymentQueueEntry, RollbackEvent, TriggerReason, TriggerType
from shipyard.ops.context import OperationContext
from shipyard.ops.requests import ListRollbackEventsRequest, RollbackRequest, RollbackToRequest
from shipyard.ops.responses import RollbackAccepted, RollbackEventView
from shipyard.ops.result import OperationResult, fail_from_error, start_timer

logger = get_logger(__name__)


def rollback_application(
    ctx: OperationContext,
    request: RollbackRequest,
) -> OperationResult[RollbackAccepted]:
    """Roll an application back to the target chosen by the configured rule."""
    timer = start_timer()

    try:
        trigger_reason = TriggerReason(request.trigger_reason)
        trigger_type = TriggerType(request.trigger_type)
    except ValueError as exc:
        return OperationResult.fail("VALIDATION_FAILED", str(exc), elapsed_ms=timer.elapsed_ms)

    try:
        engine = ctx.rollback_engine()
        if ctx.dry_run:
            ctx.inventory().get_application(request.application_id)
            current, target = engine.select_target(request.application_id)
            return OperationResult.ok(
                RollbackAccepted(
                    deployment_uuid="",
                    rollback_event_id=0,
                    from_commit=current.commit,
                    to_commit=target.commit,
                    message=f"Would roll back to {target.deployment_token}",
                ),
                elapsed_ms=timer.elapsed_ms,
            )

        entry, event = engine.rollback(
            request.application_id,
            ctx.initiator,
            trigger_reason=trigger_reason,
            trigger_type=trigger_type,
        )
        _log_rollback(ctx, entry, event)
        return OperationResult.ok(_accepted(entry, event), elapsed_ms=timer.elapsed_ms)
    except NotFoundError as exc:
        return fail_from_error(exc, message="Application not found", elapsed_ms=timer.elapsed_ms)
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to roll back: {exc}", elapsed_ms=timer.elapsed_ms)


def rollback_to_deployment(
    ctx: OperationContext,
    request: RollbackToRequest,
) -> OperationResult[RollbackAccepted]:
    """Roll an application back to one explicitly chosen deployment."""
    timer = start_timer()

    if not request.deployment_uuid:
        return OperationResult.fail("VALIDATION_FAILED", "deployment_uuid is required", elapsed_ms=timer.elapsed_ms)

    try:
        engine = ctx.rollback_engine()
        if ctx.dry_run:
            current, target = engine.resolve_explicit_target(request.application_id, request.deployment_uuid)
            return OperationResult.ok(
                RollbackAccepted(
                    deployment_uuid="",
                    rollback_event_id=0,
                    from_commit=current.commit if current else None,
                    to_commit=target.commit,
                    message=f"Would roll back to {target.deployment_token}",
                ),
                elapsed_ms=timer.elapsed_ms,
            )

        entry, event = engine.rollback_to(request.application_id, request.deployment_uuid, ctx.initiator)
        _log_rollback(ctx, entry, event)
        return OperationResult.ok(_accepted(entry, event), elapsed_ms=timer.elapsed_ms)
    except ValidationError as exc:
        return fail_from_error(
            exc,
            code="ROLLBACK_TARGET_INVALID",
            message="Can only rollback to successful deployments",
            elapsed_ms=timer.elapsed_ms,
        )
    except ShipyardError as exc:
        return fail_from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to roll back: {exc}", elapsed_ms=timer.elapsed_ms)


def list_rollback_events(
    ctx: OperationContext,
    request: ListRollbackEventsRequest,
) -> OperationResult[list[RollbackEventView]]:
    """Rollback events of one application, newest first."""
    timer = start_timer()
    try:
        ctx.inventory().get_application(request.application_id)
        events = ctx.ledger().list_rollback_events(request.application_id)
        return OperationResult.ok([to_event_view(e) for e in events], elapsed_ms=timer.elapsed_ms)
    except NotFoundError as exc:
        return fail_from_error(exc, message="Application not found", elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail("INTERNAL", f"Failed to list rollback events: {exc}", elapsed_ms=timer.elapsed_ms)


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _accepted(entry: DeploymentQueueEntry, event: RollbackEvent) -> RollbackAccepted:
    return RollbackAccepted(
        deployment_uuid=entry.deployment_token,
        rollback_event_id=event.id,
        from_commit=event.from_commit,
        to_commit=event.to_commit,
    )


def _log_rollback(ctx: OperationContext, entry: DeploymentQueueEntry, event: RollbackEvent) -> None:
    logger.info(
        "rollback_queued",
        request_id=ctx.request_id,
        caller=ctx.caller,
        application_id=entry.application_id,
        deployment_token=entry.deployment_token,
        rollback_event_id=event.id,
        to_commit=event.to_commit,
    )


def to_event_view(event: RollbackEvent) -> RollbackEventView:
    return RollbackEventView(
        id=event.id,
        application_id=event.application_id,
        from_deployment_id=event.from_deployment_id,
        to_deployment_id=event.to_deployment_id,
        rollback_deployment_id=event.rollback_deployment_id,
        from_commit=event.from_commit,
        to_commit=event.to_commit,
        trigger_reason=event.trigger_reason.value,
        trigger_type=event.trigger_type.value,
        status=event.outcome.value,
        error_message=event.error_message,
        triggered_by=event.triggered_by,
        triggered_at=event.triggered_at,
        completed_at=event.completed_at,
    )
