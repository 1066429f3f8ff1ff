"""Rollback engine: replay a prior known-good deployment.

A rollback is not a separate execution path.  It picks a target
``finished`` entry, queues a new entry that copies the target's commit,
server, destination and application snapshot (``rollback=True``), and
records an immutable :class:`RollbackEvent` linking the two.  The new
entry then travels through the normal scheduler.

Target rules (``ShipyardSettings.rollback_target_rule``):

``skip_current_commit`` (default)
    The current deployment is the newest ``finished`` entry.  The target is
    the newest ``finished`` entry whose commit differs from it.

``skip_latest_entry``
    The target is simply the second-newest ``finished`` entry, whatever
    its commit.

Both rules never select the current entry itself, so an application with
exactly one finished deployment has nothing to roll back to.  Pull-request
builds are never candidates.
"""

from __future__ import annotations

from typing import Any, Literal

from shipyard.core.errors import NoRollbackTargetError, NotFoundError, ValidationError
from shipyard.core.logging import get_logger
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import (
    DeploymentQueueEntry,
    DeploymentStatus,
    ListFilters,
    RollbackEvent,
    TriggerReason,
    TriggerType,
)

logger = get_logger(__name__)

TargetRule = Literal["skip_current_commit", "skip_latest_entry"]

_FINISHED = ListFilters(
    statuses=frozenset({DeploymentStatus.FINISHED}),
    include_pull_requests=False,
)


class RollbackEngine:
    """Selects rollback targets and queues rollback deployments."""

    def __init__(
        self,
        ledger: DeploymentLedger,
        inventory: Inventory,
        rule: TargetRule = "skip_current_commit",
    ):
        if rule not in ("skip_current_commit", "skip_latest_entry"):
            raise ValueError(f"Unknown rollback target rule: {rule}")
        self._ledger = ledger
        self._inventory = inventory
        self._rule = rule

    @property
    def rule(self) -> TargetRule:
        return self._rule

    def select_target(self, application_id: str) -> tuple[DeploymentQueueEntry, DeploymentQueueEntry]:
        """Return ``(current, target)`` for *application_id*.

        Raises:
            NoRollbackTargetError: fewer than two finished deployments, or
                none with a different commit under ``skip_current_commit``.
        """
        current: DeploymentQueueEntry | None = None
        for entry in self._ledger.list_for_application(application_id, _FINISHED):
            if current is None:
                current = entry
                continue
            if self._rule == "skip_latest_entry" or entry.commit != current.commit:
                return current, entry

        if current is None:
            raise NoRollbackTargetError(application_id, "No successful deployment to roll back from")
        raise NoRollbackTargetError(application_id)

    def rollback(
        self,
        application_id: str,
        initiator: str | None,
        *,
        trigger_reason: TriggerReason = TriggerReason.MANUAL,
        trigger_type: TriggerType = TriggerType.MANUAL,
        metrics_snapshot: dict[str, Any] | None = None,
    ) -> tuple[DeploymentQueueEntry, RollbackEvent]:
        """Roll *application_id* back to the target picked by the configured rule.

        Raises:
            NotFoundError: unknown application.
            NoRollbackTargetError: no eligible target.
        """
        self._inventory.get_application(application_id)
        current, target = self.select_target(application_id)
        logger.info(
            "rollback_target_selected",
            application_id=application_id,
            rule=self._rule,
            from_commit=current.commit,
            to_commit=target.commit,
            target_token=target.deployment_token,
        )
        return self._ledger.enqueue_rollback(
            target,
            current,
            initiator=initiator,
            trigger_reason=trigger_reason,
            trigger_type=trigger_type,
            metrics_snapshot=metrics_snapshot,
        )

    def resolve_explicit_target(
        self,
        application_id: str,
        deployment_token: str,
    ) -> tuple[DeploymentQueueEntry | None, DeploymentQueueEntry]:
        """Return ``(current, target)`` for a rollback to *deployment_token*.

        ``current`` is the newest finished entry, or ``None`` if there is none.

        Raises:
            NotFoundError: unknown application, or the token is unknown or
                belongs to another application.
            ValidationError: the target is not ``finished``.
        """
        self._inventory.get_application(application_id)
        try:
            target = self._ledger.get(deployment_token)
        except NotFoundError as exc:
            raise NotFoundError("deployment", deployment_token, "Deployment not found", cause=exc) from exc
        if target.application_id != application_id:
            raise NotFoundError("deployment", deployment_token, "Deployment not found").with_context(
                application_id=application_id
            )

        if target.status != DeploymentStatus.FINISHED:
            raise ValidationError(
                "Can only rollback to successful deployments",
                field="deployment_token",
                value=deployment_token,
            )

        current = next(iter(self._ledger.list_for_application(application_id, _FINISHED)), None)
        return current, target

    def rollback_to(
        self,
        application_id: str,
        deployment_token: str,
        initiator: str | None,
    ) -> tuple[DeploymentQueueEntry, RollbackEvent]:
        """Roll back to an explicitly chosen entry.

        Raises the same errors as :meth:`resolve_explicit_target`.
        """
        current, target = self.resolve_explicit_target(application_id, deployment_token)
        return self._ledger.enqueue_rollback(target, current, initiator=initiator)
