"""Explicit post-creation and post-transition hooks.

Side effects of ledger writes (dispatching scheduling work, recording the
last successful deployment on the application) are plain callables held
by a :class:`DeploymentHooks` instance and invoked by the owning service
after its transaction has committed.  Tests pass an empty
``DeploymentHooks()`` to run without side effects.

A hook that raises is logged and skipped; the committed write stands.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shipyard.core.logging import get_logger
from shipyard.execution.models import DeploymentQueueEntry, DeploymentStatus

if TYPE_CHECKING:
    from shipyard.execution.inventory import Inventory

logger = get_logger(__name__)

CreatedHook = Callable[[DeploymentQueueEntry], Any]
TransitionHook = Callable[[DeploymentQueueEntry, DeploymentStatus], Any]


@dataclass
class DeploymentHooks:
    """Composable hook lists.

    Attributes:
        on_created: Called with the new entry after ``enqueue`` commits.
        on_transition: Called with ``(entry, previous_status)`` after a
            status change commits.
    """

    on_created: list[CreatedHook] = field(default_factory=list)
    on_transition: list[TransitionHook] = field(default_factory=list)

    def created(self, entry: DeploymentQueueEntry) -> None:
        for hook in self.on_created:
            try:
                hook(entry)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "hook_failed",
                    hook=getattr(hook, "__name__", repr(hook)),
                    deployment_token=entry.deployment_token,
                    error=str(exc),
                )

    def transitioned(self, entry: DeploymentQueueEntry, previous: DeploymentStatus) -> None:
        for hook in self.on_transition:
            try:
                hook(entry, previous)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "hook_failed",
                    hook=getattr(hook, "__name__", repr(hook)),
                    deployment_token=entry.deployment_token,
                    error=str(exc),
                )


def dispatch_to_queue(send: Callable[[str], Any]) -> CreatedHook:
    """Build a hook that hands scheduling work for the entry's application to *send*.

    *send* is normally :func:`shipyard.execution.tasks.dispatch_application`.
    """

    def _dispatch(entry: DeploymentQueueEntry) -> None:
        send(entry.application_id)

    _dispatch.__name__ = "dispatch_to_queue"
    return _dispatch


def record_last_successful(inventory: Inventory) -> TransitionHook:
    """Build a hook that stamps finished deployments on their application."""

    def _record(entry: DeploymentQueueEntry, previous: DeploymentStatus) -> None:
        if entry.status == DeploymentStatus.FINISHED:
            inventory.set_last_successful_deployment(entry.application_id, entry.deployment_token)

    _record.__name__ = "record_last_successful"
    return _record


def default_hooks(inventory: Inventory, *, send: Callable[[str], Any] | None = None) -> DeploymentHooks:
    """Hooks every long-running process installs.

    *send* is given when new entries should be dispatched to the job queue.
    """
    hooks = DeploymentHooks(on_transition=[record_last_successful(inventory)])
    if send is not None:
        hooks.on_created.append(dispatch_to_queue(send))
    return hooks
