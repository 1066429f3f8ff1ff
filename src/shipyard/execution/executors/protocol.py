"""Executor Protocol: the execution collaborator interface.

The scheduler never builds or starts containers itself.  It hands an
:class:`ExecutionRequest` to a ``DeploymentExecutor`` and waits on the
returned future in check-in slices, so cancellation and deadlines are
observed without the executor's cooperation.

ARCHITECTURE
────────────
::

    DeploymentExecutor (Protocol)
      ├── .submit(request) ─ start work, return Future[ExecutionOutcome]
      └── .abort(token)    ─ ask running work to stop

    Implementations:
      StubExecutor   ─ scripted outcomes   (tests / dry-run)
      LocalExecutor  ─ ThreadPool + runner (dev / single host)
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from shipyard.execution.models import DeploymentQueueEntry, Server


@dataclass(frozen=True)
class ExecutionRequest:
    """Everything the collaborator needs to build/start one deployment."""

    deployment_token: str
    application_id: str
    application_name: str
    server_id: str
    server_name: str
    destination_id: str
    commit: str
    pull_request_id: int = 0
    force_rebuild: bool = False
    rollback: bool = False
    server: Server | None = None

    @classmethod
    def from_entry(cls, entry: DeploymentQueueEntry, server: Server | None = None) -> ExecutionRequest:
        return cls(
            deployment_token=entry.deployment_token,
            application_id=entry.application_id,
            application_name=entry.application_name,
            server_id=entry.server_id,
            server_name=entry.server_name,
            destination_id=entry.destination_id,
            commit=entry.commit,
            pull_request_id=entry.pull_request_id,
            force_rebuild=entry.force_rebuild,
            rollback=entry.rollback,
            server=server,
        )


@dataclass(frozen=True)
class ExecutionOutcome:
    """What the collaborator reported.

    Attributes:
        success: The container was built and started.
        message: Failure reason (or a short success note).
        aborted: The work stopped because ``abort`` was called.
    """

    success: bool
    message: str | None = None
    aborted: bool = False

    @classmethod
    def ok(cls, message: str | None = None) -> ExecutionOutcome:
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, message: str) -> ExecutionOutcome:
        return cls(success=False, message=message)

    @classmethod
    def abort_acknowledged(cls) -> ExecutionOutcome:
        return cls(success=False, message="Aborted", aborted=True)


@runtime_checkable
class DeploymentExecutor(Protocol):
    """Execution collaborator - how a deployment actually runs.

    Example implementation:
        >>> class MyExecutor:
        ...     def submit(self, request: ExecutionRequest) -> Future[ExecutionOutcome]:
        ...         return my_pool.submit(build_and_start, request)
        ...
        ...     def abort(self, deployment_token: str) -> bool:
        ...         return False  # Not supported
    """

    def submit(self, request: ExecutionRequest) -> Future[ExecutionOutcome]:
        """Start the deployment.

        Raises:
            RuntimeError: If submission fails
        """
        ...

    def abort(self, deployment_token: str) -> bool:
        """Ask running work to stop.

        Returns:
            True if the token was known and signalled, False otherwise
        """
        ...
