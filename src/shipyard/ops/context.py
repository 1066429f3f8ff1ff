"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument.  The context carries the session factory, settings, caller
identity, dry-run flag and the post-write hooks, so nothing an operation
depends on is ambient state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from shipyard.core.settings import ShipyardSettings
from shipyard.execution.dlq import FailedJobStore
from shipyard.execution.hooks import DeploymentHooks
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.rollback import RollbackEngine


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        session_factory: ``sessionmaker`` bound to the ledger database.
        settings: Deployment-core settings.
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request: ``"api"``, ``"cli"``, ``"worker"`` or
            ``"sdk"``.
        initiator: Explicit caller identity, recorded on rollback events.
        dry_run: When ``True``, operations return a preview without side effects.
        hooks: Post-creation / post-transition hooks for ledger writes.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    session_factory: sessionmaker[Session]
    settings: ShipyardSettings = field(default_factory=ShipyardSettings)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    initiator: str | None = None
    dry_run: bool = False
    hooks: DeploymentHooks = field(default_factory=DeploymentHooks)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def engine(self) -> Engine:
        return self.session_factory.kw["bind"]

    def inventory(self) -> Inventory:
        return Inventory(self.session_factory)

    def ledger(self) -> DeploymentLedger:
        return DeploymentLedger(self.session_factory, self.hooks)

    def rollback_engine(self) -> RollbackEngine:
        return RollbackEngine(self.ledger(), self.inventory(), self.settings.rollback_target_rule)

    def failed_jobs(self) -> FailedJobStore:
        return FailedJobStore(self.session_factory)
