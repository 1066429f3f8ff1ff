"""Shipyard Execution -- the deployment queue and its lifecycle.

ARCHITECTURE
────────────
::

    Inventory (servers, destinations, applications)
      │
      ▼
    DeploymentLedger (enqueue / claim / transition / history)
      │  └── DeploymentHooks ─ created / transitioned callbacks
      ▼
    DeploymentScheduler (one in-progress entry per application)
      ├── DeploymentExecutor ─ builds and starts containers
      │     ├─ LocalExecutor  (ThreadPool + runner callable)
      │     └─ StubExecutor   (in-memory, testing)
      └── Deadline           ─ timeout and cancellation grace
      │
      ▼
    WorkerLoop / Celery task (drives the scheduler)

    RollbackEngine picks a previous finished entry and re-queues it.

The Celery wiring lives in ``shipyard.execution.tasks`` and is imported
only by worker processes.
"""

from shipyard.execution.hooks import DeploymentHooks
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import (
    Application,
    DeploymentOptions,
    DeploymentQueueEntry,
    DeploymentStatus,
    Destination,
    ListFilters,
    RollbackEvent,
    Server,
)
from shipyard.execution.rollback import RollbackEngine
from shipyard.execution.scheduler import DeploymentScheduler

__all__ = [
    "Application",
    "DeploymentHooks",
    "DeploymentLedger",
    "DeploymentOptions",
    "DeploymentQueueEntry",
    "DeploymentScheduler",
    "DeploymentStatus",
    "Destination",
    "Inventory",
    "ListFilters",
    "RollbackEngine",
    "RollbackEvent",
    "Server",
]
