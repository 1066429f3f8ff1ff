"""
Shipyard - deployment queue and lifecycle core for a self-hosted PaaS.

Subpackages:
- shipyard.core: settings, logging, errors, ORM, health aggregation
- shipyard.execution: ledger, scheduler, executors, rollback, worker
- shipyard.ops: transport-agnostic operations
- shipyard.api / shipyard.cli: HTTP and terminal transports
"""

__version__ = "0.1.0"
