"""
Operations layer: transport-agnostic business logic for shipyard-core.

- All functions accept ``OperationContext`` as first argument
- All functions return ``OperationResult[T]`` (never raise)
- All functions support ``dry_run`` mode where a write is involved

Usage::

    from shipyard.ops import OperationContext
    from shipyard.ops.deployments import trigger_deploy
    from shipyard.ops.requests import TriggerDeployRequest

    ctx = OperationContext(session_factory=factory, caller="sdk")
    result = trigger_deploy(ctx, TriggerDeployRequest(application_id="app-1"))
    assert result.success
"""

from shipyard.ops.context import OperationContext
from shipyard.ops.result import OperationError, OperationResult, PagedResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
]
