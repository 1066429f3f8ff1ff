"""Executor adapters for the execution collaborator.

All executors implement :class:`DeploymentExecutor`:

- StubExecutor: scripted outcomes (testing, dry-run)
- LocalExecutor: ThreadPool-based runner (development, single host)

Example:
    >>> from shipyard.execution.executors import StubExecutor, DeploymentExecutor
    >>>
    >>> executor: DeploymentExecutor = StubExecutor()
    >>> future = executor.submit(request)
"""

from shipyard.execution.executors.local import LocalExecutor, Runner, load_runner
from shipyard.execution.executors.protocol import DeploymentExecutor, ExecutionOutcome, ExecutionRequest
from shipyard.execution.executors.stub import StubExecutor

__all__ = [
    "DeploymentExecutor",
    "ExecutionOutcome",
    "ExecutionRequest",
    "LocalExecutor",
    "Runner",
    "load_runner",
    "StubExecutor",
]
