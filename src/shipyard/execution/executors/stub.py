"""Stub Executor: scripted executor for testing and dry-run.

``StubExecutor`` completes every submission immediately with a fixed
outcome, or (``hang=True``) leaves it pending until :meth:`complete` or
:meth:`abort` is called, which is how tests drive timeouts and
cooperative cancellation.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future

from shipyard.execution.executors.protocol import ExecutionOutcome, ExecutionRequest


class StubExecutor:
    """No-op executor for testing.

    Example:
        >>> executor = StubExecutor()
        >>> future = executor.submit(request)
        >>> future.result().success
        True
    """

    def __init__(
        self,
        outcome: ExecutionOutcome | None = None,
        *,
        error: Exception | None = None,
        hang: bool = False,
        acknowledge_abort: bool = True,
    ):
        self._outcome = outcome or ExecutionOutcome.ok()
        self._error = error
        self._hang = hang
        self._acknowledge_abort = acknowledge_abort
        self._lock = threading.Lock()
        self._pending: dict[str, Future[ExecutionOutcome]] = {}
        self._submitted: list[ExecutionRequest] = []
        self._aborted: list[str] = []

    @property
    def name(self) -> str:
        return "stub"

    def submit(self, request: ExecutionRequest) -> Future[ExecutionOutcome]:
        future: Future[ExecutionOutcome] = Future()
        with self._lock:
            self._submitted.append(request)
            if self._hang:
                self._pending[request.deployment_token] = future
                return future
        if self._error is not None:
            future.set_exception(self._error)
        else:
            future.set_result(self._outcome)
        return future

    def abort(self, deployment_token: str) -> bool:
        with self._lock:
            self._aborted.append(deployment_token)
            future = self._pending.get(deployment_token)
            if future is None:
                return False
            if self._acknowledge_abort:
                del self._pending[deployment_token]
        if self._acknowledge_abort:
            future.set_result(ExecutionOutcome.abort_acknowledged())
        return True

    # === TEST HELPERS ===

    def complete(self, deployment_token: str, outcome: ExecutionOutcome | None = None) -> None:
        """Resolve a hanging submission."""
        with self._lock:
            future = self._pending.pop(deployment_token)
        future.set_result(outcome or self._outcome)

    @property
    def submitted(self) -> list[ExecutionRequest]:
        with self._lock:
            return self._submitted.copy()

    @property
    def aborted(self) -> list[str]:
        with self._lock:
            return self._aborted.copy()

    @property
    def submission_count(self) -> int:
        return len(self.submitted)
