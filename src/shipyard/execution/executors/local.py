"""Local Executor: ThreadPool-based deployment execution.

``LocalExecutor`` runs a plain callable ("runner") per deployment on a
``ThreadPoolExecutor``.  Each submission gets its own abort
``threading.Event``; the runner is expected to poll it and return
``ExecutionOutcome.abort_acknowledged()`` when it is set.

ARCHITECTURE
────────────
::

    LocalExecutor(runner, max_workers=4)
      ├── .submit(request)  ─ submit runner(request, abort_event) to ThreadPool
      ├── .abort(token)     ─ set the token's abort event
      └── .shutdown()       ─ drain pool
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from shipyard.core.errors import ConfigError
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.executors.protocol import ExecutionOutcome, ExecutionRequest

Runner = Callable[[ExecutionRequest, threading.Event], ExecutionOutcome]


class LocalExecutor:
    """ThreadPoolExecutor-based executor.

    Example:
        >>> def build_and_start(request, abort):
        ...     for step in steps(request):
        ...         if abort.is_set():
        ...             return ExecutionOutcome.abort_acknowledged()
        ...         step()
        ...     return ExecutionOutcome.ok()
        >>>
        >>> executor = LocalExecutor(build_and_start, max_workers=4)
        >>> future = executor.submit(request)
    """

    def __init__(self, runner: Runner, max_workers: int = 4):
        self.pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="shipyard-exec")
        self._runner = runner
        self._lock = threading.Lock()
        self._abort_events: dict[str, threading.Event] = {}

    @classmethod
    def from_settings(cls, settings: ShipyardSettings, max_workers: int = 4) -> LocalExecutor:
        """Build an executor around ``settings.deployment_runner``.

        Raises:
            ConfigError: no runner configured, or the path does not resolve.
        """
        if not settings.deployment_runner:
            raise ConfigError("SHIPYARD_DEPLOYMENT_RUNNER is not set")
        return cls(load_runner(settings.deployment_runner), max_workers=max_workers)

    @property
    def name(self) -> str:
        return "local"

    def submit(self, request: ExecutionRequest) -> Future[ExecutionOutcome]:
        abort_event = threading.Event()
        token = request.deployment_token
        with self._lock:
            self._abort_events[token] = abort_event

        def run() -> ExecutionOutcome:
            try:
                return self._runner(request, abort_event)
            finally:
                with self._lock:
                    self._abort_events.pop(token, None)

        return self.pool.submit(run)

    def abort(self, deployment_token: str) -> bool:
        with self._lock:
            event = self._abort_events.get(deployment_token)
        if event is None:
            return False
        event.set()
        return True

    @property
    def active_tokens(self) -> list[str]:
        with self._lock:
            return list(self._abort_events)

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)


def load_runner(path: str) -> Runner:
    """Resolve ``"package.module:callable"`` to the runner callable."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Runner path must look like 'module:callable', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import runner module {module_name!r}", cause=exc) from exc
    runner = getattr(module, attr, None)
    if not callable(runner):
        raise ConfigError(f"Runner {path!r} is not callable")
    return runner
