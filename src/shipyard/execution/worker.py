"""Background worker loop: polls for queued deployments and runs them.

The WorkerLoop bridges the ledger (where the ops layer enqueues) to actual
execution.  Each poll asks the scheduler which applications have queued
work and nothing in progress, then drains each such application on a
thread pool: claim → execute → finalize, until its queue is empty.

At most one drain per application is in flight per process; across
processes the ledger's atomic claim keeps the one-active invariant.

Usage (programmatic)::

    from shipyard.execution.worker import WorkerLoop

    worker = WorkerLoop(scheduler, failed_jobs=FailedJobStore(session_factory))
    worker.start()  # blocking, runs until SIGINT/SIGTERM

Usage (CLI)::

    shipyard worker start --workers 4 --poll-interval 2
"""

from __future__ import annotations

import logging
import os
import platform
import signal
import threading
import traceback
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime

from shipyard.execution.dlq import FailedJobStore
from shipyard.execution.models import DeploymentStatus
from shipyard.execution.scheduler import DeploymentScheduler

logger = logging.getLogger(__name__)

PROCESS_TASK_NAME = "shipyard.worker.process_application"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class WorkerInfo:
    """Identity of a running loop, as ``shipyard worker status`` shows it."""

    worker_id: str
    pid: int
    started_at: datetime
    poll_interval: float
    max_workers: int
    status: str = "running"
    hostname: str = ""


@dataclass
class WorkerStats:
    """Counts of drained entries by terminal status."""

    total_processed: int = 0
    total_finished: int = 0
    total_failed: int = 0
    total_cancelled: int = 0
    total_errors: int = 0
    uptime_seconds: float = 0
    last_poll_at: datetime | None = None
    active_applications: int = 0


# Loops running in this process, keyed by worker id.
_active_workers: dict[str, WorkerLoop] = {}
_workers_lock = threading.Lock()


def get_active_workers() -> list[WorkerInfo]:
    with _workers_lock:
        return [w.info for w in _active_workers.values()]


class WorkerLoop:
    """Polls the ledger for applications with queued work and drains them.

    Architecture:
        1. ``poll_once()`` fails abandoned claims (``scheduler.reap_stale()``)
           and asks ``scheduler.pending_applications()``.
        2. Each application not already draining in this process is handed
           to the thread pool (bounded by *max_workers*).
        3. ``_drain()`` calls ``scheduler.process_next`` until the
           application's queue is empty or shutdown is requested.
        4. A drain that crashes is logged and recorded as a failed job.
    """

    def __init__(
        self,
        scheduler: DeploymentScheduler,
        *,
        failed_jobs: FailedJobStore | None = None,
        poll_interval: float = 2.0,
        max_workers: int = 4,
        worker_id: str | None = None,
    ):
        """
        Args:
            scheduler: Claims and runs entries.
            failed_jobs: Where crashed drains are recorded.  Optional.
            poll_interval: Seconds between poll cycles.
            max_workers: Applications drained concurrently.
            worker_id: Custom worker identifier. Auto-generated if ``None``.
        """
        self._scheduler = scheduler
        self._failed_jobs = failed_jobs
        self._worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self._poll_interval = poll_interval
        self._max_workers = max_workers
        self._shutdown = threading.Event()
        self._started_at = _utcnow()
        self._stats = WorkerStats()
        self._stats_lock = threading.Lock()

        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"{self._worker_id}",
        )

        self.info = WorkerInfo(
            worker_id=self._worker_id,
            pid=os.getpid(),
            started_at=self._started_at,
            poll_interval=self._poll_interval,
            max_workers=self._max_workers,
            hostname=platform.node(),
        )

        # Applications currently draining in this process
        self._in_flight: set[str] = set()
        self._active_lock = threading.Lock()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the poll loop in the calling thread until :meth:`stop`.

        From the main thread, SIGINT and SIGTERM also stop the loop; in-flight
        drains finish their current entry before the pool shuts down.
        """
        with _workers_lock:
            _active_workers[self._worker_id] = self
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                signal.signal(signum, self._handle_signal)

        logger.info(
            "Worker %s polling every %.1fs with %d drain slot(s)",
            self._worker_id,
            self._poll_interval,
            self._max_workers,
        )
        try:
            self._run_loop()
        finally:
            self._cleanup()

    def start_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.start, name=f"{self._worker_id}-loop", daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        logger.info("Worker %s stopping", self._worker_id)
        self.info.status = "stopping"
        self._shutdown.set()

    def get_stats(self) -> WorkerStats:
        with self._active_lock:
            self._stats.active_applications = len(self._in_flight)
        self._stats.uptime_seconds = (_utcnow() - self._started_at).total_seconds()
        return self._stats

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def _run_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                dispatched = self.poll_once()
                if dispatched:
                    logger.debug("Worker %s dispatched %d application(s)", self._worker_id, dispatched)
            except Exception:
                logger.exception("Worker %s poll error", self._worker_id)

            self._stats.last_poll_at = _utcnow()
            self._shutdown.wait(self._poll_interval)

    def poll_once(self) -> int:
        """Reap abandoned claims, then dispatch drains for pending applications.

        Returns the number of applications dispatched.
        """
        reaped = self._scheduler.reap_stale()
        if reaped:
            logger.warning("Worker %s reaped %d abandoned deployment(s)", self._worker_id, len(reaped))
        dispatched = 0
        for application_id in self._scheduler.pending_applications():
            with self._active_lock:
                if application_id in self._in_flight or len(self._in_flight) >= self._max_workers:
                    continue
                self._in_flight.add(application_id)
            self._pool.submit(self._drain, application_id)
            dispatched += 1
        return dispatched

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _drain(self, application_id: str) -> None:
        """Process entries of one application until its queue is empty."""
        try:
            while not self._shutdown.is_set():
                entry = self._scheduler.process_next(application_id, self._worker_id)
                if entry is None:
                    return
                self._count(entry.status)
                logger.info(
                    "Worker %s deployment %s → %s",
                    self._worker_id,
                    entry.deployment_token,
                    entry.status.value,
                )
        except Exception as exc:
            error_msg = f"{type(exc).__name__}: {exc}"
            logger.error("Worker %s application %s failed: %s", self._worker_id, application_id, error_msg)
            with self._stats_lock:
                self._stats.total_errors += 1
            if self._failed_jobs is not None:
                self._failed_jobs.record(
                    PROCESS_TASK_NAME,
                    {"application_id": application_id, "worker_id": self._worker_id},
                    "".join(traceback.format_exception(exc)),
                    queue="worker",
                )
        finally:
            with self._active_lock:
                self._in_flight.discard(application_id)

    def _count(self, status: DeploymentStatus) -> None:
        with self._stats_lock:
            self._stats.total_processed += 1
            if status == DeploymentStatus.FINISHED:
                self._stats.total_finished += 1
            elif status == DeploymentStatus.FAILED:
                self._stats.total_failed += 1
            elif status == DeploymentStatus.CANCELLED_BY_USER:
                self._stats.total_cancelled += 1

    # ------------------------------------------------------------------ #
    # Signal handling & cleanup
    # ------------------------------------------------------------------ #

    def _handle_signal(self, signum, frame):
        logger.info("Worker %s received signal %s, shutting down", self._worker_id, signum)
        self.stop()

    def _cleanup(self) -> None:
        self.info.status = "stopped"

        with _workers_lock:
            _active_workers.pop(self._worker_id, None)

        self._pool.shutdown(wait=True, cancel_futures=False)

        logger.info(
            "Worker %s stopped (processed=%d, failed=%d)",
            self._worker_id,
            self._stats.total_processed,
            self._stats.total_failed,
        )
