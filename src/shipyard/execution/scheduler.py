"""Deployment scheduler: claim, execute and finalize queued entries.

Serializes deployment execution per application while unrelated
applications deploy concurrently.  Entries are claimed strictly in enqueue
order; the claim itself is the ledger's atomic conditional UPDATE, so any
number of schedulers (threads or processes) can race on the same queue.

Execution flow::

    claim_next(app) ──► queued → in_progress   (atomic; None if busy/empty)
          │
          ▼
    executor.submit(request) ──► Future[ExecutionOutcome]
          │
          ▼  wait in check-in slices
    ┌───────────────────────────────────────────────────────────┐
    │ outcome ready      → finished | failed                    │
    │ collaborator raised→ failed (exception text)              │
    │ cancel requested   → abort, wait ≤ grace, cancelled_by_user│
    │ deadline passed    → abort, failed ("Timeout")            │
    │ scheduler error    → abort, failed (exception text)       │
    └───────────────────────────────────────────────────────────┘

The scheduler never holds a database transaction while waiting on the
collaborator.  Claims left behind by a dead worker are failed with reason
``Timeout`` by :meth:`DeploymentScheduler.reap_stale` once their deadline,
the cancel grace and one check-in interval have passed.
"""

from __future__ import annotations

from concurrent.futures import Future, wait
from datetime import timedelta

from shipyard.core.errors import InvalidTransitionError, NotFoundError, TimeoutExpired, categorize_error
from shipyard.core.logging import LogContext, get_logger
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.executors.protocol import DeploymentExecutor, ExecutionOutcome, ExecutionRequest
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import DeploymentQueueEntry, DeploymentStatus, Server, utcnow
from shipyard.execution.timeout import Deadline, deployment_timeout_for

logger = get_logger(__name__)

TIMEOUT_REASON = "Timeout"
CANCELLED_REASON = "Cancelled by user"


class DeploymentScheduler:
    """Drives queue entries through the status state machine.

    Args:
        ledger: The deployment ledger (and its hooks).
        executor: Execution collaborator.
        inventory: Used to look up per-server deadline overrides.  Optional:
            without it every deployment uses the global deadline.
        settings: Deadlines, grace period and check-in interval.
    """

    def __init__(
        self,
        ledger: DeploymentLedger,
        executor: DeploymentExecutor,
        *,
        inventory: Inventory | None = None,
        settings: ShipyardSettings | None = None,
    ):
        self._ledger = ledger
        self._executor = executor
        self._inventory = inventory
        self._settings = settings or ShipyardSettings()

    @property
    def ledger(self) -> DeploymentLedger:
        return self._ledger

    # ------------------------------------------------------------------ #
    # Queue
    # ------------------------------------------------------------------ #

    def claim_next(self, application_id: str, worker_id: str | None = None) -> DeploymentQueueEntry | None:
        """Claim the oldest queued entry, or ``None`` if busy or empty."""
        return self._ledger.claim(application_id, worker_id)

    def pending_applications(self) -> list[str]:
        return self._ledger.pending_applications()

    def request_cancel(self, token: str) -> DeploymentQueueEntry:
        """Cancel a queued entry now, or flag an in-progress one for its worker."""
        return self._ledger.request_cancel(token)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def process_next(self, application_id: str, worker_id: str | None = None) -> DeploymentQueueEntry | None:
        """Claim, execute and finalize the next entry of *application_id*.

        Returns:
            The entry in its final state, or ``None`` if nothing was claimed.
        """
        entry = self.claim_next(application_id, worker_id)
        if entry is None:
            return None
        with LogContext(application_id=application_id, deployment_token=entry.deployment_token):
            return self.execute(entry)

    def drain(self, application_id: str, worker_id: str | None = None) -> list[DeploymentQueueEntry]:
        """Process entries of *application_id* until nothing more can be claimed.

        Abandoned claims of the application are reaped first, so a crashed
        worker does not block the queue.
        """
        self.reap_stale(application_id)
        processed: list[DeploymentQueueEntry] = []
        while (entry := self.process_next(application_id, worker_id)) is not None:
            processed.append(entry)
        return processed

    def execute(self, entry: DeploymentQueueEntry) -> DeploymentQueueEntry:
        """Run a claimed (``in_progress``) entry to a terminal status.

        Any error before or while supervising the collaborator finalizes the
        entry as ``failed``; a claimed entry is never left behind.
        """
        token = entry.deployment_token
        try:
            server = self._server_for(entry)
            timeout_s = deployment_timeout_for(server, self._settings.deployment_timeout_s)
            deadline = Deadline.start(timeout_s, operation=f"deployment {token}")
            self._ledger.add_log_entry(
                token,
                f"Starting deployment of {entry.application_name} ({entry.commit}) on {entry.server_name}.",
            )
            logger.info(
                "deployment_started",
                deployment_token=token,
                application_id=entry.application_id,
                timeout_s=timeout_s,
                worker_id=entry.worker_id,
            )
            future = self._executor.submit(ExecutionRequest.from_entry(entry, server))
        except Exception as exc:
            logger.exception(
                "deployment_start_failed", deployment_token=token, category=categorize_error(exc).value, error=str(exc)
            )
            return self._finalize(token, DeploymentStatus.FAILED, _reason(exc))

        try:
            return self._supervise(token, future, deadline)
        except Exception as exc:
            logger.exception(
                "deployment_supervision_failed",
                deployment_token=token,
                category=categorize_error(exc).value,
                error=str(exc),
            )
            entry = self._finalize(token, DeploymentStatus.FAILED, _reason(exc))
            self._executor.abort(token)
            return entry

    def reap_stale(self, application_id: str | None = None) -> list[DeploymentQueueEntry]:
        """Fail claims whose supervising worker is gone.

        A live supervisor finalizes its entry by the deadline.  An entry
        still ``in_progress`` after its deadline plus the cancel grace and
        one check-in interval has none, so it becomes ``failed`` with reason
        ``Timeout``.  The transition is the ledger's compare-and-set, so a
        supervisor finishing at the same moment wins or loses cleanly.

        Returns:
            The entries this call failed.
        """
        margin = self._settings.cancel_grace_s + self._settings.check_in_interval_s
        now = utcnow()
        reaped: list[DeploymentQueueEntry] = []
        for entry in self._ledger.list_in_progress(application_id):
            token = entry.deployment_token
            claimed_at = entry.started_at or entry.created_at
            timeout_s = deployment_timeout_for(self._reaper_server_for(entry), self._settings.deployment_timeout_s)
            if now < claimed_at + timedelta(seconds=timeout_s + margin):
                continue
            try:
                failed = self._ledger.update_status(token, DeploymentStatus.FAILED, reason=TIMEOUT_REASON)
            except InvalidTransitionError:
                continue
            self._ledger.add_log_entry(
                token, f"Deployment abandoned by worker {entry.worker_id}; failed after {timeout_s:g}s.", type="stderr"
            )
            logger.warning(
                "deployment_claim_reaped",
                deployment_token=token,
                application_id=entry.application_id,
                worker_id=entry.worker_id,
                timeout_s=timeout_s,
            )
            reaped.append(failed)
        return reaped

    def _supervise(self, token: str, future: Future[ExecutionOutcome], deadline: Deadline) -> DeploymentQueueEntry:
        interval = self._settings.check_in_interval_s
        while True:
            done, _ = wait([future], timeout=deadline.slice(interval))
            if done:
                return self._finish_from_future(token, future)

            current = self._ledger.get(token)
            if current.status != DeploymentStatus.IN_PROGRESS:
                # Overridden administratively while running; stop the collaborator.
                self._executor.abort(token)
                logger.warning("deployment_left_in_progress", deployment_token=token, status=current.status.value)
                return current
            if current.cancel_requested:
                return self._cancel(token, future)
            try:
                deadline.check()
            except TimeoutExpired as exc:
                return self._timeout(token, exc)

    def _finish_from_future(self, token: str, future: Future[ExecutionOutcome]) -> DeploymentQueueEntry:
        try:
            outcome = future.result()
        except Exception as exc:
            logger.warning(
                "deployment_collaborator_error",
                deployment_token=token,
                category=categorize_error(exc).value,
                error=str(exc),
            )
            return self._finalize(token, DeploymentStatus.FAILED, _reason(exc))

        if outcome.success:
            return self._finalize(token, DeploymentStatus.FINISHED, None, log=outcome.message or "Deployment finished.")
        if outcome.aborted and self._ledger.get(token).cancel_requested:
            return self._finalize(
                token, DeploymentStatus.CANCELLED_BY_USER, CANCELLED_REASON, log="Deployment cancelled by user."
            )
        return self._finalize(token, DeploymentStatus.FAILED, outcome.message or "Deployment failed")

    def _cancel(self, token: str, future: Future[ExecutionOutcome]) -> DeploymentQueueEntry:
        acknowledged = self._executor.abort(token)
        done, _ = wait([future], timeout=self._settings.cancel_grace_s)
        if not done:
            logger.warning(
                "deployment_cancel_forced",
                deployment_token=token,
                grace_s=self._settings.cancel_grace_s,
                acknowledged=acknowledged,
            )
        return self._finalize(
            token, DeploymentStatus.CANCELLED_BY_USER, CANCELLED_REASON, log="Deployment cancelled by user."
        )

    def _timeout(self, token: str, expired: TimeoutExpired) -> DeploymentQueueEntry:
        self._executor.abort(token)
        logger.warning(
            "deployment_timed_out", deployment_token=token, timeout_s=expired.timeout, elapsed_s=expired.elapsed
        )
        return self._finalize(
            token,
            DeploymentStatus.FAILED,
            TIMEOUT_REASON,
            log=f"Deployment timed out after {expired.timeout:g}s.",
        )

    def _finalize(
        self,
        token: str,
        status: DeploymentStatus,
        reason: str | None,
        *,
        log: str | None = None,
    ) -> DeploymentQueueEntry:
        try:
            entry = self._ledger.update_status(token, status, reason=reason)
        except InvalidTransitionError:
            # Already logged by the ledger; someone else closed the entry first.
            return self._ledger.get(token)
        stream = "stderr" if status == DeploymentStatus.FAILED else "stdout"
        self._ledger.add_log_entry(token, log or reason or status.value, type=stream)
        return entry

    def _server_for(self, entry: DeploymentQueueEntry) -> Server | None:
        if self._inventory is None:
            return None
        try:
            return self._inventory.get_server(entry.server_id)
        except NotFoundError:
            # Server deleted after enqueue; the snapshot fields still identify it.
            logger.warning(
                "deployment_server_missing", deployment_token=entry.deployment_token, server_id=entry.server_id
            )
            return None

    def _reaper_server_for(self, entry: DeploymentQueueEntry) -> Server | None:
        try:
            return self._server_for(entry)
        except Exception:
            # The global deadline still bounds the claim.
            logger.warning("deployment_server_lookup_failed", deployment_token=entry.deployment_token, exc_info=True)
            return None


def _reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
