"""Tests for the polling WorkerLoop."""

import time

import pytest

from shipyard.execution.dlq import FailedJobStore
from shipyard.execution.executors import StubExecutor
from shipyard.execution.models import DeploymentStatus
from shipyard.execution.scheduler import DeploymentScheduler
from shipyard.execution.worker import PROCESS_TASK_NAME, WorkerLoop, get_active_workers


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.02)


@pytest.fixture
def scheduler(ledger, inventory, settings):
    return DeploymentScheduler(ledger, StubExecutor(), inventory=inventory, settings=settings)


class _CrashingScheduler:
    def reap_stale(self, application_id=None):
        return []

    def pending_applications(self):
        return ["app-1"]

    def process_next(self, application_id, worker_id=None):
        raise RuntimeError("database is locked")


@pytest.mark.integration
class TestWorkerLoop:
    def test_drains_pending_applications(self, scheduler, ledger, target, second_target):
        ledger.enqueue(*target, commit="c1")
        ledger.enqueue(*target, commit="c2")
        ledger.enqueue(*second_target, commit="c3")

        worker = WorkerLoop(scheduler, poll_interval=0.05, max_workers=2, worker_id="w-test")
        thread = worker.start_background()
        try:
            _wait_for(lambda: ledger.list_active() == [])
            _wait_for(lambda: worker.get_stats().total_finished == 3)
        finally:
            worker.stop()
            thread.join(timeout=5)

        entries = list(ledger.list_for_application("app-1"))
        assert {e.status for e in entries} == {DeploymentStatus.FINISHED}
        assert {e.worker_id for e in entries} == {"w-test"}
        assert worker.info.status == "stopped"

    def test_registered_while_running(self, scheduler):
        worker = WorkerLoop(scheduler, poll_interval=0.05, worker_id="w-visible")
        thread = worker.start_background()
        try:
            _wait_for(lambda: any(w.worker_id == "w-visible" for w in get_active_workers()))
        finally:
            worker.stop()
            thread.join(timeout=5)
        assert all(w.worker_id != "w-visible" for w in get_active_workers())

    def test_crashed_drain_recorded(self, session_factory):
        store = FailedJobStore(session_factory)
        worker = WorkerLoop(_CrashingScheduler(), failed_jobs=store, poll_interval=5, worker_id="w-crash")
        assert worker.poll_once() == 1
        _wait_for(lambda: store.count_unresolved() == 1)
        worker.stop()

        (job,) = store.list_unresolved()
        assert job.task_name == PROCESS_TASK_NAME
        assert job.payload == {"application_id": "app-1", "worker_id": "w-crash"}
        assert "database is locked" in job.exception
        assert worker.get_stats().total_errors == 1

    def test_application_not_dispatched_twice(self, session_factory):
        worker = WorkerLoop(_CrashingScheduler(), poll_interval=5, worker_id="w-once")
        worker._in_flight.add("app-1")
        assert worker.poll_once() == 0

    def test_poll_reaps_abandoned_claim(self, ledger, inventory, settings, target):
        orphan = ledger.enqueue(*target, commit="orphan")
        ledger.claim("app-1", "dead-worker")
        fast = settings.model_copy(update={"deployment_timeout_s": 0.05, "cancel_grace_s": 0.0})
        scheduler = DeploymentScheduler(ledger, StubExecutor(), inventory=inventory, settings=fast)
        time.sleep(0.2)

        worker = WorkerLoop(scheduler, poll_interval=5, worker_id="w-reaper")
        worker.poll_once()
        worker.stop()

        reaped = ledger.get(orphan.deployment_token)
        assert reaped.status == DeploymentStatus.FAILED
        assert reaped.failure_reason == "Timeout"
