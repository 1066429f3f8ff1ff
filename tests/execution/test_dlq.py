"""Tests for FailedJobStore."""

from shipyard.execution.dlq import FailedJobStore


class TestFailedJobStore:
    def test_record_and_list(self, session_factory):
        store = FailedJobStore(session_factory)
        job = store.record("shipyard.deployments.process", {"application_id": "app-1"}, "boom", job_id="t-1")
        assert job.job_id == "t-1"
        assert job.queue == "default"
        assert [j.id for j in store.list_unresolved()] == [job.id]
        assert store.count_unresolved() == 1

    def test_generated_job_id(self, session_factory):
        job = FailedJobStore(session_factory).record("task", {}, "boom")
        assert job.job_id

    def test_resolve(self, session_factory):
        store = FailedJobStore(session_factory)
        job = store.record("task", {}, "boom")
        assert store.resolve(job.id) is True
        assert store.resolve(job.id) is False
        assert store.count_unresolved() == 0
        assert store.list_unresolved() == []

    def test_resolve_unknown(self, session_factory):
        assert FailedJobStore(session_factory).resolve(999) is False

    def test_newest_first(self, session_factory):
        store = FailedJobStore(session_factory)
        first = store.record("a", {}, "e1")
        second = store.record("b", {}, "e2")
        assert [j.id for j in store.list_unresolved()] == [second.id, first.id]
