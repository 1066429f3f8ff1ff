"""Tests for DeploymentLedger."""

import pytest

from shipyard.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from shipyard.execution.hooks import DeploymentHooks
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import (
    Application,
    DeploymentOptions,
    DeploymentStatus,
    Destination,
    ListFilters,
)


class TestEnqueue:
    def test_creates_queued_entry(self, ledger, target):
        app, server, dest = target
        entry = ledger.enqueue(app, server, dest, commit="abc123def456")
        assert entry.status == DeploymentStatus.QUEUED
        assert entry.commit == "abc123def456"
        assert entry.application_name == "web"
        assert entry.server_name == "server-1"
        assert entry.deployment_url == f"/applications/app-1/deployments/{entry.deployment_token}"
        assert entry.started_at is None

    def test_tokens_distinct(self, ledger, target):
        tokens = {ledger.enqueue(*target).deployment_token for _ in range(5)}
        assert len(tokens) == 5

    def test_options_copied(self, ledger, target):
        entry = ledger.enqueue(*target, options=DeploymentOptions(force_rebuild=True, is_webhook=True))
        assert entry.force_rebuild and entry.is_webhook
        assert not entry.rollback

    def test_no_destination_rejected(self, ledger, target):
        app, server, _ = target
        with pytest.raises(ValidationError):
            ledger.enqueue(app, server, None)

    def test_destination_on_other_server_rejected(self, ledger, target):
        app, server, _ = target
        elsewhere = Destination(id="dst-x", name="x", network="x", server_id="srv-other")
        with pytest.raises(ValidationError):
            ledger.enqueue(app, server, elsewhere)

    def test_empty_commit_rejected(self, ledger, target):
        with pytest.raises(ValidationError):
            ledger.enqueue(*target, commit="  ")

    def test_negative_pull_request_rejected(self, ledger, target):
        with pytest.raises(ValidationError):
            ledger.enqueue(*target, pull_request_id=-1)

    def test_created_hook_runs(self, session_factory, target):
        seen = []
        ledger = DeploymentLedger(session_factory, DeploymentHooks(on_created=[seen.append]))
        entry = ledger.enqueue(*target)
        assert [e.deployment_token for e in seen] == [entry.deployment_token]

    def test_failing_hook_does_not_undo_write(self, session_factory, target):
        def boom(entry):
            raise RuntimeError("broker down")

        ledger = DeploymentLedger(session_factory, DeploymentHooks(on_created=[boom]))
        entry = ledger.enqueue(*target)
        assert ledger.get(entry.deployment_token).status == DeploymentStatus.QUEUED


class TestClaim:
    def test_claims_oldest_first(self, ledger, target):
        first = ledger.enqueue(*target, commit="c1")
        ledger.enqueue(*target, commit="c2")
        claimed = ledger.claim("app-1", "w1")
        assert claimed.deployment_token == first.deployment_token
        assert claimed.status == DeploymentStatus.IN_PROGRESS
        assert claimed.worker_id == "w1"
        assert claimed.started_at is not None

    def test_one_in_progress_per_application(self, ledger, target):
        ledger.enqueue(*target, commit="c1")
        ledger.enqueue(*target, commit="c2")
        assert ledger.claim("app-1") is not None
        assert ledger.claim("app-1") is None

    def test_empty_queue(self, ledger, target):
        assert ledger.claim("app-1") is None
        assert ledger.get_in_progress("app-1") is None

    def test_applications_independent(self, ledger, target, second_target):
        ledger.enqueue(*target)
        ledger.enqueue(*second_target)
        assert ledger.claim("app-1") is not None
        assert ledger.claim("app-2") is not None

    def test_next_claim_after_finish(self, ledger, target):
        first = ledger.enqueue(*target, commit="c1")
        second = ledger.enqueue(*target, commit="c2")
        ledger.claim("app-1")
        ledger.update_status(first.deployment_token, DeploymentStatus.FINISHED)
        assert ledger.claim("app-1").deployment_token == second.deployment_token

    def test_pending_applications(self, ledger, target, second_target):
        ledger.enqueue(*target)
        ledger.enqueue(*target)
        ledger.enqueue(*second_target)
        assert ledger.pending_applications() == ["app-1", "app-2"]
        ledger.claim("app-1")
        assert ledger.pending_applications() == ["app-2"]


class TestUpdateStatus:
    def test_finish(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        done = ledger.update_status(entry.deployment_token, DeploymentStatus.FINISHED)
        assert done.status == DeploymentStatus.FINISHED
        assert done.finished_at is not None

    def test_failure_reason_recorded(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        failed = ledger.update_status(entry.deployment_token, "failed", reason="build error")
        assert failed.failure_reason == "build error"

    def test_queued_to_finished_rejected(self, ledger, target):
        entry = ledger.enqueue(*target)
        with pytest.raises(InvalidTransitionError):
            ledger.update_status(entry.deployment_token, DeploymentStatus.FINISHED)

    @pytest.mark.parametrize(
        "terminal", [DeploymentStatus.FINISHED, DeploymentStatus.FAILED, DeploymentStatus.CANCELLED_BY_USER]
    )
    def test_terminal_is_immutable(self, ledger, finish_deployment, terminal):
        entry = finish_deployment("abc123", status=terminal)
        for status in DeploymentStatus:
            with pytest.raises(InvalidTransitionError):
                ledger.update_status(entry.deployment_token, status)
        assert ledger.get(entry.deployment_token).status == terminal

    def test_unknown_token(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.update_status("missing", DeploymentStatus.FINISHED)

    def test_transition_hook(self, session_factory, target):
        seen = []
        hooks = DeploymentHooks(on_transition=[lambda e, prev: seen.append((prev, e.status))])
        ledger = DeploymentLedger(session_factory, hooks)
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        ledger.update_status(entry.deployment_token, DeploymentStatus.FINISHED)
        assert seen == [
            (DeploymentStatus.QUEUED, DeploymentStatus.IN_PROGRESS),
            (DeploymentStatus.IN_PROGRESS, DeploymentStatus.FINISHED),
        ]


class TestCancel:
    def test_queued_cancelled_immediately(self, ledger, target):
        entry = ledger.enqueue(*target)
        cancelled = ledger.request_cancel(entry.deployment_token)
        assert cancelled.status == DeploymentStatus.CANCELLED_BY_USER
        assert cancelled.finished_at is not None

    def test_in_progress_flagged(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        flagged = ledger.request_cancel(entry.deployment_token)
        assert flagged.status == DeploymentStatus.IN_PROGRESS
        assert flagged.cancel_requested

    def test_repeated_request_keeps_first_timestamp(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        first = ledger.request_cancel(entry.deployment_token).cancel_requested_at
        assert ledger.request_cancel(entry.deployment_token).cancel_requested_at == first

    def test_terminal_rejected(self, ledger, finish_deployment):
        entry = finish_deployment("abc123")
        with pytest.raises(InvalidTransitionError):
            ledger.request_cancel(entry.deployment_token)


class TestForceStatus:
    def test_override_terminal(self, ledger, finish_deployment):
        entry = finish_deployment("abc123", status=DeploymentStatus.FAILED)
        reopened = ledger.force_status(entry.deployment_token, DeploymentStatus.QUEUED, actor="admin")
        assert reopened.status == DeploymentStatus.QUEUED
        assert reopened.started_at is None
        assert reopened.finished_at is None

    def test_second_in_progress_rejected(self, ledger, target):
        ledger.enqueue(*target)
        other = ledger.enqueue(*target)
        ledger.claim("app-1")
        with pytest.raises(InvalidTransitionError):
            ledger.force_status(other.deployment_token, DeploymentStatus.IN_PROGRESS, actor="admin")


class TestHistory:
    def test_newest_first(self, ledger, target):
        tokens = [ledger.enqueue(*target, commit=f"c{i}").deployment_token for i in range(5)]
        history = ledger.list_for_application("app-1")
        assert [e.deployment_token for e in history] == tokens[::-1]

    def test_restartable(self, ledger, target):
        for i in range(3):
            ledger.enqueue(*target, commit=f"c{i}")
        history = ledger.list_for_application("app-1", batch_size=2)
        assert [e.commit for e in history] == [e.commit for e in history]

    def test_batches_span_pages(self, ledger, target):
        for i in range(7):
            ledger.enqueue(*target, commit=f"c{i}")
        history = ledger.list_for_application("app-1", batch_size=3)
        assert [e.commit for e in history] == [f"c{i}" for i in range(6, -1, -1)]

    def test_skip_and_take(self, ledger, target):
        for i in range(6):
            ledger.enqueue(*target, commit=f"c{i}")
        history = ledger.list_for_application("app-1", ListFilters(skip=1, take=2))
        assert [e.commit for e in history] == ["c4", "c3"]
        assert history.count() == 6

    def test_status_filter(self, ledger, finish_deployment):
        finish_deployment("good")
        finish_deployment("bad", status=DeploymentStatus.FAILED)
        history = ledger.list_for_application("app-1", ListFilters(statuses=frozenset({DeploymentStatus.FINISHED})))
        assert [e.commit for e in history] == ["good"]
        assert history.count() == 1

    def test_pull_requests_excluded(self, ledger, target):
        ledger.enqueue(*target, commit="main")
        ledger.enqueue(*target, commit="pr", pull_request_id=42)
        assert [e.commit for e in ledger.list_for_application("app-1", ListFilters(include_pull_requests=False))] == [
            "main"
        ]
        only_pr = ledger.list_for_application("app-1", ListFilters(pull_request_id=42))
        assert [e.commit for e in only_pr] == ["pr"]

    def test_other_application_not_listed(self, ledger, target, second_target):
        ledger.enqueue(*second_target)
        assert list(ledger.list_for_application("app-1")) == []

    def test_list_active(self, ledger, target, finish_deployment):
        finish_deployment("done")
        queued = ledger.enqueue(*target, commit="next")
        assert [e.deployment_token for e in ledger.list_active("app-1")] == [queued.deployment_token]


class TestLogs:
    def test_lines_ordered(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.add_log_entry(entry.deployment_token, "pulling image")
        line = ledger.add_log_entry(entry.deployment_token, "oops", type="stderr", hidden=True)
        assert line["order"] == 2
        logs = ledger.get(entry.deployment_token).logs
        assert [line["output"] for line in logs] == ["pulling image", "oops"]
        assert logs[1]["type"] == "stderr"
        assert logs[1]["hidden"] is True

    def test_append_after_close(self, ledger, finish_deployment):
        entry = finish_deployment("abc123")
        ledger.add_log_entry(entry.deployment_token, "post-deploy note")
        assert ledger.get(entry.deployment_token).logs[-1]["output"] == "post-deploy note"


class TestEnqueueRollback:
    def test_copies_target(self, ledger, finish_deployment):
        old = finish_deployment("abc123def456")
        current = finish_deployment("def789ghi012")
        entry, event = ledger.enqueue_rollback(old, current, initiator="alice")
        assert entry.rollback
        assert entry.commit == "abc123def456"
        assert entry.status == DeploymentStatus.QUEUED
        assert entry.server_id == old.server_id
        assert event.to_deployment_id == old.id
        assert event.from_deployment_id == current.id
        assert event.rollback_deployment_id == entry.id
        assert event.triggered_by == "alice"

    def test_unfinished_target_rejected(self, ledger, finish_deployment):
        failed = finish_deployment("abc123", status=DeploymentStatus.FAILED)
        with pytest.raises(ValidationError):
            ledger.enqueue_rollback(failed, None, initiator=None)


def test_unknown_application_has_empty_history(ledger):
    app = Application(id="ghost", name="ghost", destination_id=None)
    assert list(ledger.list_for_application(app.id)) == []
