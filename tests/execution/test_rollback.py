"""Tests for RollbackEngine target selection and rollback queueing."""

import pytest

from shipyard.core.errors import NoRollbackTargetError, NotFoundError, ValidationError
from shipyard.execution.executors import StubExecutor
from shipyard.execution.models import DeploymentStatus, RollbackOutcome, TriggerReason, TriggerType
from shipyard.execution.rollback import RollbackEngine
from shipyard.execution.scheduler import DeploymentScheduler


@pytest.fixture
def engine_for(ledger, inventory):
    def _make(rule: str = "skip_current_commit") -> RollbackEngine:
        return RollbackEngine(ledger, inventory, rule)

    return _make


class TestSelectTarget:
    def test_no_finished_deployment(self, engine_for, target):
        with pytest.raises(NoRollbackTargetError):
            engine_for().select_target("app-1")

    def test_single_finished_deployment(self, engine_for, finish_deployment):
        finish_deployment("abc123def456")
        with pytest.raises(NoRollbackTargetError):
            engine_for().select_target("app-1")

    def test_picks_previous_commit(self, engine_for, finish_deployment):
        old = finish_deployment("abc123def456")
        current = finish_deployment("def789ghi012")
        got_current, got_target = engine_for().select_target("app-1")
        assert got_current.deployment_token == current.deployment_token
        assert got_target.deployment_token == old.deployment_token

    def test_failed_entries_ignored(self, engine_for, finish_deployment):
        old = finish_deployment("aaa")
        finish_deployment("bbb", status=DeploymentStatus.FAILED)
        finish_deployment("ccc")
        _, got = engine_for().select_target("app-1")
        assert got.deployment_token == old.deployment_token

    def test_pull_request_builds_ignored(self, engine_for, finish_deployment):
        old = finish_deployment("aaa")
        finish_deployment("bbb")
        finish_deployment("pr-head", pull_request_id=7)
        current, got = engine_for().select_target("app-1")
        assert current.commit == "bbb"
        assert got.deployment_token == old.deployment_token

    def test_skip_current_commit_skips_redeploys(self, engine_for, finish_deployment):
        old = finish_deployment("aaa")
        finish_deployment("bbb")
        finish_deployment("bbb")
        _, got = engine_for("skip_current_commit").select_target("app-1")
        assert got.deployment_token == old.deployment_token

    def test_skip_current_commit_all_same_commit(self, engine_for, finish_deployment):
        finish_deployment("bbb")
        finish_deployment("bbb")
        with pytest.raises(NoRollbackTargetError):
            engine_for("skip_current_commit").select_target("app-1")

    def test_skip_latest_entry_takes_second_newest(self, engine_for, finish_deployment):
        finish_deployment("aaa")
        second = finish_deployment("bbb")
        finish_deployment("bbb")
        _, got = engine_for("skip_latest_entry").select_target("app-1")
        assert got.deployment_token == second.deployment_token

    def test_unknown_rule(self, ledger, inventory):
        with pytest.raises(ValueError):
            RollbackEngine(ledger, inventory, "newest")


class TestRollback:
    def test_queues_replay_and_event(self, engine_for, ledger, finish_deployment):
        old = finish_deployment("abc123def456")
        current = finish_deployment("def789ghi012")
        entry, event = engine_for().rollback("app-1", "alice")

        assert entry.rollback is True
        assert entry.commit == "abc123def456"
        assert entry.status == DeploymentStatus.QUEUED
        assert event.from_commit == "def789ghi012"
        assert event.to_commit == "abc123def456"
        assert event.from_deployment_id == current.id
        assert event.to_deployment_id == old.id
        assert event.trigger_reason == TriggerReason.MANUAL
        assert event.outcome == RollbackOutcome.IN_PROGRESS

    def test_automatic_trigger_recorded(self, engine_for, finish_deployment):
        finish_deployment("aaa")
        finish_deployment("bbb")
        _, event = engine_for().rollback(
            "app-1",
            None,
            trigger_reason=TriggerReason.CRASH_LOOP,
            trigger_type=TriggerType.AUTOMATIC,
            metrics_snapshot={"restarts": 5},
        )
        assert event.trigger_type == TriggerType.AUTOMATIC
        assert event.metrics_snapshot == {"restarts": 5}
        assert event.triggered_by is None

    def test_unknown_application(self, engine_for):
        with pytest.raises(NotFoundError):
            engine_for().rollback("ghost", "alice")

    def test_rollback_of_rollback(self, engine_for, ledger, settings, inventory, finish_deployment):
        finish_deployment("aaa")
        finish_deployment("bbb")
        engine = engine_for()
        engine.rollback("app-1", "alice")
        DeploymentScheduler(ledger, StubExecutor(), inventory=inventory, settings=settings).drain("app-1")

        # The rollback to "aaa" is now current; the next target is "bbb".
        current, got = engine.select_target("app-1")
        assert current.commit == "aaa" and current.rollback
        assert got.commit == "bbb"


class TestRollbackTo:
    def test_explicit_target(self, engine_for, finish_deployment):
        first = finish_deployment("aaa")
        finish_deployment("bbb")
        finish_deployment("ccc")
        entry, event = engine_for().rollback_to("app-1", first.deployment_token, "bob")
        assert entry.commit == "aaa"
        assert event.from_commit == "ccc"
        assert event.triggered_by == "bob"

    def test_only_finished_target_allowed(self, engine_for, finish_deployment):
        finish_deployment("aaa")
        failed = finish_deployment("bbb", status=DeploymentStatus.FAILED)
        with pytest.raises(ValidationError, match="successful"):
            engine_for().rollback_to("app-1", failed.deployment_token, None)

    def test_unknown_token(self, engine_for, target):
        with pytest.raises(NotFoundError):
            engine_for().rollback_to("app-1", "nope", None)

    def test_token_of_other_application(self, engine_for, finish_deployment, second_target):
        foreign = finish_deployment("zzz", target=second_target)
        with pytest.raises(NotFoundError):
            engine_for().rollback_to("app-1", foreign.deployment_token, None)


class TestEventOutcome:
    @pytest.mark.parametrize(
        "final,outcome",
        [
            (DeploymentStatus.FINISHED, RollbackOutcome.SUCCESS),
            (DeploymentStatus.FAILED, RollbackOutcome.FAILED),
        ],
    )
    def test_outcome_follows_rollback_deployment(self, engine_for, ledger, finish_deployment, final, outcome):
        finish_deployment("aaa")
        finish_deployment("bbb")
        entry, event = engine_for().rollback("app-1", "alice")
        ledger.claim("app-1")
        ledger.update_status(entry.deployment_token, final)

        (listed,) = ledger.list_rollback_events("app-1")
        assert listed.id == event.id
        assert listed.outcome == outcome
        assert listed.completed_at is not None
        if outcome == RollbackOutcome.FAILED:
            assert listed.error_message == "Rollback deployment failed"

    def test_events_newest_first(self, engine_for, ledger, finish_deployment):
        finish_deployment("aaa")
        finish_deployment("bbb")
        engine = engine_for()
        _, first = engine.rollback("app-1", "alice")
        _, second = engine.rollback("app-1", "alice")
        assert [e.id for e in ledger.list_rollback_events("app-1")] == [second.id, first.id]
