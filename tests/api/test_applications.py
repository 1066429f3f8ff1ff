"""Tests for the applications router: history and rollbacks."""

from shipyard.execution.models import DeploymentStatus

PREFIX = "/api/v1/applications"


class TestHistory:
    def test_paged_newest_first(self, client, ledger, target):
        for i in range(5):
            ledger.enqueue(*target, commit=f"c{i}")
        resp = client.get(f"{PREFIX}/app-1/deployments", params={"skip": 1, "take": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert [d["commit"] for d in body["data"]] == ["c3", "c2"]
        assert body["page"] == {"total": 5, "skip": 1, "take": 2, "has_more": True}

    def test_take_bounded(self, client):
        assert client.get(f"{PREFIX}/app-1/deployments", params={"take": 1000}).status_code == 400

    def test_status_filter(self, client, finish_deployment):
        finish_deployment("good")
        finish_deployment("bad", status=DeploymentStatus.FAILED)
        resp = client.get(f"{PREFIX}/app-1/deployments", params={"status": "finished"})
        assert [d["commit"] for d in resp.json()["data"]] == ["good"]

    def test_unknown_status(self, client):
        resp = client.get(f"{PREFIX}/app-1/deployments", params={"status": "exploded"})
        assert resp.status_code == 400

    def test_unknown_application(self, client):
        assert client.get(f"{PREFIX}/ghost/deployments").status_code == 404


class TestRollback:
    def test_accepted(self, client, ledger, finish_deployment):
        finish_deployment("abc123def456")
        finish_deployment("def789ghi012")
        resp = client.post(f"{PREFIX}/app-1/rollback", headers={"X-Shipyard-Initiator": "alice"})
        assert resp.status_code == 202
        body = resp.json()
        assert body["message"] == "Rollback initiated successfully"
        assert body["data"]["to_commit"] == "abc123def456"
        assert body["data"]["from_commit"] == "def789ghi012"

        entry = ledger.get(body["data"]["deployment_uuid"])
        assert entry.rollback and entry.commit == "abc123def456"
        (event,) = ledger.list_rollback_events("app-1")
        assert event.triggered_by == "alice"

    def test_no_target(self, client, finish_deployment):
        finish_deployment("only")
        resp = client.post(f"{PREFIX}/app-1/rollback")
        assert resp.status_code == 400
        assert resp.json()["code"] == "NO_ROLLBACK_TARGET"

    def test_unknown_application(self, client):
        resp = client.post(f"{PREFIX}/ghost/rollback")
        assert resp.status_code == 404
        assert resp.json()["message"] == "Application not found"

    def test_explicit_target(self, client, finish_deployment):
        first = finish_deployment("aaa")
        finish_deployment("bbb")
        finish_deployment("ccc")
        resp = client.post(f"{PREFIX}/app-1/rollback/{first.deployment_token}")
        assert resp.status_code == 202
        assert resp.json()["data"]["to_commit"] == "aaa"

    def test_explicit_target_must_have_finished(self, client, finish_deployment):
        failed = finish_deployment("aaa", status=DeploymentStatus.FAILED)
        resp = client.post(f"{PREFIX}/app-1/rollback/{failed.deployment_token}")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Can only rollback to successful deployments"

    def test_explicit_target_of_other_application(self, client, finish_deployment, second_target):
        foreign = finish_deployment("zzz", target=second_target)
        resp = client.post(f"{PREFIX}/app-1/rollback/{foreign.deployment_token}")
        assert resp.status_code == 404


class TestRollbackEvents:
    def test_outcome_reported(self, client, ledger, finish_deployment):
        finish_deployment("aaa")
        finish_deployment("bbb")
        token = client.post(f"{PREFIX}/app-1/rollback").json()["data"]["deployment_uuid"]
        ledger.claim("app-1")
        ledger.update_status(token, DeploymentStatus.FAILED)

        (event,) = client.get(f"{PREFIX}/app-1/rollback-events").json()["data"]
        assert event["status"] == "failed"
        assert event["error_message"] == "Rollback deployment failed"
        assert event["completed_at"] is not None

    def test_unknown_application(self, client):
        assert client.get(f"{PREFIX}/ghost/rollback-events").status_code == 404
