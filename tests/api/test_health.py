"""Tests for the health endpoints."""

import pytest
from fastapi.testclient import TestClient

from shipyard.api.app import create_app
from shipyard.core.health import BacklogCheck, HealthCheck


async def probe_ok() -> bool:
    return True


async def probe_down() -> bool:
    raise ConnectionError("connection refused")


async def no_failed_jobs() -> int:
    return 0


class TestHealthEndpoint:
    def test_all_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "healthy",
            "checks": {
                "database": "ok",
                "redis": "ok",
                "soketi": "ok",
                "queue": {"status": "ok", "failed": 0},
            },
        }

    def test_versioned_alias(self, client):
        resp = client.get("/v1/health")
        assert resp.status_code == 200
        assert resp.json() == client.get("/health").json()

    def test_no_credentials_required(self, client):
        resp = client.get("/health", headers={"Authorization": ""})
        assert resp.status_code == 200

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"
        assert "X-Process-Time-Ms" in resp.headers


class TestDegradedHealth:
    @pytest.fixture
    def checks(self):
        def _make(database=probe_ok, soketi=probe_ok):
            return [
                HealthCheck("database", database),
                HealthCheck("redis", probe_ok),
                HealthCheck("soketi", soketi, critical=False),
                BacklogCheck("queue", no_failed_jobs),
            ]

        return _make

    def test_soketi_failing_stays_healthy(self, engine, api_settings, checks):
        with TestClient(create_app(settings=api_settings, health_checks=checks(soketi=probe_down))) as c:
            body = c.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["soketi"] == "failing"

    def test_database_failing_degrades_with_200(self, engine, api_settings, checks):
        with TestClient(create_app(settings=api_settings, health_checks=checks(database=probe_down))) as c:
            resp = c.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"
        assert resp.json()["checks"]["database"] == "failing"

    def test_queue_structure_when_backlog_grows(self, engine, api_settings):
        async def lots() -> int:
            return 150

        checks = [HealthCheck("database", probe_ok), BacklogCheck("queue", lots, warning_threshold=100)]
        with TestClient(create_app(settings=api_settings, health_checks=checks)) as c:
            body = c.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["queue"] == {"status": "warning", "failed": 150}
