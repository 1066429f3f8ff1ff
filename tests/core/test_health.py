"""Tests for health aggregation."""

import asyncio
import threading
from functools import partial
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from shipyard.core.health import BacklogCheck, HealthCheck, QueueCheckResult, run_health_checks
from shipyard.core.health_checks import check_database, check_http, check_redis, check_soketi, default_health_checks
from shipyard.core.settings import ShipyardSettings


async def _ok() -> bool:
    return True


async def _boom() -> bool:
    raise ConnectionError("refused")


async def _hang() -> bool:
    await asyncio.sleep(10)
    return True


class _ReadyHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        status = 200 if self.path == "/healthy" else 503
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture(autouse=True)
def _bypass_proxies(monkeypatch):
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")


@pytest.fixture
def http_server():
    """Local HTTP server: ``/healthy`` answers 200, everything else 503."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _ReadyHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


CLOSED_PORT_URL = "http://127.0.0.1:1"


def _count(n: int):
    async def _fn() -> int:
        return n

    return _fn


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_ok(self):
        assert await HealthCheck("redis", _ok).run() == "ok"

    @pytest.mark.asyncio
    async def test_exception_is_failing(self):
        assert await HealthCheck("redis", _boom).run() == "failing"

    @pytest.mark.asyncio
    async def test_timeout_is_failing(self):
        assert await HealthCheck("redis", _hang, timeout_s=0.05).run() == "failing"


class TestBacklogCheck:
    @pytest.mark.asyncio
    async def test_below_threshold(self):
        result = await BacklogCheck("queue", _count(0), warning_threshold=100).run()
        assert result == QueueCheckResult(status="ok", failed=0)

    @pytest.mark.asyncio
    async def test_at_threshold_warns(self):
        result = await BacklogCheck("queue", _count(100), warning_threshold=100).run()
        assert result.status == "warning"
        assert result.failed == 100

    @pytest.mark.asyncio
    async def test_unreadable_count_is_failing(self):
        async def _broken() -> int:
            raise RuntimeError("broker down")

        result = await BacklogCheck("queue", _broken).run()
        assert result == QueueCheckResult(status="failing", failed=0)


class TestAggregation:
    @pytest.mark.asyncio
    async def test_all_ok_is_healthy(self):
        report = await run_health_checks(
            [
                HealthCheck("database", _ok),
                HealthCheck("redis", _ok),
                HealthCheck("soketi", _ok, critical=False),
                BacklogCheck("queue", _count(0)),
            ]
        )
        assert report.status == "healthy"
        assert report.model_dump() == {
            "status": "healthy",
            "checks": {
                "database": "ok",
                "redis": "ok",
                "soketi": "ok",
                "queue": {"status": "ok", "failed": 0},
            },
        }

    @pytest.mark.asyncio
    async def test_soketi_failing_stays_healthy(self):
        report = await run_health_checks(
            [HealthCheck("database", _ok), HealthCheck("soketi", _boom, critical=False)]
        )
        assert report.status == "healthy"
        assert report.checks["soketi"] == "failing"

    @pytest.mark.asyncio
    async def test_queue_failing_stays_healthy(self):
        async def _broken() -> int:
            raise RuntimeError("broker down")

        report = await run_health_checks([HealthCheck("database", _ok), BacklogCheck("queue", _broken)])
        assert report.status == "healthy"

    @pytest.mark.asyncio
    async def test_critical_failure_degrades(self):
        report = await run_health_checks([HealthCheck("database", _boom), HealthCheck("redis", _ok)])
        assert report.status == "degraded"
        assert report.checks == {"database": "failing", "redis": "ok"}

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        slow = [HealthCheck(f"p{i}", _hang, timeout_s=0.2) for i in range(4)]
        loop = asyncio.get_running_loop()
        started = loop.time()
        await run_health_checks(slow)
        assert loop.time() - started < 0.6


class TestProbes:
    @pytest.mark.asyncio
    async def test_check_database(self, engine):
        assert await check_database(engine) is True

    def test_default_checks_names_and_criticality(self, engine, settings):
        checks = default_health_checks(settings, engine, lambda: 0)
        assert [c.name for c in checks] == ["database", "redis", "soketi", "queue"]
        assert {c.name: c.critical for c in checks} == {
            "database": True,
            "redis": True,
            "soketi": False,
            "queue": False,
        }

    @pytest.mark.asyncio
    async def test_default_queue_check_counts(self, engine):
        settings = ShipyardSettings(_env_file=None, failed_jobs_warning_threshold=2)
        queue = default_health_checks(settings, engine, lambda: 3)[-1]
        result = await queue.run()
        assert result == QueueCheckResult(status="warning", failed=3)

    @pytest.mark.asyncio
    async def test_check_http_ok(self, http_server):
        assert await check_http(f"{http_server}/healthy", timeout=2.0) is True

    @pytest.mark.asyncio
    async def test_check_soketi_503_raises(self, http_server):
        with pytest.raises(httpx.HTTPStatusError):
            await check_soketi(http_server, timeout=2.0)

    @pytest.mark.asyncio
    async def test_check_soketi_closed_port_raises(self):
        with pytest.raises(httpx.ConnectError):
            await check_soketi(CLOSED_PORT_URL, timeout=2.0)

    @pytest.mark.asyncio
    async def test_check_redis_closed_port_is_failing(self):
        probe = HealthCheck("redis", partial(check_redis, "redis://127.0.0.1:1/0", timeout=1.0), timeout_s=2.0)
        assert await probe.run() == "failing"

    @pytest.mark.asyncio
    async def test_unready_soketi_keeps_service_healthy(self, http_server):
        report = await run_health_checks(
            [
                HealthCheck("database", _ok),
                HealthCheck("soketi", partial(check_soketi, http_server, timeout=2.0), critical=False),
                HealthCheck("soketi-down", partial(check_soketi, CLOSED_PORT_URL, timeout=2.0), critical=False),
            ]
        )
        assert report.status == "healthy"
        assert report.checks == {"database": "ok", "soketi": "failing", "soketi-down": "failing"}

    @pytest.mark.asyncio
    async def test_default_checks_against_unreachable_services(self, engine):
        settings = ShipyardSettings(
            _env_file=None, redis_url="redis://127.0.0.1:1/0", soketi_url=CLOSED_PORT_URL, probe_timeout_s=2.0
        )
        report = await run_health_checks(default_health_checks(settings, engine, lambda: 0))
        assert report.checks["database"] == "ok"
        assert report.checks["soketi"] == "failing"
        assert report.checks["redis"] == "failing"
        assert report.status == "degraded"
