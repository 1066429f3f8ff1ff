"""Dependency probes for the health aggregator.

Each function is an ``async`` callable that returns ``True`` on success or
raises on failure.  They are bound to URLs / engines at app-startup time
with ``functools.partial`` and wrapped in
:class:`shipyard.core.health.HealthCheck`.

Features:
    - **check_database():** ``SELECT 1`` through the ledger's SQLAlchemy engine
    - **check_redis():** Redis PING via redis.asyncio
    - **check_http():** any endpoint that must answer 2xx (realtime gateway)
    - **default_health_checks():** the four probes the service exposes

Examples:
    >>> from functools import partial
    >>> from shipyard.core.health import HealthCheck
    >>> from shipyard.core.health_checks import check_redis
    >>> checks = [HealthCheck("redis", partial(check_redis, "redis://localhost:6379/0"))]
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial

import httpx
import redis.asyncio as aioredis
from sqlalchemy import Engine, text

from shipyard.core.health import BacklogCheck, HealthCheck, Probe
from shipyard.core.settings import ShipyardSettings

# ── Database ─────────────────────────────────────────────────────────────


async def check_database(engine: Engine) -> bool:
    """``SELECT 1`` against the ledger database.

    The engine is synchronous, so the round trip runs on a worker thread.
    """

    def _ping() -> bool:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    return await asyncio.to_thread(_ping)


# ── Redis ────────────────────────────────────────────────────────────────


async def check_redis(url: str, *, timeout: float = 3.0) -> bool:
    """``PING`` a Redis instance via *redis.asyncio*.

    Raises if Redis is unreachable.
    """
    r = aioredis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
    try:
        pong = await r.ping()
        return bool(pong)
    finally:
        await r.aclose()


# ── Generic HTTP endpoint ────────────────────────────────────────────────


async def check_http(url: str, *, timeout: float = 3.0) -> bool:
    """``GET`` an HTTP endpoint and expect a 2xx response.

    Non-success status, timeout and connection refusal all raise.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return True


async def check_soketi(base_url: str, ready_path: str = "/ready", *, timeout: float = 3.0) -> bool:
    """Realtime gateway readiness probe."""
    return await check_http(f"{base_url.rstrip('/')}{ready_path}", timeout=timeout)


# ── Wiring ───────────────────────────────────────────────────────────────


def default_health_checks(
    settings: ShipyardSettings,
    engine: Engine,
    count_failed_jobs: Callable[[], int],
) -> list[Probe]:
    """The probes behind ``GET /health``.

    *count_failed_jobs* is a blocking callable (normally
    ``FailedJobStore.count_unresolved``) and runs on a worker thread.
    """
    timeout = settings.probe_timeout_s
    return [
        HealthCheck("database", partial(check_database, engine), timeout_s=timeout),
        HealthCheck("redis", partial(check_redis, settings.redis_url, timeout=timeout), timeout_s=timeout),
        HealthCheck(
            "soketi",
            partial(check_soketi, settings.soketi_url, settings.soketi_ready_path, timeout=timeout),
            critical=False,
            timeout_s=timeout,
        ),
        BacklogCheck(
            "queue",
            partial(asyncio.to_thread, count_failed_jobs),
            warning_threshold=settings.failed_jobs_warning_threshold,
            timeout_s=timeout,
        ),
    ]
