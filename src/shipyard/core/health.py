"""Health aggregation for the deployment core.

Provides:

- **Response models**: ``HealthReport`` and ``QueueCheckResult``, the JSON
  body served at ``/health`` and ``/v1/health``.
- **``HealthCheck``**: one timeout-bounded ``ok``/``failing`` probe with a
  ``critical`` flag.
- **``BacklogCheck``**: the job-queue probe, which reports
  ``{status, failed}`` instead of a bare status.
- **``run_health_checks()``**: runs every probe concurrently and folds the
  results into one report.

Aggregation rule: overall status is ``healthy`` unless a *critical* probe
(database, cache) is ``failing``.  Non-critical probes (realtime gateway,
queue backlog) are reported but never degrade the overall status.  A probe
that raises or times out reports ``failing``; it never takes the other
probes or the report down with it.

Quick start::

    from functools import partial
    from shipyard.core.health import HealthCheck, run_health_checks
    from shipyard.core.health_checks import check_redis

    report = await run_health_checks([
        HealthCheck("redis", partial(check_redis, redis_url)),
    ])
    report.model_dump()  # {"status": "healthy", "checks": {"redis": "ok"}}
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from pydantic import BaseModel

from shipyard.core.logging import get_logger

logger = get_logger(__name__)

ProbeStatus = Literal["ok", "failing"]


# ── Response Models ──────────────────────────────────────────────────────


class QueueCheckResult(BaseModel):
    """Job-queue probe result: always carries both fields, even when ``failed`` is 0."""

    status: Literal["ok", "warning", "failing"]
    failed: int = 0


class HealthReport(BaseModel):
    """Health body.  Regenerated on every request, never persisted."""

    status: Literal["healthy", "degraded"] = "healthy"
    checks: dict[str, ProbeStatus | QueueCheckResult] = {}


# ── Check Definitions ────────────────────────────────────────────────────


class Probe(Protocol):
    name: str
    critical: bool

    async def run(self) -> ProbeStatus | QueueCheckResult: ...

    def is_failing(self, result: ProbeStatus | QueueCheckResult) -> bool: ...


@dataclass
class HealthCheck:
    """Declarative description of a single dependency probe.

    Parameters
    ----------
    name : str
        Key in ``checks`` (``"database"``, ``"redis"``, ``"soketi"``).
    check_fn : () -> Awaitable[bool]
        Async callable.  Should return ``True`` or raise on failure.
    critical : bool
        If *True* (default), failure degrades the overall status.
    timeout_s : float
        Max seconds to wait before the probe is considered failing.
    """

    name: str
    check_fn: Callable[[], Awaitable[bool]]
    critical: bool = True
    timeout_s: float = 3.0

    async def run(self) -> ProbeStatus:
        try:
            ok = await asyncio.wait_for(self.check_fn(), timeout=self.timeout_s)
        except TimeoutError:
            logger.warning("health_probe_timeout", probe=self.name, timeout_s=self.timeout_s)
            return "failing"
        except Exception as exc:  # noqa: BLE001
            logger.warning("health_probe_failed", probe=self.name, error=str(exc)[:200])
            return "failing"
        return "ok" if ok else "failing"

    def is_failing(self, result: ProbeStatus | QueueCheckResult) -> bool:
        return result == "failing"


@dataclass
class BacklogCheck:
    """Count of permanently failed background jobs.

    ``status`` is ``warning`` at or above *warning_threshold*, ``failing``
    (with ``failed=0``) when the count itself cannot be read.
    """

    name: str
    count_fn: Callable[[], Awaitable[int]]
    warning_threshold: int = 100
    critical: bool = False
    timeout_s: float = 3.0

    async def run(self) -> QueueCheckResult:
        try:
            failed = int(await asyncio.wait_for(self.count_fn(), timeout=self.timeout_s))
        except TimeoutError:
            logger.warning("health_probe_timeout", probe=self.name, timeout_s=self.timeout_s)
            return QueueCheckResult(status="failing", failed=0)
        except Exception as exc:  # noqa: BLE001
            logger.warning("health_probe_failed", probe=self.name, error=str(exc)[:200])
            return QueueCheckResult(status="failing", failed=0)
        status = "warning" if failed >= self.warning_threshold else "ok"
        return QueueCheckResult(status=status, failed=failed)

    def is_failing(self, result: ProbeStatus | QueueCheckResult) -> bool:
        return isinstance(result, QueueCheckResult) and result.status == "failing"


# ── Aggregation ──────────────────────────────────────────────────────────


async def run_health_checks(checks: Sequence[Probe]) -> HealthReport:
    """Run every probe in parallel and aggregate into a :class:`HealthReport`."""
    results = await asyncio.gather(*[check.run() for check in checks])

    status: Literal["healthy", "degraded"] = "healthy"
    for check, result in zip(checks, results, strict=True):
        if check.critical and check.is_failing(result):
            status = "degraded"

    report = HealthReport(status=status, checks={c.name: r for c, r in zip(checks, results, strict=True)})
    if status == "degraded":
        failing = [c.name for c, r in zip(checks, results, strict=True) if c.is_failing(r)]
        logger.warning("health_degraded", failing=failing)
    return report
