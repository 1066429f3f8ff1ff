"""
Health operations.

Runs the configured probes and returns the aggregated report.  The probe
list is supplied by the transport so tests can swap in fakes.
"""

from __future__ import annotations

from collections.abc import Sequence

from shipyard.core.health import HealthReport, Probe, QueueCheckResult, run_health_checks
from shipyard.ops.context import OperationContext
from shipyard.ops.result import OperationResult, start_timer


async def get_health(ctx: OperationContext, checks: Sequence[Probe]) -> OperationResult[HealthReport]:
    """Aggregate health status across the dependencies in *checks*.

    Always succeeds: a failing dependency shows up in the report body and
    as a warning, never as an operation error.
    """
    timer = start_timer()
    report = await run_health_checks(checks)

    warnings = []
    for name, result in report.checks.items():
        status = result.status if isinstance(result, QueueCheckResult) else result
        if status != "ok":
            warnings.append(f"{name}: {status}")

    return OperationResult.ok(report, warnings=warnings, elapsed_ms=timer.elapsed_ms)
