"""Deadline tracking for deployment execution.

Every deployment runs against an explicit deadline: the global
``deployment_timeout_s`` unless the target server's settings override it.
A reached deadline is a normal terminal failure (``failed`` with reason
``Timeout``), never a crash.

Examples:
    >>> deadline = Deadline.start(30.0, operation="deploy abc123")
    >>> deadline.remaining() > 0
    True
    >>> deadline.check()  # raises TimeoutExpired once 30s have passed
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from shipyard.core.errors import TimeoutExpired
from shipyard.execution.models import Server


@dataclass
class Deadline:
    """Absolute deadline on the monotonic clock.

    Attributes:
        deadline: Absolute deadline timestamp (monotonic clock)
        timeout_seconds: Original timeout value in seconds
        operation: Name/description of the operation
        start_time: When the deadline started
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    @classmethod
    def start(cls, timeout_seconds: float, operation: str = "operation") -> Deadline:
        if timeout_seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout_seconds}")
        now = time.monotonic()
        return cls(
            deadline=now + timeout_seconds,
            timeout_seconds=timeout_seconds,
            operation=operation,
            start_time=now,
        )

    def remaining(self) -> float:
        """Remaining time until deadline in seconds (negative once expired)."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        return time.monotonic() >= self.deadline

    def check(self) -> None:
        """Raise :class:`TimeoutExpired` if the deadline has passed."""
        if self.is_expired():
            raise TimeoutExpired(
                timeout=self.timeout_seconds,
                elapsed=self.elapsed,
                operation=self.operation,
            )

    def slice(self, interval: float) -> float:
        """Wait time for the next check-in: *interval*, capped at what remains."""
        return max(0.0, min(interval, self.remaining()))


def deployment_timeout_for(server: Server | None, default_s: float) -> float:
    """Resolve the deadline for a deployment on *server*.

    A server's positive ``settings["deployment_timeout_s"]`` wins over
    *default_s*.
    """
    override = server.deployment_timeout_s if server is not None else None
    if override is not None and override > 0:
        return override
    return default_s


__all__ = ["Deadline", "deployment_timeout_for"]
