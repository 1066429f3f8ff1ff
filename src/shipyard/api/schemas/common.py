"""
Common API schemas: shared envelopes and RFC 7807 errors.

Every deployment endpoint returns either :class:`SuccessResponse` or
:class:`PagedResponse` on 2xx, and :class:`ProblemDetail` on 4xx/5xx.
The health endpoints are the exception: they return the bare
:class:`~shipyard.core.health.HealthReport` body.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ProblemDetail(BaseModel):
    """RFC 7807 problem body, extended with ``code`` and ``message``.

    ``message`` repeats ``title`` for clients that read the conventional
    ``{"message": ...}`` error shape.

    Error Codes:
        - ``NOT_FOUND`` (404): unknown deployment or application
        - ``VALIDATION_FAILED`` (400): invalid input
        - ``NOT_CANCELLABLE`` (400): deployment already terminal
        - ``NO_ROLLBACK_TARGET`` (400): no earlier successful deployment
        - ``ROLLBACK_TARGET_INVALID`` (400): explicit target did not finish
        - ``INVALID_TRANSITION`` (409): concurrent state change
        - ``INTERNAL`` (500): unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "Deployment not found.",
            "status": 404,
            "code": "NOT_FOUND",
            "message": "Deployment not found.",
            "detail": "",
            "instance": "/api/v1/deployments/abc"
        }
    """

    type: str = Field(default="about:blank", description="Error type URI")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    code: str = Field(default="INTERNAL", description="Machine-readable error code")
    message: str = Field(default="", description="Same as title")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")


# ── Success Envelopes ────────────────────────────────────────────────────


class PageMeta(BaseModel):
    """Pagination metadata for list responses."""

    total: int = Field(description="Total items across all pages")
    skip: int = Field(description="Items skipped before this page")
    take: int = Field(description="Page size requested")
    has_more: bool = Field(description="True if more pages exist after current")


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success envelope for single-item responses."""

    data: T = Field(description="Response payload (type varies by endpoint)")
    message: str | None = Field(default=None, description="Human-readable outcome")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")


class PagedResponse(BaseModel, Generic[T]):
    """Paged success envelope for list responses."""

    data: list[T] = Field(description="List of items for this page")
    page: PageMeta = Field(description="Pagination metadata")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")
