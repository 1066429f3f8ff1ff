"""API schemas: response envelopes and per-resource models."""

from shipyard.api.schemas.common import PagedResponse, PageMeta, ProblemDetail, SuccessResponse

__all__ = [
    "PageMeta",
    "PagedResponse",
    "ProblemDetail",
    "SuccessResponse",
]
