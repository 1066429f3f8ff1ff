"""
Database operations.

Thin wrapper around :func:`shipyard.core.orm.session.create_schema` so the
CLI and API share one code path for table creation.
"""

from __future__ import annotations

from shipyard.core.logging import get_logger
from shipyard.core.orm.base import ShipyardBase
from shipyard.core.orm.session import create_schema
from shipyard.ops.context import OperationContext
from shipyard.ops.requests import DatabaseInitRequest
from shipyard.ops.responses import DatabaseInitResult
from shipyard.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def initialize_database(
    ctx: OperationContext,
    request: DatabaseInitRequest | None = None,
) -> OperationResult[DatabaseInitResult]:
    """Create every shipyard table (idempotent)."""
    request = request or DatabaseInitRequest()
    timer = start_timer()

    if ctx.dry_run:
        return OperationResult.ok(
            DatabaseInitResult(tables_created=_table_names(), dry_run=True),
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        create_schema(ctx.engine)
        tables = _table_names()
        logger.info("database_initialized", request_id=ctx.request_id, tables=len(tables))
        return OperationResult.ok(DatabaseInitResult(tables_created=tables), elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail(
            "INTERNAL",
            f"Failed to create tables: {exc}",
            elapsed_ms=timer.elapsed_ms,
        )


def _table_names() -> list[str]:
    from shipyard.core.orm import tables  # noqa: F401

    return sorted(ShipyardBase.metadata.tables)
