"""Failed jobs: the dead letters of the scheduling queue.

Background jobs that fail permanently (a Celery scheduling task that
raised, or a worker-loop crash while processing an application) are
recorded here so operators can inspect and resolve them.  The ``queue``
health probe reports the unresolved count.

ARCHITECTURE
────────────
::

    FailedJobStore(session_factory)
      ├── .record(task_name, payload, exception)
      ├── .resolve(failed_job_id)  ─ mark as handled
      ├── .list_unresolved()       ─ newest first
      └── .count_unresolved()      ─ what the health probe reports

Example::

    store = FailedJobStore(session_factory)
    job = store.record(
        task_name="shipyard.deployments.process",
        payload={"application_id": "app-1"},
        exception="OperationalError: database is locked",
    )
    store.resolve(job.id)
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from shipyard.core.orm.base import as_utc
from shipyard.core.orm.tables import FailedJobTable
from shipyard.execution.models import FailedJob, utcnow


class FailedJobStore:
    """Records and inspects permanently failed background jobs."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def record(
        self,
        task_name: str,
        payload: dict[str, Any],
        exception: str,
        *,
        job_id: str | None = None,
        queue: str = "default",
    ) -> FailedJob:
        """Record a failed job.

        Args:
            task_name: Task that failed
            payload: Task arguments
            exception: Error message/stack trace
            job_id: Broker task id, if the job came from the queue
            queue: Queue the job was consumed from
        """
        row = FailedJobTable(
            job_id=job_id or str(uuid.uuid4()),
            task_name=task_name,
            queue=queue,
            payload=payload,
            exception=exception,
            failed_at=utcnow(),
        )
        with self._session_factory.begin() as session:
            session.add(row)
            session.flush()
            return _to_failed_job(row)

    def list_unresolved(self, limit: int = 100) -> list[FailedJob]:
        stmt = (
            select(FailedJobTable)
            .where(FailedJobTable.resolved_at.is_(None))
            .order_by(FailedJobTable.failed_at.desc(), FailedJobTable.id.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [_to_failed_job(r) for r in session.scalars(stmt)]

    def resolve(self, failed_job_id: int) -> bool:
        """Mark a failed job as resolved.

        Returns:
            True if resolved, False if not found or already resolved
        """
        with self._session_factory.begin() as session:
            result = session.execute(
                update(FailedJobTable)
                .where(FailedJobTable.id == failed_job_id, FailedJobTable.resolved_at.is_(None))
                .values(resolved_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def count_unresolved(self) -> int:
        with self._session_factory() as session:
            stmt = select(func.count()).select_from(FailedJobTable).where(FailedJobTable.resolved_at.is_(None))
            return int(session.execute(stmt).scalar_one())


def _to_failed_job(row: FailedJobTable) -> FailedJob:
    return FailedJob(
        id=row.id,
        job_id=row.job_id,
        task_name=row.task_name,
        queue=row.queue,
        payload=dict(row.payload or {}),
        exception=row.exception,
        failed_at=as_utc(row.failed_at),
        resolved_at=as_utc(row.resolved_at),
    )
