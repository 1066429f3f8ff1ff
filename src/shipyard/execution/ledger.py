"""Deployment ledger: durable record of every deployment attempt.

The DeploymentLedger is the single source of truth for deployment state
and the only write path into ``deployment_queue`` and ``rollback_events``.
Every status change goes through the transition table in
:mod:`shipyard.execution.models`; nothing else mutates ``status``.

Architecture:
    .. code-block:: text

        DeploymentLedger: Single Source of Truth
        ┌───────────────────────────────────────────────────────────┐
        │  ENTRY WRITES                 STATE MACHINE               │
        │  ────────────                 ─────────────               │
        │  enqueue()                    update_status()  (CAS)      │
        │  enqueue_rollback()           claim()          (atomic)   │
        │  add_log_entry()              request_cancel()            │
        │                               force_status()   (admin)    │
        │  READS                                                    │
        │  ─────                        ROLLBACK AUDIT              │
        │  get()                        list_rollback_events()      │
        │  list_for_application()                                   │
        │  list_active() / list_in_progress()                       │
        │  pending_applications()                                   │
        ├───────────────────────────────────────────────────────────┤
        │  deployment_queue ──< rollback_events (from / to / new)   │
        └───────────────────────────────────────────────────────────┘

    Status writes are compare-and-set: the UPDATE is gated on the status
    the transition was validated against, so two writers racing on one
    entry cannot both win.  Claims are a single conditional UPDATE gated on
    ``status = 'queued'`` and on no other ``in_progress`` entry existing for
    the application; a partial unique index backs that invariant up.

Example:
    >>> ledger = DeploymentLedger(session_factory)
    >>> entry = ledger.enqueue(app, server, destination, commit="abc123def456")
    >>> claimed = ledger.claim(app.id, worker_id="worker-1")
    >>> ledger.update_status(claimed.deployment_token, DeploymentStatus.FINISHED)
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from sqlalchemy import Select, and_, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm import Session, aliased, sessionmaker

from shipyard.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from shipyard.core.logging import get_logger
from shipyard.core.orm.base import as_utc
from shipyard.core.orm.tables import DeploymentQueueTable, RollbackEventTable
from shipyard.execution.hooks import DeploymentHooks
from shipyard.execution.models import (
    TERMINAL_STATUSES,
    Application,
    DeploymentOptions,
    DeploymentQueueEntry,
    DeploymentStatus,
    Destination,
    ListFilters,
    RollbackEvent,
    Server,
    TriggerReason,
    TriggerType,
    generate_deployment_token,
    utcnow,
    validate_transition,
)

logger = get_logger(__name__)

_Q = DeploymentQueueTable


class DeploymentLedger:
    """Manages the deployment ledger (queue entries + rollback events).

    Args:
        session_factory: ``sessionmaker`` from
            :func:`shipyard.core.orm.shipyard_session_factory`.
        hooks: Post-creation / post-transition hooks.  Defaults to none.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        hooks: DeploymentHooks | None = None,
    ):
        self._session_factory = session_factory
        self._hooks = hooks or DeploymentHooks()

    @property
    def hooks(self) -> DeploymentHooks:
        return self._hooks

    # =========================================================================
    # ENTRY CREATION
    # =========================================================================

    def enqueue(
        self,
        application: Application,
        server: Server | None,
        destination: Destination | None,
        commit: str = "HEAD",
        pull_request_id: int = 0,
        options: DeploymentOptions | None = None,
    ) -> DeploymentQueueEntry:
        """Create a new ``queued`` entry with a fresh deployment token.

        Raises:
            ValidationError: no resolvable destination, destination not on
                *server*, or bad payload.
        """
        options = options or DeploymentOptions()
        _validate_target(application, server, destination)
        if not commit or not commit.strip():
            raise ValidationError("commit must not be empty", field="commit", value=commit)
        if pull_request_id < 0:
            raise ValidationError(
                "pull_request_id must be >= 0", field="pull_request_id", value=pull_request_id
            )

        token = generate_deployment_token()
        row = _Q(
            deployment_token=token,
            application_id=application.id,
            server_id=server.id,
            destination_id=destination.id,
            server_name=server.name,
            application_name=application.name,
            commit=commit.strip(),
            pull_request_id=pull_request_id,
            deployment_url=options.deployment_url or _default_url(application.id, token),
            force_rebuild=options.force_rebuild,
            is_webhook=options.is_webhook,
            rollback=options.rollback,
            status=DeploymentStatus.QUEUED.value,
            logs=[],
            created_at=utcnow(),
        )
        with self._session_factory.begin() as session:
            session.add(row)
            session.flush()
            entry = _to_entry(row)

        logger.info(
            "deployment_enqueued",
            deployment_token=entry.deployment_token,
            application_id=entry.application_id,
            commit=entry.commit,
            rollback=entry.rollback,
        )
        self._hooks.created(entry)
        return entry

    def enqueue_rollback(
        self,
        target: DeploymentQueueEntry,
        current: DeploymentQueueEntry | None,
        *,
        initiator: str | None,
        trigger_reason: TriggerReason = TriggerReason.MANUAL,
        trigger_type: TriggerType = TriggerType.MANUAL,
        metrics_snapshot: dict[str, Any] | None = None,
    ) -> tuple[DeploymentQueueEntry, RollbackEvent]:
        """Queue a replay of *target* and record the rollback event, in one transaction.

        The new entry copies the target's commit, server, destination and
        application snapshot fields and carries ``rollback=True``.
        """
        if target.status != DeploymentStatus.FINISHED:
            raise ValidationError(
                "Can only rollback to successful deployments",
                field="deployment_token",
                value=target.deployment_token,
            )

        token = generate_deployment_token()
        now = utcnow()
        new_row = _Q(
            deployment_token=token,
            application_id=target.application_id,
            server_id=target.server_id,
            destination_id=target.destination_id,
            server_name=target.server_name,
            application_name=target.application_name,
            commit=target.commit,
            pull_request_id=0,
            deployment_url=_default_url(target.application_id, token),
            force_rebuild=False,
            is_webhook=False,
            rollback=True,
            status=DeploymentStatus.QUEUED.value,
            logs=[],
            created_at=now,
        )
        with self._session_factory.begin() as session:
            session.add(new_row)
            session.flush()
            event_row = RollbackEventTable(
                application_id=target.application_id,
                from_deployment_id=current.id if current else None,
                to_deployment_id=target.id,
                rollback_deployment_id=new_row.id,
                from_commit=current.commit if current else None,
                to_commit=target.commit,
                trigger_reason=TriggerReason(trigger_reason).value,
                trigger_type=TriggerType(trigger_type).value,
                triggered_by=initiator,
                triggered_at=now,
                metrics_snapshot=metrics_snapshot,
            )
            session.add(event_row)
            session.flush()
            entry = _to_entry(new_row)
            event = _to_event(event_row, DeploymentStatus.QUEUED, None)

        logger.info(
            "rollback_enqueued",
            deployment_token=entry.deployment_token,
            application_id=entry.application_id,
            to_commit=event.to_commit,
            from_commit=event.from_commit,
            rollback_event_id=event.id,
            initiator=initiator,
        )
        self._hooks.created(entry)
        return entry, event

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, token: str) -> DeploymentQueueEntry:
        """Return the entry for *token* or raise :class:`NotFoundError`."""
        with self._session_factory() as session:
            return _to_entry(_row_by_token(session, token))

    def list_for_application(
        self,
        application_id: str,
        filters: ListFilters | None = None,
        *,
        batch_size: int = 100,
    ) -> EntryHistory:
        """Entries of one application, newest first.

        Returns a lazy, finite, restartable iterable: nothing is read until
        it is iterated, and each iteration starts again from the newest
        entry.
        """
        return EntryHistory(self, application_id, filters or ListFilters(), batch_size)

    def count_for_application(self, application_id: str, filters: ListFilters | None = None) -> int:
        filters = filters or ListFilters()
        stmt = _apply_filters(select(func.count()).select_from(_Q), application_id, filters)
        with self._session_factory() as session:
            return int(session.execute(stmt).scalar_one())

    def list_active(self, application_id: str | None = None) -> list[DeploymentQueueEntry]:
        """Non-terminal entries (queued or in progress), oldest first."""
        stmt = select(_Q).where(
            _Q.status.in_([DeploymentStatus.QUEUED.value, DeploymentStatus.IN_PROGRESS.value])
        )
        if application_id is not None:
            stmt = stmt.where(_Q.application_id == application_id)
        stmt = stmt.order_by(_Q.created_at.asc(), _Q.id.asc())
        with self._session_factory() as session:
            return [_to_entry(r) for r in session.scalars(stmt)]

    def get_in_progress(self, application_id: str) -> DeploymentQueueEntry | None:
        stmt = select(_Q).where(
            _Q.application_id == application_id,
            _Q.status == DeploymentStatus.IN_PROGRESS.value,
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_entry(row) if row is not None else None

    def list_in_progress(self, application_id: str | None = None) -> list[DeploymentQueueEntry]:
        """Claimed entries, oldest claim first."""
        stmt = select(_Q).where(_Q.status == DeploymentStatus.IN_PROGRESS.value)
        if application_id is not None:
            stmt = stmt.where(_Q.application_id == application_id)
        stmt = stmt.order_by(_Q.started_at.asc(), _Q.id.asc())
        with self._session_factory() as session:
            return [_to_entry(r) for r in session.scalars(stmt)]

    def pending_applications(self) -> list[str]:
        """Applications with queued work and no entry currently in progress."""
        busy = aliased(_Q)
        stmt = (
            select(_Q.application_id)
            .where(
                _Q.status == DeploymentStatus.QUEUED.value,
                ~exists().where(
                    busy.application_id == _Q.application_id,
                    busy.status == DeploymentStatus.IN_PROGRESS.value,
                ),
            )
            .group_by(_Q.application_id)
            .order_by(func.min(_Q.created_at))
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def _iter_entries(
        self,
        application_id: str,
        filters: ListFilters,
        batch_size: int,
    ) -> Iterator[DeploymentQueueEntry]:
        # Keyset pagination: new entries arriving mid-iteration never shift pages.
        cursor: tuple[Any, int] | None = None
        yielded = 0
        while True:
            limit = batch_size if filters.take is None else min(batch_size, filters.take - yielded)
            if limit <= 0:
                return
            stmt = _apply_filters(select(_Q), application_id, filters)
            stmt = stmt.order_by(_Q.created_at.desc(), _Q.id.desc()).limit(limit)
            if cursor is None:
                stmt = stmt.offset(filters.skip)
            else:
                created, last_id = cursor
                stmt = stmt.where(
                    or_(_Q.created_at < created, and_(_Q.created_at == created, _Q.id < last_id))
                )
            with self._session_factory() as session:
                rows = list(session.scalars(stmt))
                entries = [_to_entry(r) for r in rows]
                if rows:
                    cursor = (rows[-1].created_at, rows[-1].id)
            yield from entries
            yielded += len(entries)
            if len(entries) < limit:
                return

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def update_status(
        self,
        token: str,
        new_status: DeploymentStatus | str,
        *,
        reason: str | None = None,
        worker_id: str | None = None,
    ) -> DeploymentQueueEntry:
        """Apply one transition from the status table.

        Raises:
            NotFoundError: unknown token.
            InvalidTransitionError: the transition is not allowed from the
                entry's current status, or another writer changed the status
                first.
        """
        target = DeploymentStatus(new_status)
        with self._session_factory.begin() as session:
            row = _row_by_token(session, token)
            previous = DeploymentStatus(row.status)
            try:
                validate_transition(previous, target)
            except InvalidTransitionError as exc:
                exc.with_context(deployment_token=token, application_id=row.application_id)
                logger.warning(
                    "invalid_transition", deployment_token=token, current=previous.value, target=target.value
                )
                raise

            stmt = update(_Q).where(_Q.id == row.id, _Q.status == previous.value)
            if target == DeploymentStatus.IN_PROGRESS:
                stmt = stmt.where(~_in_progress_exists(row.application_id))
            stmt = stmt.values(**_transition_values(target, reason=reason, worker_id=worker_id))
            try:
                result = session.execute(stmt.execution_options(synchronize_session=False))
                won = result.rowcount == 1
            except SAIntegrityError:
                won = False
            if not won:
                current = self._current_status(token)
                logger.warning(
                    "invalid_transition",
                    deployment_token=token,
                    current=current,
                    target=target.value,
                    raced=True,
                )
                raise InvalidTransitionError(current, target.value).with_context(
                    deployment_token=token, application_id=row.application_id
                )
            session.refresh(row)
            entry = _to_entry(row)

        logger.info(
            "deployment_status_changed",
            deployment_token=token,
            application_id=entry.application_id,
            previous=previous.value,
            status=entry.status.value,
            reason=reason,
        )
        self._hooks.transitioned(entry, previous)
        return entry

    def claim(self, application_id: str, worker_id: str | None = None) -> DeploymentQueueEntry | None:
        """Atomically move the oldest ``queued`` entry of *application_id* to ``in_progress``.

        Returns ``None`` without blocking when the application has no queued
        entry or already has one in progress.
        """
        oldest = (
            select(_Q.id)
            .where(_Q.application_id == application_id, _Q.status == DeploymentStatus.QUEUED.value)
            .order_by(_Q.created_at.asc(), _Q.id.asc())
            .limit(1)
            .scalar_subquery()
        )
        stmt = (
            update(_Q)
            .where(
                _Q.id == oldest,
                _Q.status == DeploymentStatus.QUEUED.value,
                ~_in_progress_exists(application_id),
            )
            .values(**_transition_values(DeploymentStatus.IN_PROGRESS, worker_id=worker_id))
            .execution_options(synchronize_session=False)
        )
        try:
            with self._session_factory.begin() as session:
                if session.execute(stmt).rowcount != 1:
                    return None
                row = session.scalars(
                    select(_Q).where(
                        _Q.application_id == application_id,
                        _Q.status == DeploymentStatus.IN_PROGRESS.value,
                    )
                ).one()
                entry = _to_entry(row)
        except SAIntegrityError:
            logger.debug("claim_lost_race", application_id=application_id, worker_id=worker_id)
            return None

        logger.info(
            "deployment_claimed",
            deployment_token=entry.deployment_token,
            application_id=application_id,
            worker_id=worker_id,
        )
        self._hooks.transitioned(entry, DeploymentStatus.QUEUED)
        return entry

    def request_cancel(self, token: str) -> DeploymentQueueEntry:
        """Record a cancellation request.

        ``queued`` entries are cancelled immediately.  ``in_progress``
        entries get ``cancel_requested_at`` set; the worker running them
        finalizes the transition at its next check-in.

        Raises:
            InvalidTransitionError: the entry is already terminal.
        """
        entry = self.get(token)
        if entry.status == DeploymentStatus.QUEUED:
            try:
                return self.update_status(token, DeploymentStatus.CANCELLED_BY_USER, reason="Cancelled by user")
            except InvalidTransitionError:
                # Claimed between the read and the write; fall through to the in-progress path.
                entry = self.get(token)
        if entry.status != DeploymentStatus.IN_PROGRESS:
            validate_transition(entry.status, DeploymentStatus.CANCELLED_BY_USER)

        with self._session_factory.begin() as session:
            result = session.execute(
                update(_Q)
                .where(_Q.id == entry.id, _Q.status == DeploymentStatus.IN_PROGRESS.value)
                .values(cancel_requested_at=func.coalesce(_Q.cancel_requested_at, utcnow()))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self._current_status(token)
                logger.warning(
                    "invalid_transition", deployment_token=token, current=current, target="cancelled_by_user"
                )
                raise InvalidTransitionError(current, DeploymentStatus.CANCELLED_BY_USER.value).with_context(
                    deployment_token=token
                )
            entry = _to_entry(_row_by_token(session, token, refresh=True))

        logger.info("deployment_cancel_requested", deployment_token=token, application_id=entry.application_id)
        return entry

    def force_status(self, token: str, status: DeploymentStatus | str, *, actor: str) -> DeploymentQueueEntry:
        """Administrative override: set *status* without consulting the transition table.

        This is the only way to change a terminal entry.
        """
        target = DeploymentStatus(status)
        with self._session_factory.begin() as session:
            row = _row_by_token(session, token)
            previous = DeploymentStatus(row.status)
            values = _transition_values(target, reason=f"Status overridden by {actor}")
            if target == DeploymentStatus.QUEUED:
                values.update(started_at=None, finished_at=None, cancel_requested_at=None)
            try:
                session.execute(
                    update(_Q).where(_Q.id == row.id).values(**values).execution_options(synchronize_session=False)
                )
            except SAIntegrityError as exc:
                raise InvalidTransitionError(
                    previous.value, target.value, cause=exc
                ).with_context(deployment_token=token, application_id=row.application_id) from exc
            session.refresh(row)
            entry = _to_entry(row)

        logger.warning(
            "deployment_status_overridden",
            deployment_token=token,
            previous=previous.value,
            status=target.value,
            actor=actor,
        )
        self._hooks.transitioned(entry, previous)
        return entry

    def _current_status(self, token: str) -> str:
        with self._session_factory() as session:
            return session.execute(select(_Q.status).where(_Q.deployment_token == token)).scalar_one()

    # =========================================================================
    # LOG ENTRIES
    # =========================================================================

    def add_log_entry(
        self,
        token: str,
        output: str,
        type: str = "stdout",
        hidden: bool = False,
    ) -> dict[str, Any]:
        """Append one line to the entry's deployment log.

        Logs are not status: lines may be appended after the entry closed.
        The write is gated on ``log_seq`` so concurrent appenders retry
        instead of overwriting each other's lines.
        """
        while True:
            with self._session_factory() as session:
                row = _row_by_token(session, token)
                entry_id, seq, logs = row.id, row.log_seq, list(row.logs or [])
            line = {
                "order": seq + 1,
                "output": output,
                "type": type,
                "hidden": hidden,
                "timestamp": utcnow().isoformat(),
            }
            with self._session_factory.begin() as session:
                result = session.execute(
                    update(_Q)
                    .where(_Q.id == entry_id, _Q.log_seq == seq)
                    .values(logs=[*logs, line], log_seq=seq + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    return line
            logger.debug("log_append_retry", deployment_token=token, seq=seq)

    # =========================================================================
    # ROLLBACK EVENTS
    # =========================================================================

    def list_rollback_events(self, application_id: str) -> list[RollbackEvent]:
        """Rollback events of one application, newest first."""
        rollback_entry = aliased(_Q)
        stmt = (
            select(RollbackEventTable, rollback_entry.status, rollback_entry.finished_at)
            .outerjoin(rollback_entry, rollback_entry.id == RollbackEventTable.rollback_deployment_id)
            .where(RollbackEventTable.application_id == application_id)
            .order_by(RollbackEventTable.triggered_at.desc(), RollbackEventTable.id.desc())
        )
        with self._session_factory() as session:
            return [
                _to_event(row, DeploymentStatus(status) if status else None, finished_at)
                for row, status, finished_at in session.execute(stmt)
            ]


class EntryHistory:
    """Lazy, restartable view over one application's entries (newest first)."""

    def __init__(self, ledger: DeploymentLedger, application_id: str, filters: ListFilters, batch_size: int):
        self._ledger = ledger
        self._application_id = application_id
        self._filters = filters
        self._batch_size = max(1, batch_size)

    def __iter__(self) -> Iterator[DeploymentQueueEntry]:
        return self._ledger._iter_entries(self._application_id, self._filters, self._batch_size)

    def count(self) -> int:
        """Total matching entries, ignoring ``skip``/``take``."""
        return self._ledger.count_for_application(self._application_id, self._filters)


# ── Helpers ─────────────────────────────────────────────────────────────


def _default_url(application_id: str, token: str) -> str:
    return f"/applications/{application_id}/deployments/{token}"


def _validate_target(
    application: Application,
    server: Server | None,
    destination: Destination | None,
) -> None:
    if destination is None:
        raise ValidationError(
            f"Application {application.id} has no resolvable destination",
            field="destination_id",
            value=application.destination_id,
        ).with_context(application_id=application.id)
    if server is None or destination.server_id != server.id:
        raise ValidationError(
            f"Destination {destination.id} does not belong to the target server",
            field="server_id",
            value=server.id if server else None,
        ).with_context(application_id=application.id, destination=destination.id)


def _in_progress_exists(application_id: str):
    busy = aliased(_Q)
    return exists().where(
        busy.application_id == application_id,
        busy.status == DeploymentStatus.IN_PROGRESS.value,
    )


def _transition_values(
    target: DeploymentStatus,
    *,
    reason: str | None = None,
    worker_id: str | None = None,
) -> dict[str, Any]:
    values: dict[str, Any] = {"status": target.value}
    if target == DeploymentStatus.IN_PROGRESS:
        values["started_at"] = utcnow()
        values["worker_id"] = worker_id
    if target in TERMINAL_STATUSES:
        values["finished_at"] = utcnow()
        if reason is not None:
            values["failure_reason"] = reason
    return values


def _apply_filters(stmt: Select, application_id: str, filters: ListFilters) -> Select:
    stmt = stmt.where(_Q.application_id == application_id)
    if filters.statuses:
        stmt = stmt.where(_Q.status.in_([s.value for s in filters.statuses]))
    if filters.pull_request_id is not None:
        stmt = stmt.where(_Q.pull_request_id == filters.pull_request_id)
    elif not filters.include_pull_requests:
        stmt = stmt.where(_Q.pull_request_id == 0)
    if filters.rollback is not None:
        stmt = stmt.where(_Q.rollback.is_(filters.rollback))
    return stmt


def _row_by_token(session: Session, token: str, *, refresh: bool = False) -> DeploymentQueueTable:
    stmt = select(_Q).where(_Q.deployment_token == token)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    row = session.scalars(stmt).first()
    if row is None:
        raise NotFoundError("deployment", token, "Deployment not found.").with_context(deployment_token=token)
    return row


def _to_entry(row: DeploymentQueueTable) -> DeploymentQueueEntry:
    return DeploymentQueueEntry(
        id=row.id,
        deployment_token=row.deployment_token,
        application_id=row.application_id,
        server_id=row.server_id,
        destination_id=row.destination_id,
        server_name=row.server_name,
        application_name=row.application_name,
        commit=row.commit,
        pull_request_id=row.pull_request_id,
        deployment_url=row.deployment_url,
        status=DeploymentStatus(row.status),
        created_at=as_utc(row.created_at),
        started_at=as_utc(row.started_at),
        finished_at=as_utc(row.finished_at),
        force_rebuild=bool(row.force_rebuild),
        is_webhook=bool(row.is_webhook),
        rollback=bool(row.rollback),
        failure_reason=row.failure_reason,
        cancel_requested_at=as_utc(row.cancel_requested_at),
        worker_id=row.worker_id,
        logs=list(row.logs or []),
    )


def _to_event(
    row: RollbackEventTable,
    rollback_status: DeploymentStatus | None,
    finished_at: Any,
) -> RollbackEvent:
    return RollbackEvent(
        id=row.id,
        application_id=row.application_id,
        from_deployment_id=row.from_deployment_id,
        to_deployment_id=row.to_deployment_id,
        rollback_deployment_id=row.rollback_deployment_id,
        from_commit=row.from_commit,
        to_commit=row.to_commit,
        trigger_reason=TriggerReason(row.trigger_reason),
        trigger_type=TriggerType(row.trigger_type),
        triggered_by=row.triggered_by,
        triggered_at=as_utc(row.triggered_at),
        metrics_snapshot=row.metrics_snapshot,
        rollback_deployment_status=rollback_status,
        completed_at=as_utc(finished_at) if rollback_status and rollback_status.is_terminal else None,
    )
