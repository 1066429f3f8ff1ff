"""Inventory: servers, destinations and applications.

The inventory is administratively managed by the wider platform; this
module only registers rows (for development and tests), reads them, and
resolves an application to the server/destination pair it deploys to.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from shipyard.core.errors import NotFoundError, ValidationError
from shipyard.core.orm.tables import ApplicationTable, DestinationTable, ServerTable
from shipyard.execution.models import (
    Application,
    Destination,
    Server,
    generate_id,
    utcnow,
)


class Inventory:
    """Read access (plus registration) for the live inventory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register_server(
        self,
        name: str,
        *,
        ip: str = "",
        private_key_id: str | None = None,
        settings: dict[str, Any] | None = None,
        server_id: str | None = None,
    ) -> Server:
        _validate_server_settings(settings or {})
        row = ServerTable(
            id=server_id or generate_id(),
            name=name,
            ip=ip,
            private_key_id=private_key_id,
            settings=settings or {},
            created_at=utcnow(),
        )
        with self._session_factory.begin() as session:
            session.add(row)
            session.flush()
            return _to_server(row)

    def register_destination(
        self,
        name: str,
        network: str,
        server_id: str | None,
        *,
        destination_id: str | None = None,
    ) -> Destination:
        row = DestinationTable(
            id=destination_id or generate_id(),
            name=name,
            network=network,
            server_id=server_id,
            created_at=utcnow(),
        )
        with self._session_factory.begin() as session:
            session.add(row)
            session.flush()
            return _to_destination(row)

    def register_application(
        self,
        name: str,
        destination_id: str | None,
        *,
        ports_exposes: str = "",
        application_id: str | None = None,
    ) -> Application:
        row = ApplicationTable(
            id=application_id or generate_id(),
            name=name,
            destination_id=destination_id,
            ports_exposes=ports_exposes,
            created_at=utcnow(),
        )
        with self._session_factory.begin() as session:
            session.add(row)
            session.flush()
            return _to_application(row)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_application(self, application_id: str) -> Application:
        """Return the application or raise :class:`NotFoundError`."""
        with self._session_factory() as session:
            row = session.get(ApplicationTable, application_id)
            if row is None:
                raise NotFoundError("application", application_id, "Application not found")
            return _to_application(row)

    def get_server(self, server_id: str) -> Server:
        with self._session_factory() as session:
            row = session.get(ServerTable, server_id)
            if row is None:
                raise NotFoundError("server", server_id)
            return _to_server(row)

    def resolve_target(self, application_id: str) -> tuple[Application, Server, Destination]:
        """Resolve the server/destination an application deploys to.

        Raises:
            NotFoundError: unknown application.
            ValidationError: the application has no resolvable destination,
                or the destination is not attached to a server.
        """
        with self._session_factory() as session:
            app_row = session.get(ApplicationTable, application_id)
            if app_row is None:
                raise NotFoundError("application", application_id, "Application not found")
            dest_row = session.get(DestinationTable, app_row.destination_id) if app_row.destination_id else None
            if dest_row is None:
                raise ValidationError(
                    f"Application {application_id} has no resolvable destination",
                    field="destination_id",
                    value=app_row.destination_id,
                ).with_context(application_id=application_id)
            server_row = session.get(ServerTable, dest_row.server_id) if dest_row.server_id else None
            if server_row is None:
                raise ValidationError(
                    f"Destination {dest_row.id} is not attached to a server",
                    field="server_id",
                    value=dest_row.server_id,
                ).with_context(application_id=application_id, destination=dest_row.id)
            return _to_application(app_row), _to_server(server_row), _to_destination(dest_row)

    def set_last_successful_deployment(self, application_id: str, deployment_token: str) -> None:
        with self._session_factory.begin() as session:
            session.execute(
                update(ApplicationTable)
                .where(ApplicationTable.id == application_id)
                .values(last_successful_deployment_token=deployment_token)
            )


def _validate_server_settings(settings: dict[str, Any]) -> None:
    if "deployment_timeout_s" not in settings:
        return
    value = settings["deployment_timeout_s"]
    try:
        valid = not isinstance(value, bool) and float(value) > 0
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise ValidationError(
            "deployment_timeout_s must be a positive number of seconds",
            field="deployment_timeout_s",
            value=value,
        )


def _to_server(row: ServerTable) -> Server:
    return Server(
        id=row.id,
        name=row.name,
        ip=row.ip,
        private_key_id=row.private_key_id,
        settings=dict(row.settings or {}),
    )


def _to_destination(row: DestinationTable) -> Destination:
    return Destination(id=row.id, name=row.name, network=row.network, server_id=row.server_id)


def _to_application(row: ApplicationTable) -> Application:
    return Application(
        id=row.id,
        name=row.name,
        destination_id=row.destination_id,
        ports_exposes=row.ports_exposes,
        last_successful_deployment_token=row.last_successful_deployment_token,
    )
