"""
Shared pytest fixtures for shipyard-core tests.

This module provides:
- A file-backed SQLite engine per test (``tmp_path``), schema created
- A session factory, an inventory seeded with one server/destination/app
- A ledger with empty hooks, so tests opt into side effects explicitly
- ``finish_deployment`` for building deployment history quickly

Usage:
    def test_something(ledger, target):
        entry = ledger.enqueue(*target, commit="abc123def456")
"""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from shipyard.core.orm import create_schema, create_shipyard_engine, shipyard_session_factory
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.hooks import DeploymentHooks
from shipyard.execution.inventory import Inventory
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import (
    Application,
    DeploymentQueueEntry,
    DeploymentStatus,
    Destination,
    Server,
)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'shipyard.db'}"


@pytest.fixture
def engine(database_url) -> Generator[Engine, None, None]:
    engine = create_shipyard_engine(database_url)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return shipyard_session_factory(engine)


@pytest.fixture
def settings(database_url) -> ShipyardSettings:
    """Fast deadlines; no job-queue dispatch."""
    return ShipyardSettings(
        database_url=database_url,
        dispatch_on_enqueue=False,
        deployment_timeout_s=5.0,
        cancel_grace_s=1.0,
        check_in_interval_s=0.02,
    )


@pytest.fixture
def inventory(session_factory) -> Inventory:
    return Inventory(session_factory)


@pytest.fixture
def target(inventory) -> tuple[Application, Server, Destination]:
    """One application deployable to one server through one destination."""
    server = inventory.register_server("server-1", ip="10.0.0.1", server_id="srv-1")
    destination = inventory.register_destination("default", "shipyard", server.id, destination_id="dst-1")
    application = inventory.register_application("web", destination.id, ports_exposes="3000", application_id="app-1")
    return application, server, destination


@pytest.fixture
def second_target(inventory, target) -> tuple[Application, Server, Destination]:
    """Another application on the same server and destination."""
    _, server, destination = target
    application = inventory.register_application("api", destination.id, application_id="app-2")
    return application, server, destination


@pytest.fixture
def ledger(session_factory) -> DeploymentLedger:
    return DeploymentLedger(session_factory, DeploymentHooks())


@pytest.fixture
def finish_deployment(ledger, target) -> Callable[..., DeploymentQueueEntry]:
    """Enqueue, claim and finish one deployment of the seeded application."""

    def _finish(commit: str, status: DeploymentStatus = DeploymentStatus.FINISHED, **kwargs) -> DeploymentQueueEntry:
        application, server, destination = kwargs.pop("target", target)
        entry = ledger.enqueue(application, server, destination, commit=commit, **kwargs)
        claimed = ledger.claim(application.id, "test-worker")
        assert claimed is not None and claimed.deployment_token == entry.deployment_token
        return ledger.update_status(entry.deployment_token, status)

    return _finish
