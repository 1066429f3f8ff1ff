"""Fixtures for API tests: a TestClient over a file-backed SQLite ledger."""

import pytest
from fastapi.testclient import TestClient

from shipyard.api.app import create_app
from shipyard.api.settings import ShipyardAPISettings
from shipyard.core.health import BacklogCheck, HealthCheck


async def probe_ok() -> bool:
    return True


async def probe_down() -> bool:
    raise ConnectionError("connection refused")


async def no_failed_jobs() -> int:
    return 0


@pytest.fixture
def api_settings(database_url) -> ShipyardAPISettings:
    return ShipyardAPISettings(_env_file=None, database_url=database_url, dispatch_on_enqueue=False)


@pytest.fixture
def health_checks() -> list:
    return [
        HealthCheck("database", probe_ok),
        HealthCheck("redis", probe_ok),
        HealthCheck("soketi", probe_ok, critical=False),
        BacklogCheck("queue", no_failed_jobs),
    ]


@pytest.fixture
def client(engine, api_settings, health_checks, target):
    app = create_app(settings=api_settings, health_checks=health_checks)
    with TestClient(app) as c:
        yield c
