"""Fixtures for CLI tests."""

import pytest
from typer.testing import CliRunner


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _no_job_queue(monkeypatch):
    monkeypatch.setenv("SHIPYARD_DISPATCH_ON_ENQUEUE", "false")
    monkeypatch.delenv("SHIPYARD_DEPLOYMENT_RUNNER", raising=False)
