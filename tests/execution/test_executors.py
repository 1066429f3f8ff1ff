"""Tests for the execution collaborators."""

import threading

import pytest

from shipyard.core.errors import ConfigError
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.executors import (
    DeploymentExecutor,
    ExecutionOutcome,
    ExecutionRequest,
    LocalExecutor,
    StubExecutor,
    load_runner,
)


def _request(token: str = "tok-1") -> ExecutionRequest:
    return ExecutionRequest(
        deployment_token=token,
        application_id="app-1",
        application_name="web",
        server_id="srv-1",
        server_name="server-1",
        destination_id="dst-1",
        commit="abc123",
    )


def echo_runner(request: ExecutionRequest, abort: threading.Event) -> ExecutionOutcome:
    return ExecutionOutcome.ok(f"deployed {request.commit}")


def waiting_runner(request: ExecutionRequest, abort: threading.Event) -> ExecutionOutcome:
    if abort.wait(timeout=5):
        return ExecutionOutcome.abort_acknowledged()
    return ExecutionOutcome.failed("never aborted")


NOT_CALLABLE = 42


class TestProtocol:
    def test_implementations_conform(self):
        assert isinstance(StubExecutor(), DeploymentExecutor)
        with LocalExecutor(echo_runner, max_workers=1) as executor:
            assert isinstance(executor, DeploymentExecutor)


class TestStubExecutor:
    def test_immediate_outcome(self):
        assert StubExecutor().submit(_request()).result().success

    def test_hang_then_complete(self):
        executor = StubExecutor(hang=True)
        future = executor.submit(_request())
        assert not future.done()
        executor.complete("tok-1", ExecutionOutcome.failed("nope"))
        assert future.result().message == "nope"

    def test_abort_unknown(self):
        assert StubExecutor().abort("missing") is False


class TestLocalExecutor:
    def test_runs_runner(self):
        with LocalExecutor(echo_runner, max_workers=1) as executor:
            assert executor.submit(_request()).result(timeout=5).message == "deployed abc123"

    def test_abort_signals_runner(self):
        with LocalExecutor(waiting_runner, max_workers=1) as executor:
            future = executor.submit(_request())
            assert executor.abort("tok-1") is True
            assert future.result(timeout=5).aborted

    def test_abort_after_finish(self):
        with LocalExecutor(echo_runner, max_workers=1) as executor:
            executor.submit(_request()).result(timeout=5)
            assert executor.abort("tok-1") is False
            assert executor.active_tokens == []

    def test_from_settings_requires_runner(self):
        with pytest.raises(ConfigError):
            LocalExecutor.from_settings(ShipyardSettings(_env_file=None, deployment_runner=None))

    def test_from_settings(self):
        settings = ShipyardSettings(_env_file=None, deployment_runner=f"{__name__}:echo_runner")
        with LocalExecutor.from_settings(settings, max_workers=1) as executor:
            assert executor.submit(_request()).result(timeout=5).success


class TestLoadRunner:
    def test_resolves(self):
        assert load_runner(f"{__name__}:echo_runner") is echo_runner

    @pytest.mark.parametrize("path", ["no-colon", "shipyard_missing_module:run", f"{__name__}:NOT_CALLABLE"])
    def test_bad_paths(self, path):
        with pytest.raises(ConfigError):
            load_runner(path)
