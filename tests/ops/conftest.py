"""Fixtures for operation tests."""

import pytest

from shipyard.ops.context import OperationContext


@pytest.fixture
def ctx(session_factory, settings, target) -> OperationContext:
    return OperationContext(session_factory=session_factory, settings=settings, caller="test", initiator="alice")


@pytest.fixture
def dry_ctx(session_factory, settings, target) -> OperationContext:
    return OperationContext(session_factory=session_factory, settings=settings, caller="test", dry_run=True)
