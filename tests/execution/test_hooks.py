"""Tests for deployment hooks and the inventory they update."""

import pytest

from shipyard.core.errors import NotFoundError, ValidationError
from shipyard.execution.hooks import DeploymentHooks, default_hooks
from shipyard.execution.ledger import DeploymentLedger
from shipyard.execution.models import DeploymentStatus


class TestDefaultHooks:
    def test_records_last_successful(self, session_factory, inventory, target):
        ledger = DeploymentLedger(session_factory, default_hooks(inventory))
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        ledger.update_status(entry.deployment_token, DeploymentStatus.FINISHED)
        assert inventory.get_application("app-1").last_successful_deployment_token == entry.deployment_token

    def test_failed_not_recorded(self, session_factory, inventory, target):
        ledger = DeploymentLedger(session_factory, default_hooks(inventory))
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        ledger.update_status(entry.deployment_token, DeploymentStatus.FAILED)
        assert inventory.get_application("app-1").last_successful_deployment_token is None

    def test_dispatches_when_send_given(self, session_factory, inventory, target):
        sent = []
        ledger = DeploymentLedger(session_factory, default_hooks(inventory, send=sent.append))
        ledger.enqueue(*target)
        assert sent == ["app-1"]

    def test_no_dispatch_without_send(self, inventory):
        assert default_hooks(inventory).on_created == []

    def test_empty_hooks(self):
        hooks = DeploymentHooks()
        assert hooks.on_created == [] and hooks.on_transition == []


class TestInventory:
    def test_resolve_target(self, inventory, target):
        app, server, dest = inventory.resolve_target("app-1")
        assert (app.name, server.name, dest.name) == ("web", "server-1", "default")

    def test_unknown_application(self, inventory):
        with pytest.raises(NotFoundError):
            inventory.resolve_target("ghost")

    def test_application_without_destination(self, inventory):
        inventory.register_application("orphan", None, application_id="app-orphan")
        with pytest.raises(ValidationError):
            inventory.resolve_target("app-orphan")

    def test_destination_without_server(self, inventory):
        dest = inventory.register_destination("floating", "net", None)
        inventory.register_application("drift", dest.id, application_id="app-drift")
        with pytest.raises(ValidationError):
            inventory.resolve_target("app-drift")
