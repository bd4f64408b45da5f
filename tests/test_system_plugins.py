"""Tests for system_plugins.py - Payload plugin registry."""
import pytest

import system_plugins
from models import ActionType, HardwarePurchase, ParsedIntent, SlackChannelAdd
from system_plugins import HardwarePlugin, SlackPlugin, build_payload, get_plugin, register_plugin


@pytest.fixture(autouse=True)
def isolated_registry(monkeypatch):
    monkeypatch.setattr(system_plugins, "SYSTEM_PLUGINS", dict(system_plugins.SYSTEM_PLUGINS))
    monkeypatch.setattr(system_plugins, "ACTION_PLUGINS", dict(system_plugins.ACTION_PLUGINS))


class TeamsPlugin(SlackPlugin):
    name = "Teams"


class FlatRateHardwarePlugin(HardwarePlugin):
    def build_payload(self, intent, user, estimated_cost=None):
        return HardwarePurchase(user=user, item=intent.target_resource, estimated_cost=99)


@pytest.mark.unit
class TestRegistry:
    def test_unregistered_system_has_no_plugin(self):
        intent = ParsedIntent(action_type=ActionType.ACCESS_REQUEST, target_system="Teams", target_resource="general")
        assert get_plugin(intent) is None
        assert build_payload(intent, "a@opendoor.com") is None

    def test_register_access_plugin_by_service_name(self):
        register_plugin(TeamsPlugin())
        intent = ParsedIntent(action_type=ActionType.ACCESS_REQUEST, target_system="teams", target_resource="general")

        assert isinstance(get_plugin(intent), TeamsPlugin)
        assert build_payload(intent, "a@opendoor.com") == SlackChannelAdd(user="a@opendoor.com", channel="#general")

    def test_register_replaces_action_plugin(self):
        register_plugin(FlatRateHardwarePlugin())
        intent = ParsedIntent(action_type=ActionType.HARDWARE_REQUEST, target_resource="keyboard")

        assert build_payload(intent, "a@opendoor.com", 150).estimated_cost == 99

    def test_missing_fields(self):
        intent = ParsedIntent(action_type=ActionType.REVOKE_ACCESS)
        assert get_plugin(intent).missing_fields(intent) == ["target_user"]
