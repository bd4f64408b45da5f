"""Plugin architecture for service-specific action payload construction."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from models import (
    ActionPayload,
    ActionType,
    AwsIamGrant,
    HardwarePurchase,
    JiraAccessGrant,
    OktaUserRevoke,
    ParsedIntent,
    SlackChannelAdd,
)


class SystemPlugin(ABC):
    """Base class for service-specific payload builders."""

    name: str
    handles: ActionType

    @abstractmethod
    def build_payload(self, intent: ParsedIntent, user: str, estimated_cost: Optional[float] = None) -> Optional[ActionPayload]:
        """Build the action payload, or None when the intent lacks what the action needs."""

    def missing_fields(self, intent: ParsedIntent) -> List[str]:
        """Names of intent fields this plugin needs but did not get."""
        return [] if intent.target_resource else ["target_resource"]


class SlackPlugin(SystemPlugin):
    """Plugin for Slack channel membership."""

    name = "slack"
    handles = ActionType.ACCESS_REQUEST

    def build_payload(self, intent, user, estimated_cost=None):
        channel = (intent.target_resource or "").strip()
        if not channel:
            return None
        return SlackChannelAdd(user=user, channel=channel if channel.startswith("#") else f"#{channel}")


class AWSPlugin(SystemPlugin):
    """Plugin for AWS IAM grants."""

    name = "aws"
    handles = ActionType.ACCESS_REQUEST

    ROLE_MAP: Dict[str, str] = {
        "read_access": "readonly-role",
        "write_access": "readwrite-role",
        "admin_access": "admin-role",
    }

    def build_payload(self, intent, user, estimated_cost=None):
        if not intent.target_resource:
            return None
        role = self.ROLE_MAP.get(intent.requested_action or "read_access", "readonly-role")
        return AwsIamGrant(user=user, role=role, resource=intent.target_resource)


class JiraPlugin(SystemPlugin):
    """Plugin for Jira project access."""

    name = "jira"
    handles = ActionType.ACCESS_REQUEST

    def build_payload(self, intent, user, estimated_cost=None):
        if not intent.target_resource:
            return None
        access = (intent.requested_action or "read_access").replace("_access", "")
        return JiraAccessGrant(user=user, project=intent.target_resource, access=access)


class OktaRevokePlugin(SystemPlugin):
    """Plugin for directory-level access revocation."""

    name = "okta"
    handles = ActionType.REVOKE_ACCESS

    def missing_fields(self, intent):
        return [] if intent.target_user else ["target_user"]

    def build_payload(self, intent, user, estimated_cost=None):
        if not intent.target_user:
            return None
        return OktaUserRevoke(target_user=intent.target_user)


class HardwarePlugin(SystemPlugin):
    """Plugin for hardware purchase records."""

    name = "hardware"
    handles = ActionType.HARDWARE_REQUEST

    def build_payload(self, intent, user, estimated_cost=None):
        if not intent.target_resource:
            return None
        return HardwarePurchase(user=user, item=intent.target_resource, estimated_cost=estimated_cost or 0)


# Access plugins are keyed by service; revoke and hardware plugins by action type.
SYSTEM_PLUGINS: Dict[str, SystemPlugin] = {
    "slack": SlackPlugin(),
    "aws": AWSPlugin(),
    "jira": JiraPlugin(),
}

ACTION_PLUGINS: Dict[ActionType, SystemPlugin] = {
    ActionType.REVOKE_ACCESS: OktaRevokePlugin(),
    ActionType.HARDWARE_REQUEST: HardwarePlugin(),
}


def register_plugin(plugin: SystemPlugin) -> None:
    """Register a new system plugin."""
    if plugin.handles is ActionType.ACCESS_REQUEST:
        SYSTEM_PLUGINS[plugin.name.lower()] = plugin
    else:
        ACTION_PLUGINS[plugin.handles] = plugin


def get_plugin(intent: ParsedIntent) -> Optional[SystemPlugin]:
    """Get the plugin responsible for an intent."""
    if intent.action_type is ActionType.ACCESS_REQUEST:
        return SYSTEM_PLUGINS.get((intent.target_system or "").lower())
    return ACTION_PLUGINS.get(intent.action_type)


def build_payload(intent: ParsedIntent, user: str, estimated_cost: Optional[float] = None) -> Optional[ActionPayload]:
    """Build a payload using the responsible plugin; None for unsupported or incomplete intents."""
    plugin = get_plugin(intent)
    if plugin is None:
        return None
    return plugin.build_payload(intent, user, estimated_cost)
