"""Pytest configuration and shared fixtures."""
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Add src directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from models import ActionType, Identity, ParsedIntent, RequestRecord  # noqa: E402


class FakeClock:
    """Controllable clock; stores take it in place of time.time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExtractor:
    """Returns canned intents keyed by raw text and records the history it was given."""

    def __init__(self, responses: Optional[Dict[str, List[ParsedIntent]]] = None, error: Optional[Exception] = None):
        self.responses = responses or {}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def extract(self, raw_text, history=None, metrics=None):
        self.calls.append({"raw_text": raw_text, "history": history})
        if self.error is not None:
            raise self.error
        return list(self.responses[raw_text])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_policy() -> Dict[str, Any]:
    """Sample policy configuration for testing."""
    return {
        "services": {
            "AWS": {
                "actions": ["read_access", "write_access", "admin_access"],
                "resources": ["prod-db", "staging-db", "analytics-db", "s3-data-bucket"],
                "resource_restrictions": {
                    "prod-db": {
                        "read_access": ["Engineering", "SRE", "Security"],
                        "write_access": ["SRE", "Security"],
                        "admin_access": ["Security"],
                    }
                },
                "default_approver": "Security",
                "sensitive_actions": {
                    "write_access": {"policy": "REQUIRES_APPROVAL"},
                    "admin_access": "DENY",
                },
            },
            "Slack": {
                "actions": ["join_channel", "leave_channel"],
                "resources": [
                    "#general",
                    "#random",
                    "#social",
                    "#announcements",
                    "#fde-team-updates",
                    "#fde-updates",
                    "#engineering",
                    "#executive-confidential",
                ],
                "auto_approve_channels": ["#general", "#random", "#social", "#announcements"],
                "restricted_channels": ["#executive-confidential", "#hr-sensitive"],
                "channel_approver": "IT",
            },
            "Jira": {
                "actions": ["read_access", "write_access", "admin_access"],
                "resources": ["ENGINEERING", "PRODUCT", "SUPPORT"],
            },
            "Okta": {
                "actions": ["create_user", "delete_user", "assign_admin", "revoke_access"],
                "resources": [],
                "default_approver": "IT",
                "sensitive_actions": {
                    "create_user": {"policy": "REQUIRES_APPROVAL"},
                    "delete_user": {"policy": "REQUIRES_APPROVAL"},
                    "assign_admin": "DENY",
                },
            },
            "GitHub": {
                "actions": ["read_access", "write_access", "admin_access"],
                "resources": ["opendoor/backend", "opendoor/frontend", "opendoor/infra"],
            },
        },
        "roles": {
            "Engineering": {"allowed_systems": ["Slack", "Jira", "GitHub", "AWS"], "max_hardware_budget": 3000},
            "Finance": {"allowed_systems": ["Slack", "Jira", "NetSuite", "Excel"], "max_hardware_budget": 2000},
            "Interns": {"allowed_systems": ["Slack", "Jira"], "max_hardware_budget": 1500},
            "Security": {"allowed_systems": ["*"], "can_revoke_access": True},
        },
    }


@pytest.fixture
def make_request():
    """Factory for RequestRecords with sensible defaults."""

    def _make(
        raw_text: str = "Add me to #general Slack channel",
        email: str = "alice@opendoor.com",
        department: str = "Engineering",
        groups=(),
        request_id: str = "req_001",
    ) -> RequestRecord:
        return RequestRecord(
            id=request_id,
            identity=Identity(email=email, department=department, groups=tuple(groups)),
            raw_text=raw_text,
        )

    return _make


@pytest.fixture
def slack_intent() -> ParsedIntent:
    return ParsedIntent(
        action_type=ActionType.ACCESS_REQUEST,
        target_system="Slack",
        target_resource="#general",
        requested_action="join_channel",
        justification="team collaboration",
        confidence=0.9,
    )


@pytest.fixture
def mock_llm_response():
    """Factory for mock OpenAI chat completion responses."""

    def _make(content: Any) -> MagicMock:
        mock_message = MagicMock()
        mock_message.content = content if isinstance(content, str) or content is None else json.dumps(content)
        mock_choice = MagicMock()
        mock_choice.message = mock_message

        mock_response = MagicMock()
        mock_response.choices = [mock_choice]
        mock_usage = MagicMock()
        mock_usage.prompt_tokens = 100
        mock_usage.completion_tokens = 50
        mock_response.usage = mock_usage
        return mock_response

    return _make


@pytest.fixture
def mock_metrics():
    """Fresh AgentMetrics for testing."""
    from metrics import AgentMetrics

    return AgentMetrics()
