"""Data models and constants for the auto_ops_guardrail pipeline."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union


class ActionType(str, Enum):
    ACCESS_REQUEST = "ACCESS_REQUEST"
    HARDWARE_REQUEST = "HARDWARE_REQUEST"
    REVOKE_ACCESS = "REVOKE_ACCESS"
    UNKNOWN = "UNKNOWN"


class DecisionStatus(str, Enum):
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    REQUIRES_APPROVAL = "REQUIRES_APPROVAL"
    CLARIFICATION_NEEDED = "CLARIFICATION_NEEDED"


def clamp_confidence(value: Any) -> float:
    """Coerce a raw confidence value into [0, 1]; non-numeric or non-finite values become 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class Identity:
    """Caller-asserted identity. Not verified."""

    email: str
    department: str
    groups: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RequestRecord:
    """One inbound request from the input batch."""

    id: str
    identity: Identity
    raw_text: str

    @property
    def user_email(self) -> str:
        return self.identity.email

    @property
    def department(self) -> str:
        return self.identity.department


@dataclass
class ParsedIntent:
    """Structured intent extracted from raw text (untrusted until evaluated)."""

    action_type: ActionType
    target_system: Optional[str] = None
    target_resource: Optional[str] = None
    requested_action: Optional[str] = None
    target_user: Optional[str] = None
    justification: Optional[str] = None
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action_type"] = self.action_type.value
        return data


# ---------------------------------------------------------------------------
# Policy results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyAllowed:
    rules_checked: Tuple[str, ...] = ()

    allowed: ClassVar[bool] = True
    requires_approval: ClassVar[bool] = False


@dataclass(frozen=True)
class PolicyApprovalRequired:
    reason: str
    approver_group: Optional[str] = None
    rules_checked: Tuple[str, ...] = ()

    allowed: ClassVar[bool] = True
    requires_approval: ClassVar[bool] = True


@dataclass(frozen=True)
class PolicyDenied:
    reason: str
    rules_checked: Tuple[str, ...] = ()

    allowed: ClassVar[bool] = False
    requires_approval: ClassVar[bool] = False


PolicyResult = Union[PolicyAllowed, PolicyApprovalRequired, PolicyDenied]


# ---------------------------------------------------------------------------
# Action payloads. Each payload type pins its own service and action.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SlackChannelAdd:
    user: str
    channel: str

    service: ClassVar[str] = "Slack"
    action: ClassVar[str] = "SLACK_CHANNEL_ADD"


@dataclass(frozen=True)
class AwsIamGrant:
    user: str
    role: str
    resource: str

    service: ClassVar[str] = "AWS"
    action: ClassVar[str] = "AWS_IAM_GRANT"


@dataclass(frozen=True)
class JiraAccessGrant:
    user: str
    project: str
    access: str

    service: ClassVar[str] = "Jira"
    action: ClassVar[str] = "JIRA_ACCESS_GRANT"


@dataclass(frozen=True)
class OktaUserRevoke:
    target_user: str

    service: ClassVar[str] = "Okta"
    action: ClassVar[str] = "OKTA_USER_REVOKE"


@dataclass(frozen=True)
class HardwarePurchase:
    user: str
    item: str
    estimated_cost: float

    service: ClassVar[str] = "Hardware"
    action: ClassVar[str] = "HARDWARE_REQUEST"


ActionPayload = Union[SlackChannelAdd, AwsIamGrant, JiraAccessGrant, OktaUserRevoke, HardwarePurchase]


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovedDecision:
    payload: ActionPayload

    status: ClassVar[DecisionStatus] = DecisionStatus.APPROVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "service": self.payload.service,
            "action": self.payload.action,
            "payload": asdict(self.payload),
        }


@dataclass(frozen=True)
class DeniedDecision:
    reason: str

    status: ClassVar[DecisionStatus] = DecisionStatus.DENIED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason}


@dataclass(frozen=True)
class RequiresApprovalDecision:
    payload: ActionPayload
    reason: str
    approver_group: Optional[str] = None

    status: ClassVar[DecisionStatus] = DecisionStatus.REQUIRES_APPROVAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "service": self.payload.service,
            "action": self.payload.action,
            "reason": self.reason,
            "approver_group": self.approver_group,
            "payload": asdict(self.payload),
        }


@dataclass(frozen=True)
class ClarificationDecision:
    questions: Tuple[str, ...]

    status: ClassVar[DecisionStatus] = DecisionStatus.CLARIFICATION_NEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "clarification_questions": list(self.questions)}


Decision = Union[ApprovedDecision, DeniedDecision, RequiresApprovalDecision, ClarificationDecision]


@dataclass(frozen=True)
class SubDecision:
    sub_request_index: int
    decision: Decision

    @property
    def status(self) -> DecisionStatus:
        return self.decision.status

    def to_dict(self) -> Dict[str, Any]:
        return {"sub_request_index": self.sub_request_index, **self.decision.to_dict()}


@dataclass(frozen=True)
class DecisionSummary:
    total: int
    approved: int
    denied: int
    requires_approval: int
    clarification_needed: int

    @classmethod
    def from_decisions(cls, sub_decisions: List[SubDecision]) -> DecisionSummary:
        """Fold sub-decision statuses into counts; every status lands in exactly one bucket."""
        counts = {status: 0 for status in DecisionStatus}
        for sub in sub_decisions:
            counts[sub.status] += 1
        return cls(
            total=len(sub_decisions),
            approved=counts[DecisionStatus.APPROVED],
            denied=counts[DecisionStatus.DENIED],
            requires_approval=counts[DecisionStatus.REQUIRES_APPROVAL],
            clarification_needed=counts[DecisionStatus.CLARIFICATION_NEEDED],
        )


@dataclass(frozen=True)
class MultiDecision:
    """All sub-decisions for one inbound request."""

    request_id: str
    session_id: str
    sub_decisions: Tuple[SubDecision, ...]
    summary: DecisionSummary

    @classmethod
    def build(cls, request_id: str, session_id: str, decisions: List[Decision]) -> MultiDecision:
        subs = [SubDecision(sub_request_index=i, decision=d) for i, d in enumerate(decisions)]
        return cls(
            request_id=request_id,
            session_id=session_id,
            sub_decisions=tuple(subs),
            summary=DecisionSummary.from_decisions(subs),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "session_id": self.session_id,
            "sub_decisions": [sub.to_dict() for sub in self.sub_decisions],
            "summary": asdict(self.summary),
        }


# ---------------------------------------------------------------------------
# Stateful store records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpendingRecord:
    """Immutable ledger entry; only aged out by window filtering."""

    request_id: str
    user: str
    amount: float
    timestamp: float
    status: DecisionStatus


@dataclass(frozen=True)
class Turn:
    request: RequestRecord
    intents: Tuple[ParsedIntent, ...]
    decision: MultiDecision
    timestamp: float


@dataclass
class Session:
    id: str
    created_at: float
    last_activity: float
    turns: List[Turn] = field(default_factory=list)


@dataclass(frozen=True)
class InjectionAttempt:
    """Timestamped injection hit backing both warnings and blacklist entries."""

    user: str
    raw_text: str
    timestamp: float


@dataclass(frozen=True)
class AttemptOutcome:
    is_repeat_offense: bool
    was_blacklisted: bool
