"""Executor that turns policy verdicts into decisions without external side effects."""
from __future__ import annotations

from typing import List, Optional, Sequence

from models import (
    ActionType,
    ApprovedDecision,
    ClarificationDecision,
    Decision,
    DeniedDecision,
    MultiDecision,
    ParsedIntent,
    PolicyResult,
    RequestRecord,
    RequiresApprovalDecision,
)
from system_plugins import build_payload, get_plugin

CONFIDENCE_THRESHOLD = 0.7

PAYLOAD_FAILURE_QUESTION = (
    "Unable to generate action payload. Please provide more details about what system or resource you need access to."
)


def generate_clarification_questions(intent: ParsedIntent) -> List[str]:
    """Targeted follow-up questions for whichever intent fields are missing."""
    questions: List[str] = []

    if intent.action_type is ActionType.UNKNOWN:
        questions.append("What type of request is this? (e.g., system access, hardware, access revocation)")

    if intent.action_type is ActionType.ACCESS_REQUEST or intent.action_type is ActionType.UNKNOWN:
        if not intent.target_system:
            questions.append("Which system or tool do you need access to? (e.g., Slack, AWS, Jira)")
        if not intent.target_resource and intent.action_type is ActionType.ACCESS_REQUEST:
            questions.append("What specific resource do you need access to? (e.g., channel name, database, project)")

    if intent.action_type is ActionType.HARDWARE_REQUEST and not intent.target_resource:
        questions.append("Which hardware item do you need? (e.g., MacBook Air, 4K monitor, keyboard)")

    if intent.action_type is ActionType.REVOKE_ACCESS and not intent.target_user:
        questions.append("Whose access should be revoked? Please provide their email address.")

    if not questions:
        questions.append("Please provide more details about your request so we can process it correctly.")

    return questions


def _payload_failure_questions(intent: ParsedIntent) -> List[str]:
    plugin = get_plugin(intent)
    if plugin is not None and plugin.missing_fields(intent):
        return generate_clarification_questions(intent)
    return [PAYLOAD_FAILURE_QUESTION]


def execute(
    request: RequestRecord,
    intent: ParsedIntent,
    policy_result: PolicyResult,
    estimated_cost: Optional[float] = None,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
) -> Decision:
    """
    Decide the outcome for one intent.

    Order: low-information gate, policy denial, payload construction, then
    approval routing. A payload that cannot be built degrades to clarification.
    """
    if intent.confidence < confidence_threshold or intent.action_type is ActionType.UNKNOWN:
        return ClarificationDecision(questions=tuple(generate_clarification_questions(intent)))

    if not policy_result.allowed:
        return DeniedDecision(reason=policy_result.reason)

    payload = build_payload(intent, request.user_email, estimated_cost)
    if payload is None:
        return ClarificationDecision(questions=tuple(_payload_failure_questions(intent)))

    if policy_result.requires_approval:
        return RequiresApprovalDecision(
            payload=payload,
            reason=policy_result.reason,
            approver_group=policy_result.approver_group,
        )

    return ApprovedDecision(payload=payload)


def execute_multiple(
    request: RequestRecord,
    intents: Sequence[ParsedIntent],
    policy_results: Sequence[PolicyResult],
    estimated_costs: Sequence[Optional[float]],
    session_id: Optional[str] = None,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
) -> MultiDecision:
    """Map execute over a batch of intents and fold the outcomes into one MultiDecision."""
    if not len(intents) == len(policy_results) == len(estimated_costs):
        raise ValueError("intents, policy_results and estimated_costs must have the same length")

    decisions = [
        execute(request, intent, result, cost, confidence_threshold)
        for intent, result, cost in zip(intents, policy_results, estimated_costs)
    ]
    return MultiDecision.build(request.id, session_id or request.user_email, decisions)
