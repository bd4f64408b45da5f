"""Deterministic policy enforcement for auto_ops_guardrail with observability.

Rules run in a fixed order and the first denial ends evaluation, so no later
rule can override an earlier one. Each consulted rule is appended to the trace
carried on the PolicyResult.
"""
from __future__ import annotations

import time
from typing import List, Optional

from logging_utils import logger
from metrics import AgentMetrics
from models import (
    ActionType,
    Identity,
    ParsedIntent,
    PolicyAllowed,
    PolicyApprovalRequired,
    PolicyDenied,
    PolicyResult,
)
from policy import Policy, find_service, get_role, sensitive_rule

DEFAULT_HARDWARE_COST = 500


def estimate_hardware_cost(item: Optional[str]) -> float:
    """Estimate hardware cost from brand/tier keywords in the item description."""
    item_lower = (item or "").lower()

    if "macbook" in item_lower:
        if "m3 max" in item_lower or "m4 max" in item_lower:
            return 3500
        if "m3 pro" in item_lower or "m4 pro" in item_lower:
            return 2500
        if "air" in item_lower:
            return 1200
        return 2000

    if "monitor" in item_lower or "display" in item_lower:
        if "4k" in item_lower or "ultrawide" in item_lower:
            return 800
        return 400

    if "keyboard" in item_lower or "mouse" in item_lower:
        return 150

    return DEFAULT_HARDWARE_COST


def _format_amount(amount: float) -> str:
    return f"${amount:,.0f}" if float(amount).is_integer() else f"${amount:,.2f}"


class _Evaluation:
    """Accumulates the rule trace for a single evaluation."""

    def __init__(self) -> None:
        self.rules: List[str] = []

    def check(self, rule: str) -> None:
        self.rules.append(rule)

    def deny(self, reason: str) -> PolicyDenied:
        return PolicyDenied(reason=reason, rules_checked=tuple(self.rules))

    def allow(self) -> PolicyAllowed:
        return PolicyAllowed(rules_checked=tuple(self.rules))

    def require_approval(self, reason: str, approver_group: Optional[str]) -> PolicyApprovalRequired:
        return PolicyApprovalRequired(reason=reason, approver_group=approver_group, rules_checked=tuple(self.rules))


def _evaluate_revoke(ev: _Evaluation, identity: Identity, policy: Policy) -> PolicyResult:
    ev.check("revoke_permission_check")
    role = get_role(policy, identity.department)
    if not role or not role.get("can_revoke_access", False):
        return ev.deny(f"Department '{identity.department}' is not authorized to revoke access")
    return ev.allow()


def _evaluate_hardware(ev: _Evaluation, intent: ParsedIntent, identity: Identity, running_total: float, policy: Policy) -> PolicyResult:
    ev.check("hardware_budget_check")
    department = identity.department
    role = get_role(policy, department)
    if role is None:
        return ev.deny(f"Department '{department}' is not defined in policy")

    cap = role.get("max_hardware_budget")
    if cap is None:
        return ev.deny(f"Department '{department}' does not have a hardware budget defined")

    cost = estimate_hardware_cost(intent.target_resource)
    if running_total + cost > cap:
        return ev.deny(
            f"Hardware cost ({_format_amount(cost)}) would exceed your budget: "
            f"{_format_amount(running_total)} already committed against a {_format_amount(cap)} limit "
            f"for '{department}' department"
        )
    return ev.allow()


def _is_system_allowed(system: str, department: str, policy: Policy) -> bool:
    """Check if the department's role allows access to the specified system."""
    role = get_role(policy, department) or {}
    allowed_systems = role.get("allowed_systems", [])
    if "*" in allowed_systems:
        return True
    return system.lower() in [s.lower() for s in allowed_systems]


def _channel_listed(channel: str, channels) -> bool:
    return channel.lower() in {c.lower() for c in channels or []}


def _evaluate_access(ev: _Evaluation, intent: ParsedIntent, identity: Identity, policy: Policy) -> PolicyResult:
    department = identity.department
    system = intent.target_system
    resource = intent.target_resource
    action = intent.requested_action

    # (a) system access
    ev.check("system_access_check")
    if not system:
        return ev.deny("Unable to process request - missing target system")
    role = get_role(policy, department)
    if role is None:
        return ev.deny(f"Department '{department}' is not authorized for '{system}' access (department not defined in policy)")
    if not _is_system_allowed(system, department, policy):
        allowed = ", ".join(role.get("allowed_systems", [])) or "none"
        return ev.deny(f"Department '{department}' is not authorized for '{system}' access. Allowed systems: {allowed}")

    service_name, service = find_service(policy, system)
    display_system = service_name or system

    # (b) resource existence
    catalog = service.get("resources") or []
    if catalog and resource:
        ev.check("resource_existence_check")
        if resource.lower() not in [r.lower() for r in catalog]:
            return ev.deny(f"'{resource}' is not a recognized resource for {display_system}")

    approval_reason: Optional[str] = None
    approver_group: Optional[str] = None

    # (c) sensitive actions
    rule, rule_approver = sensitive_rule(service, action)
    if rule is not None:
        ev.check("sensitive_action_check")
        if rule == "DENY":
            return ev.deny(f"Policy violation: '{action}' on '{display_system}' is explicitly denied")
        if rule == "REQUIRES_APPROVAL":
            approval_reason = f"'{action}' on '{display_system}' requires manual approval"
            approver_group = rule_approver or service.get("default_approver")

    # (d) resource-level group restrictions
    restrictions = service.get("resource_restrictions") or {}
    if resource and action:
        resource_rules = next((v for k, v in restrictions.items() if k.lower() == resource.lower()), None)
        allowed_groups = (resource_rules or {}).get(action)
        if allowed_groups is not None:
            ev.check("resource_restriction_check")
            held = {department, *identity.groups}
            if not held.intersection(allowed_groups):
                return ev.deny(
                    f"You do not have permission for '{action}' on '{resource}'. "
                    f"Allowed groups: {', '.join(allowed_groups) or 'none'}"
                )

    # (e) service-specific sub-policy
    if display_system.lower() == "slack" and resource:
        ev.check("slack_channel_policy_check")
        channel = resource if resource.startswith("#") else f"#{resource}"
        if _channel_listed(channel, service.get("restricted_channels")):
            return ev.deny(f"Channel '{channel}' is restricted and cannot be joined")
        if _channel_listed(channel, service.get("auto_approve_channels")):
            approval_reason, approver_group = None, None
        else:
            approval_reason = f"Channel '{channel}' is not in the auto-approve list and requires manual approval"
            approver_group = service.get("channel_approver") or service.get("default_approver")

    if approval_reason is not None:
        return ev.require_approval(approval_reason, approver_group)
    return ev.allow()


def evaluate_request(
    intent: ParsedIntent,
    identity: Identity,
    running_total: float,
    policy: Policy,
    metrics: AgentMetrics | None = None,
) -> PolicyResult:
    """
    Apply deterministic policy logic to an extracted intent.

    ``running_total`` is the user's committed hardware spend, including
    earlier intents of the same batch.

    Returns: PolicyAllowed | PolicyApprovalRequired | PolicyDenied
    """
    policy_start = time.time()
    ev = _Evaluation()

    if intent.action_type is ActionType.UNKNOWN:
        ev.check("action_type_check")
        result: PolicyResult = ev.deny("Unable to determine request intent - please clarify your request")
    elif intent.action_type is ActionType.REVOKE_ACCESS:
        result = _evaluate_revoke(ev, identity, policy)
    elif intent.action_type is ActionType.HARDWARE_REQUEST:
        result = _evaluate_hardware(ev, intent, identity, running_total, policy)
    elif intent.action_type is ActionType.ACCESS_REQUEST:
        result = _evaluate_access(ev, intent, identity, policy)
    else:
        result = ev.deny("Unable to process request - missing required information")

    logger.info(
        "Policy evaluation result",
        extra={
            "extra": {
                "correlation_id": metrics.correlation_id if metrics else None,
                "allowed": result.allowed,
                "requires_approval": result.requires_approval,
                "reason": getattr(result, "reason", None),
                "rules_checked": list(result.rules_checked),
                "action_type": intent.action_type.value,
                "system": intent.target_system,
            }
        },
    )

    if metrics:
        metrics.policy_evaluations += 1
        metrics.policy_latency_ms += int((time.time() - policy_start) * 1000)

    return result
