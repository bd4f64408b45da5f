"""Policy loading, validation and lookup helpers for auto_ops_guardrail."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

Policy = Dict[str, Any]

SENSITIVE_RULES = {"DENY", "REQUIRES_APPROVAL"}


class PolicyConfigError(ValueError):
    """Raised when the policy file is missing required structure."""


def load_policy(path: Path) -> Policy:
    """
    Load and validate a policy configuration from a JSON file.

    Args:
        path: Path to policy.json

    Returns:
        Dictionary containing policy configuration

    Raises:
        FileNotFoundError: If policy file doesn't exist
        PolicyConfigError: If policy file is malformed
    """
    with path.open("r", encoding="utf-8") as policy_file:
        try:
            policy = json.load(policy_file)
        except json.JSONDecodeError as exc:
            raise PolicyConfigError(f"Policy file {path} is not valid JSON: {exc.msg}") from exc
    validate_policy(policy)
    return policy


def _sensitive_rule_name(rule: Any) -> Optional[str]:
    if isinstance(rule, str):
        return rule
    if isinstance(rule, dict):
        return rule.get("policy")
    return None


def validate_policy(policy: Any) -> None:
    if not isinstance(policy, dict):
        raise PolicyConfigError("Policy must be a JSON object")

    services = policy.get("services")
    roles = policy.get("roles")
    if not isinstance(services, dict):
        raise PolicyConfigError("Policy is missing a 'services' object")
    if not isinstance(roles, dict):
        raise PolicyConfigError("Policy is missing a 'roles' object")

    for name, service in services.items():
        if not isinstance(service, dict):
            raise PolicyConfigError(f"Service '{name}' must be an object")
        for key in ("actions", "resources"):
            if not isinstance(service.get(key, []), list):
                raise PolicyConfigError(f"Service '{name}' field '{key}' must be a list")
        for action, rule in (service.get("sensitive_actions") or {}).items():
            if _sensitive_rule_name(rule) not in SENSITIVE_RULES:
                raise PolicyConfigError(f"Service '{name}' has invalid sensitive action rule for '{action}': {rule!r}")
        restrictions = service.get("resource_restrictions") or {}
        if not isinstance(restrictions, dict):
            raise PolicyConfigError(f"Service '{name}' field 'resource_restrictions' must be an object")
        for resource, rules in restrictions.items():
            if not isinstance(rules, dict):
                raise PolicyConfigError(f"Service '{name}' restrictions for '{resource}' must be an object")
            for action, groups in rules.items():
                if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
                    raise PolicyConfigError(
                        f"Service '{name}' restriction '{resource}'.'{action}' must be a list of group names"
                    )

    for name, role in roles.items():
        if not isinstance(role, dict):
            raise PolicyConfigError(f"Role '{name}' must be an object")
        if not isinstance(role.get("allowed_systems", []), list):
            raise PolicyConfigError(f"Role '{name}' field 'allowed_systems' must be a list")
        budget = role.get("max_hardware_budget")
        if budget is not None and (isinstance(budget, bool) or not isinstance(budget, (int, float))):
            raise PolicyConfigError(f"Role '{name}' field 'max_hardware_budget' must be a number")


def find_service(policy: Policy, system: Optional[str]) -> Tuple[Optional[str], Dict[str, Any]]:
    """Case-insensitive service lookup; returns (canonical_name, config)."""
    if not system:
        return None, {}
    for name, config in policy.get("services", {}).items():
        if name.lower() == system.lower():
            return name, config
    return None, {}


def get_role(policy: Policy, department: str) -> Optional[Dict[str, Any]]:
    return policy.get("roles", {}).get(department)


def sensitive_rule(service_config: Dict[str, Any], action: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Return (rule, approver) for an action, accepting both "DENY" and {"policy": ..., "approver": ...}."""
    if not action:
        return None, None
    rule = (service_config.get("sensitive_actions") or {}).get(action)
    if isinstance(rule, dict):
        return rule.get("policy"), rule.get("approver")
    return rule, None
