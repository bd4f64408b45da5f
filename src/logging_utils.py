"""Consolidated structured logging configuration for auto_ops_guardrail."""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from models import DecisionStatus, ParsedIntent, PolicyResult, RequestRecord, SubDecision

LOGGER_NAME = "auto_ops_guardrail"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with correlation IDs and extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with structured extra data."""
        log_data = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": getattr(record, "extra", {}),
        }
        return json.dumps(log_data, default=str)


def setup_logger(
    name: str = LOGGER_NAME,
    level: int | str = logging.INFO,
    json_format: bool = True,
    log_path: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure structured logging on the error stream, never on stdout.

    - stderr output: JSON (default) or human-readable lines
    - Optional file output: JSON-formatted records appended to log_path

    Calling this again replaces the handlers installed by a previous call.

    Args:
        name: Logger name (default: "auto_ops_guardrail")
        level: Logging level (default: INFO)
        json_format: Emit JSON on stderr instead of human-readable lines
        log_path: Optional file to mirror JSON records into

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    logger.propagate = False

    stream_handler = logging.StreamHandler(sys.stderr)
    if json_format:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    logger.addHandler(stream_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger


def _policy_outcome(policy_result: PolicyResult, status: DecisionStatus) -> str:
    if status is DecisionStatus.CLARIFICATION_NEEDED:
        return "CLARIFICATION"
    if not policy_result.allowed:
        return "FAIL"
    if policy_result.requires_approval:
        return "NEEDS_APPROVAL"
    return "PASS"


def _reasoning(intent: ParsedIntent, policy_result: PolicyResult, status: DecisionStatus) -> str:
    parts = [f"Intent parsed as {intent.action_type.value} with {intent.confidence * 100:.0f}% confidence."]
    if intent.target_system:
        parts.append(f"Target system: {intent.target_system}.")
    if intent.target_resource:
        parts.append(f"Target resource: {intent.target_resource}.")

    if not policy_result.allowed:
        parts.append(f"Policy check failed: {policy_result.reason}")
    elif policy_result.requires_approval:
        parts.append(f"Policy check passed but requires approval: {policy_result.reason}")
    else:
        parts.append("All policy checks passed.")

    parts.append(f"Final decision: {status.value}.")
    return " ".join(parts)


def build_audit_record(
    request: RequestRecord,
    intent: ParsedIntent,
    policy_result: PolicyResult,
    sub_decision: SubDecision,
) -> Dict[str, Any]:
    """Build the per-intent audit record emitted alongside every sub-decision."""
    return {
        "request_id": request.id,
        "sub_request_index": sub_decision.sub_request_index,
        "user_email": request.user_email,
        "user_department": request.department,
        "parsed_intent": intent.to_dict(),
        "policy_evaluation": {
            "rules_checked": list(policy_result.rules_checked),
            "result": _policy_outcome(policy_result, sub_decision.status),
        },
        "sub_decision": sub_decision.to_dict(),
        "reasoning": _reasoning(intent, policy_result, sub_decision.status),
    }


# Initialize global logger instance
logger = setup_logger()
