"""Request pipeline: gating, extraction, evaluation and aggregation per request.

Requests are processed strictly one at a time and intents left to right, since
each hardware intent must see the budget committed by the ones before it. All
mutable state lives in the injected stores.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional

from blacklist import BlacklistTracker
from config import AppConfig
from executor import execute
from intent_parser import IntentExtractionError, IntentExtractor
from logging_utils import build_audit_record, logger
from metrics import AgentMetrics
from models import (
    ActionType,
    Decision,
    DecisionStatus,
    DeniedDecision,
    MultiDecision,
    ParsedIntent,
    RequestRecord,
    SubDecision,
)
from policy import Policy
from policy_engine import estimate_hardware_cost, evaluate_request
from security_utils import InjectionDetector
from session import SessionStore
from spending import SpendingTracker

INJECTION_DENIAL = "Request rejected: Potential prompt injection detected"
GENERIC_PROCESSING_ERROR = "Processing error: the request could not be processed"


@dataclass
class PipelineStores:
    """Per-process mutable state, passed in explicitly."""

    blacklist: BlacklistTracker
    spending: SpendingTracker
    sessions: SessionStore

    @classmethod
    def from_config(cls, config: AppConfig, clock=time.time) -> PipelineStores:
        return cls(
            blacklist=BlacklistTracker(
                duration_seconds=config.security.blacklist_duration_seconds,
                expiry_inclusive=config.security.blacklist_expiry_inclusive,
                warning_ttl_seconds=config.security.warning_ttl_seconds,
                clock=clock,
            ),
            spending=SpendingTracker(window_days=config.spending.window_days, clock=clock),
            sessions=SessionStore(ttl_seconds=config.session.ttl_seconds, clock=clock),
        )


class RequestPipeline:
    def __init__(
        self,
        policy: Policy,
        extractor: IntentExtractor,
        detector: InjectionDetector,
        stores: PipelineStores,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.policy = policy
        self.extractor = extractor
        self.detector = detector
        self.stores = stores
        self.config = config or AppConfig.defaults()

    def _denied(self, request: RequestRecord, reason: str) -> MultiDecision:
        return MultiDecision.build(request.id, request.user_email, [DeniedDecision(reason=reason)])

    def _gate(self, request: RequestRecord, metrics: AgentMetrics) -> Optional[MultiDecision]:
        """Blacklist then injection gate. Returns a denial, or None when the request may proceed."""
        user = request.user_email
        blacklist = self.stores.blacklist

        if blacklist.is_blacklisted(user):
            metrics.blacklisted = True
            logger.warning(
                "Request from blacklisted user rejected",
                extra={"extra": {"correlation_id": metrics.correlation_id, "user_email": user}},
            )
            return self._denied(
                request,
                "Request rejected: user is temporarily blacklisted after repeated prompt injection attempts",
            )

        if self.detector.detect(request.raw_text):
            metrics.injection_detected = True
            outcome = blacklist.record_attempt(user, request.raw_text)
            logger.warning(
                "Prompt injection detected",
                extra={
                    "extra": {
                        "correlation_id": metrics.correlation_id,
                        "user_email": user,
                        "text": request.raw_text[:100],
                        "repeat_offense": outcome.is_repeat_offense,
                    }
                },
            )
            reason = INJECTION_DENIAL
            if outcome.is_repeat_offense:
                reason += "; repeat offense, user has been temporarily blacklisted"
            return self._denied(request, reason)

        return None

    def _extraction_failure(self, request: RequestRecord, exc: Exception, metrics: AgentMetrics) -> MultiDecision:
        metrics.extraction_failed = True
        logger.error(
            "Intent extraction failed",
            extra={"extra": {"correlation_id": metrics.correlation_id, "request_id": request.id, "error": str(exc)}},
        )
        if self.config.security.expose_error_details:
            return self._denied(request, f"Processing error: {exc}")
        return self._denied(request, GENERIC_PROCESSING_ERROR)

    def _decide_intents(
        self, request: RequestRecord, intents: List[ParsedIntent], metrics: AgentMetrics
    ) -> List[Decision]:
        spending = self.stores.spending
        running_total = spending.get_spending(request.user_email)
        threshold = self.config.security.confidence_threshold
        decisions: List[Decision] = []

        for index, intent in enumerate(intents):
            is_hardware = intent.action_type is ActionType.HARDWARE_REQUEST
            cost = estimate_hardware_cost(intent.target_resource) if is_hardware else None

            result = evaluate_request(intent, request.identity, running_total, self.policy, metrics)
            decision = execute(request, intent, result, cost, threshold)

            if is_hardware and decision.status in (DecisionStatus.APPROVED, DecisionStatus.REQUIRES_APPROVAL):
                spending.record(request.id, request.user_email, cost, decision.status)
                running_total += cost

            logger.info(
                "Sub-decision",
                extra={
                    "extra": {
                        "correlation_id": metrics.correlation_id,
                        **build_audit_record(request, intent, result, SubDecision(index, decision)),
                    }
                },
            )
            decisions.append(decision)

        return decisions

    def process_request(self, request: RequestRecord) -> MultiDecision:
        metrics = AgentMetrics()
        logger.info(
            "Processing request",
            extra={
                "extra": {
                    "correlation_id": metrics.correlation_id,
                    "request_id": request.id,
                    "user_email": request.user_email,
                    "department": request.department,
                }
            },
        )

        multi = self._gate(request, metrics)
        if multi is None:
            session_id = request.user_email
            history = self.stores.sessions.get_conversation_history(session_id)
            try:
                intents = self.extractor.extract(request.raw_text, history, metrics)
            except IntentExtractionError as exc:
                multi = self._extraction_failure(request, exc, metrics)
            else:
                metrics.intents_extracted = len(intents)
                decisions = self._decide_intents(request, intents, metrics)
                multi = MultiDecision.build(request.id, session_id, decisions)
                self.stores.sessions.add_turn(session_id, request, intents, multi)

        logger.info(
            "Final decision",
            extra={
                "extra": {
                    "correlation_id": metrics.correlation_id,
                    "request_id": request.id,
                    "summary": multi.to_dict()["summary"],
                    "metrics": metrics.finalize(),
                }
            },
        )
        return multi

    def process_batch(self, requests: List[RequestRecord]) -> List[MultiDecision]:
        """Process every request in order; a failing request becomes a denial and the batch continues."""
        results: List[MultiDecision] = []
        for request in requests:
            try:
                results.append(self.process_request(request))
            except Exception as exc:
                logger.exception(
                    "Unexpected error processing request",
                    extra={"extra": {"request_id": request.id, "error": str(exc)}},
                )
                reason = f"Processing error: {exc}" if self.config.security.expose_error_details else GENERIC_PROCESSING_ERROR
                results.append(self._denied(request, reason))
        return results
