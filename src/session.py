"""Per-user conversational sessions with lazy idle-timeout expiry.

Sessions are keyed by the user's identity string, so concurrent conversations
by the same user share one context window.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional

from models import DecisionStatus, MultiDecision, ParsedIntent, RequestRecord, Session, Turn

DEFAULT_TTL_SECONDS = 15 * 60


class SessionStore:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def clear_expired(self) -> None:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if now - s.last_activity > self.ttl_seconds]
        for sid in expired:
            del self._sessions[sid]

    def get_session(self, session_id: str) -> Optional[Session]:
        self.clear_expired()
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        existing = self.get_session(session_id)
        if existing is not None:
            return existing
        now = self._clock()
        session = Session(id=session_id, created_at=now, last_activity=now)
        self._sessions[session_id] = session
        return session

    def add_turn(
        self,
        session_id: str,
        request: RequestRecord,
        intents: List[ParsedIntent],
        decision: MultiDecision,
    ) -> Turn:
        session = self.get_or_create(session_id)
        now = self._clock()
        if session.turns:
            # keep turns ordered even if the clock steps backwards
            now = max(now, session.turns[-1].timestamp)
        turn = Turn(request=request, intents=tuple(intents), decision=decision, timestamp=now)
        session.turns.append(turn)
        session.last_activity = now
        return turn

    def get_pending_clarifications(self, session_id: str) -> Optional[List[ParsedIntent]]:
        """Intents from the last turn whose sub-decision asked for clarification."""
        session = self.get_session(session_id)
        if session is None or not session.turns:
            return None

        last_turn = session.turns[-1]
        pending = [
            last_turn.intents[sub.sub_request_index]
            for sub in last_turn.decision.sub_decisions
            if sub.status is DecisionStatus.CLARIFICATION_NEEDED and sub.sub_request_index < len(last_turn.intents)
        ]
        return pending or None

    def get_conversation_history(self, session_id: str) -> Optional[str]:
        """Render the session as a transcript to feed back into intent extraction."""
        session = self.get_session(session_id)
        if session is None or not session.turns:
            return None

        parts: List[str] = []
        for turn in session.turns:
            parts.append(f'User: "{turn.request.raw_text}"')
            outcomes = []
            for sub in turn.decision.sub_decisions:
                intent = turn.intents[sub.sub_request_index] if sub.sub_request_index < len(turn.intents) else None
                action = intent.action_type.value if intent else "UNKNOWN"
                if sub.status is DecisionStatus.CLARIFICATION_NEEDED:
                    questions = "; ".join(sub.decision.questions)
                    outcomes.append(f"- Clarification needed for {action}: {questions}")
                else:
                    system = (intent.target_system if intent else None) or "unknown system"
                    outcomes.append(f"- {sub.status.value}: {action} for {system}")
            parts.append("System response:\n" + "\n".join(outcomes))

        return "\n\n".join(parts)

    def clear_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
