"""Per-user escalation tracking for prompt injection attempts.

State per user: CLEAR -> WARNED -> BLACKLISTED, and BLACKLISTED -> CLEAR once an
entry is read after its duration has elapsed. Expiry is only observed on read.

Warnings never expire unless ``warning_ttl_seconds`` is configured, so a stale
warning can combine with a much later offense to trigger a blacklisting.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Tuple

from logging_utils import logger
from models import AttemptOutcome, InjectionAttempt

DEFAULT_BLACKLIST_DURATION_SECONDS = 24 * 60 * 60

Clock = Callable[[], float]


class BlacklistTracker:
    def __init__(
        self,
        duration_seconds: float = DEFAULT_BLACKLIST_DURATION_SECONDS,
        expiry_inclusive: bool = False,
        warning_ttl_seconds: Optional[float] = None,
        clock: Clock = time.time,
    ) -> None:
        self.duration_seconds = duration_seconds
        self.expiry_inclusive = expiry_inclusive
        self.warning_ttl_seconds = warning_ttl_seconds
        self._clock = clock
        self._warnings: Dict[str, InjectionAttempt] = {}
        self._blacklist: Dict[str, InjectionAttempt] = {}

    def _has_elapsed(self, age: float, limit: float) -> bool:
        if self.expiry_inclusive:
            return age >= limit
        return age > limit

    def _live_warning(self, user: str) -> Optional[InjectionAttempt]:
        warning = self._warnings.get(user)
        if warning is None or self.warning_ttl_seconds is None:
            return warning
        if self._has_elapsed(self._clock() - warning.timestamp, self.warning_ttl_seconds):
            del self._warnings[user]
            return None
        return warning

    def is_blacklisted(self, user: str) -> bool:
        """Return the live blacklist state, evicting the entry if it has expired."""
        entry = self._blacklist.get(user)
        if entry is None:
            return False

        if self._has_elapsed(self._clock() - entry.timestamp, self.duration_seconds):
            del self._blacklist[user]
            logger.info("Blacklist entry expired", extra={"extra": {"user_email": user}})
            return False

        return True

    def get_blacklist_expiry(self, user: str) -> Optional[float]:
        """Expiry timestamp for a blacklisted user, or None when not blacklisted."""
        if not self.is_blacklisted(user):
            return None
        return self._blacklist[user].timestamp + self.duration_seconds

    def record_attempt(self, user: str, raw_text: str) -> AttemptOutcome:
        """Record an injection hit and escalate the user's state if needed."""
        if self.is_blacklisted(user):
            return AttemptOutcome(is_repeat_offense=True, was_blacklisted=True)

        attempt = InjectionAttempt(user=user, raw_text=raw_text, timestamp=self._clock())

        if self._live_warning(user) is not None:
            self._blacklist[user] = attempt
            logger.warning(
                "User blacklisted after repeat prompt injection attempt",
                extra={"extra": {"user_email": user, "duration_seconds": self.duration_seconds}},
            )
            return AttemptOutcome(is_repeat_offense=True, was_blacklisted=False)

        self._warnings[user] = attempt
        logger.warning("Warning recorded for first prompt injection attempt", extra={"extra": {"user_email": user}})
        return AttemptOutcome(is_repeat_offense=False, was_blacklisted=False)

    def get_blacklisted_users(self) -> List[Tuple[str, float]]:
        """All non-expired blacklisted users with their expiry timestamps."""
        result: List[Tuple[str, float]] = []
        for user in list(self._blacklist):
            if self.is_blacklisted(user):
                result.append((user, self._blacklist[user].timestamp + self.duration_seconds))
        return result

    def remove_from_blacklist(self, user: str) -> bool:
        """Manually lift a blacklisting (admin action)."""
        return self._blacklist.pop(user, None) is not None

    def clear_warning(self, user: str) -> bool:
        """Manually clear a user's warning (admin action)."""
        return self._warnings.pop(user, None) is not None

    def has_warning(self, user: str) -> bool:
        return self._live_warning(user) is not None
