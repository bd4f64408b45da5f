"""Append-only hardware spending ledger with a rolling-window query."""
from __future__ import annotations

import time
from typing import Callable, List

from models import DecisionStatus, SpendingRecord

DEFAULT_WINDOW_DAYS = 90
SECONDS_PER_DAY = 24 * 60 * 60

COUNTED_STATUSES = (DecisionStatus.APPROVED, DecisionStatus.REQUIRES_APPROVAL)


class SpendingTracker:
    """
    In-memory ledger of hardware spend per user.

    The window is closed: a record aged exactly ``window_days`` still counts.
    Records are never mutated or individually deleted; records older than the
    window are dropped from the ledger whenever it is read.

    Amounts are not validated. Negative or unbounded values are accepted as-is.
    """

    def __init__(self, window_days: float = DEFAULT_WINDOW_DAYS, clock: Callable[[], float] = time.time) -> None:
        self.window_days = window_days
        self._clock = clock
        self._records: List[SpendingRecord] = []

    @property
    def window_seconds(self) -> float:
        return self.window_days * SECONDS_PER_DAY

    def record(self, request_id: str, user: str, amount: float, status: DecisionStatus) -> SpendingRecord:
        """Append a spending record. Manual approval is not a budget bypass, so both statuses count."""
        if status not in COUNTED_STATUSES:
            raise ValueError(f"Spending can only be recorded for {[s.value for s in COUNTED_STATUSES]}, got {status}")
        entry = SpendingRecord(request_id=request_id, user=user, amount=amount, timestamp=self._clock(), status=status)
        self._records.append(entry)
        return entry

    def _clear_expired(self) -> None:
        cutoff = self._clock() - self.window_seconds
        self._records = [r for r in self._records if r.timestamp >= cutoff]

    def get_spending(self, user: str) -> float:
        """Total spend for a user within the rolling window."""
        self._clear_expired()
        return sum(r.amount for r in self._records if r.user == user)

    def get_spending_details(self, user: str) -> List[SpendingRecord]:
        self._clear_expired()
        return [r for r in self._records if r.user == user]
