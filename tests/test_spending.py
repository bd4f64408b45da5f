"""Tests for spending.py - Rolling-window hardware spend."""
import pytest

from models import DecisionStatus
from spending import SECONDS_PER_DAY, SpendingTracker

USER = "grace@opendoor.com"


@pytest.mark.unit
class TestSpendingTracker:
    def test_empty_ledger(self, clock):
        assert SpendingTracker(clock=clock).get_spending(USER) == 0

    def test_counts_approved_and_pending(self, clock):
        tracker = SpendingTracker(clock=clock)
        tracker.record("req_1", USER, 1200, DecisionStatus.APPROVED)
        tracker.record("req_2", USER, 800, DecisionStatus.REQUIRES_APPROVAL)

        assert tracker.get_spending(USER) == 2000
        assert [r.request_id for r in tracker.get_spending_details(USER)] == ["req_1", "req_2"]

    @pytest.mark.parametrize("status", [DecisionStatus.DENIED, DecisionStatus.CLARIFICATION_NEEDED])
    def test_rejects_other_statuses(self, clock, status):
        with pytest.raises(ValueError):
            SpendingTracker(clock=clock).record("req_1", USER, 100, status)

    def test_other_users_not_counted(self, clock):
        tracker = SpendingTracker(clock=clock)
        tracker.record("req_1", "someone@opendoor.com", 500, DecisionStatus.APPROVED)
        assert tracker.get_spending(USER) == 0

    def test_records_outside_window_are_dropped(self, clock):
        tracker = SpendingTracker(window_days=90, clock=clock)
        tracker.record("old", USER, 1000, DecisionStatus.APPROVED)
        clock.advance(91 * SECONDS_PER_DAY)
        tracker.record("new", USER, 150, DecisionStatus.APPROVED)

        assert tracker.get_spending(USER) == 150
        assert [r.request_id for r in tracker.get_spending_details(USER)] == ["new"]

    def test_record_exactly_at_window_edge_counts(self, clock):
        tracker = SpendingTracker(window_days=90, clock=clock)
        tracker.record("edge", USER, 400, DecisionStatus.APPROVED)
        clock.advance(tracker.window_seconds)

        assert tracker.get_spending(USER) == 400

        clock.advance(1)
        assert tracker.get_spending(USER) == 0
