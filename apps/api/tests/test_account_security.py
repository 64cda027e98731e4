"""
Tests for login attempt tracking and account lockout.
"""
from datetime import datetime, timedelta, timezone

from core.account_security import LoginAttemptTracker


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _tracker(clock):
    return LoginAttemptTracker(max_failed_attempts=3, lockout_minutes=15, window_minutes=30, clock=clock)


class TestLoginAttemptTracker:

    def test_locks_after_max_failures(self):
        clock = Clock()
        tracker = _tracker(clock)
        for _ in range(2):
            tracker.record_login_attempt("a@example.com", success=False)
        assert tracker.is_account_locked("a@example.com") == (False, None)
        assert tracker.get_remaining_attempts("a@example.com") == 1

        tracker.record_login_attempt("a@example.com", success=False)
        locked, seconds = tracker.is_account_locked("a@example.com")
        assert locked is True
        assert seconds == 15 * 60
        assert tracker.get_remaining_attempts("a@example.com") == 0

    def test_lockout_expires(self):
        clock = Clock()
        tracker = _tracker(clock)
        for _ in range(3):
            tracker.record_login_attempt("a@example.com", success=False)
        clock.now += timedelta(minutes=16)
        assert tracker.is_account_locked("a@example.com") == (False, None)

    def test_success_clears_failures(self):
        clock = Clock()
        tracker = _tracker(clock)
        tracker.record_login_attempt("a@example.com", success=False)
        tracker.record_login_attempt("a@example.com", success=False)
        tracker.record_login_attempt("a@example.com", success=True)
        assert tracker.get_remaining_attempts("a@example.com") == 3

    def test_old_failures_fall_out_of_window(self):
        clock = Clock()
        tracker = _tracker(clock)
        tracker.record_login_attempt("a@example.com", success=False)
        tracker.record_login_attempt("a@example.com", success=False)
        clock.now += timedelta(minutes=31)
        tracker.record_login_attempt("a@example.com", success=False)
        assert tracker.is_account_locked("a@example.com") == (False, None)

    def test_clear_lockout(self):
        clock = Clock()
        tracker = _tracker(clock)
        for _ in range(3):
            tracker.record_login_attempt("a@example.com", success=False)
        tracker.clear_lockout("a@example.com")
        assert tracker.is_account_locked("a@example.com") == (False, None)

    def test_accounts_are_independent(self):
        tracker = _tracker(Clock())
        for _ in range(3):
            tracker.record_login_attempt("a@example.com", success=False)
        assert tracker.is_account_locked("b@example.com") == (False, None)
