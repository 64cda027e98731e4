"""
Account Security Module

Implements:
- Login attempt tracking
- Account lockout after failed attempts
- Lockout duration management
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from collections import defaultdict
import threading

from core.config import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoginAttemptTracker:
    """
    In-memory login attempt store (use a shared store for multi-instance).

    Structure: {email: [(timestamp, success), ...]}
    """

    def __init__(
        self,
        max_failed_attempts: int = 5,
        lockout_minutes: int = 15,
        window_minutes: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_duration = timedelta(minutes=lockout_minutes)
        self.window = timedelta(minutes=window_minutes)
        self._clock = clock
        self._attempts: Dict[str, List[Tuple[datetime, bool]]] = defaultdict(list)
        self._lock = threading.Lock()

    def _clean_old_attempts_locked(self, email: str, now: datetime) -> None:
        cutoff = now - self.window
        self._attempts[email] = [
            (ts, success) for ts, success in self._attempts[email]
            if ts > cutoff
        ]

    def record_login_attempt(self, email: str, success: bool) -> None:
        """Record a login attempt; a success clears earlier failures."""
        now = self._clock()
        with self._lock:
            if success:
                self._attempts[email] = [(now, True)]
                return
            self._clean_old_attempts_locked(email, now)
            self._attempts[email].append((now, False))

    def is_account_locked(self, email: str) -> Tuple[bool, Optional[int]]:
        """
        Check if an account is locked due to failed attempts.

        Returns:
            Tuple of (is_locked, seconds_until_unlock or None)
        """
        now = self._clock()
        with self._lock:
            self._clean_old_attempts_locked(email, now)
            failed = [ts for ts, success in self._attempts[email] if not success]

            if len(failed) < self.max_failed_attempts:
                return False, None

            lockout_end = max(failed) + self.lockout_duration
            if now < lockout_end:
                return True, int((lockout_end - now).total_seconds())
            return False, None

    def get_remaining_attempts(self, email: str) -> int:
        now = self._clock()
        with self._lock:
            self._clean_old_attempts_locked(email, now)
            failed = [ts for ts, success in self._attempts[email] if not success]
            return max(0, self.max_failed_attempts - len(failed))

    def clear_lockout(self, email: str) -> None:
        """Manually clear lockout for an account (admin function)."""
        with self._lock:
            self._attempts.pop(email, None)

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()


login_attempts = LoginAttemptTracker(
    max_failed_attempts=settings.LOGIN_MAX_FAILED_ATTEMPTS,
    lockout_minutes=settings.LOGIN_LOCKOUT_MINUTES,
    window_minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES,
)
