"""
Rate Limiting

Sliding-window limiter keyed by client identity, with per-minute and
per-hour ceilings. State lives in process memory, one lock per limiter
(use a shared store if the API is ever scaled to multiple instances).
"""
import time
import threading
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 3600
IDLE_ENTRY_TTL = 2 * HOUR  # whole entry reclaimed after this long without requests
CLEANUP_INTERVAL = 300

EXEMPT_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}


@dataclass(frozen=True)
class RateLimitConfig:
    requests_per_minute: int
    requests_per_hour: int
    burst_size: int = 0  # informational; ceilings above are what is enforced


class RateLimitProfiles:
    """Named limits for the different areas of the API."""
    AUTH = RateLimitConfig(requests_per_minute=10, requests_per_hour=100, burst_size=3)
    API = RateLimitConfig(requests_per_minute=60, requests_per_hour=1000, burst_size=10)
    UPLOAD = RateLimitConfig(requests_per_minute=30, requests_per_hour=200, burst_size=5)
    ADMIN = RateLimitConfig(requests_per_minute=5, requests_per_hour=50, burst_size=2)


@dataclass
class _Entry:
    requests: Deque[float] = field(default_factory=deque)
    last_seen: float = 0.0


class RateLimiter:
    """
    Sliding-window request limiter.

    `check(key)` records the request when admitted, otherwise raises
    RateLimitExceeded. The minute ceiling is checked before the hour
    ceiling. All reads and writes of the key map happen under one lock.
    """

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            if now - self._last_cleanup >= CLEANUP_INTERVAL:
                self._cleanup_locked(now)

            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()

            requests = entry.requests
            while requests and now - requests[0] >= HOUR:
                requests.popleft()

            in_last_minute = sum(1 for ts in reversed(requests) if now - ts < MINUTE)
            if in_last_minute >= self.config.requests_per_minute:
                raise RateLimitExceeded(retry_after=MINUTE)
            if len(requests) >= self.config.requests_per_hour:
                raise RateLimitExceeded(retry_after=HOUR)

            requests.append(now)
            entry.last_seen = now

    def cleanup_old_entries(self) -> int:
        """Drop keys idle for more than two hours. Returns the number removed."""
        with self._lock:
            return self._cleanup_locked(self._clock())

    def _cleanup_locked(self, now: float) -> int:
        stale = [key for key, entry in self._entries.items() if now - entry.last_seen > IDLE_ENTRY_TTL]
        for key in stale:
            del self._entries[key]
        self._last_cleanup = now
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_client_key(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_user_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if auth_header:
        return f"user:{auth_header}"
    return get_client_key(request)


def build_default_limiters() -> Dict[str, RateLimiter]:
    return {
        "auth": RateLimiter(RateLimitProfiles.AUTH),
        "admin": RateLimiter(RateLimitProfiles.ADMIN),
        "upload": RateLimiter(RateLimitProfiles.UPLOAD),
        "api": RateLimiter(RateLimitProfiles.API),
    }


PROFILE_PREFIXES = (
    ("/v1/auth", "auth"),
    ("/v1/admin", "admin"),
    ("/v1/uploads", "upload"),
)


def profile_for_path(path: str) -> str:
    for prefix, profile in PROFILE_PREFIXES:
        if path.startswith(prefix):
            return profile
    return "api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware with one sliding-window limiter per profile."""

    def __init__(
        self,
        app,
        limiters: Optional[Dict[str, RateLimiter]] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self.limiters = limiters if limiters is not None else build_default_limiters()
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled

    async def dispatch(self, request: Request, call_next):
        # CORS preflights never count against a budget.
        if not self.enabled or request.method == "OPTIONS" or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        profile = profile_for_path(request.url.path)
        limiter = self.limiters.get(profile, self.limiters.get("api"))
        if limiter is None:
            return await call_next(request)

        # Unauthenticated auth endpoints are keyed by address; the rest by caller.
        key = get_client_key(request) if profile == "auth" else get_user_key(request)

        try:
            limiter.check(key)
        except RateLimitExceeded as e:
            logger.warning(
                "Rate limit exceeded",
                extra={"extra_fields": {
                    "profile": profile,
                    "path": request.url.path,
                    "retry_after": e.retry_after,
                }},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error_code": e.error_code,
                    "message": e.message,
                    "retry_after": e.retry_after,
                },
                headers={"Retry-After": str(e.retry_after)},
            )

        return await call_next(request)
