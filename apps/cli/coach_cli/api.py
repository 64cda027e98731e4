"""
HTTP client for the AI Coach API.

Bearer tokens come from the local store. A 401 on an authenticated call
triggers one refresh-and-retry (unless refresh is suppressed, as during a
dry-run sync). Transport failures surface as NetworkError; non-2xx
responses as the matching ApiError subclass.
"""
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

import requests

from coach_cli.config import Config
from coach_cli.errors import (
    ApiError,
    NetworkError,
    NotLoggedInError,
    RateLimitedError,
    ServerError,
    UnauthorizedError,
)
from coach_cli.models import EntityType
from coach_cli.storage import LocalStore

logger = logging.getLogger(__name__)

SYNC_PATHS = {EntityType.WORKOUT: "/v1/sync/workouts", EntityType.GOAL: "/v1/sync/goals"}


@dataclass
class RetryConfig:
    """Exponential backoff for transient failures (network, 5xx, 429)."""
    max_retries: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 5000
    backoff_factor: float = 2.0

    def execute(self, func: Callable[[], Any], sleep: Callable[[float], None] = time.sleep) -> Any:
        """Call `func` up to `max_retries` times; the last error propagates."""
        delay_ms = self.initial_delay_ms
        attempt = 0
        while True:
            try:
                return func()
            except (NetworkError, ServerError, RateLimitedError) as e:
                attempt += 1
                if attempt >= self.max_retries:
                    logger.warning(f"Max retries ({self.max_retries}) exceeded")
                    raise
                logger.debug(f"Attempt {attempt} failed, retrying in {delay_ms}ms: {e}")
                sleep(delay_ms / 1000.0)
                delay_ms = min(int(delay_ms * self.backoff_factor), self.max_delay_ms)


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:

    def __init__(
        self,
        config: Config,
        store: LocalStore,
        session: Optional[requests.Session] = None,
        retry: Optional[RetryConfig] = None,
    ):
        self.base_url = config.api.base_url.rstrip("/")
        self.timeout = config.api.timeout_seconds
        self.store = store
        self.http = session or requests.Session()
        self.retry = retry or RetryConfig()
        self._refresh_enabled = True

    @contextmanager
    def refresh_suppressed(self) -> Iterator[None]:
        """No token refresh (and so no local token write) inside this block."""
        previous = self._refresh_enabled
        self._refresh_enabled = False
        try:
            yield
        finally:
            self._refresh_enabled = previous

    def _access_token(self) -> str:
        tokens = self.store.get_tokens()
        if tokens is None:
            raise NotLoggedInError()
        return tokens.access_token

    def _send(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> requests.Response:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            return self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Could not reach {self.base_url}: {e}")

    def request(self, method: str, path: str, authenticated: bool = True, **kwargs) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            NotLoggedInError: authenticated call with no stored token
            ApiError: non-2xx response (after at most one token refresh)
        """
        token = self._access_token() if authenticated else None
        response = self._send(method, path, token=token, **kwargs)

        if response.status_code == 401 and authenticated and self._refresh_enabled:
            logger.debug("Received 401, attempting token refresh")
            token = self.refresh_access_token()
            response = self._send(method, path, token=token, **kwargs)

        body = _decode(response)
        if response.status_code >= 400:
            raise ApiError.from_status(response.status_code, body)
        return body

    # -- auth ------------------------------------------------------------

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate and persist the token pair. Returns the user record."""
        body = self.retry.execute(
            lambda: self.request(
                "POST", "/v1/auth/login", authenticated=False, json={"email": email, "password": password}
            )
        )
        user = body.get("user") or {}
        self.store.save_tokens(body["access_token"], body.get("refresh_token"), email=user.get("email", email))
        logger.info(f"Logged in as {user.get('email', email)}")
        return user

    def refresh_access_token(self) -> str:
        tokens = self.store.get_tokens()
        if tokens is None or not tokens.refresh_token:
            raise UnauthorizedError("Session expired and no refresh token is stored", status_code=401)
        body = self.request(
            "POST", "/v1/auth/refresh", authenticated=False, json={"refresh_token": tokens.refresh_token}
        )
        self.store.update_access_token(body["access_token"])
        logger.info("Refreshed access token")
        return body["access_token"]

    def logout(self) -> bool:
        """Revoke server-side (best effort), then always forget local tokens."""
        revoked = True
        try:
            with self.refresh_suppressed():
                self.request("POST", "/v1/auth/logout")
        except NotLoggedInError:
            revoked = False
        except ApiError as e:
            logger.warning(f"Server-side logout failed: {e}")
            revoked = False
        self.store.clear_tokens()
        return revoked

    def profile(self) -> Dict[str, Any]:
        return self.request("GET", "/v1/auth/profile")

    # -- sync ------------------------------------------------------------

    def put_record(self, entity: EntityType, record_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"{SYNC_PATHS[entity]}/{record_id}", json=payload)

    def delete_record(self, entity: EntityType, record_id: str, base_updated_at: Optional[str]) -> Dict[str, Any]:
        params = {"base_updated_at": base_updated_at} if base_updated_at else None
        return self.request("DELETE", f"{SYNC_PATHS[entity]}/{record_id}", params=params)

    def get_changes(self, since: Optional[str]) -> Dict[str, Any]:
        params = {"since": since} if since else None
        return self.request("GET", "/v1/sync/changes", params=params)
