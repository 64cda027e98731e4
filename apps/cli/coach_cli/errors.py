"""
Client error hierarchy.

Every error a command can surface derives from CliError so `main()` can
print it as one line and exit with status 1.
"""
from http import HTTPStatus
from typing import Any, Dict, Optional, Union


class CliError(Exception):
    """Base class for user-facing client errors."""

    default_message = "Command failed"
    hint: Optional[str] = None

    def __init__(self, message: Optional[str] = None, hint: Optional[str] = None):
        self.message = message or self.default_message
        if hint is not None:
            self.hint = hint
        super().__init__(self.message)

    def render(self) -> str:
        if self.hint:
            return f"{self.message}. {self.hint}"
        return self.message


class NotLoggedInError(CliError):
    default_message = "Not logged in"
    hint = "Run 'ai-coach login' first"


class ServerUnreachableError(CliError):
    default_message = "Cannot connect to server"
    hint = "Check api.base_url with 'ai-coach config show' or retry with --offline"


class SyncInProgressError(CliError):
    default_message = "Another sync is already running"


class StorageError(CliError):
    default_message = "Local storage error"


class ConfigError(CliError):
    default_message = "Invalid configuration"


class ParseError(CliError):
    default_message = "Could not understand workout description"


class RecordNotFoundError(CliError):

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class ApiError(CliError):
    """Non-success response (or transport failure) from the AI Coach API."""

    default_message = "API request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.body = body or {}

    @classmethod
    def from_status(cls, status_code: int, body: Union[Dict[str, Any], str, None] = None) -> "ApiError":
        """Pick the error class for a response status; message from the body when present."""
        data: Dict[str, Any] = body if isinstance(body, dict) else {}
        message = data.get("message") or (body if isinstance(body, str) else "")
        if not message:
            try:
                message = HTTPStatus(status_code).phrase
            except ValueError:
                message = "Unknown error"
        error_code = data.get("error_code")

        if status_code in (401, 403):
            error_cls = UnauthorizedError
        elif status_code == 404:
            error_cls = NotFoundError
        elif status_code == 409:
            error_cls = ConflictError
        elif status_code == 429:
            error_cls = RateLimitedError
        elif status_code == 400:
            error_cls = BadRequestError
        elif status_code >= 500:
            error_cls = ServerError
        elif status_code >= 400:
            error_cls = BadRequestError
        else:
            error_cls = ApiError
        return error_cls(message, status_code=status_code, error_code=error_code, body=data)


class UnauthorizedError(ApiError):
    hint = "Your session may have expired; run 'ai-coach login'"


class NotFoundError(ApiError):
    pass


class BadRequestError(ApiError):
    pass


class ConflictError(ApiError):
    """409 from a sync write; `current` is the server's copy of the record."""

    @property
    def current(self) -> Optional[Dict[str, Any]]:
        return self.body.get("current")


class RateLimitedError(ApiError):
    hint = "Slow down and try again shortly"


class ServerError(ApiError):
    pass


class NetworkError(ApiError):
    default_message = "Network error"
