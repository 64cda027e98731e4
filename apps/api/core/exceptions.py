"""
Custom exception classes and error handling.

The auth core raises `AuthError` (one closed set of kinds) and never deals
with HTTP. `main.py` maps each kind to a status code and a stable
`{error_code, message}` body exactly once. `APIException` remains for
ordinary resource errors raised by routers.
"""
from enum import Enum
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    MISSING_AUTH_HEADER = "MISSING_AUTH_HEADER"
    INVALID_AUTH_HEADER_FORMAT = "INVALID_AUTH_HEADER_FORMAT"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PASSWORD_VALIDATION = "PASSWORD_VALIDATION"
    EMAIL_VALIDATION = "EMAIL_VALIDATION"


DEFAULT_MESSAGES = {
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid email or password",
    AuthErrorKind.USER_NOT_FOUND: "User not found",
    AuthErrorKind.EMAIL_ALREADY_EXISTS: "Email already registered",
    AuthErrorKind.INVALID_TOKEN: "Invalid token",
    AuthErrorKind.TOKEN_EXPIRED: "Token expired",
    AuthErrorKind.MISSING_AUTH_HEADER: "Missing authorization header",
    AuthErrorKind.INVALID_AUTH_HEADER_FORMAT: "Invalid authorization header format",
    AuthErrorKind.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
    AuthErrorKind.ACCOUNT_LOCKED: "Account temporarily locked",
    AuthErrorKind.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",
    AuthErrorKind.PASSWORD_VALIDATION: "Password validation failed",
    AuthErrorKind.EMAIL_VALIDATION: "Email validation failed",
}

STATUS_BY_KIND = {
    AuthErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorKind.EMAIL_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    AuthErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.MISSING_AUTH_HEADER: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.INVALID_AUTH_HEADER_FORMAT: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.INSUFFICIENT_PERMISSIONS: status.HTTP_403_FORBIDDEN,
    AuthErrorKind.ACCOUNT_LOCKED: status.HTTP_403_FORBIDDEN,
    AuthErrorKind.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorKind.PASSWORD_VALIDATION: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.EMAIL_VALIDATION: status.HTTP_400_BAD_REQUEST,
}


class AuthError(Exception):
    """Authentication/authorization failure of a known kind."""

    def __init__(self, kind: AuthErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def error_code(self) -> str:
        return self.kind.value

    def headers(self) -> Optional[Dict[str, str]]:
        if self.status_code == status.HTTP_401_UNAUTHORIZED:
            return {"WWW-Authenticate": "Bearer"}
        return None

    def __repr__(self) -> str:
        return f"AuthError({self.kind.value})"


class RateLimitExceeded(AuthError):
    """Client exceeded a sliding-window ceiling; retry after `retry_after` seconds."""

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(AuthErrorKind.RATE_LIMIT_EXCEEDED, message)
        self.retry_after = retry_after

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ConflictError(APIException):
    """Resource conflict; `current` is the server copy the client must rebase on."""

    def __init__(self, detail: str, current: Optional[Dict[str, Any]] = None, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
            extra={"current": current} if current is not None else None
        )
