"""
Token issuance and validation.

Provides:
- JWT access/refresh/password-reset token generation (HS256)
- Token validation with a strict expired-vs-invalid distinction
- Bearer header parsing

SECURITY REQUIREMENTS:
- SECRET_KEY must be set via environment variable
- SECRET_KEY must be cryptographically secure (32+ characters)
- SECRET_KEY must be different for each environment (dev/staging/prod)
- SECRET_KEY must NEVER be committed to source control
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Optional, Dict, Any

from jose import JWTError, jwt

from core.config import settings
from core.exceptions import AuthError, AuthErrorKind
from core.roles import UserRole

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32
BEARER_PREFIX = "Bearer "

REQUIRED_CLAIMS = ("sub", "email", "role", "iat", "exp", "jti", "type")


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    email: str
    role: UserRole
    iat: int
    exp: int
    jti: str
    type: TokenType


@dataclass(frozen=True)
class UserSession:
    """Per-request identity derived from validated access claims."""
    user_id: str
    email: str
    role: UserRole
    jti: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


def _now_ts() -> float:
    return datetime.now(timezone.utc).timestamp()


def _has_expired(exp: Any) -> bool:
    """A token is expired from the instant `now >= exp`."""
    return not isinstance(exp, (int, float)) or exp <= _now_ts()


class JwtService:
    """Signs and validates HS256 tokens with one secret."""

    def __init__(
        self,
        secret: str,
        access_token_expires: timedelta = timedelta(minutes=15),
        refresh_token_expires: timedelta = timedelta(days=30),
    ):
        self._secret = secret
        self.access_token_expires = access_token_expires
        self.refresh_token_expires = refresh_token_expires

    def _encode(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        token_type: TokenType,
        expires_delta: timedelta,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": UserRole(role).value,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
            "jti": str(uuid.uuid4()),
            "type": token_type.value,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        return self._encode(
            user_id, email, role, TokenType.ACCESS,
            expires_delta if expires_delta is not None else self.access_token_expires,
        )

    def create_refresh_token(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        return self._encode(
            user_id, email, role, TokenType.REFRESH,
            expires_delta if expires_delta is not None else self.refresh_token_expires,
        )

    def create_password_reset_token(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        expires_delta: timedelta,
    ) -> str:
        return self._encode(user_id, email, role, TokenType.PASSWORD_RESET, expires_delta)

    def create_token_pair(self, user_id: str, email: str, role: UserRole) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user_id, email, role),
            refresh_token=self.create_refresh_token(user_id, email, role),
            expires_in=int(self.access_token_expires.total_seconds()),
        )

    def _decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        # jose accepts now == exp; expiry here starts at now >= exp.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError:
            raise AuthError(AuthErrorKind.INVALID_TOKEN)
        if verify_exp and isinstance(payload.get("exp"), (int, float)) and _has_expired(payload["exp"]):
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED)
        return payload

    def validate_token(self, token: str, expected_type: Optional[TokenType] = None) -> TokenClaims:
        """
        Decode and check a token.

        Raises AuthError(TOKEN_EXPIRED) for a well-signed token past `exp`,
        AuthError(INVALID_TOKEN) for everything else.
        """
        payload = self._decode(token)

        if any(payload.get(name) in (None, "") for name in REQUIRED_CLAIMS):
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "Token is missing required claims")

        try:
            claims = TokenClaims(
                sub=str(payload["sub"]),
                email=str(payload["email"]),
                role=UserRole.parse(payload["role"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
                jti=str(payload["jti"]),
                type=TokenType(payload["type"]),
            )
        except (TypeError, ValueError):
            raise AuthError(AuthErrorKind.INVALID_TOKEN)

        if expected_type is not None and claims.type != expected_type:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "Wrong token type")

        return claims

    def extract_user_session(self, token: str) -> UserSession:
        claims = self.validate_token(token, expected_type=TokenType.ACCESS)
        return UserSession(
            user_id=claims.sub,
            email=claims.email,
            role=claims.role,
            jti=claims.jti,
        )

    def is_token_expired(self, token: str) -> bool:
        """True if past `exp`; tokens that fail to decode count as expired."""
        try:
            payload = self._decode(token, verify_exp=False)
        except AuthError:
            return True
        return _has_expired(payload.get("exp"))

    def extract_jti(self, token: str) -> str:
        return self.validate_token(token).jti


def extract_bearer_token(auth_header: str) -> str:
    """
    Return the token from "Bearer <token>".

    Raises AuthError(INVALID_AUTH_HEADER_FORMAT) for anything else.
    """
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise AuthError(AuthErrorKind.INVALID_AUTH_HEADER_FORMAT)
    token = auth_header[len(BEARER_PREFIX):]
    if not token or token != token.strip() or " " in token:
        raise AuthError(AuthErrorKind.INVALID_AUTH_HEADER_FORMAT)
    return token


@lru_cache(maxsize=1)
def get_jwt_service() -> JwtService:
    """Application-wide token service built from settings."""
    if len(settings.SECRET_KEY) < MIN_SECRET_LENGTH:
        raise ValueError(
            "SECRET_KEY must be at least 32 characters. "
            "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
        )
    return JwtService(
        settings.SECRET_KEY,
        access_token_expires=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_token_expires=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )
