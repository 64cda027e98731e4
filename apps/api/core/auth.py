"""
Authentication and authorization dependencies.

Provides FastAPI dependencies for:
- Extracting the per-request session from the bearer token
- Role-based access control (a separate layer on top of the session)
- Loading the current user row
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import AuthError, AuthErrorKind
from core.roles import UserRole, can_access
from core.security import UserSession, extract_bearer_token, get_jwt_service
from models import TokenBlacklist, User


def is_jti_revoked(db: Session, jti: str) -> bool:
    return db.query(TokenBlacklist.jti).filter(TokenBlacklist.jti == jti).first() is not None


def revoke_jti(db: Session, jti: str, expires_at: datetime) -> None:
    """Blacklist a token id until its natural expiry (idempotent)."""
    if not is_jti_revoked(db, jti):
        db.add(TokenBlacklist(jti=jti, expires_at=expires_at))


def purge_expired_blacklist(db: Session) -> int:
    """Drop blacklist entries whose tokens have expired anyway."""
    return (
        db.query(TokenBlacklist)
        .filter(TokenBlacklist.expires_at < datetime.now(timezone.utc))
        .delete(synchronize_session=False)
    )


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """
    Build the session from the Authorization header.

    Missing header → MISSING_AUTH_HEADER; malformed → INVALID_AUTH_HEADER_FORMAT;
    invalid/expired/revoked token → INVALID_TOKEN / TOKEN_EXPIRED.
    The session is also placed on `request.state.session` for downstream layers.
    """
    auth_header: Optional[str] = request.headers.get("Authorization")
    if auth_header is None:
        raise AuthError(AuthErrorKind.MISSING_AUTH_HEADER)

    token = extract_bearer_token(auth_header)
    session = get_jwt_service().extract_user_session(token)

    if is_jti_revoked(db, session.jti):
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "Token has been revoked")

    request.state.session = session
    return session


def require_role(required: UserRole):
    """
    Dependency factory for role-based access control.

    Usage:
        router = APIRouter(
            dependencies=[Depends(get_current_session), Depends(require_role(UserRole.ADMIN))]
        )

    Reads the session established by `get_current_session`; it never
    parses tokens itself.
    """
    def role_checker(request: Request) -> UserSession:
        session: Optional[UserSession] = getattr(request.state, "session", None)
        if session is None or not can_access(session.role, required):
            raise AuthError(AuthErrorKind.INSUFFICIENT_PERMISSIONS)
        return session

    return role_checker


def get_current_user(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the active user row for the current session.

    A user that was deleted or deactivated after the token was issued is
    treated as an invalid token.
    """
    try:
        user_id = UUID(session.user_id)
    except ValueError:
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "Invalid user ID format")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.deleted_at is not None or not user.is_active:
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "User not found")
    return user
