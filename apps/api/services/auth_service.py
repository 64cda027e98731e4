"""
Account and session lifecycle.

Registration, login (with lockout), refresh, logout/revocation, password
change/reset and the admin user operations. Raises AuthError /
PasswordPolicyError only; HTTP mapping happens in main.py.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.account_security import LoginAttemptTracker, login_attempts
from core.auth import is_jti_revoked, purge_expired_blacklist, revoke_jti
from core.config import settings
from core.exceptions import AuthError, AuthErrorKind
from core.password_policy import hash_password, verify_password
from core.roles import SELF_ASSIGNABLE_ROLES, UserRole
from core.security import JwtService, TokenPair, TokenType, UserSession, get_jwt_service
from models import RefreshToken, User, as_utc, utcnow

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    def __init__(
        self,
        db: Session,
        jwt_service: Optional[JwtService] = None,
        attempts: Optional[LoginAttemptTracker] = None,
    ):
        self.db = db
        self.jwt = jwt_service or get_jwt_service()
        self.attempts = attempts or login_attempts

    # --- helpers ---

    def _get_active_user_by_email(self, email: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.email == email, User.deleted_at.is_(None))
            .first()
        )

    def get_user(self, user_id: str) -> User:
        try:
            uid = UUID(str(user_id))
        except ValueError:
            raise AuthError(AuthErrorKind.USER_NOT_FOUND)
        user = self.db.query(User).filter(User.id == uid, User.deleted_at.is_(None)).first()
        if not user:
            raise AuthError(AuthErrorKind.USER_NOT_FOUND)
        return user

    def _issue_tokens(self, user: User) -> TokenPair:
        pair = self.jwt.create_token_pair(str(user.id), user.email, user.user_role)
        self.db.add(RefreshToken(
            user_id=user.id,
            token_hash=hash_refresh_token(pair.refresh_token),
            expires_at=utcnow() + self.jwt.refresh_token_expires,
        ))
        return pair

    def _revoke_refresh_tokens(self, user: User) -> int:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user.id, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True}, synchronize_session=False)
        )

    # --- account lifecycle ---

    def register(
        self,
        email: str,
        password: str,
        role: UserRole = UserRole.ATHLETE,
        display_name: Optional[str] = None,
    ) -> Tuple[User, TokenPair]:
        email = normalize_email(email)
        if role not in SELF_ASSIGNABLE_ROLES:
            raise AuthError(AuthErrorKind.INSUFFICIENT_PERMISSIONS, "Role cannot be self-assigned")

        if self.db.query(User.id).filter(User.email == email).first():
            raise AuthError(AuthErrorKind.EMAIL_ALREADY_EXISTS)

        user = User(
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            display_name=display_name or email.split("@")[0],
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            self.db.rollback()
            raise AuthError(AuthErrorKind.EMAIL_ALREADY_EXISTS)

        pair = self._issue_tokens(user)
        logger.info(
            "User registered",
            extra={"extra_fields": {"user_id": str(user.id), "role": user.role}},
        )
        return user, pair

    def login(self, email: str, password: str) -> Tuple[User, TokenPair]:
        """
        Authenticate and issue a token pair.

        Unknown emails and wrong passwords are indistinguishable to the
        caller; both count towards lockout.
        """
        email = normalize_email(email)

        locked, seconds_remaining = self.attempts.is_account_locked(email)
        if locked:
            minutes_remaining = (seconds_remaining or 0) // 60 + 1
            raise AuthError(
                AuthErrorKind.ACCOUNT_LOCKED,
                f"Account temporarily locked. Try again in {minutes_remaining} minutes.",
            )

        user = self._get_active_user_by_email(email)
        if not user or not user.is_active or not verify_password(password, user.password_hash):
            self.attempts.record_login_attempt(email, success=False)
            remaining = self.attempts.get_remaining_attempts(email)
            if remaining == 0:
                logger.warning("Account locked after failed logins", extra={"extra_fields": {"email": email}})
            else:
                logger.info("Failed login", extra={"extra_fields": {"email": email, "remaining": remaining}})
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        self.attempts.record_login_attempt(email, success=True)
        return user, self._issue_tokens(user)

    def refresh(self, refresh_token: str) -> Tuple[str, int]:
        """Exchange a stored, unrevoked refresh token for a new access token."""
        claims = self.jwt.validate_token(refresh_token, expected_type=TokenType.REFRESH)

        record = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.token_hash == hash_refresh_token(refresh_token))
            .first()
        )
        if (
            record is None
            or record.revoked
            or as_utc(record.expires_at) <= utcnow()
            or str(record.user_id) != claims.sub
        ):
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "Refresh token is not recognised")

        user = self.get_user(claims.sub)
        if not user.is_active:
            raise AuthError(AuthErrorKind.INVALID_TOKEN)

        # Role changes since the refresh token was issued take effect here.
        access_token = self.jwt.create_access_token(str(user.id), user.email, user.user_role)
        return access_token, int(self.jwt.access_token_expires.total_seconds())

    def logout(self, session: UserSession) -> None:
        """Blacklist the current access token and revoke every refresh token of the user."""
        revoke_jti(self.db, session.jti, utcnow() + self.jwt.access_token_expires)
        user = self.get_user(session.user_id)
        revoked = self._revoke_refresh_tokens(user)
        purged = purge_expired_blacklist(self.db)
        logger.info(
            "User logged out",
            extra={"extra_fields": {"user_id": session.user_id, "refresh_revoked": revoked, "blacklist_purged": purged}},
        )

    def update_profile(self, user: User, display_name: Optional[str]) -> User:
        if display_name is not None:
            user.display_name = display_name
        self.db.flush()
        return user

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "Current password is incorrect")
        user.password_hash = hash_password(new_password)
        self._revoke_refresh_tokens(user)
        logger.info("Password changed", extra={"extra_fields": {"user_id": str(user.id)}})

    # --- password reset ---

    def request_password_reset(self, email: str) -> Optional[str]:
        """
        Create a single-use reset token for a known email.

        Returns the token (or None for unknown emails); callers must not
        reveal which happened. No email is sent, the link is logged.
        """
        email = normalize_email(email)
        user = self._get_active_user_by_email(email)
        if not user:
            logger.info("Password reset requested for unknown email")
            return None

        token = self.jwt.create_password_reset_token(
            str(user.id), user.email, user.user_role,
            timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        )
        reset_url = f"{settings.WEB_APP_BASE_URL}/reset-password?token={token}"
        logger.info(
            "Password reset link issued",
            extra={"extra_fields": {"user_id": str(user.id)}},
        )
        logger.debug(f"Reset URL (dev only): {reset_url}")
        return token

    def reset_password(self, token: str, new_password: str) -> None:
        claims = self.jwt.validate_token(token, expected_type=TokenType.PASSWORD_RESET)
        if is_jti_revoked(self.db, claims.jti):
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "Reset token already used")

        user = self.get_user(claims.sub)
        user.password_hash = hash_password(new_password)
        revoke_jti(self.db, claims.jti, datetime.fromtimestamp(claims.exp, tz=timezone.utc))
        self._revoke_refresh_tokens(user)
        self.attempts.clear_lockout(user.email)
        logger.info("Password reset completed", extra={"extra_fields": {"user_id": str(user.id)}})

    # --- admin ---

    def list_users(self, page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        query = self.db.query(User).filter(User.deleted_at.is_(None))
        total = query.count()
        users = (
            query.order_by(User.created_at.asc(), User.email.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    def update_role(self, actor: UserSession, user_id: str, role: UserRole) -> User:
        user = self.get_user(user_id)
        previous = user.role
        user.role = role.value
        self.db.flush()
        logger.warning(
            "User role changed",
            extra={"extra_fields": {
                "actor_id": actor.user_id,
                "target_id": str(user.id),
                "from": previous,
                "to": role.value,
            }},
        )
        return user
