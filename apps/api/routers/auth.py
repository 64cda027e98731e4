"""
Authentication API endpoints.

Provides:
- User registration
- Login (token pair generation) with account lockout protection
- Token refresh
- Logout (access token blacklist + refresh token revocation)
- Profile read/update and password change
- Password reset (self-service, single-use token)
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from core.auth import get_current_session, get_current_user
from core.database import get_db
from core.exceptions import APIException, AuthError
from core.password_policy import calculate_password_strength
from core.security import UserSession
from models import User
from schemas import (
    AccessTokenResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    MessageResponse,
    PasswordStrengthRequest,
    ProfileUpdate,
    RefreshRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


def _token_response(user: User, pair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "token_type": pair.token_type,
        "expires_in": pair.expires_in,
        "user": UserResponse.model_validate(user),
    }


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db)
):
    """
    Register a new user account.

    Self-registration may request the athlete or coach role. Tokens are
    issued immediately so clients do not need a second login call.
    """
    user, pair = AuthService(db).register(
        email=user_data.email,
        password=user_data.password,
        role=user_data.role,
        display_name=user_data.display_name,
    )
    return _token_response(user, pair)


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return an access/refresh token pair.

    Implements account lockout after repeated failed attempts.
    """
    user, pair = AuthService(db).login(credentials.email, credentials.password)
    return _token_response(user, pair)


@router.post("/refresh", response_model=AccessTokenResponse)
def refresh_token(
    body: RefreshRequest,
    db: Session = Depends(get_db)
):
    """Exchange a refresh token for a new access token."""
    access_token, expires_in = AuthService(db).refresh(body.refresh_token)
    return {"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in}


@router.post("/logout", response_model=MessageResponse)
def logout(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    AuthService(db).logout(session)
    return {"message": "Logged out"}


@router.get("/profile", response_model=UserResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    return current_user


@router.put("/profile", response_model=MessageResponse)
def update_profile(
    update: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    AuthService(db).update_profile(current_user, update.display_name)
    return {"message": "Profile updated"}


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change password; existing refresh tokens are revoked."""
    AuthService(db).change_password(current_user, body.current_password, body.new_password)
    return {"message": "Password changed"}


@router.post("/password-strength")
def password_strength(body: PasswordStrengthRequest):
    """Score a candidate password (0-100) for UI feedback."""
    return {"score": calculate_password_strength(body.password)}


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    request: ForgotPasswordRequest,
    db: Session = Depends(get_db)
):
    """
    Request a password reset link.

    Always returns success to prevent email enumeration.
    """
    AuthService(db).request_password_reset(request.email)
    return {
        "message": "If an account with that email exists, a password reset link has been sent.",
    }


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    request: ResetPasswordRequest,
    db: Session = Depends(get_db)
):
    """Reset password using a valid, unused reset token."""
    try:
        AuthService(db).reset_password(request.token, request.new_password)
    except AuthError as e:
        logger.info(f"Rejected password reset: {e.kind.value}")
        raise APIException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired reset token",
            error_code="INVALID_RESET_TOKEN",
        )
    return {"message": "Password has been reset"}
