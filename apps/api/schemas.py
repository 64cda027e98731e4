from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer, field_validator
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Literal

from core.roles import UserRole
from models import as_utc


class UserRegister(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str
    role: UserRole = UserRole.ATHLETE
    display_name: Optional[str] = None


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: UUID
    email: str
    display_name: Optional[str] = None
    role: UserRole
    is_active: bool = True
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer('id')
    def serialize_id(self, id: UUID) -> str:
        return str(id)


class TokenResponse(BaseModel):
    """Token pair plus the authenticated user."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    user: UserResponse


class RefreshRequest(BaseModel):
    refresh_token: str


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class ProfileUpdate(BaseModel):
    """Partial profile update; email changes are not accepted here."""
    display_name: Optional[str] = Field(default=None, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class PasswordStrengthRequest(BaseModel):
    password: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    limit: int


class RoleUpdate(BaseModel):
    role: UserRole


# --- Sync ---

class WorkoutPayload(BaseModel):
    date: date
    exercise_type: str = Field(min_length=1, max_length=50)
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    distance_km: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    # Server version the client edit is based on; None for a record the client believes is new.
    base_updated_at: Optional[datetime] = None


class WorkoutRecord(BaseModel):
    id: str
    date: date
    exercise_type: str
    duration_minutes: Optional[int] = None
    distance_km: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "updated_at", "deleted_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class GoalPayload(BaseModel):
    title: str = Field(min_length=1)
    goal_type: Literal["distance", "duration", "event", "frequency"]
    target_date: Optional[date] = None
    target_value: Optional[float] = None
    current_value: float = 0.0
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    base_updated_at: Optional[datetime] = None


class GoalRecord(BaseModel):
    id: str
    title: str
    goal_type: str
    target_date: Optional[date] = None
    target_value: Optional[float] = None
    current_value: float = 0.0
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "updated_at", "deleted_at", "completed_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class ChangesResponse(BaseModel):
    workouts: List[WorkoutRecord]
    goals: List[GoalRecord]
    cursor: Optional[datetime] = None
