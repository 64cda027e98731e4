from sqlalchemy import Column, Boolean, Date, DateTime, Float, ForeignKey, Integer, Text, String, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
from core.roles import UserRole
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)  # stored lower-cased
    password_hash = Column(Text, nullable=False)
    role = Column(String(20), default=UserRole.ATHLETE.value, nullable=False)  # 'athlete', 'coach', 'admin'
    display_name = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    # Soft lifecycle only: rows are never physically deleted by normal flow.
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def user_role(self) -> UserRole:
        return UserRole.parse(self.role)


class RefreshToken(Base):
    """Issued refresh tokens, stored as SHA-256 hashes only."""
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")


class TokenBlacklist(Base):
    """Revoked token ids (logout, consumed password reset tokens)."""
    __tablename__ = "token_blacklist"

    jti = Column(String(64), primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class SyncWorkout(Base):
    """Server copy of a client workout, keyed by the client-generated id."""
    __tablename__ = "sync_workouts"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    id = Column(String(64), primary_key=True)
    date = Column(Date, nullable=False)
    exercise_type = Column(String(50), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    distance_km = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # tombstone

    __table_args__ = (
        Index("ix_sync_workouts_user_updated", "user_id", "updated_at"),
    )


class SyncGoal(Base):
    """Server copy of a client goal, keyed by the client-generated id."""
    __tablename__ = "sync_goals"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    goal_type = Column(String(20), nullable=False)  # 'distance', 'duration', 'event', 'frequency'
    target_date = Column(Date, nullable=True)
    target_value = Column(Float, nullable=True)
    current_value = Column(Float, default=0.0, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # tombstone

    __table_args__ = (
        Index("ix_sync_goals_user_updated", "user_id", "updated_at"),
    )
