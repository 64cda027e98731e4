"""
Local record models for workouts and goals.

`synced` is the dirty flag: every local mutation clears it and only a
confirmed server acknowledgement sets it again. `remote_updated_at` is the
server version the local copy is based on (None until first pushed).
"""
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class EntityType(str, Enum):
    WORKOUT = "workout"
    GOAL = "goal"


class GoalType(str, Enum):
    DISTANCE = "distance"    # total km
    DURATION = "duration"    # total minutes
    EVENT = "event"
    FREQUENCY = "frequency"  # number of workouts

    @classmethod
    def parse(cls, value: str) -> "GoalType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid goal type: {value}")

    def __str__(self) -> str:
        return self.value.capitalize()


class SyncedRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    synced: bool = False
    remote_updated_at: Optional[datetime] = None
    # Bumped by the store on every local write; lets sync detect edits made mid-request.
    revision: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("remote_updated_at", "created_at", "updated_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def touch(self) -> None:
        self.updated_at = utcnow()
        self.synced = False

    def base_version(self) -> Optional[str]:
        if self.remote_updated_at is None:
            return None
        return as_utc(self.remote_updated_at).isoformat()


class Workout(SyncedRecord):
    date: date
    exercise_type: str
    duration_minutes: Optional[int] = None
    distance_km: Optional[float] = None
    notes: Optional[str] = None

    def update(
        self,
        exercise_type: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        distance_km: Optional[float] = None,
        notes: Optional[str] = None,
        workout_date: Optional[date] = None,
    ) -> None:
        if exercise_type is not None:
            self.exercise_type = exercise_type
        if duration_minutes is not None:
            self.duration_minutes = duration_minutes
        if distance_km is not None:
            self.distance_km = distance_km
        if notes is not None:
            self.notes = notes
        if workout_date is not None:
            self.date = workout_date
        self.touch()

    def pace_min_per_km(self) -> Optional[float]:
        if not self.duration_minutes or not self.distance_km:
            return None
        return self.duration_minutes / self.distance_km

    def to_payload(self) -> Dict[str, Any]:
        """Body for PUT /v1/sync/workouts/{id}."""
        payload = self.model_dump(
            mode="json",
            include={"date", "exercise_type", "duration_minutes", "distance_km", "notes", "created_at"},
        )
        payload["base_updated_at"] = self.base_version()
        return payload

    @classmethod
    def from_remote(cls, record: Dict[str, Any]) -> "Workout":
        """A clean local copy of a server record."""
        return cls.model_validate({**record, "synced": True, "remote_updated_at": record["updated_at"]})


class Goal(SyncedRecord):
    title: str
    goal_type: GoalType
    target_date: Optional[date] = None
    target_value: Optional[float] = None
    current_value: float = 0.0
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("completed_at", mode="after")
    @classmethod
    def _completed_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def update(
        self,
        title: Optional[str] = None,
        target_date: Optional[date] = None,
        target_value: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> None:
        if title is not None:
            self.title = title
        if target_date is not None:
            self.target_date = target_date
        if target_value is not None:
            self.target_value = target_value
        if notes is not None:
            self.notes = notes
        self.touch()

    def update_progress(self, value: float) -> None:
        self.current_value = value
        self.touch()

    def mark_complete(self) -> None:
        self.completed = True
        self.completed_at = utcnow()
        self.touch()

    def progress_percentage(self) -> float:
        """Progress toward target_value, capped at 100."""
        if self.target_value and self.target_value > 0:
            return min(self.current_value / self.target_value * 100.0, 100.0)
        return 0.0

    def days_remaining(self, today: Optional[date] = None) -> Optional[int]:
        if self.target_date is None:
            return None
        today = today or utcnow().date()
        return (self.target_date - today).days

    def to_payload(self) -> Dict[str, Any]:
        """Body for PUT /v1/sync/goals/{id}."""
        payload = self.model_dump(
            mode="json",
            include={
                "title", "goal_type", "target_date", "target_value", "current_value",
                "completed", "completed_at", "notes", "created_at",
            },
        )
        payload["base_updated_at"] = self.base_version()
        return payload

    @classmethod
    def from_remote(cls, record: Dict[str, Any]) -> "Goal":
        return cls.model_validate({**record, "synced": True, "remote_updated_at": record["updated_at"]})


class WorkoutFilter(BaseModel):
    exercise_type: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    synced: Optional[bool] = None


class SyncConflictRecord(BaseModel):
    """A record whose local edit and server edit diverged, awaiting a manual decision."""
    entity_type: EntityType
    entity_id: str
    server_record: Dict[str, Any]
    detected_at: datetime = Field(default_factory=utcnow)
