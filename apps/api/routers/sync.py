"""
Sync API endpoints used by the terminal client.

PUT upserts against a base version, DELETE writes a tombstone, and
GET /changes feeds everything changed after a cursor.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from core.auth import get_current_session
from core.database import get_db
from core.exceptions import ConflictError, NotFoundError
from core.security import UserSession
from models import SyncGoal, SyncWorkout
from schemas import ChangesResponse, GoalPayload, GoalRecord, WorkoutPayload, WorkoutRecord
from services.sync_service import (
    SyncConflict,
    SyncRecordNotFound,
    changes_since,
    delete_record,
    upsert_record,
)

router = APIRouter(prefix="/v1/sync", tags=["sync"])


def _conflict(current, schema) -> ConflictError:
    return ConflictError(
        "Record was changed on the server",
        current=jsonable_encoder(schema.model_validate(current)),
        error_code="SYNC_CONFLICT",
    )


@router.put("/workouts/{record_id}", response_model=WorkoutRecord)
def put_workout(
    record_id: str,
    payload: WorkoutPayload,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    fields = payload.model_dump(exclude={"base_updated_at"})
    try:
        return upsert_record(
            db, SyncWorkout, UUID(session.user_id), record_id, fields, payload.base_updated_at
        )
    except SyncConflict as e:
        raise _conflict(e.current, WorkoutRecord)


@router.delete("/workouts/{record_id}", response_model=WorkoutRecord)
def delete_workout(
    record_id: str,
    base_updated_at: Optional[datetime] = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    try:
        return delete_record(db, SyncWorkout, UUID(session.user_id), record_id, base_updated_at)
    except SyncRecordNotFound:
        raise NotFoundError("Workout", record_id)
    except SyncConflict as e:
        raise _conflict(e.current, WorkoutRecord)


@router.put("/goals/{record_id}", response_model=GoalRecord)
def put_goal(
    record_id: str,
    payload: GoalPayload,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    fields = payload.model_dump(exclude={"base_updated_at"})
    try:
        return upsert_record(
            db, SyncGoal, UUID(session.user_id), record_id, fields, payload.base_updated_at
        )
    except SyncConflict as e:
        raise _conflict(e.current, GoalRecord)


@router.delete("/goals/{record_id}", response_model=GoalRecord)
def delete_goal(
    record_id: str,
    base_updated_at: Optional[datetime] = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    try:
        return delete_record(db, SyncGoal, UUID(session.user_id), record_id, base_updated_at)
    except SyncRecordNotFound:
        raise NotFoundError("Goal", record_id)
    except SyncConflict as e:
        raise _conflict(e.current, GoalRecord)


@router.get("/changes", response_model=ChangesResponse)
def get_changes(
    since: Optional[datetime] = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """Everything changed after `since` (tombstones included) plus the next cursor."""
    workouts, goals, cursor = changes_since(db, UUID(session.user_id), since)
    return {"workouts": workouts, "goals": goals, "cursor": cursor}
