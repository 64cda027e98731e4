"""
Server side of client sync.

Records are keyed by (user, client-generated id). Writes carry the server
version (`updated_at`) the client edit was based on; a mismatch is a
conflict and nothing is written. Deletes leave a tombstone so other
clients learn about them through the change feed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, Union
from uuid import UUID

from sqlalchemy.orm import Session

from models import SyncGoal, SyncWorkout, as_utc, utcnow

logger = logging.getLogger(__name__)

SyncModel = Union[Type[SyncWorkout], Type[SyncGoal]]


class SyncConflict(Exception):
    """The client's base version is stale; `current` is the server record."""

    def __init__(self, current):
        self.current = current
        super().__init__("Record was changed on the server")


class SyncRecordNotFound(Exception):
    pass


def _get(db: Session, model: SyncModel, user_id: UUID, record_id: str):
    return db.query(model).filter(model.user_id == user_id, model.id == record_id).first()


def _same_version(current: Optional[datetime], base: Optional[datetime]) -> bool:
    if current is None or base is None:
        return current is None and base is None
    return as_utc(current) == as_utc(base)


def upsert_record(
    db: Session,
    model: SyncModel,
    user_id: UUID,
    record_id: str,
    fields: Dict[str, Any],
    base_updated_at: Optional[datetime],
):
    """
    Create or update a record if `base_updated_at` matches the stored version.

    Raises:
        SyncConflict: stored version differs, or the record is a tombstone
    """
    now = utcnow()
    record = _get(db, model, user_id, record_id)

    if record is None:
        created_at = fields.pop("created_at", None) or now
        record = model(user_id=user_id, id=record_id, created_at=created_at, updated_at=now, **fields)
        db.add(record)
        db.flush()
        return record

    if record.deleted_at is not None or not _same_version(record.updated_at, base_updated_at):
        logger.info(
            "Sync conflict",
            extra={"extra_fields": {"table": model.__tablename__, "record_id": record_id}},
        )
        raise SyncConflict(record)

    fields.pop("created_at", None)
    for key, value in fields.items():
        setattr(record, key, value)
    record.updated_at = now
    db.flush()
    return record


def delete_record(
    db: Session,
    model: SyncModel,
    user_id: UUID,
    record_id: str,
    base_updated_at: Optional[datetime],
):
    """Tombstone a record. Deleting an existing tombstone is a no-op."""
    record = _get(db, model, user_id, record_id)
    if record is None:
        raise SyncRecordNotFound(record_id)
    if record.deleted_at is not None:
        return record
    if base_updated_at is not None and not _same_version(record.updated_at, base_updated_at):
        raise SyncConflict(record)

    now = utcnow()
    record.deleted_at = now
    record.updated_at = now
    db.flush()
    return record


def changes_since(
    db: Session,
    user_id: UUID,
    since: Optional[datetime],
) -> Tuple[List[SyncWorkout], List[SyncGoal], Optional[datetime]]:
    """
    Records (tombstones included) changed after `since`, plus the new cursor.

    The cursor is the newest `updated_at` returned, or `since` when nothing
    changed, so a later write is never skipped.
    """
    since = as_utc(since)
    results = []
    for model in (SyncWorkout, SyncGoal):
        query = db.query(model).filter(model.user_id == user_id)
        if since is not None:
            query = query.filter(model.updated_at > since)
        results.append(query.order_by(model.updated_at.asc()).all())

    workouts, goals = results
    cursor = since
    for record in workouts + goals:
        stamp = as_utc(record.updated_at)
        if cursor is None or stamp > cursor:
            cursor = stamp
    return workouts, goals, cursor
