"""
Local SQLite store for the terminal client.

Tables:
    workouts, goals   local records with the `synced` dirty flag
    auth_tokens       the signed-in user's token pair (single row)
    sync_queue        deletions of server-known records waiting to be pushed
    sync_conflicts    diverged records awaiting a manual decision
    sync_state        key/value sync bookkeeping (change-feed cursor, last sync)

Every SQLAlchemy failure is re-raised as StorageError naming the operation.
"""
import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from coach_cli.errors import CliError, RecordNotFoundError, StorageError, SyncInProgressError
from coach_cli.models import (
    EntityType,
    Goal,
    SyncConflictRecord,
    SyncedRecord,
    Workout,
    WorkoutFilter,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

LocalBase = declarative_base()

CURSOR_KEY = "cursor"
LAST_SYNC_KEY = "last_sync_at"
# A lock file with no readable pid is abandoned once it is this old (seconds).
UNREADABLE_LOCK_GRACE = 5.0


class WorkoutRow(LocalBase):
    __tablename__ = "workouts"

    id = Column(String(64), primary_key=True)
    date = Column(Date, nullable=False, index=True)
    exercise_type = Column(String(50), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=True)
    distance_km = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    synced = Column(Boolean, default=False, nullable=False, index=True)
    remote_updated_at = Column(DateTime, nullable=True)
    revision = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class GoalRow(LocalBase):
    __tablename__ = "goals"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False)
    goal_type = Column(String(20), nullable=False)  # distance | duration | event | frequency
    target_date = Column(Date, nullable=True)
    target_value = Column(Float, nullable=True)
    current_value = Column(Float, default=0.0, nullable=False)
    completed = Column(Boolean, default=False, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    synced = Column(Boolean, default=False, nullable=False, index=True)
    remote_updated_at = Column(DateTime, nullable=True)
    revision = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class AuthTokenRow(LocalBase):
    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True)  # always 1
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    saved_at = Column(DateTime, nullable=False)


class SyncQueueRow(LocalBase):
    __tablename__ = "sync_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    operation = Column(String(20), nullable=False, default="delete")
    base_updated_at = Column(DateTime, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)


class SyncConflictRow(LocalBase):
    __tablename__ = "sync_conflicts"
    __table_args__ = (UniqueConstraint("entity_type", "entity_id", name="uq_sync_conflicts_entity"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    server_record = Column(Text, nullable=False)  # JSON snapshot of the server copy
    detected_at = Column(DateTime, nullable=False)


class SyncStateRow(LocalBase):
    __tablename__ = "sync_state"

    key = Column(String(50), primary_key=True)
    value = Column(Text, nullable=True)


ROWS = {EntityType.WORKOUT: WorkoutRow, EntityType.GOAL: GoalRow}
MODELS = {EntityType.WORKOUT: Workout, EntityType.GOAL: Goal}

# Owned by the store and the sync engine; user edits never overwrite them.
SYNC_COLUMNS = {"id", "synced", "remote_updated_at", "revision", "created_at"}


@dataclass
class AuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    email: Optional[str] = None


@dataclass
class PendingDelete:
    queue_id: int
    entity_type: EntityType
    entity_id: str
    base_updated_at: Optional[datetime]
    retry_count: int = 0

    def base_version(self) -> Optional[str]:
        return self.base_updated_at.isoformat() if self.base_updated_at else None


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    value = as_utc(value)
    return value.replace(tzinfo=None) if value is not None else None


def _column_values(record: SyncedRecord, columns) -> Dict[str, Any]:
    values = {}
    for key, value in record.model_dump().items():
        if key not in columns:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = _naive_utc(value)
        values[key] = value
    return values


class LocalStore:
    """
    SQLAlchemy-backed local store.

    Mutating record methods always clear `synced`; only `mark_synced` and
    `adopt_remote` (used by sync) set it.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"sqlite:///{self.path}")
            LocalBase.metadata.create_all(self.engine)
        except (OSError, SQLAlchemyError) as exc:
            raise StorageError(f"Could not open local database at {self.path}: {exc}")
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.debug(f"Storage failure while trying to {action}", exc_info=True)
            raise StorageError(f"Failed to {action}: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- records ---------------------------------------------------------

    def _to_model(self, entity: EntityType, row) -> SyncedRecord:
        values = {column: getattr(row, column) for column in row.__table__.columns.keys()}
        return MODELS[entity].model_validate(values)

    def _add(self, entity: EntityType, record: SyncedRecord) -> SyncedRecord:
        row_cls = ROWS[entity]
        with self._session(f"save {entity.value} {record.id}") as session:
            values = _column_values(record, row_cls.__table__.columns.keys())
            values.update(synced=False, revision=1, remote_updated_at=None)
            session.add(row_cls(**values))
        record.synced = False
        record.revision = 1
        record.remote_updated_at = None
        return record

    def get_record(self, entity: EntityType, record_id: str) -> Optional[SyncedRecord]:
        with self._session(f"load {entity.value} {record_id}") as session:
            row = session.get(ROWS[entity], record_id)
            return self._to_model(entity, row) if row is not None else None

    def resolve_id(self, entity: EntityType, ref: str) -> str:
        """Accept a full id or an unambiguous prefix of one (as shown in listings)."""
        row_cls = ROWS[entity]
        with self._session(f"look up {entity.value} {ref}") as session:
            if session.get(row_cls, ref) is not None:
                return ref
            matches = session.scalars(
                select(row_cls.id).where(row_cls.id.startswith(ref, autoescape=True)).limit(2)
            ).all()
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise CliError(f"'{ref}' matches more than one {entity.value}; use more characters")
        raise RecordNotFoundError(entity.value.capitalize(), ref)

    def _update(self, entity: EntityType, record: SyncedRecord) -> SyncedRecord:
        row_cls = ROWS[entity]
        with self._session(f"update {entity.value} {record.id}") as session:
            row = session.get(row_cls, record.id)
            if row is None:
                raise RecordNotFoundError(entity.value.capitalize(), record.id)
            for key, value in _column_values(record, row_cls.__table__.columns.keys()).items():
                if key not in SYNC_COLUMNS:
                    setattr(row, key, value)
            row.updated_at = _naive_utc(utcnow())
            row.synced = False
            row.revision = row.revision + 1
            session.flush()
            return self._to_model(entity, row)

    def _delete(self, entity: EntityType, record_id: str) -> None:
        """Remove locally; records the server knows about are queued for remote deletion."""
        row_cls = ROWS[entity]
        with self._session(f"delete {entity.value} {record_id}") as session:
            row = session.get(row_cls, record_id)
            if row is None:
                raise RecordNotFoundError(entity.value.capitalize(), record_id)
            if row.remote_updated_at is not None:
                session.add(SyncQueueRow(
                    entity_type=entity.value,
                    entity_id=record_id,
                    operation="delete",
                    base_updated_at=row.remote_updated_at,
                    created_at=_naive_utc(utcnow()),
                ))
            session.delete(row)
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            ))

    def list_unsynced(self, entity: EntityType) -> List[SyncedRecord]:
        row_cls = ROWS[entity]
        with self._session(f"list unsynced {entity.value}s") as session:
            rows = session.scalars(
                select(row_cls).where(row_cls.synced.is_(False)).order_by(row_cls.created_at)
            ).all()
            return [self._to_model(entity, row) for row in rows]

    def add_workout(self, workout: Workout) -> Workout:
        return self._add(EntityType.WORKOUT, workout)

    def get_workout(self, workout_id: str) -> Optional[Workout]:
        return self.get_record(EntityType.WORKOUT, workout_id)

    def update_workout(self, workout: Workout) -> Workout:
        return self._update(EntityType.WORKOUT, workout)

    def delete_workout(self, workout_id: str) -> None:
        self._delete(EntityType.WORKOUT, workout_id)

    def list_workouts(self, workout_filter: Optional[WorkoutFilter] = None, limit: Optional[int] = None) -> List[Workout]:
        """Newest first."""
        workout_filter = workout_filter or WorkoutFilter()
        query = select(WorkoutRow)
        if workout_filter.exercise_type is not None:
            query = query.where(WorkoutRow.exercise_type == workout_filter.exercise_type)
        if workout_filter.from_date is not None:
            query = query.where(WorkoutRow.date >= workout_filter.from_date)
        if workout_filter.to_date is not None:
            query = query.where(WorkoutRow.date <= workout_filter.to_date)
        if workout_filter.synced is not None:
            query = query.where(WorkoutRow.synced.is_(workout_filter.synced))
        query = query.order_by(WorkoutRow.date.desc(), WorkoutRow.created_at.desc())
        if limit:
            query = query.limit(limit)
        with self._session("list workouts") as session:
            return [self._to_model(EntityType.WORKOUT, row) for row in session.scalars(query).all()]

    def add_goal(self, goal: Goal) -> Goal:
        return self._add(EntityType.GOAL, goal)

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self.get_record(EntityType.GOAL, goal_id)

    def update_goal(self, goal: Goal) -> Goal:
        return self._update(EntityType.GOAL, goal)

    def delete_goal(self, goal_id: str) -> None:
        self._delete(EntityType.GOAL, goal_id)

    def list_goals(self, include_completed: bool = False) -> List[Goal]:
        query = select(GoalRow)
        if not include_completed:
            query = query.where(GoalRow.completed.is_(False))
        query = query.order_by(GoalRow.target_date.is_(None), GoalRow.target_date, GoalRow.created_at)
        with self._session("list goals") as session:
            return [self._to_model(EntityType.GOAL, row) for row in session.scalars(query).all()]

    # -- sync bookkeeping ------------------------------------------------

    def mark_synced(self, entity: EntityType, record_id: str, revision: int, remote_updated_at: datetime) -> bool:
        """
        Record a server acknowledgement.

        The base version always moves to the acknowledged one; the dirty flag
        is cleared only if the record is still at `revision`. Returns whether
        the record is now clean.
        """
        row_cls = ROWS[entity]
        with self._session(f"mark {entity.value} {record_id} synced") as session:
            session.execute(
                update(row_cls).where(row_cls.id == record_id)
                .values(remote_updated_at=_naive_utc(remote_updated_at))
            )
            result = session.execute(
                update(row_cls).where(row_cls.id == record_id, row_cls.revision == revision)
                .values(synced=True)
            )
            return result.rowcount == 1

    def adopt_remote(self, entity: EntityType, server_record: Dict[str, Any]) -> SyncedRecord:
        """Replace (or create) the local copy with the server's, clean."""
        record = MODELS[entity].from_remote(server_record)
        row_cls = ROWS[entity]
        with self._session(f"apply server {entity.value} {record.id}") as session:
            row = session.get(row_cls, record.id)
            values = _column_values(record, row_cls.__table__.columns.keys())
            if row is None:
                values["revision"] = 1
                session.add(row_cls(**values))
            else:
                values["revision"] = row.revision + 1
                for key, value in values.items():
                    setattr(row, key, value)
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record.id
            ))
        return record

    def rebase(self, entity: EntityType, record_id: str, remote_updated_at: datetime) -> None:
        """Keep local fields but base them on a newer server version; stays dirty."""
        row_cls = ROWS[entity]
        with self._session(f"rebase {entity.value} {record_id}") as session:
            session.execute(
                update(row_cls).where(row_cls.id == record_id)
                .values(remote_updated_at=_naive_utc(remote_updated_at), synced=False)
            )
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            ))

    def remove_local(self, entity: EntityType, record_id: str) -> None:
        """Drop a record the server has deleted. Nothing is queued."""
        row_cls = ROWS[entity]
        with self._session(f"remove {entity.value} {record_id}") as session:
            session.execute(delete(row_cls).where(row_cls.id == record_id))
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            ))

    def list_pending_deletes(self) -> List[PendingDelete]:
        with self._session("read sync queue") as session:
            rows = session.scalars(select(SyncQueueRow).order_by(SyncQueueRow.id)).all()
            return [
                PendingDelete(
                    queue_id=row.id,
                    entity_type=EntityType(row.entity_type),
                    entity_id=row.entity_id,
                    base_updated_at=as_utc(row.base_updated_at),
                    retry_count=row.retry_count,
                )
                for row in rows
            ]

    def dequeue(self, queue_id: int) -> None:
        with self._session(f"dequeue sync entry {queue_id}") as session:
            session.execute(delete(SyncQueueRow).where(SyncQueueRow.id == queue_id))

    def record_queue_failure(self, queue_id: int, error: str) -> None:
        with self._session(f"update sync entry {queue_id}") as session:
            session.execute(
                update(SyncQueueRow).where(SyncQueueRow.id == queue_id)
                .values(retry_count=SyncQueueRow.retry_count + 1, last_error=error)
            )

    def find_pending_delete(self, entity: EntityType, record_id: str) -> Optional[PendingDelete]:
        for pending in self.list_pending_deletes():
            if pending.entity_type is entity and pending.entity_id == record_id:
                return pending
        return None

    def rebase_pending_delete(self, queue_id: int, base_updated_at: datetime) -> None:
        with self._session(f"rebase sync entry {queue_id}") as session:
            session.execute(
                update(SyncQueueRow).where(SyncQueueRow.id == queue_id)
                .values(base_updated_at=_naive_utc(base_updated_at))
            )

    def reassign_id(self, entity: EntityType, record_id: str) -> str:
        """
        Give a local record a fresh id with no server base.

        Used when the server has tombstoned the id but the local edit is kept:
        the record is uploaded as new on the next sync.
        """
        row_cls = ROWS[entity]
        new_id = str(uuid.uuid4())
        with self._session(f"re-key {entity.value} {record_id}") as session:
            session.execute(
                update(row_cls).where(row_cls.id == record_id)
                .values(id=new_id, remote_updated_at=None, synced=False, revision=row_cls.revision + 1)
            )
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            ))
        return new_id

    def clear_conflict(self, entity: EntityType, record_id: str) -> None:
        with self._session(f"clear conflict for {entity.value} {record_id}") as session:
            session.execute(delete(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            ))

    def record_conflict(self, entity: EntityType, record_id: str, server_record: Dict[str, Any]) -> None:
        with self._session(f"record conflict for {entity.value} {record_id}") as session:
            row = session.scalars(select(SyncConflictRow).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            )).first()
            if row is None:
                row = SyncConflictRow(entity_type=entity.value, entity_id=record_id)
                session.add(row)
            row.server_record = json.dumps(server_record, sort_keys=True, default=str)
            row.detected_at = _naive_utc(utcnow())

    def list_conflicts(self) -> List[SyncConflictRecord]:
        with self._session("list sync conflicts") as session:
            rows = session.scalars(select(SyncConflictRow).order_by(SyncConflictRow.detected_at)).all()
            return [self._conflict(row) for row in rows]

    def get_conflict(self, record_id: str) -> Optional[SyncConflictRecord]:
        with self._session(f"load conflict {record_id}") as session:
            row = session.scalars(
                select(SyncConflictRow).where(SyncConflictRow.entity_id == record_id)
            ).first()
            return self._conflict(row) if row is not None else None

    def has_conflict(self, entity: EntityType, record_id: str) -> bool:
        with self._session(f"check conflict for {entity.value} {record_id}") as session:
            return session.scalars(select(SyncConflictRow.id).where(
                SyncConflictRow.entity_type == entity.value, SyncConflictRow.entity_id == record_id
            )).first() is not None

    @staticmethod
    def _conflict(row: SyncConflictRow) -> SyncConflictRecord:
        return SyncConflictRecord(
            entity_type=EntityType(row.entity_type),
            entity_id=row.entity_id,
            server_record=json.loads(row.server_record),
            detected_at=as_utc(row.detected_at),
        )

    def get_state(self, key: str) -> Optional[str]:
        with self._session(f"read sync state {key}") as session:
            row = session.get(SyncStateRow, key)
            return row.value if row is not None else None

    def set_state(self, key: str, value: Optional[str]) -> None:
        with self._session(f"write sync state {key}") as session:
            session.merge(SyncStateRow(key=key, value=value))

    # -- auth ------------------------------------------------------------

    def save_tokens(self, access_token: str, refresh_token: Optional[str], email: Optional[str] = None) -> None:
        with self._session("save login") as session:
            session.merge(AuthTokenRow(
                id=1,
                access_token=access_token,
                refresh_token=refresh_token,
                email=email,
                saved_at=_naive_utc(utcnow()),
            ))

    def update_access_token(self, access_token: str) -> None:
        with self._session("save refreshed token") as session:
            session.execute(
                update(AuthTokenRow).where(AuthTokenRow.id == 1)
                .values(access_token=access_token, saved_at=_naive_utc(utcnow()))
            )

    def get_tokens(self) -> Optional[AuthTokens]:
        with self._session("load login") as session:
            row = session.get(AuthTokenRow, 1)
            if row is None or not row.access_token:
                return None
            return AuthTokens(access_token=row.access_token, refresh_token=row.refresh_token, email=row.email)

    def clear_tokens(self) -> None:
        with self._session("clear login") as session:
            session.execute(delete(AuthTokenRow))

    # -- locking ---------------------------------------------------------

    @contextmanager
    def exclusive_lock(self) -> Iterator[None]:
        """
        Hold the store's sync lock (a pid file beside the database).

        Raises SyncInProgressError immediately if another live process, or
        this one, already holds it. A lock left by a dead process is reclaimed.
        """
        self._acquire_lock()
        try:
            yield
        finally:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass

    def _acquire_lock(self, reclaim: bool = True) -> None:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            holder = self._lock_holder()
            if reclaim and self._lock_is_stale(holder):
                logger.warning(f"Removing stale sync lock left by pid {holder}")
                self.lock_path.unlink(missing_ok=True)
                return self._acquire_lock(reclaim=False)
            raise SyncInProgressError(hint=f"Lock file: {self.lock_path}")
        except OSError as exc:
            raise StorageError(f"Could not create lock file {self.lock_path}: {exc}")
        with os.fdopen(fd, "w") as handle:
            handle.write(str(os.getpid()))

    def _lock_holder(self) -> Optional[int]:
        try:
            return int(self.lock_path.read_text().strip())
        except (OSError, ValueError):
            return None

    def _lock_is_stale(self, holder: Optional[int]) -> bool:
        if holder is not None:
            return not _pid_alive(holder)
        # Empty or garbled: stale unless another process is still writing its pid.
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age >= UNREADABLE_LOCK_GRACE


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True
