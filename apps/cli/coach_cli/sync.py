"""
Local-first sync engine.

A sync runs under the store's exclusive lock in two phases:

1. Upload: every dirty record is PUT with the server version it is based
   on; queued deletions are sent. A record's dirty flag is cleared only by
   the acknowledgement for that record, and only if it was not edited
   again while the request was in flight.
2. Download: the change feed since the last cursor is applied. Clean local
   copies follow the server; dirty ones whose base differs are conflicts.

Conflicts go through the configured policy:

    server_wins   adopt the server copy
    local_wins    keep local fields, rebase onto the server version, stay
                  dirty so the next sync pushes them
    manual        record the server snapshot and leave the local copy
                  untouched until `resolve_conflict`

A dry run reports the same work without touching the store or the server.
"""
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter

from coach_cli.errors import (
    ApiError,
    ConflictError,
    NotFoundError,
    NotLoggedInError,
    RecordNotFoundError,
    ServerUnreachableError,
    UnauthorizedError,
)
from coach_cli.models import EntityType, SyncedRecord, as_utc, utcnow
from coach_cli.storage import CURSOR_KEY, LAST_SYNC_KEY, LocalStore, PendingDelete

logger = logging.getLogger(__name__)

_timestamp = TypeAdapter(datetime)

FEED_KEYS = ((EntityType.WORKOUT, "workouts"), (EntityType.GOAL, "goals"))

RecordRef = Tuple[EntityType, str]


class ConflictPolicy(str, Enum):
    SERVER_WINS = "server_wins"
    LOCAL_WINS = "local_wins"
    MANUAL = "manual"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(_timestamp.validate_python(value))


@dataclass
class SyncFailure:
    entity_type: Optional[EntityType]
    record_id: Optional[str]
    error: str


@dataclass
class SyncReport:
    dry_run: bool = False
    uploaded: List[RecordRef] = field(default_factory=list)
    deleted_remote: List[RecordRef] = field(default_factory=list)
    downloaded: List[RecordRef] = field(default_factory=list)
    removed_local: List[RecordRef] = field(default_factory=list)
    conflicts: List[RecordRef] = field(default_factory=list)
    resolved: List[RecordRef] = field(default_factory=list)
    skipped: List[RecordRef] = field(default_factory=list)
    failures: List[SyncFailure] = field(default_factory=list)
    cursor: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def unresolved(self) -> List[RecordRef]:
        return [ref for ref in self.conflicts if ref not in self.resolved]


class SyncEngine:
    """
    Reconcile the local store with the server.

    `remote` is an ApiClient (or anything with the same profile / put_record /
    delete_record / get_changes / refresh_suppressed surface).
    """

    def __init__(self, store: LocalStore, remote, policy: ConflictPolicy = ConflictPolicy.SERVER_WINS):
        self.store = store
        self.remote = remote
        self.policy = ConflictPolicy(policy)

    def sync(self, dry_run: bool = False) -> SyncReport:
        """
        Run both phases.

        Raises:
            NotLoggedInError: no stored token (checked before any network call)
            ServerUnreachableError: the identity check failed
            SyncInProgressError: another sync holds the store lock
        """
        if self.store.get_tokens() is None:
            raise NotLoggedInError()

        with self.store.exclusive_lock():
            refresh_guard = self.remote.refresh_suppressed() if dry_run else nullcontext()
            with refresh_guard:
                self._check_reachable()
                report = SyncReport(dry_run=dry_run)
                self._upload(report)
                self._download(report)

        if not dry_run and report.ok:
            self.store.set_state(LAST_SYNC_KEY, utcnow().isoformat())
        logger.info(
            f"Sync finished (dry_run={dry_run}): uploaded={len(report.uploaded)} "
            f"downloaded={len(report.downloaded)} conflicts={len(report.conflicts)} failures={len(report.failures)}"
        )
        return report

    def _check_reachable(self) -> None:
        try:
            self.remote.profile()
        except UnauthorizedError:
            raise NotLoggedInError("Not logged in (session expired)")
        except ApiError as e:
            raise ServerUnreachableError(f"Cannot connect to server: {e.message}")

    # -- upload ----------------------------------------------------------

    def _upload(self, report: SyncReport) -> None:
        for entity, _ in FEED_KEYS:
            for record in self.store.list_unsynced(entity):
                self._push_record(entity, record, report)
        for pending in self.store.list_pending_deletes():
            self._push_delete(pending, report)

    def _push_record(self, entity: EntityType, record: SyncedRecord, report: SyncReport) -> None:
        ref = (entity, record.id)
        if self.store.has_conflict(entity, record.id):
            report.skipped.append(ref)
            return
        if report.dry_run:
            report.uploaded.append(ref)
            return

        try:
            ack = self.remote.put_record(entity, record.id, record.to_payload())
        except ConflictError as e:
            self._on_conflict(entity, record.id, e.current, report)
            return
        except ApiError as e:
            logger.warning(f"Upload of {entity.value} {record.id} failed: {e}")
            report.failures.append(SyncFailure(entity, record.id, str(e)))
            return

        clean = self.store.mark_synced(entity, record.id, record.revision, parse_timestamp(ack["updated_at"]))
        if not clean:
            logger.debug(f"{entity.value} {record.id} changed during upload; left dirty")
        report.uploaded.append(ref)

    def _push_delete(self, pending: PendingDelete, report: SyncReport) -> None:
        ref = (pending.entity_type, pending.entity_id)
        if self.store.has_conflict(*ref):
            report.skipped.append(ref)
            return
        if report.dry_run:
            report.deleted_remote.append(ref)
            return

        try:
            self.remote.delete_record(pending.entity_type, pending.entity_id, pending.base_version())
        except NotFoundError:
            # Never reached the server, or already purged there.
            pass
        except ConflictError as e:
            self._on_delete_conflict(pending, e.current, report)
            return
        except ApiError as e:
            logger.warning(f"Delete of {pending.entity_type.value} {pending.entity_id} failed: {e}")
            self.store.record_queue_failure(pending.queue_id, str(e))
            report.failures.append(SyncFailure(pending.entity_type, pending.entity_id, str(e)))
            return

        self.store.dequeue(pending.queue_id)
        report.deleted_remote.append(ref)

    # -- download --------------------------------------------------------

    def _download(self, report: SyncReport) -> None:
        since = self.store.get_state(CURSOR_KEY)
        try:
            changes = self.remote.get_changes(since)
        except ApiError as e:
            logger.warning(f"Fetching changes failed: {e}")
            report.failures.append(SyncFailure(None, None, f"change feed: {e}"))
            return

        for entity, key in FEED_KEYS:
            for server_record in changes.get(key) or []:
                self._apply_incoming(entity, server_record, report)

        report.cursor = changes.get("cursor")
        if not report.dry_run and report.cursor:
            self.store.set_state(CURSOR_KEY, report.cursor)

    def _apply_incoming(self, entity: EntityType, server_record: Dict[str, Any], report: SyncReport) -> None:
        record_id = server_record["id"]
        ref = (entity, record_id)
        tombstone = server_record.get("deleted_at") is not None
        local = self.store.get_record(entity, record_id)

        if local is None:
            if tombstone or self.store.find_pending_delete(entity, record_id) is not None:
                return
            report.downloaded.append(ref)
            if not report.dry_run:
                self.store.adopt_remote(entity, server_record)
            return

        if local.remote_updated_at == parse_timestamp(server_record["updated_at"]):
            return

        if local.synced:
            if tombstone:
                report.removed_local.append(ref)
                if not report.dry_run:
                    self.store.remove_local(entity, record_id)
            else:
                report.downloaded.append(ref)
                if not report.dry_run:
                    self.store.adopt_remote(entity, server_record)
            return

        self._on_conflict(entity, record_id, server_record, report)

    # -- conflicts -------------------------------------------------------

    def _on_conflict(self, entity: EntityType, record_id: str, server_record: Dict[str, Any], report: SyncReport) -> None:
        ref = (entity, record_id)
        if ref not in report.conflicts:
            report.conflicts.append(ref)
        if report.dry_run:
            return

        if self.policy is ConflictPolicy.MANUAL:
            self.store.record_conflict(entity, record_id, server_record)
            return

        keep = "server" if self.policy is ConflictPolicy.SERVER_WINS else "local"
        self._apply_choice(entity, record_id, server_record, keep)
        report.resolved.append(ref)

    def _on_delete_conflict(self, pending: PendingDelete, server_record: Dict[str, Any], report: SyncReport) -> None:
        ref = (pending.entity_type, pending.entity_id)
        report.conflicts.append(ref)
        if self.policy is ConflictPolicy.MANUAL:
            self.store.record_conflict(pending.entity_type, pending.entity_id, server_record)
            return
        keep = "server" if self.policy is ConflictPolicy.SERVER_WINS else "local"
        self._apply_delete_choice(pending, server_record, keep)
        report.resolved.append(ref)

    def _apply_choice(self, entity: EntityType, record_id: str, server_record: Dict[str, Any], keep: str) -> None:
        tombstone = server_record.get("deleted_at") is not None
        if keep == "server":
            if tombstone:
                self.store.remove_local(entity, record_id)
            else:
                self.store.adopt_remote(entity, server_record)
        elif tombstone:
            new_id = self.store.reassign_id(entity, record_id)
            logger.info(f"{entity.value} {record_id} was deleted on the server; local copy kept as {new_id}")
        else:
            self.store.rebase(entity, record_id, parse_timestamp(server_record["updated_at"]))

    def _apply_delete_choice(self, pending: PendingDelete, server_record: Dict[str, Any], keep: str) -> None:
        if keep == "local":
            # Retried against the newer version on the next sync.
            self.store.rebase_pending_delete(pending.queue_id, parse_timestamp(server_record["updated_at"]))
        else:
            self.store.dequeue(pending.queue_id)
            if server_record.get("deleted_at") is None:
                self.store.adopt_remote(pending.entity_type, server_record)
        self.store.clear_conflict(pending.entity_type, pending.entity_id)

    def resolve_conflict(self, record_id: str, keep: str) -> RecordRef:
        """
        Settle a conflict recorded under the manual policy.

        keep="server" adopts the stored server snapshot; keep="local" keeps the
        local edit (or local deletion) and re-bases it so the next sync pushes it.
        """
        if keep not in ("local", "server"):
            raise ValueError("keep must be 'local' or 'server'")
        conflict = self.store.get_conflict(record_id)
        if conflict is None:
            raise RecordNotFoundError("Conflict", record_id)

        entity = conflict.entity_type
        with self.store.exclusive_lock():
            pending = self.store.find_pending_delete(entity, record_id)
            if pending is not None:
                self._apply_delete_choice(pending, conflict.server_record, keep)
            else:
                self._apply_choice(entity, record_id, conflict.server_record, keep)
            self.store.clear_conflict(entity, record_id)
        logger.info(f"Resolved conflict on {entity.value} {record_id}, kept {keep}")
        return entity, record_id
