"""
Pytest configuration and fixtures for the ai-coach client.

Every test gets its own AI_COACH_HOME, so the config file, the local
database and its lock file all live in a temporary directory.
"""
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

# Make coach_cli importable without installing the package
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coach_cli.errors import ConflictError, NetworkError, NotFoundError, UnauthorizedError  # noqa: E402
from coach_cli.models import EntityType  # noqa: E402
from coach_cli.storage import LocalStore  # noqa: E402


@pytest.fixture(autouse=True)
def coach_home(tmp_path, monkeypatch):
    home = tmp_path / "ai-coach"
    monkeypatch.setenv("AI_COACH_HOME", str(home))
    monkeypatch.delenv("AI_COACH_CONFIG", raising=False)
    return home


@pytest.fixture
def store(coach_home):
    local = LocalStore(coach_home / "local.db")
    yield local
    local.close()


@pytest.fixture
def logged_in(store):
    store.save_tokens("access-token", "refresh-token", email="runner@example.com")
    return store


class FakeRemote:
    """
    In-memory stand-in for the sync API.

    Stores records per entity the way the server does: every write gets a
    fresh `updated_at`, stale bases raise ConflictError carrying the current
    copy, and deletes leave tombstones in the change feed.
    """

    def __init__(self):
        self.records: Dict[EntityType, Dict[str, Dict[str, Any]]] = {EntityType.WORKOUT: {}, EntityType.GOAL: {}}
        self.calls: List[tuple] = []
        self.clock = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        self.fail_puts: Dict[str, Exception] = {}
        self.offline = False
        self.expired = False
        self.on_put = None
        self.refresh_allowed = True
        self.refresh_seen: List[bool] = []

    def _tick(self) -> str:
        self.clock += timedelta(seconds=1)
        return self.clock.isoformat().replace("+00:00", "Z")

    def _check(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.offline:
            raise NetworkError("Could not reach http://localhost:3000: connection refused")
        if self.expired:
            raise UnauthorizedError("Token expired", status_code=401)

    def seed(self, entity: EntityType, record_id: str, **fields) -> Dict[str, Any]:
        """Create a record directly on the 'server'."""
        record = {"id": record_id, "deleted_at": None, "created_at": self._tick(), **fields}
        record["updated_at"] = self._tick()
        self.records[entity][record_id] = record
        return dict(record)

    def server_edit(self, entity: EntityType, record_id: str, **fields) -> Dict[str, Any]:
        """Another device changed the record."""
        record = self.records[entity][record_id]
        record.update(fields)
        record["updated_at"] = self._tick()
        return dict(record)

    def tombstone(self, entity: EntityType, record_id: str) -> Dict[str, Any]:
        record = self.records[entity][record_id]
        record["deleted_at"] = record["updated_at"] = self._tick()
        return dict(record)

    def refresh_suppressed(self):
        remote = self

        class _Guard:
            def __enter__(self):
                remote.refresh_allowed = False

            def __exit__(self, *exc):
                remote.refresh_allowed = True
                return False

        return _Guard()

    def profile(self) -> Dict[str, Any]:
        self._check("profile")
        self.refresh_seen.append(self.refresh_allowed)
        return {"id": "u1", "email": "runner@example.com", "role": "athlete"}

    def put_record(self, entity: EntityType, record_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._check("put", entity, record_id)
        if self.on_put is not None:
            self.on_put(entity, record_id)
        if record_id in self.fail_puts:
            raise self.fail_puts[record_id]
        current = self.records[entity].get(record_id)
        base = payload.get("base_updated_at")
        if current is not None and (
            current["deleted_at"] is not None or _instant(base) != _instant(current["updated_at"])
        ):
            raise ConflictError(
                "Record was modified on the server",
                status_code=409,
                error_code="SYNC_CONFLICT",
                body={"current": dict(current)},
            )
        fields = {k: v for k, v in payload.items() if k != "base_updated_at"}
        record = {**(current or {}), **fields, "id": record_id, "deleted_at": None, "updated_at": self._tick()}
        self.records[entity][record_id] = record
        return dict(record)

    def delete_record(self, entity: EntityType, record_id: str, base_updated_at: Optional[str]) -> Dict[str, Any]:
        self._check("delete", entity, record_id)
        current = self.records[entity].get(record_id)
        if current is None:
            raise NotFoundError("Not found", status_code=404)
        if current["deleted_at"] is not None:
            return dict(current)
        if base_updated_at is not None and _instant(base_updated_at) != _instant(current["updated_at"]):
            raise ConflictError(
                "Record was modified on the server",
                status_code=409,
                error_code="SYNC_CONFLICT",
                body={"current": dict(current)},
            )
        return self.tombstone(entity, record_id)

    def get_changes(self, since: Optional[str]) -> Dict[str, Any]:
        self._check("changes", since)
        threshold = _instant(since)
        feed = {}
        for entity, key in ((EntityType.WORKOUT, "workouts"), (EntityType.GOAL, "goals")):
            feed[key] = [
                dict(r) for r in self.records[entity].values()
                if threshold is None or _instant(r["updated_at"]) > threshold
            ]
        return {**feed, "cursor": self.clock.isoformat().replace("+00:00", "Z")}


def _instant(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


@pytest.fixture
def remote():
    return FakeRemote()
