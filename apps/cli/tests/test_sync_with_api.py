"""
Two devices syncing through the real ApiClient against the real API app.

Requests are routed into FastAPI's TestClient, so the HTTP layer, the
auth flow and the sync endpoints are the production ones.
"""
import os
import sys
import uuid
from datetime import date
from pathlib import Path

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from coach_cli.api import ApiClient
from coach_cli.config import Config
from coach_cli.models import EntityType, Workout
from coach_cli.storage import LocalStore
from coach_cli.sync import ConflictPolicy, SyncEngine

API_ROOT = Path(__file__).resolve().parents[2] / "api"
PASSWORD = "SecureP@ss123"
W = EntityType.WORKOUT


class AppSession:
    """The slice of requests.Session that ApiClient uses, served by a TestClient."""

    def __init__(self, client):
        self.client = client

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        served = self.client.request(method, url, headers=headers, **kwargs)
        response = requests.Response()
        response.status_code = served.status_code
        response._content = served.content
        response.headers = CaseInsensitiveDict(served.headers)
        response.url = str(served.url)
        response.encoding = "utf-8"
        return response


@pytest.fixture(scope="module")
def api_client(tmp_path_factory):
    # Reuses the API suite's settings when it already ran in this session.
    os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")
    os.environ.setdefault("DATABASE_URL", f"sqlite:///{tmp_path_factory.mktemp('api') / 'api.db'}")
    os.environ.setdefault("BCRYPT_ROUNDS", "4")
    os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
    os.environ.setdefault("LOG_FORMAT", "text")
    if str(API_ROOT) not in sys.path:
        sys.path.insert(0, str(API_ROOT))

    from fastapi.testclient import TestClient

    import models  # noqa: F401
    from core.database import Base, engine
    from main import app

    Base.metadata.create_all(engine)
    return TestClient(app)


@pytest.fixture
def account(api_client):
    email = f"runner-{uuid.uuid4().hex[:8]}@example.com"
    response = api_client.post("/v1/auth/register", json={"email": email, "password": PASSWORD})
    assert response.status_code == 201, response.text
    return email


@pytest.fixture
def device(tmp_path, api_client, account):
    """Factory for a logged-in device: its own store and client."""
    opened = []

    def _device(name):
        config = Config()
        config.api.base_url = "http://testserver"
        store = LocalStore(tmp_path / name / "local.db")
        opened.append(store)
        api = ApiClient(config, store, session=AppSession(api_client))
        api.login(account, PASSWORD)
        return store, api

    yield _device
    for store in opened:
        store.close()


def _log_run(store) -> Workout:
    return store.add_workout(Workout(
        date=date(2026, 3, 2), exercise_type="running", duration_minutes=40, distance_km=8.0, notes="easy",
    ))


def test_record_travels_between_devices(device):
    a_store, a_api = device("a")
    b_store, b_api = device("b")
    workout = _log_run(a_store)

    report = SyncEngine(a_store, a_api).sync()
    assert report.ok
    assert report.uploaded == [(W, workout.id)]
    assert a_store.get_workout(workout.id).synced is True

    report = SyncEngine(b_store, b_api).sync()
    assert report.ok
    assert (W, workout.id) in report.downloaded
    copy = b_store.get_workout(workout.id)
    assert copy.notes == "easy"
    assert copy.synced is True

    copy.update(notes="tempo")
    b_store.update_workout(copy)
    assert SyncEngine(b_store, b_api).sync().uploaded == [(W, workout.id)]

    report = SyncEngine(a_store, a_api).sync()
    assert (W, workout.id) in report.downloaded
    assert a_store.get_workout(workout.id).notes == "tempo"


def test_stale_edit_loses_to_server(device):
    a_store, a_api = device("a")
    b_store, b_api = device("b")
    workout = _log_run(a_store)
    SyncEngine(a_store, a_api).sync()
    SyncEngine(b_store, b_api).sync()

    for store, notes in ((a_store, "from a"), (b_store, "from b")):
        local = store.get_workout(workout.id)
        local.update(notes=notes)
        store.update_workout(local)

    assert SyncEngine(a_store, a_api).sync().ok
    report = SyncEngine(b_store, b_api, ConflictPolicy.SERVER_WINS).sync()

    assert report.conflicts == [(W, workout.id)]
    assert report.resolved == [(W, workout.id)]
    resolved = b_store.get_workout(workout.id)
    assert resolved.notes == "from a"
    assert resolved.synced is True


def test_delete_reaches_other_device(device):
    a_store, a_api = device("a")
    b_store, b_api = device("b")
    workout = _log_run(a_store)
    SyncEngine(a_store, a_api).sync()
    SyncEngine(b_store, b_api).sync()

    a_store.delete_workout(workout.id)
    assert SyncEngine(a_store, a_api).sync().deleted_remote == [(W, workout.id)]

    report = SyncEngine(b_store, b_api).sync()
    assert report.removed_local == [(W, workout.id)]
    assert b_store.get_workout(workout.id) is None


def test_rejected_access_token_is_refreshed(device):
    store, api = device("a")
    store.update_access_token("not-a-valid-token")
    _log_run(store)

    report = SyncEngine(store, api).sync()

    assert report.ok
    assert store.get_tokens().access_token != "not-a-valid-token"
