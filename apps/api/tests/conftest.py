"""
Pytest configuration and fixtures

Tests run against a throwaway SQLite database migrated to Alembic head once
per session. Every table is wiped after each test, so nothing created in
one test is visible to the next.
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

_TEST_DB_DIR = tempfile.mkdtemp(prefix="ai-coach-api-tests-")

# Must be set before anything imports core.config.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["DEBUG"] = "false"

# Add the parent directory to the path so we can import core, models, routers
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(scope="session", autouse=True)
def _ensure_db_schema_is_at_head():
    """Apply the Alembic migrations to the test database."""
    try:
        from alembic import command
        from alembic.config import Config

        api_root = Path(__file__).resolve().parents[1]
        cfg = Config(str(api_root / "alembic.ini"))
        # script_location in alembic.ini is relative ("alembic")
        cfg.set_main_option("script_location", str(api_root / "alembic"))
        cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
        cfg.attributes["configure_logger"] = False
        command.upgrade(cfg, "head")
    except Exception as e:
        # Tests should fail loudly if migrations cannot be applied.
        raise RuntimeError(f"Failed to upgrade DB to Alembic head: {e}") from e


@pytest.fixture(autouse=True)
def _clean_state():
    """Wipe all rows and in-memory login attempts after each test."""
    yield
    from core.account_security import login_attempts
    from core.database import Base, engine
    import models  # noqa: F401

    login_attempts.reset()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db_session():
    from core.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


STRONG_PASSWORD = "SecureP@ss123"


@pytest.fixture
def register_user(client):
    """Register through the API and return the token response body."""
    def _register(email: str, role: str = "athlete", password: str = STRONG_PASSWORD) -> dict:
        response = client.post(
            "/v1/auth/register",
            json={"email": email, "password": password, "role": role},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def registered(register_user):
    """An athlete account with a fresh token pair."""
    return register_user("athlete@example.com")


@pytest.fixture
def admin_tokens(client, db_session, register_user):
    """An admin account (promoted directly in the DB) logged in with admin claims."""
    from models import User

    register_user("admin@example.com")
    user = db_session.query(User).filter(User.email == "admin@example.com").one()
    user.role = "admin"
    db_session.commit()

    response = client.post(
        "/v1/auth/login",
        json={"email": "admin@example.com", "password": STRONG_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return response.json()
