"""
The Alembic chain must produce the schema the models describe.
"""
from sqlalchemy import inspect

from core.database import Base, engine
import models  # noqa: F401


def test_migrated_tables_match_models():
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    assert {"users", "refresh_tokens", "token_blacklist", "sync_workouts", "sync_goals"} <= tables

    for table in Base.metadata.sorted_tables:
        migrated = {col["name"] for col in inspector.get_columns(table.name)}
        declared = {col.name for col in table.columns}
        assert migrated == declared, f"column drift in {table.name}"


def test_single_head():
    from alembic.config import Config
    from alembic.script import ScriptDirectory
    from pathlib import Path

    api_root = Path(__file__).resolve().parents[1]
    cfg = Config(str(api_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_root / "alembic"))
    assert ScriptDirectory.from_config(cfg).get_heads() == ["001_initial_auth_schema"]
