#!/usr/bin/env python3
"""Database bootstrap: wait for the database, then run Alembic migrations.

- Always run `alembic upgrade head` on startup.
- If migrations fail, fail fast (don't start with an unknown schema).
"""

import os
import sys
import time
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def check_db_ready() -> bool:
    """Check if database is ready"""
    from core.database import check_db_connection

    return check_db_connection()


def _get_alembic_config(database_url: Optional[str] = None):
    """Load Alembic config for programmatic migrations."""
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    cfg = Config(os.path.join(here, "alembic.ini"))
    # script_location in alembic.ini is relative; make it independent of the cwd.
    cfg.set_main_option("script_location", os.path.join(here, "alembic"))
    if database_url:
        cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def alembic_upgrade_head(database_url: Optional[str] = None) -> None:
    """Apply all pending migrations."""
    from alembic import command

    command.upgrade(_get_alembic_config(database_url), "head")


def main(max_retries: int = 30) -> int:
    print("Waiting for database to be ready...")
    for attempt in range(1, max_retries + 1):
        if check_db_ready():
            print("Database is ready!")
            break
        print(f"Database is unavailable - sleeping (attempt {attempt}/{max_retries})")
        time.sleep(1)
    else:
        print("ERROR: Database is not ready after maximum retries")
        return 1

    try:
        alembic_upgrade_head()
    except Exception as e:
        print(f"ERROR: Alembic upgrade failed: {e}")
        return 1

    print("Migrations completed successfully!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
