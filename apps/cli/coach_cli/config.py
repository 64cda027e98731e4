"""
Client configuration.

Stored as JSON at ~/.ai-coach/config.json (the directory can be moved
with AI_COACH_HOME, the file itself with --config or AI_COACH_CONFIG).
Missing keys fall back to defaults, so older files keep loading.
"""
import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from coach_cli.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
DB_FILENAME = "local.db"

ConflictPolicyName = Literal["server_wins", "local_wins", "manual"]


class ApiConfig(BaseModel):
    base_url: str = "http://localhost:3000"
    timeout_seconds: int = Field(default=30, gt=0)


class SyncConfig(BaseModel):
    auto_sync: bool = True
    conflict_resolution: ConflictPolicyName = "server_wins"


class UiConfig(BaseModel):
    theme: str = "dark"
    date_format: str = "%Y-%m-%d"
    time_format: str = "24h"
    show_sync_status: bool = True


class WorkoutsConfig(BaseModel):
    default_distance_unit: Literal["km", "mi"] = "km"
    default_duration_unit: Literal["minutes", "hours"] = "minutes"


class Config(BaseModel):
    api: ApiConfig = Field(default_factory=ApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    ui: UiConfig = Field(default_factory=UiConfig)
    workouts: WorkoutsConfig = Field(default_factory=WorkoutsConfig)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"


def config_dir() -> Path:
    override = os.getenv("AI_COACH_HOME")
    return Path(override).expanduser() if override else Path.home() / ".ai-coach"


def config_file(path: Union[str, Path, None] = None) -> Path:
    path = path or os.getenv("AI_COACH_CONFIG")
    return Path(path).expanduser() if path else config_dir() / CONFIG_FILENAME


def db_path() -> Path:
    return config_dir() / DB_FILENAME


def load_config(path: Union[str, Path, None] = None) -> Config:
    """Load the config file, or defaults when it does not exist yet."""
    target = config_file(path)
    if not target.exists():
        logger.debug(f"Config file not found at {target}, using defaults")
        return Config()

    try:
        raw = json.loads(target.read_text(encoding="utf-8") or "{}")
        return Config.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Could not parse {target}: {exc}", hint="Fix the file or run 'ai-coach config init --force'")
    except OSError as exc:
        raise ConfigError(f"Could not read {target}: {exc}")


def save_config(config: Config, path: Union[str, Path, None] = None) -> Path:
    """Write atomically (temp file then rename) so a crash never leaves half a file."""
    target = config_file(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile("w", dir=target.parent, delete=False, encoding="utf-8") as tmp:
            tmp.write(config.to_json())
            temp_path = Path(tmp.name)
        temp_path.replace(target)
    except OSError as exc:
        raise ConfigError(f"Could not write {target}: {exc}")
    return target


def init_config(path: Union[str, Path, None] = None, force: bool = False) -> Optional[Path]:
    """Write a default config. Returns None when one exists and force is not set."""
    target = config_file(path)
    if target.exists() and not force:
        return None
    return save_config(Config(), target)
