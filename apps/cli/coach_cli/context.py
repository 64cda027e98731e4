"""
Per-invocation state shared by command handlers.

Config, store and API client are created lazily so commands that never
touch the network (or the database) never pay for it.
"""
import logging
from typing import Optional

from rich.console import Console

from coach_cli.api import ApiClient
from coach_cli.config import Config, db_path, load_config
from coach_cli.errors import CliError
from coach_cli.storage import LocalStore
from coach_cli.sync import SyncEngine

logger = logging.getLogger(__name__)


class OfflineError(CliError):
    default_message = "This command needs the server but --offline is set"


class CliContext:

    def __init__(self, config_path: Optional[str] = None, offline: bool = False, console: Optional[Console] = None):
        self.config_path = config_path
        self.offline = offline
        self.console = console or Console()
        self._config: Optional[Config] = None
        self._store: Optional[LocalStore] = None
        self._api: Optional[ApiClient] = None

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            self._store = LocalStore(db_path())
        return self._store

    @property
    def api(self) -> ApiClient:
        if self.offline:
            raise OfflineError()
        if self._api is None:
            self._api = ApiClient(self.config, self.store)
        return self._api

    def sync_engine(self) -> SyncEngine:
        return SyncEngine(self.store, self.api, self.config.sync.conflict_resolution)

    def auto_sync(self) -> None:
        """Best-effort sync after a local change; never fails the command."""
        if self.offline or not self.config.sync.auto_sync or self.store.get_tokens() is None:
            return
        try:
            report = self.sync_engine().sync()
        except CliError as e:
            logger.debug(f"Auto-sync failed: {e}")
            self.console.print(f"[yellow]Saved locally; sync skipped ({e.message})[/yellow]")
            return
        if report.ok and not report.unresolved:
            self.console.print("[dim]Synced with server[/dim]")
        else:
            self.console.print("[yellow]Saved locally; run 'ai-coach sync' for details[/yellow]")

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
