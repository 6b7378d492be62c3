"""SQLite backend profile.

Uses the built-in sqlite3 module. The store lives at
``<data_dir>/data/<file_name>``; older installs kept it directly in
``<data_dir>``, so :func:`migrate_legacy_layout` moves those files into the
``data/`` subdirectory before the pool is opened.
"""

from __future__ import annotations

import shutil
import sqlite3
from pathlib import Path

from graves.core.errors import DatabaseConnectionError
from graves.core.logging import get_logger
from graves.core.protocols import Connection
from graves.core.settings import StorageSettings

from .base import BackendProfile
from .types import BackendType, PoolSettings

logger = get_logger(__name__)


def migrate_legacy_layout(data_dir: Path, file_prefix: str = "data.db") -> list[Path]:
    """Move ``data.db*`` files from ``data_dir`` into ``data_dir/data``.

    Returns the new paths of the moved files. Files already present at the
    destination are left alone.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        return []

    candidates = [p for p in data_dir.iterdir() if p.is_file() and p.name.startswith(file_prefix)]
    if not candidates:
        return []

    target = data_dir / "data"
    target.mkdir(parents=True, exist_ok=True)

    moved: list[Path] = []
    for path in sorted(candidates):
        destination = target / path.name
        if destination.exists():
            logger.warning("legacy_layout.destination_exists", file=path.name, destination=str(destination))
            continue
        shutil.move(str(path), str(destination))
        moved.append(destination)

    if moved:
        logger.info("legacy_layout.migrated", files=[p.name for p in moved], target=str(target))
    return moved


class SQLiteProfile(BackendProfile):
    """
    Embedded single-file profile.

    Also used, with an explicit ``path``, to open the legacy store during a
    migration to another backend.
    """

    backend_type = BackendType.SQLITE
    display_name = "SQLite"
    requires_connectivity_test = False

    def __init__(self, settings: StorageSettings, *, path: Path | None = None):
        super().__init__(settings)
        self._path = Path(path) if path is not None else settings.legacy_path

    @property
    def path(self) -> Path:
        return self._path

    def prepare(self) -> None:
        migrate_legacy_layout(self._settings.data_dir, self._settings.sqlite.file_name)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> Connection:
        options = self._settings.sqlite
        try:
            conn = sqlite3.connect(
                str(self._path),
                timeout=options.busy_timeout_ms / 1000,
                check_same_thread=False,
            )
            conn.execute(f"PRAGMA journal_mode = {options.journal_mode}")
            conn.execute(f"PRAGMA synchronous = {options.synchronous}")
            conn.execute(f"PRAGMA busy_timeout = {int(options.busy_timeout_ms)}")
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to open SQLite store {self._path}: {e}",
                cause=e,
            ).with_context(backend=self.name) from e
        return conn

    def pool_settings(self) -> PoolSettings:
        options = self._settings.sqlite
        return PoolSettings.from_millis(
            max_size=options.max_pool_size,
            min_idle=self._settings.min_idle,
            connection_timeout_ms=options.connection_timeout_ms,
            idle_timeout_ms=self._settings.idle_timeout_ms,
            max_lifetime_ms=options.max_lifetime_ms,
            leak_detection_threshold_ms=self._settings.leak_detection_threshold_ms,
        )

    def describe(self) -> str:
        return f"sqlite:///{self._path}"


__all__ = [
    "SQLiteProfile",
    "migrate_legacy_layout",
]
