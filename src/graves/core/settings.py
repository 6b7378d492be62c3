"""
Storage settings for the graves persistence layer.

One validated settings object describes which backend to use and how to
reach it. Values come from ``GRAVES_STORAGE_*`` environment variables, a
``.env`` file, or an explicit mapping handed over by the host process
(for example a parsed plugin config file).

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Each backend family gets its own nested section so that a switch from
    SQLite to PostgreSQL is a one-line change, not a code change.

Features:
    - **StorageSettings:** backend identifier, data directory, pool tuning
    - **Nested sections:** ``sqlite``, ``h2``, ``postgresql``, ``mysql``
      (shared by MySQL and MariaDB) and ``mssql``
    - **Nested env vars:** ``GRAVES_STORAGE_POSTGRESQL__HOST=db.internal``
    - **from_mapping():** build from an already-parsed config tree

Examples:
    >>> settings = StorageSettings(backend="postgresql")
    >>> settings.postgresql.port
    5432
    >>> StorageSettings.from_mapping({"backend": "sqlite"}).sqlite.journal_mode
    'WAL'

Tags:
    settings, configuration, pydantic, environment, graves

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Interpolated into PRAGMA statements, so only known values are accepted.
_JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})
_SYNC_MODES = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})


class SQLiteSettings(BaseModel):
    """Embedded single-file store (also the legacy store for migration)."""

    file_name: str = "data.db"
    journal_mode: str = "WAL"
    synchronous: str = "OFF"
    busy_timeout_ms: int = 30000
    max_pool_size: int = 50
    connection_timeout_ms: int = 30000
    max_lifetime_ms: int = 1800000

    @field_validator("journal_mode")
    @classmethod
    def _check_journal_mode(cls, value: str) -> str:
        value = value.upper()
        if value not in _JOURNAL_MODES:
            raise ValueError(f"journal_mode must be one of {sorted(_JOURNAL_MODES)}")
        return value

    @field_validator("synchronous")
    @classmethod
    def _check_synchronous(cls, value: str) -> str:
        value = value.upper()
        if value not in _SYNC_MODES:
            raise ValueError(f"synchronous must be one of {sorted(_SYNC_MODES)}")
        return value


class H2Settings(BaseModel):
    """Embedded server-mode H2 store, reached through a JDBC bridge."""

    file_name: str = "graves.data"
    username: str = "sa"
    password: str = ""
    max_pool_size: int = 50
    connection_timeout_ms: int = 30000
    max_lifetime_ms: int = 1800000
    driver_jar: str | None = Field(
        default=None,
        description="Path to the h2 jar; falls back to the CLASSPATH when unset",
    )


class ServerSettings(BaseModel):
    """Fields shared by every client/server backend."""

    host: str = "localhost"
    port: int = 0
    database: str = "graves"
    username: str = "graves"
    password: str = ""
    max_pool_size: int = 20
    connection_timeout_ms: int = 30000
    max_lifetime_ms: int = 1800000


class PostgreSQLSettings(ServerSettings):
    port: int = 5432
    ssl: bool = False
    sslmode: str = "require"
    sslrootcert: str | None = None
    sslcert: str | None = None
    sslkey: str | None = None


class MySQLSettings(ServerSettings):
    """Used by both the ``mysql`` and ``mariadb`` backends."""

    port: int = 3306
    use_ssl: bool = False
    verify_server_certificate: bool = False


class MSSQLSettings(ServerSettings):
    port: int = 1433
    encrypt: bool = True
    trust_server_certificate: bool = False
    odbc_driver: str = "ODBC Driver 18 for SQL Server"


class StorageSettings(BaseSettings):
    """Graves storage configuration.

    All fields can be set via ``GRAVES_STORAGE_*`` environment variables,
    nested sections with a double underscore
    (``GRAVES_STORAGE_MYSQL__PORT=3307``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAVES_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Backend ──────────────────────────────────────────────────
    backend: str = Field(default="sqlite", description="sqlite, h2, postgresql, mysql, mariadb or mssql")
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".graves",
        description="Directory holding embedded stores (data/ subfolder)",
    )
    integrations: list[str] = Field(
        default_factory=list,
        description="Enabled third-party entity integrations (oraxen, itemsadder, ...)",
    )

    # ── Pool tuning (server backends) ────────────────────────────
    min_idle: int = 2
    idle_timeout_ms: int = 600000
    leak_detection_threshold_ms: int = 15000

    # ── Background work ──────────────────────────────────────────
    watchdog_interval_seconds: float = 25.0
    write_workers: int = 4

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Backend sections ─────────────────────────────────────────
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)
    h2: H2Settings = Field(default_factory=H2Settings)
    postgresql: PostgreSQLSettings = Field(default_factory=PostgreSQLSettings)
    mysql: MySQLSettings = Field(default_factory=MySQLSettings)
    mssql: MSSQLSettings = Field(default_factory=MSSQLSettings)

    @field_validator("backend")
    @classmethod
    def _normalise_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("integrations")
    @classmethod
    def _normalise_integrations(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item.strip()]

    # ── Derived paths ────────────────────────────────────────────

    @property
    def storage_dir(self) -> Path:
        """Versioned subdirectory holding embedded database files."""
        return self.data_dir / "data"

    @property
    def legacy_path(self) -> Path:
        """Location of the embedded single-file store."""
        return self.storage_dir / self.sqlite.file_name

    def integration_enabled(self, name: str) -> bool:
        return name.lower() in self.integrations

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> StorageSettings:
        """Build settings from an already-parsed configuration tree.

        Explicit values take precedence over environment variables.
        """
        return cls(**dict(data))


__all__ = [
    "StorageSettings",
    "SQLiteSettings",
    "H2Settings",
    "ServerSettings",
    "PostgreSQLSettings",
    "MySQLSettings",
    "MSSQLSettings",
]
