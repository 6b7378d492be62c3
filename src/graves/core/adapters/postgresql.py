"""PostgreSQL backend profile.

Uses ``psycopg2``. PostgreSQL uses **format** (``%s``) placeholder style.

Install the driver::

    pip install graves-storage[postgresql]
"""

from __future__ import annotations

from typing import Any

from graves.core.errors import ConfigError, DatabaseConnectionError
from graves.core.protocols import Connection

from .base import BackendProfile
from .types import BackendType, PoolSettings


class PostgreSQLProfile(BackendProfile):
    """PostgreSQL profile with optional TLS client certificates."""

    backend_type = BackendType.POSTGRESQL
    display_name = "PostgreSQL"

    def connect_kwargs(self) -> dict[str, Any]:
        options = self._settings.postgresql
        kwargs: dict[str, Any] = {
            "host": options.host,
            "port": options.port,
            "dbname": options.database,
            "user": options.username,
            "password": options.password,
            "connect_timeout": max(1, options.connection_timeout_ms // 1000),
            "sslmode": options.sslmode if options.ssl else "disable",
        }
        if options.ssl:
            for key in ("sslrootcert", "sslcert", "sslkey"):
                value = getattr(options, key)
                if value:
                    kwargs[key] = value
        return kwargs

    def connect(self) -> Connection:
        try:
            import psycopg2
        except ImportError:
            raise ConfigError(
                "psycopg2 is required for PostgreSQL. Install with: pip install graves-storage[postgresql]"
            ) from None

        try:
            return psycopg2.connect(**self.connect_kwargs())
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    def pool_settings(self) -> PoolSettings:
        return self._server_pool_settings(self._settings.postgresql)

    def describe(self) -> str:
        options = self._settings.postgresql
        return f"postgresql://{options.username}@{options.host}:{options.port}/{options.database}"


__all__ = [
    "PostgreSQLProfile",
]
