"""MySQL and MariaDB backend profiles.

Both families read the shared ``settings.mysql`` section but use different
drivers:

* ``mysql`` - ``mysql.connector`` from ``mysql-connector-python``,
  **format** (``%s``) placeholders
* ``mariadb`` - the ``mariadb`` connector, **qmark** (``?``) placeholders

Install the driver::

    pip install graves-storage[mysql]
    pip install graves-storage[mariadb]

Drivers are import-guarded: a missing package raises
:class:`~graves.core.errors.ConfigError` at ``connect()`` time.
"""

from __future__ import annotations

import re

from graves.core.errors import ConfigError, DatabaseConnectionError
from graves.core.logging import get_logger
from graves.core.protocols import Connection

from .base import BackendProfile
from .types import BackendType, PoolSettings

logger = get_logger(__name__)

_MAJOR_VERSION = re.compile(r"^(\d+)\.")


def parse_mariadb_major(version: str) -> int | None:
    """Major version of a MariaDB server banner, ``None`` for MySQL servers."""
    if "mariadb" not in version.lower():
        return None
    match = _MAJOR_VERSION.match(version.strip())
    return int(match.group(1)) if match else None


class MySQLProfile(BackendProfile):
    """MySQL profile."""

    backend_type = BackendType.MYSQL
    display_name = "MySQL"
    rollback_on_failed_unlock = False

    def connect(self) -> Connection:
        try:
            import mysql.connector
        except ImportError:
            raise ConfigError(
                "mysql-connector-python is required for MySQL. "
                "Install with: pip install graves-storage[mysql]"
            ) from None

        options = self._settings.mysql
        try:
            return mysql.connector.connect(
                host=options.host,
                port=options.port,
                database=options.database,
                user=options.username,
                password=options.password,
                connection_timeout=max(1, options.connection_timeout_ms // 1000),
                ssl_disabled=not options.use_ssl,
                ssl_verify_cert=options.verify_server_certificate,
                autocommit=False,
            )
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to MySQL: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    def inspect_server(self, conn: Connection) -> None:
        cursor = conn.cursor()
        try:
            cursor.execute(self.dialect.version_query())
            row = cursor.fetchone()
        finally:
            cursor.close()
        version = str(row[0]) if row else ""
        major = parse_mariadb_major(version)
        if major is not None and major >= 11:
            logger.warning(
                "mysql_profile.mariadb_server",
                version=version,
                hint="MariaDB 11+ detected; set the storage backend to 'mariadb'",
            )

    def pool_settings(self) -> PoolSettings:
        return self._server_pool_settings(self._settings.mysql)

    def describe(self) -> str:
        options = self._settings.mysql
        return f"{self.name}://{options.username}@{options.host}:{options.port}/{options.database}"


class MariaDBProfile(MySQLProfile):
    """MariaDB profile."""

    backend_type = BackendType.MARIADB
    display_name = "MariaDB"

    def connect(self) -> Connection:
        try:
            import mariadb
        except ImportError:
            raise ConfigError(
                "mariadb is required for MariaDB. Install with: pip install graves-storage[mariadb]"
            ) from None

        options = self._settings.mysql
        try:
            return mariadb.connect(
                host=options.host,
                port=options.port,
                database=options.database,
                user=options.username,
                password=options.password,
                connect_timeout=max(1, options.connection_timeout_ms // 1000),
                ssl=options.use_ssl,
                ssl_verify_cert=options.verify_server_certificate,
                autocommit=False,
            )
        except mariadb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to MariaDB: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    def inspect_server(self, conn: Connection) -> None:
        pass


__all__ = [
    "MySQLProfile",
    "MariaDBProfile",
    "parse_mariadb_major",
]
