"""Microsoft SQL Server backend profile.

Uses ``pyodbc`` with the Microsoft ODBC driver named in
``settings.mssql.odbc_driver``. Flag columns are ``BIT`` and are bound as
Python booleans.

Install the driver::

    pip install graves-storage[mssql]
"""

from __future__ import annotations

from typing import Any

from graves.core.errors import ConfigError, DatabaseConnectionError
from graves.core.protocols import Connection

from .base import BackendProfile
from .types import BackendType, PoolSettings


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


class MSSQLProfile(BackendProfile):
    """SQL Server profile."""

    backend_type = BackendType.MSSQL
    display_name = "Microsoft SQL Server"
    rollback_on_failed_unlock = False

    def connection_string(self, *, redact: bool = False) -> str:
        options = self._settings.mssql
        password = "***" if redact else options.password
        parts = [
            f"DRIVER={{{options.odbc_driver}}}",
            f"SERVER={options.host},{options.port}",
            f"DATABASE={options.database}",
            f"UID={options.username}",
            f"PWD={password}",
            f"Encrypt={_yes_no(options.encrypt)}",
            f"TrustServerCertificate={_yes_no(options.trust_server_certificate)}",
        ]
        return ";".join(parts)

    def connect(self) -> Connection:
        try:
            import pyodbc
        except ImportError:
            raise ConfigError(
                "pyodbc is required for SQL Server. Install with: pip install graves-storage[mssql]"
            ) from None

        try:
            return pyodbc.connect(
                self.connection_string(),
                timeout=max(1, self._settings.mssql.connection_timeout_ms // 1000),
                autocommit=False,
            )
        except pyodbc.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to SQL Server: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    def bind_bool(self, value: bool) -> Any:
        return bool(value)

    def pool_settings(self) -> PoolSettings:
        return self._server_pool_settings(self._settings.mssql)

    def describe(self) -> str:
        return self.connection_string(redact=True)


__all__ = [
    "MSSQLProfile",
]
