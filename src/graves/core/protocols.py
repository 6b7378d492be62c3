"""
Structural protocols shared across the storage subsystem.

Every backend driver (sqlite3, psycopg2, mysql.connector, mariadb, pyodbc,
jaydebeapi) hands out PEP 249 connections. The storage code depends only on
the shape declared here, never on a driver class.

Tags:
    protocol, connection, dbapi, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Cursor(Protocol):
    """Minimal PEP 249 cursor."""

    description: Any
    rowcount: int

    def execute(self, operation: str, parameters: Sequence[Any] = ...) -> Any: ...

    def executemany(self, operation: str, seq_of_parameters: Sequence[Sequence[Any]]) -> Any: ...

    def fetchone(self) -> Any: ...

    def fetchall(self) -> list[Any]: ...

    def close(self) -> None: ...


@runtime_checkable
class Connection(Protocol):
    """Minimal PEP 249 connection.

    Implementations: ``sqlite3.Connection``, ``psycopg2`` connections,
    ``mysql.connector`` connections, ``mariadb`` connections, ``pyodbc``
    connections and ``jaydebeapi`` connections. Pool proxies returned by
    :class:`~graves.core.pool.ConnectionPool` satisfy it as well.
    """

    def cursor(self) -> Cursor: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


__all__ = [
    "Connection",
    "Cursor",
]
