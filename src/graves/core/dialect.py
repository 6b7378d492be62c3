"""SQL dialect abstraction for the six supported backend families.

Provides a ``Dialect`` protocol and one concrete implementation per backend
family. Schema setup, migration and the data manager use ``Dialect`` methods
to produce every backend-specific SQL fragment: placeholders, native column
types, table/column introspection, conditional column adds and version
probes. Nothing outside this module branches on a backend name.

Manifesto:
    Six engines disagree on almost every DDL detail. Without a dialect
    layer, schema code turns into six parallel switch statements that drift
    apart over time.

    - **One interface:** Dialect protocol for all SQL generation
    - **Stateless singletons:** dialects are resolved once and shared
    - **Typed schema:** logical ``ColumnType`` values map to native types
    - **Explicit error vocabularies:** "already exists" and "locked"
      markers live next to the SQL that produces them

Architecture::

    ┌──────────┐ ┌──────────┐ ┌────────────┐ ┌────────┐ ┌─────────┐ ┌────────┐
    │ SQLite   │ │   H2     │ │ PostgreSQL │ │ MySQL  │ │ MariaDB │ │ MSSQL  │
    │ ?        │ │ ?        │ │ %s         │ │ %s     │ │ ?       │ │ ?      │
    │ probe    │ │ IF NOT   │ │ IF NOT     │ │ probe  │ │ IF NOT  │ │ probe  │
    │ columns  │ │ EXISTS   │ │ EXISTS     │ │ columns│ │ EXISTS  │ │ columns│
    └──────────┘ └──────────┘ └────────────┘ └────────┘ └─────────┘ └────────┘

Examples:
    >>> d = get_dialect("postgresql")
    >>> d.placeholders(2)
    '%s, %s'
    >>> d.column_type(ColumnType.FLAG)
    'INT'
    >>> get_dialect("mssql").column_type(ColumnType.TEXT)
    'NVARCHAR(MAX)'

Tags:
    dialect, sql, ddl, portability, database, graves, multi-backend

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Protocol, runtime_checkable


class ColumnType(str, Enum):
    """Logical column types used by table definitions."""

    STRING = "string"
    TEXT = "text"
    REAL = "real"
    INT = "int"
    FLAG = "flag"
    BIGINT = "bigint"
    BLOB = "blob"


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment or statement** valid for the
    target backend. Queries returned by the ``*_query`` methods accept
    exactly one positional parameter (the table name).
    """

    @property
    def name(self) -> str:
        """Backend family name (e.g. ``'sqlite'``)."""
        ...

    @property
    def native_add_column_if_not_exists(self) -> bool:
        """Whether ``ADD COLUMN IF NOT EXISTS`` is understood natively."""
        ...

    already_exists_codes: frozenset[str]
    already_exists_errnos: frozenset[int]
    already_exists_messages: tuple[str, ...]
    lock_messages: tuple[str, ...]

    # -- Placeholder generation --------------------------------------------

    def placeholder(self, index: int) -> str: ...

    def placeholders(self, count: int) -> str: ...

    # -- Types ---------------------------------------------------------------

    def column_type(self, logical: ColumnType) -> str:
        """Native type for a logical column type."""
        ...

    # -- DDL -----------------------------------------------------------------

    def create_table(self, table: str, column_defs: list[str], *, if_not_exists: bool = False) -> str: ...

    def add_column(self, table: str, column: str, type_sql: str) -> str: ...

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        """Statement widening an existing column, or ``None`` if unsupported."""
        ...

    # -- Introspection -------------------------------------------------------

    def table_exists_query(self) -> str: ...

    def column_list_query(self) -> str: ...

    def version_query(self) -> str: ...

    def probe_query(self) -> str: ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class _StandardDialect:
    """Shared behaviour; subclasses override what their engine disagrees on."""

    _name = "standard"
    _placeholder = "?"
    _native_add_column = False
    _types: dict[ColumnType, str] = {}

    already_exists_codes: frozenset[str] = frozenset()
    already_exists_errnos: frozenset[int] = frozenset()
    already_exists_messages: tuple[str, ...] = ("already exists", "duplicate column name")
    lock_messages: tuple[str, ...] = ("database is locked",)

    @property
    def name(self) -> str:
        return self._name

    @property
    def native_add_column_if_not_exists(self) -> bool:
        return self._native_add_column

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return self._placeholder

    def placeholders(self, count: int) -> str:
        return ", ".join(self.placeholder(i) for i in range(count))

    def column_type(self, logical: ColumnType) -> str:
        return self._types[ColumnType(logical)]

    def create_table(self, table: str, column_defs: list[str], *, if_not_exists: bool = False) -> str:
        clause = "IF NOT EXISTS " if if_not_exists else ""
        return f"CREATE TABLE {clause}{table} ({', '.join(column_defs)})"

    def add_column(self, table: str, column: str, type_sql: str) -> str:
        if self._native_add_column:
            return f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {type_sql}"
        return f"ALTER TABLE {table} ADD COLUMN {column} {type_sql}"

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        return f"ALTER TABLE {table} ALTER COLUMN {column} {type_sql}"

    def version_query(self) -> str:
        return "SELECT version()"

    def probe_query(self) -> str:
        return "SELECT 1"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SQLiteDialect(_StandardDialect):
    """SQLite dialect - ``?`` placeholders, column probing via pragma."""

    _name = "sqlite"
    _types = {
        ColumnType.STRING: "VARCHAR(255)",
        ColumnType.TEXT: "TEXT",
        ColumnType.REAL: "REAL",
        ColumnType.INT: "INTEGER",
        ColumnType.FLAG: "INTEGER",
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BLOB: "BLOB",
    }
    lock_messages = ("database is locked", "database table is locked")

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        # SQLite columns are dynamically typed; there is nothing to widen.
        return None

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"

    def column_list_query(self) -> str:
        return "SELECT name FROM pragma_table_info(?)"

    def version_query(self) -> str:
        return "SELECT sqlite_version()"


class H2Dialect(_StandardDialect):
    """H2 dialect - unquoted identifiers are stored upper-case."""

    _name = "h2"
    _native_add_column = True
    _types = {
        ColumnType.STRING: "VARCHAR(255)",
        ColumnType.TEXT: "TEXT",
        ColumnType.REAL: "REAL",
        ColumnType.INT: "INT",
        ColumnType.FLAG: "INT",
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BLOB: "BLOB",
    }
    already_exists_codes = frozenset({"42101", "42121"})
    lock_messages = ("database is locked", "timeout trying to lock table")

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        return f"ALTER TABLE {table} ALTER COLUMN {column} SET DATA TYPE {type_sql}"

    def table_exists_query(self) -> str:
        return "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES WHERE UPPER(TABLE_NAME) = UPPER(?)"

    def column_list_query(self) -> str:
        return "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS WHERE UPPER(TABLE_NAME) = UPPER(?)"

    def version_query(self) -> str:
        return "SELECT H2VERSION()"


class PostgreSQLDialect(_StandardDialect):
    """PostgreSQL dialect - ``%s`` placeholders (psycopg2)."""

    _name = "postgresql"
    _placeholder = "%s"
    _native_add_column = True
    _types = {
        ColumnType.STRING: "VARCHAR(255)",
        ColumnType.TEXT: "TEXT",
        ColumnType.REAL: "REAL",
        ColumnType.INT: "INT",
        ColumnType.FLAG: "INT",
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BLOB: "BYTEA",
    }
    already_exists_codes = frozenset({"42701", "42P07"})
    already_exists_messages = ("already exists",)
    lock_messages = ("database is locked", "could not obtain lock")

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        return f"ALTER TABLE {table} ALTER COLUMN {column} TYPE {type_sql}"

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )

    def column_list_query(self) -> str:
        return (
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )


class MySQLDialect(_StandardDialect):
    """MySQL dialect - ``%s`` placeholders (mysql-connector-python)."""

    _name = "mysql"
    _placeholder = "%s"
    _types = {
        ColumnType.STRING: "VARCHAR(255)",
        ColumnType.TEXT: "LONGTEXT",
        ColumnType.REAL: "FLOAT(16)",
        ColumnType.INT: "INT(16)",
        ColumnType.FLAG: "INT(1)",
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BLOB: "LONGBLOB",
    }
    already_exists_codes = frozenset({"42S01", "42S21"})
    already_exists_errnos = frozenset({1050, 1060})
    lock_messages = ("database is locked", "lock wait timeout exceeded")

    def alter_column_type(self, table: str, column: str, type_sql: str) -> str | None:
        return f"ALTER TABLE {table} MODIFY {column} {type_sql}"

    def _schema_query(self, select: str, source: str) -> str:
        ph = self.placeholder(0)
        return f"SELECT {select} FROM information_schema.{source} WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = {ph}"

    def table_exists_query(self) -> str:
        return self._schema_query("TABLE_NAME", "TABLES")

    def column_list_query(self) -> str:
        return self._schema_query("COLUMN_NAME", "COLUMNS")

    def version_query(self) -> str:
        return "SELECT VERSION()"


class MariaDBDialect(MySQLDialect):
    """MariaDB dialect - ``?`` placeholders (mariadb connector), native IF NOT EXISTS."""

    _name = "mariadb"
    _placeholder = "?"
    _native_add_column = True


class MSSQLDialect(_StandardDialect):
    """Microsoft SQL Server dialect - ``?`` placeholders (pyodbc), dbo schema."""

    _name = "mssql"
    _types = {
        ColumnType.STRING: "NVARCHAR(255)",
        ColumnType.TEXT: "NVARCHAR(MAX)",
        ColumnType.REAL: "FLOAT",
        ColumnType.INT: "INT",
        ColumnType.FLAG: "BIT",
        ColumnType.BIGINT: "BIGINT",
        ColumnType.BLOB: "VARBINARY(MAX)",
    }
    already_exists_codes = frozenset({"42S01", "42S21"})
    already_exists_messages = (
        "there is already an object named",
        "column names in each table must be unique",
    )
    lock_messages = ("database is locked", "lock request time out")

    def create_table(self, table: str, column_defs: list[str], *, if_not_exists: bool = False) -> str:
        statement = f"CREATE TABLE {table} ({', '.join(column_defs)})"
        if if_not_exists:
            return f"IF OBJECT_ID(N'dbo.{table}', N'U') IS NULL {statement}"
        return statement

    def add_column(self, table: str, column: str, type_sql: str) -> str:
        return f"ALTER TABLE {table} ADD {column} {type_sql}"

    def table_exists_query(self) -> str:
        return "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES WHERE TABLE_SCHEMA = 'dbo' AND TABLE_NAME = ?"

    def column_list_query(self) -> str:
        return "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_SCHEMA = 'dbo' AND TABLE_NAME = ?"

    def version_query(self) -> str:
        return "SELECT @@VERSION"


# =========================================================================
# Driver error introspection
# =========================================================================

# H2 appends "[<sqlstate>-<build>]" to its messages.
_H2_STATE = re.compile(r"\[(\w{5})-\d+\]")


def sqlstate_of(exc: BaseException) -> str | None:
    """Best-effort SQLSTATE of a driver exception.

    psycopg2 exposes ``pgcode``, mysql.connector and mariadb expose
    ``sqlstate``, pyodbc puts the state first in ``args`` and H2 embeds it
    in the message text.
    """
    for attr in ("pgcode", "sqlstate"):
        code = getattr(exc, attr, None)
        if isinstance(code, str) and code:
            return code.upper()
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], str):
        head = args[0]
        if len(head) == 5 and head.isalnum() and any(ch.isdigit() for ch in head):
            return head.upper()
    match = _H2_STATE.search(str(exc))
    return match.group(1).upper() if match else None


def errno_of(exc: BaseException) -> int | None:
    errno = getattr(exc, "errno", None)
    return errno if isinstance(errno, int) else None


# =========================================================================
# Registry / Factory
# =========================================================================

_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "h2": H2Dialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "mysql": MySQLDialect(),
    "mariadb": MariaDBDialect(),
    "mssql": MSSQLDialect(),
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by backend family name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower() if isinstance(db_type, str) else db_type.value
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


__all__ = [
    "ColumnType",
    "Dialect",
    "SQLiteDialect",
    "H2Dialect",
    "PostgreSQLDialect",
    "MySQLDialect",
    "MariaDBDialect",
    "MSSQLDialect",
    "sqlstate_of",
    "errno_of",
    "get_dialect",
]
