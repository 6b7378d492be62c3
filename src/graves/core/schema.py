"""
Schema definitions and idempotent schema setup.

Declares the logical tables (``grave``, ``block``, ``hologram`` and one
table per visual entity kind) in terms of :class:`~graves.core.dialect.ColumnType`
and brings a live database up to that shape on every startup.

Manifesto:
    Schema setup runs on every start, possibly from several processes at
    once. It must never fail because a table or column already exists, and
    it must never hide a real failure.

    - **Create then extend:** missing tables are created, missing columns added
    - **Explicit classifier:** :func:`classify_error` returns a typed result
      instead of relying on exception-as-control-flow
    - **Dialect-driven:** no backend names appear in this module

Architecture:
    ::

        setup_tables()
            │
            ├── for each TableSpec
            │      ├── table_exists?  ── no ──► CREATE TABLE
            │      └── for each column
            │             native IF NOT EXISTS? ─ yes ─► ALTER ... ADD COLUMN IF NOT EXISTS
            │             probe column list     ─ missing ► ALTER ... ADD COLUMN
            │
            └── DDL error ──► classify_error()
                               ├── ALREADY_EXISTS ► treated as success
                               └── anything else  ► SchemaError

Tags:
    schema, ddl, idempotent, migrations, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from graves.core.dialect import ColumnType, Dialect, errno_of, sqlstate_of
from graves.core.errors import GravesError, SchemaError
from graves.core.logging import get_logger

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile
    from graves.core.pool import ConnectionPool

logger = get_logger(__name__)


# =============================================================================
# Error classification
# =============================================================================


class ErrorClass(str, Enum):
    """Outcome of classifying a backend error."""

    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    LOCKED = "locked"
    REAL_ERROR = "real_error"


def classify_error(dialect: Dialect, exc: BaseException | None) -> ErrorClass:
    """Classify a backend error using the dialect's fixed allow-lists.

    Wrapped :class:`~graves.core.errors.GravesError` instances are unwrapped
    to their driver cause first.
    """
    if exc is None:
        return ErrorClass.SUCCESS
    if isinstance(exc, GravesError) and exc.cause is not None:
        exc = exc.cause

    message = str(exc).lower()
    if any(marker in message for marker in dialect.lock_messages):
        return ErrorClass.LOCKED

    state = sqlstate_of(exc)
    if state is not None and state in dialect.already_exists_codes:
        return ErrorClass.ALREADY_EXISTS
    errno = errno_of(exc)
    if errno is not None and errno in dialect.already_exists_errnos:
        return ErrorClass.ALREADY_EXISTS
    if any(marker in message for marker in dialect.already_exists_messages):
        return ErrorClass.ALREADY_EXISTS
    return ErrorClass.REAL_ERROR


# =============================================================================
# Table definitions
# =============================================================================


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type: ColumnType
    unique: bool = False

    def definition(self, dialect: Dialect, *, with_constraints: bool = True) -> str:
        sql = f"{self.name} {dialect.column_type(self.type)}"
        if self.unique and with_constraints:
            sql += " UNIQUE"
        return sql


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: tuple[ColumnSpec, ...]

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> ColumnSpec | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def create_statement(self, dialect: Dialect, *, if_not_exists: bool = False) -> str:
        defs = [column.definition(dialect) for column in self.columns]
        return dialect.create_table(self.name, defs, if_not_exists=if_not_exists)


_S, _T = ColumnType.STRING, ColumnType.TEXT

GRAVE_TABLE = TableSpec(
    "grave",
    (
        ColumnSpec("uuid", _S, unique=True),
        ColumnSpec("owner_type", _S),
        ColumnSpec("owner_name", _S),
        ColumnSpec("owner_name_display", _S),
        ColumnSpec("owner_uuid", _S),
        ColumnSpec("owner_texture", _T),
        ColumnSpec("owner_texture_signature", _T),
        ColumnSpec("killer_type", _S),
        ColumnSpec("killer_name", _S),
        ColumnSpec("killer_name_display", _S),
        ColumnSpec("killer_uuid", _S),
        ColumnSpec("location_death", _S),
        ColumnSpec("yaw", ColumnType.REAL),
        ColumnSpec("pitch", ColumnType.REAL),
        ColumnSpec("inventory", _T),
        ColumnSpec("equipment", _T),
        ColumnSpec("experience", ColumnType.INT),
        ColumnSpec("protection", ColumnType.FLAG),
        ColumnSpec("is_abandoned", ColumnType.FLAG),
        ColumnSpec("time_alive", ColumnType.BIGINT),
        ColumnSpec("time_protection", ColumnType.BIGINT),
        ColumnSpec("time_creation", ColumnType.BIGINT),
        ColumnSpec("permissions", _T),
    ),
)

BLOCK_TABLE = TableSpec(
    "block",
    (
        ColumnSpec("location", _S),
        ColumnSpec("uuid_grave", _S),
        ColumnSpec("replace_material", _S),
        ColumnSpec("replace_data", _T),
    ),
)

HOLOGRAM_TABLE = TableSpec(
    "hologram",
    (
        ColumnSpec("uuid_entity", _S),
        ColumnSpec("uuid_grave", _S),
        ColumnSpec("line", ColumnType.INT),
        ColumnSpec("location", _S),
    ),
)


def entity_table(name: str) -> TableSpec:
    """Table shape shared by every visual entity kind."""
    return TableSpec(
        name,
        (
            ColumnSpec("location", _S),
            ColumnSpec("uuid_entity", _S),
            ColumnSpec("uuid_grave", _S),
        ),
    )


# Columns widened after a migration so legacy rows always fit.
GRAVE_WIDENED_COLUMNS: tuple[tuple[str, ColumnType], ...] = (
    ("owner_texture", ColumnType.TEXT),
    ("owner_texture_signature", ColumnType.TEXT),
    ("time_creation", ColumnType.BIGINT),
    ("time_protection", ColumnType.BIGINT),
    ("time_alive", ColumnType.BIGINT),
)


def expected_tables(entity_tables: list[str]) -> list[TableSpec]:
    """All tables for a deployment, given its enabled entity tables."""
    tables = [GRAVE_TABLE, BLOCK_TABLE, HOLOGRAM_TABLE]
    tables.extend(entity_table(name) for name in entity_tables)
    return tables


# =============================================================================
# Schema manager
# =============================================================================


@dataclass
class SchemaReport:
    """What a :meth:`SchemaManager.setup_tables` run changed."""

    created_tables: list[str] = field(default_factory=list)
    added_columns: list[str] = field(default_factory=list)
    already_present: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created_tables or self.added_columns)


class SchemaManager:
    """Creates missing tables and columns for the active backend."""

    def __init__(self, pool: ConnectionPool, profile: BackendProfile, entity_tables: list[str]):
        self._pool = pool
        self._profile = profile
        self._dialect = profile.dialect
        self._tables = expected_tables(entity_tables)

    @property
    def tables(self) -> list[TableSpec]:
        return list(self._tables)

    def table_exists(self, table: str) -> bool:
        return bool(self._pool.query(self._dialect.table_exists_query(), (table,)))

    def column_names(self, table: str) -> set[str]:
        rows = self._pool.query(self._dialect.column_list_query(), (table,))
        return {str(next(iter(row.values()))).lower() for row in rows}

    def setup_tables(self) -> SchemaReport:
        """Bring every expected table up to date. Safe to call repeatedly.

        Raises:
            SchemaError: If a DDL statement fails for a reason other than the
                object already existing.
        """
        report = SchemaReport()
        for table in self._tables:
            self._ensure_table(table, report)
        logger.info(
            "schema.ready",
            backend=self._profile.name,
            tables=len(self._tables),
            created=report.created_tables,
            added_columns=report.added_columns,
        )
        return report

    def _ensure_table(self, table: TableSpec, report: SchemaReport) -> None:
        if not self.table_exists(table.name):
            if self._run_ddl(table.create_statement(self._dialect), table.name):
                report.created_tables.append(table.name)
            else:
                report.already_present += 1

        existing: set[str] | None = None
        if not self._dialect.native_add_column_if_not_exists:
            existing = self.column_names(table.name)

        for column in table.columns:
            if existing is not None and column.name in existing:
                continue
            statement = self._dialect.add_column(
                table.name, column.name, self._dialect.column_type(column.type)
            )
            applied = self._run_ddl(statement, table.name, column=column.name)
            if applied and existing is not None:
                report.added_columns.append(f"{table.name}.{column.name}")
            elif not applied:
                report.already_present += 1

    def _run_ddl(self, statement: str, table: str, column: str | None = None) -> bool:
        """Run a DDL statement; ``False`` when the object already existed."""
        try:
            self._pool.execute(statement)
            return True
        except GravesError as e:
            outcome = self._profile.classify_error(e)
            if outcome is ErrorClass.ALREADY_EXISTS:
                logger.debug("schema.already_exists", table=table, column=column)
                return False
            raise SchemaError(
                f"Failed to update table {table}: {e.message}",
                cause=e.cause or e,
            ).with_context(backend=self._profile.name, table=table, column=column, statement=statement) from e


__all__ = [
    "ErrorClass",
    "classify_error",
    "ColumnSpec",
    "TableSpec",
    "GRAVE_TABLE",
    "BLOCK_TABLE",
    "HOLOGRAM_TABLE",
    "GRAVE_WIDENED_COLUMNS",
    "entity_table",
    "expected_tables",
    "SchemaReport",
    "SchemaManager",
]
