"""One-time migration from the legacy SQLite store to a server backend.

Runs when the configured backend is not SQLite and
``<data_dir>/data/data.db`` still exists. Every table found in the legacy
file is recreated on the target with the nearest column types and its rows
are copied through parameterized inserts, one transaction per table.
Rows the target already holds (matched on the table's unique column, or
the whole row when it has none) are skipped when a retry follows a partial
failure.

The legacy file is renamed to ``data.old.db`` only when every table copied
cleanly; otherwise it stays in place and the next start tries again.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from graves.core.adapters.sqlite import SQLiteProfile
from graves.core.adapters.types import PoolSettings
from graves.core.dialect import ColumnType
from graves.core.errors import GravesError, MigrationError
from graves.core.logging import get_logger
from graves.core.pool import ConnectionPool
from graves.core.schema import GRAVE_TABLE, GRAVE_WIDENED_COLUMNS, ErrorClass, expected_tables

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile
    from graves.core.settings import StorageSettings

logger = get_logger(__name__)

_FLAG_COLUMNS = frozenset({"protection", "is_abandoned"})
_BATCH_SIZE = 500
_SIDECARS = ("", "-wal", "-shm", "-journal")


def map_legacy_type(column: str, declared: str) -> ColumnType | None:
    """Nearest logical type for a legacy SQLite column, ``None`` if unhandled."""
    name = column.lower()
    decl = (declared or "").upper()
    base = re.sub(r"\(.*\)", "", decl).strip()

    if name in _FLAG_COLUMNS and ("INT" in base or "BOOL" in base or base == "BIT"):
        return ColumnType.FLAG
    if "INT" in base:
        if name.startswith("time_") or "BIGINT" in base:
            return ColumnType.BIGINT
        return ColumnType.INT
    if "CHAR" in base:
        return ColumnType.STRING
    if "TEXT" in base or "CLOB" in base:
        return ColumnType.TEXT
    if any(token in base for token in ("FLOAT", "REAL", "DOUBLE", "NUMERIC", "DECIMAL")):
        return ColumnType.REAL
    if "BLOB" in base:
        return ColumnType.BLOB
    if "BOOL" in base or base == "BIT":
        return ColumnType.FLAG
    return None


@dataclass
class TableMigration:
    """Outcome for one legacy table."""

    name: str
    columns: list[str] = field(default_factory=list)
    skipped_columns: list[str] = field(default_factory=list)
    source_rows: int = 0
    rows: int = 0
    already_present: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class MigrationReport:
    """Result of a legacy migration run."""

    source: Path
    tables: list[TableMigration] = field(default_factory=list)
    renamed_to: Path | None = None

    @property
    def success(self) -> bool:
        return all(table.success for table in self.tables)

    @property
    def total_rows(self) -> int:
        return sum(table.rows for table in self.tables)

    @property
    def errors(self) -> dict[str, str]:
        return {table.name: table.error for table in self.tables if table.error is not None}

    def table(self, name: str) -> TableMigration | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None


class LegacyMigrator:
    """Copies the legacy SQLite store into the active backend.

    Example::

        migrator = LegacyMigrator(settings, pool, profile)
        if migrator.needs_migration():
            report = migrator.migrate()
            print(f"Migrated {report.total_rows} rows")
    """

    def __init__(
        self,
        settings: StorageSettings,
        target_pool: ConnectionPool,
        target_profile: BackendProfile,
        *,
        legacy_path: Path | None = None,
    ) -> None:
        self._settings = settings
        self._target_pool = target_pool
        self._target = target_profile
        self._legacy_path = Path(legacy_path) if legacy_path is not None else settings.legacy_path
        self._known_tables = {spec.name: spec for spec in expected_tables([])}

    @property
    def legacy_path(self) -> Path:
        return self._legacy_path

    def needs_migration(self) -> bool:
        return not self._target.is_legacy_store and self._legacy_path.is_file()

    def migrate(self) -> MigrationReport:
        """Copy every legacy table to the target.

        Raises:
            MigrationError: If the legacy file cannot be opened or its table
                list cannot be read. Per-table failures are recorded in the
                report instead.
        """
        report = MigrationReport(source=self._legacy_path)
        source_profile = SQLiteProfile(self._settings, path=self._legacy_path)
        source_pool = ConnectionPool(source_profile, _transient_pool_settings(source_profile))

        logger.info(
            "migration.started",
            source=str(self._legacy_path),
            target=self._target.name,
            target_display=self._target.display_name,
        )
        try:
            source_pool.open()
            try:
                tables = [
                    row["name"]
                    for row in source_pool.query(
                        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
                    )
                ]
            except GravesError as e:
                raise MigrationError(
                    f"Could not read tables from legacy store {self._legacy_path}: {e.message}",
                    cause=e.cause or e,
                ).with_context(backend=self._target.name) from e

            for table in tables:
                report.tables.append(self._migrate_table(source_pool, table))
        finally:
            source_pool.close()

        if report.success:
            report.renamed_to = self._mark_consumed()
            logger.info(
                "migration.completed",
                target=self._target.name,
                tables=len(report.tables),
                rows=report.total_rows,
                renamed_to=str(report.renamed_to) if report.renamed_to else None,
            )
        else:
            logger.error(
                "migration.incomplete",
                target=self._target.name,
                failed_tables=sorted(report.errors),
                source=str(self._legacy_path),
            )
        return report

    # -- Per table ---------------------------------------------------------

    def _migrate_table(self, source_pool: ConnectionPool, table: str) -> TableMigration:
        result = TableMigration(name=table)
        try:
            columns = self._plan_columns(source_pool, table, result)
            if not columns:
                raise MigrationError(f"Table {table} has no migratable columns")
            self._create_target_table(table, columns)
            if table == GRAVE_TABLE.name:
                self._widen_grave_columns()
            self._copy_rows(source_pool, table, columns, result)
        except Exception as e:
            result.error = str(e.message if isinstance(e, GravesError) else e)
            result.rows = 0
            logger.error("migration.table_failed", table=table, target=self._target.name, error=result.error)
            return result

        logger.info(
            "migration.table_copied",
            table=table,
            rows=result.rows,
            already_present=result.already_present,
            skipped_columns=result.skipped_columns,
        )
        return result

    def _plan_columns(
        self, source_pool: ConnectionPool, table: str, result: TableMigration
    ) -> list[tuple[str, ColumnType]]:
        planned: list[tuple[str, ColumnType]] = []
        for info in source_pool.query(f'PRAGMA table_info("{table}")'):
            name = str(info["name"])
            declared = str(info.get("type") or "")
            logical = map_legacy_type(name, declared)
            if logical is None:
                result.skipped_columns.append(name)
                logger.warning("migration.column_skipped", table=table, column=name, declared_type=declared)
                continue
            planned.append((name, logical))
        result.columns = [name for name, _ in planned]
        return planned

    def _create_target_table(self, table: str, columns: Sequence[tuple[str, ColumnType]]) -> None:
        dialect = self._target.dialect
        known = self._known_tables.get(table)
        defs = []
        for name, logical in columns:
            definition = f"{name} {dialect.column_type(logical)}"
            spec = known.column(name) if known is not None else None
            if spec is not None and spec.unique:
                definition += " UNIQUE"
            defs.append(definition)
        statement = dialect.create_table(table, defs, if_not_exists=True)
        try:
            self._target_pool.execute(statement)
        except GravesError as e:
            if self._target.classify_error(e) is not ErrorClass.ALREADY_EXISTS:
                raise

    def _widen_grave_columns(self) -> None:
        dialect = self._target.dialect
        for column, logical in GRAVE_WIDENED_COLUMNS:
            statement = dialect.alter_column_type(GRAVE_TABLE.name, column, dialect.column_type(logical))
            if statement is None:
                continue
            try:
                self._target_pool.execute(statement)
            except GravesError as e:
                logger.debug("migration.widen_skipped", column=column, error=e.message)

    def _copy_rows(
        self,
        source_pool: ConnectionPool,
        table: str,
        columns: Sequence[tuple[str, ColumnType]],
        result: TableMigration,
    ) -> None:
        names = [name for name, _ in columns]
        flags = [logical is ColumnType.FLAG for _, logical in columns]
        select = f"SELECT {', '.join(names)} FROM \"{table}\""
        insert = (
            f"INSERT INTO {table} ({', '.join(names)}) "
            f"VALUES ({self._target.dialect.placeholders(len(names))})"
        )

        key = self._match_columns(table, names)
        positions = [names.index(name) for name in key]

        copied = 0
        with source_pool.acquire() as source, self._target_pool.acquire() as target:
            reader = source.cursor()
            writer = target.cursor()
            try:
                writer.execute(f"SELECT {', '.join(key)} FROM {table}")
                present = {tuple(row) for row in writer.fetchall()}
                reader.execute(select)
                while True:
                    batch = reader.fetchmany(_BATCH_SIZE)
                    if not batch:
                        break
                    result.source_rows += len(batch)
                    pending = []
                    for row in batch:
                        bound = self._bind_row(row, flags)
                        if tuple(bound[i] for i in positions) in present:
                            result.already_present += 1
                            continue
                        pending.append(bound)
                    if pending:
                        writer.executemany(insert, pending)
                        copied += len(pending)
                target.commit()
            except Exception:
                try:
                    target.rollback()
                except Exception as rollback_error:
                    logger.debug("migration.rollback_failed", table=table, error=str(rollback_error))
                raise
            finally:
                reader.close()
                writer.close()
        result.rows = copied

    def _match_columns(self, table: str, names: Sequence[str]) -> list[str]:
        """Columns that identify a row already copied to the target."""
        known = self._known_tables.get(table)
        if known is not None:
            for name in names:
                spec = known.column(name)
                if spec is not None and spec.unique:
                    return [name]
        return list(names)

    def _bind_row(self, row: Sequence[Any], flags: Sequence[bool]) -> tuple[Any, ...]:
        values = []
        for value, is_flag in zip(row, flags, strict=True):
            if is_flag and value is not None:
                value = self._target.bind_bool(_truthy(value))
            values.append(value)
        return tuple(values)

    # -- Consumed marker ---------------------------------------------------

    def _mark_consumed(self) -> Path | None:
        source = self._legacy_path
        if not source.exists():
            return None
        destination = _consumed_name(source)
        for suffix in _SIDECARS:
            current = source.with_name(source.name + suffix)
            if current.exists():
                current.rename(destination.with_name(destination.name + suffix))
        logger.info("migration.legacy_renamed", source=str(source), destination=str(destination))
        return destination


def _consumed_name(source: Path) -> Path:
    candidate = source.with_name(f"{source.stem}.old{source.suffix}")
    counter = 1
    while candidate.exists():
        candidate = source.with_name(f"{source.stem}.old.{counter}{source.suffix}")
        counter += 1
    return candidate


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes", "y")
    return bool(value)


def _transient_pool_settings(profile: SQLiteProfile) -> PoolSettings:
    base = profile.pool_settings()
    return PoolSettings(
        max_size=2,
        min_idle=0,
        connection_timeout=base.connection_timeout,
        idle_timeout=0,
        max_lifetime=0,
        leak_detection_threshold=0,
    )


__all__ = [
    "LegacyMigrator",
    "MigrationReport",
    "TableMigration",
    "map_legacy_type",
]
