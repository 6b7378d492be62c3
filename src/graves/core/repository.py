"""Dialect-aware statements for the grave and auxiliary tables.

Provides :class:`GraveRepository`, which pairs a
:class:`~graves.core.pool.ConnectionPool` with the active
:class:`~graves.core.adapters.base.BackendProfile` so that the data manager
never builds SQL itself.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       GraveRepository                              │
    │                                                                    │
    │   pool: ConnectionPool     ← one transaction per statement         │
    │   profile: BackendProfile  ← placeholders, flag binding            │
    │                                                                    │
    │   insert_grave / delete_grave / update_grave_column                │
    │   insert_block / delete_block                                      │
    │   insert_entity / delete_entity / insert_hologram / delete_hologram│
    │   load_graves / load_blocks / load_entities / load_holograms       │
    └────────────────────────────────────────────────────────────────────┘

Every statement is parameterized; values are bound through
:func:`~graves.core.mapping.bind_value`. Loaders skip rows that fail to map
and log them as ``row.skipped``.

Tags:
    repository, database, portability, graves
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

from graves.core.errors import RowMappingError
from graves.core.logging import get_logger
from graves.core.mapping import (
    GRAVE_COLUMNS,
    UPDATABLE_COLUMNS,
    bind_value,
    block_to_params,
    entity_to_params,
    grave_to_params,
    hologram_to_params,
    row_to_block,
    row_to_entity,
    row_to_grave,
    row_to_hologram,
)
from graves.core.models import BlockData, EntityData, EntityKind, Grave, HologramData, Location
from graves.core.schema import BLOCK_TABLE, HOLOGRAM_TABLE, entity_table

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile
    from graves.core.pool import ConnectionPool

logger = get_logger(__name__)

_R = TypeVar("_R")


class GraveRepository:
    """Portable data access for one backend profile."""

    def __init__(self, pool: ConnectionPool, profile: BackendProfile) -> None:
        self.pool = pool
        self.profile = profile
        self.dialect = profile.dialect

    def ph(self, count: int) -> str:
        """Shortcut for ``self.dialect.placeholders(count)``."""
        return self.dialect.placeholders(count)

    def insert_statement(self, table: str, columns: Sequence[str]) -> str:
        return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({self.ph(len(columns))})"

    # -- Graves ------------------------------------------------------------

    def insert_grave(self, grave: Grave) -> int:
        sql = self.insert_statement("grave", list(GRAVE_COLUMNS))
        return self.pool.execute(sql, grave_to_params(grave, self.profile))

    def delete_grave(self, uuid: UUID) -> int:
        return self.pool.execute(f"DELETE FROM grave WHERE uuid = {self.ph(1)}", (str(uuid),))

    def update_grave_column(self, uuid: UUID, column: str, value: Any) -> int:
        """Set one column of one grave.

        ``column`` must be a key of :data:`~graves.core.mapping.UPDATABLE_COLUMNS`;
        column names are never taken from untrusted input.
        """
        if column not in UPDATABLE_COLUMNS:
            raise KeyError(column)
        sql = f"UPDATE grave SET {column} = {self.ph(1)} WHERE uuid = {self.ph(1)}"
        return self.pool.execute(sql, (bind_value(value, self.profile), str(uuid)))

    def load_graves(self) -> list[Grave]:
        columns = ", ".join(GRAVE_COLUMNS)
        return self._load(f"SELECT {columns} FROM grave", "grave", row_to_grave)

    # -- Blocks ------------------------------------------------------------

    def insert_block(self, block: BlockData) -> int:
        sql = self.insert_statement("block", BLOCK_TABLE.column_names)
        return self.pool.execute(sql, block_to_params(block))

    def delete_block(self, location: Location) -> int:
        return self.pool.execute(f"DELETE FROM block WHERE location = {self.ph(1)}", (location.to_string(),))

    def load_blocks(self) -> list[BlockData]:
        columns = ", ".join(BLOCK_TABLE.column_names)
        return self._load(f"SELECT {columns} FROM block", "block", row_to_block)

    # -- Entities ----------------------------------------------------------

    def insert_entity(self, entity: EntityData) -> int:
        table = entity_table(entity.kind.table)
        sql = self.insert_statement(table.name, table.column_names)
        return self.pool.execute(sql, entity_to_params(entity))

    def delete_entity(self, kind: EntityKind, entity_uuid: UUID) -> int:
        sql = f"DELETE FROM {kind.table} WHERE uuid_entity = {self.ph(1)}"
        return self.pool.execute(sql, (str(entity_uuid),))

    def load_entities(self, kind: EntityKind) -> list[EntityData]:
        table = entity_table(kind.table)
        columns = ", ".join(table.column_names)
        return self._load(f"SELECT {columns} FROM {table.name}", table.name, lambda row: row_to_entity(row, kind))

    # -- Holograms ---------------------------------------------------------

    def insert_hologram(self, hologram: HologramData) -> int:
        sql = self.insert_statement("hologram", HOLOGRAM_TABLE.column_names)
        return self.pool.execute(sql, hologram_to_params(hologram))

    def delete_hologram(self, entity_uuid: UUID) -> int:
        return self.pool.execute(f"DELETE FROM hologram WHERE uuid_entity = {self.ph(1)}", (str(entity_uuid),))

    def load_holograms(self) -> list[HologramData]:
        columns = ", ".join(HOLOGRAM_TABLE.column_names)
        return self._load(f"SELECT {columns} FROM hologram", "hologram", row_to_hologram)

    # -- Server ------------------------------------------------------------

    def database_version(self) -> str:
        version = self.pool.scalar(self.dialect.version_query())
        return str(version) if version is not None else "unknown"

    def _load(self, sql: str, table: str, mapper: Callable[[Mapping[str, Any]], _R]) -> list[_R]:
        loaded: list[_R] = []
        skipped = 0
        for row in self.pool.query(sql):
            try:
                loaded.append(mapper(row))
            except RowMappingError as e:
                skipped += 1
                logger.warning("row.skipped", table=table, reason=e.message, field=e.field)
        logger.debug("table.loaded", table=table, rows=len(loaded), skipped=skipped)
        return loaded


__all__ = [
    "GraveRepository",
]
