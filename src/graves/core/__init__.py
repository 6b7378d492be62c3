"""Graves Core -- persistence and cache subsystem for grave records.

Manifesto:
    A grave must never be lost, and the simulation thread must never wait
    for a database. ``graves.core`` keeps the authoritative copy of every
    grave in memory and makes the backend follow asynchronously, on any of
    six relational engines, through one profile abstraction.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (GravesError, ConfigError)
        protocols.py       PEP 249 Connection / Cursor protocols
        models.py          Grave, Location, BlockData, EntityData, ChunkData

    Layer 2 -- Database
        dialect.py         SQL dialect per backend family (6 families)
        adapters/          Backend profiles (SQLite, H2, PostgreSQL, MySQL,
                           MariaDB, MSSQL) + registry
        pool.py            QueuePool-backed connection pool with leak checks
        schema.py          Table specs, classify_error(), SchemaManager
        mapping.py         Row <-> domain object binding
        repository.py      GraveRepository (portable statements)
        migrations/        Legacy SQLite -> server backend migration

    Layer 3 -- Runtime
        cache.py           CacheManager (authoritative in-memory maps)
        pipeline.py        WriteQueue (per-key ordered background writes)
        watchdog.py        LockRecoveryWatchdog (keep-alive + unlock)
        manager.py         DataManager facade

    Layer 4 -- Cross-Cutting Concerns
        logging.py         Structured logging (structlog)
        settings.py        StorageSettings (pydantic-settings)

Tags:
    graves, persistence, cache, multi-backend, write-through

Doc-Types:
    package-overview, architecture-map, module-index
"""

from graves.core.cache import CacheManager
from graves.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    GravesError,
    MigrationError,
    RowMappingError,
    SchemaError,
    TransientError,
    UnknownBackendError,
    ValidationError,
)
from graves.core.manager import DataManager
from graves.core.models import BlockData, ChunkData, EntityData, EntityKind, Grave, HologramData, Location
from graves.core.schema import ErrorClass, SchemaManager, classify_error
from graves.core.settings import StorageSettings

__all__ = [
    # Facade
    "DataManager",
    "CacheManager",
    "StorageSettings",
    # Models
    "Grave",
    "Location",
    "BlockData",
    "EntityData",
    "EntityKind",
    "HologramData",
    "ChunkData",
    # Schema
    "SchemaManager",
    "ErrorClass",
    "classify_error",
    # Errors
    "GravesError",
    "ConfigError",
    "UnknownBackendError",
    "DatabaseError",
    "SchemaError",
    "MigrationError",
    "TransientError",
    "DatabaseConnectionError",
    "ValidationError",
    "RowMappingError",
]
