"""
Data manager: the single entry point the rest of the system calls.

Manifesto:
    The host runs one cooperative simulation thread and it must never wait
    on a database. Every public method here mutates the
    :class:`~graves.core.cache.CacheManager` synchronously and hands the
    backend write to a :class:`~graves.core.pipeline.WriteQueue`. Nothing
    branches on a backend name; the resolved
    :class:`~graves.core.adapters.base.BackendProfile` carries every
    engine-specific decision.

Architecture:
    ::

        DataManager.start()
            │  resolve profile (ConfigError on unknown backend)
            ▼
        maintenance thread ─► _bootstrap()
            1. profile.prepare()           directory layout
            2. profile.test_connection()   server backends only
            3. pool.open()
            4. watchdog.tick()             clear a stale lock
            5. LegacyMigrator.migrate()    when data.db is still present
            6. SchemaManager.setup_tables()
            7. write queue resumed and flushed
            8. load graves, blocks, entities, holograms into the cache
            9. cache database version, start watchdog

        add_grave(g) ──► cache.put_grave(g) ──► queue.submit(g.uuid, INSERT)

Failure policy:
    - Unknown backend: raised from ``start()`` / ``reload()``
    - Any bootstrap failure: logged as ``persistence.disabled``; the returned
      future carries the error (non-storage errors wrapped in
      ``DatabaseError``) and later writes are skipped with a warning
    - A failed write: logged as ``write.failed`` with its statement and
      retry flag
    - An update to a grave that is no longer cached: skipped

Tags:
    manager, facade, write-through, cache, persistence, graves

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any
from uuid import UUID

from graves.core.adapters.base import BackendProfile
from graves.core.adapters.registry import get_profile
from graves.core.cache import CacheManager
from graves.core.errors import DatabaseError, GravesError, MigrationError, ValidationError
from graves.core.logging import LogContext, get_logger
from graves.core.mapping import UPDATABLE_COLUMNS, coerce_grave_value
from graves.core.migrations.legacy import LegacyMigrator, MigrationReport
from graves.core.models import BlockData, ChunkData, EntityData, EntityKind, Grave, HologramData, Location
from graves.core.pipeline import WriteQueue
from graves.core.pool import ConnectionPool
from graves.core.repository import GraveRepository
from graves.core.schema import SchemaManager, SchemaReport
from graves.core.settings import StorageSettings
from graves.core.watchdog import LockRecoveryWatchdog

logger = get_logger(__name__)


class _Backend:
    """Everything bound to one resolved profile; replaced wholesale on reload."""

    def __init__(self, profile: BackendProfile, write_workers: int):
        self.profile = profile
        self.pool = ConnectionPool(profile)
        self.repository = GraveRepository(self.pool, profile)
        self.queue = WriteQueue(write_workers, paused=True)
        self.watchdog: LockRecoveryWatchdog | None = None


class DataManager:
    """Write-through persistence façade for graves and their visuals.

    Example:
        >>> manager = DataManager(StorageSettings(backend="sqlite", data_dir=tmp))
        >>> manager.start().result(timeout=30)
        >>> manager.add_grave(grave)
        >>> manager.update_grave(grave, "experience", 75)
        >>> manager.flush()
        True
        >>> manager.close()
    """

    def __init__(self, settings: StorageSettings | None = None, cache: CacheManager | None = None):
        self._settings = settings or StorageSettings()
        self._cache = cache or CacheManager()
        self._lock = threading.RLock()
        self._maintenance = ThreadPoolExecutor(max_workers=1, thread_name_prefix="graves-maintenance")
        self._backend: _Backend | None = None
        self._enabled = False
        self._ready = threading.Event()
        self._database_version = "unknown"
        self._schema_report: SchemaReport | None = None
        self._migration_report: MigrationReport | None = None
        self._closed = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> Future[None]:
        """Resolve the backend and bootstrap it in the background.

        Raises:
            ConfigError: If the configured backend identifier is unknown.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("DataManager has been closed")
            if self._backend is not None:
                raise RuntimeError("DataManager already started; use reload()")
            profile = get_profile(self._settings.backend, self._settings)
            backend = _Backend(profile, self._settings.write_workers)
            self._backend = backend
            self._enabled = True
            self._ready.clear()
        logger.info("persistence.starting", backend=profile.name, target=profile.describe())
        return self._maintenance.submit(self._bootstrap, backend)

    def reload(self, backend: str | None = None) -> Future[None]:
        """Flush, tear down and start again, optionally on another backend.

        The new identifier is validated before anything is torn down.

        Raises:
            ConfigError: If ``backend`` is not a known identifier.
        """
        settings = self._settings
        if backend is not None:
            settings = settings.model_copy(update={"backend": backend.strip().lower()})
        get_profile(settings.backend, settings)

        logger.info("persistence.reloading", backend=settings.backend)
        self._stop_backend()
        with self._lock:
            self._settings = settings
        self._cache.clear()
        return self.start()

    def flush(self, timeout: float | None = 30.0) -> bool:
        """Wait until every queued write has reached the backend."""
        backend = self._backend
        if backend is None:
            return True
        return backend.queue.flush(timeout)

    def close(self, timeout: float | None = 30.0) -> None:
        """Flush pending writes and release every resource."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop_backend(timeout)
        self._maintenance.shutdown(wait=True)
        logger.info("persistence.closed")

    def _stop_backend(self, timeout: float | None = 30.0) -> None:
        with self._lock:
            backend, self._backend = self._backend, None
            enabled = self._enabled
            self._enabled = False
            self._ready.clear()
        if backend is None:
            return
        if backend.watchdog is not None:
            backend.watchdog.stop()
        if enabled and not backend.queue.is_paused:
            if not backend.queue.flush(timeout):
                logger.warning("persistence.flush_timeout", backend=backend.profile.name, pending=backend.queue.pending)
        backend.queue.shutdown(wait=True, discard=True)
        backend.pool.close()

    # =========================================================================
    # Bootstrap
    # =========================================================================

    def _bootstrap(self, backend: _Backend) -> None:
        profile = backend.profile
        with LogContext(backend=profile.name):
            try:
                self._open(backend)
                backend.watchdog = LockRecoveryWatchdog(
                    backend.pool, profile, self._settings.watchdog_interval_seconds
                )
                backend.watchdog.tick()
                self._migrate_legacy(backend)
                self._schema_report = SchemaManager(backend.pool, profile, self.entity_tables()).setup_tables()
                # Writes issued during bootstrap land before the initial load.
                backend.queue.resume()
                backend.queue.flush(timeout=None)
                self._load_all(backend.repository)
            except GravesError as e:
                self._disable(backend, e)
                raise
            except Exception as e:
                error = DatabaseError(f"Bootstrap failed: {e}", cause=e).with_context(backend=profile.name)
                self._disable(backend, error)
                raise error from e

            try:
                self._database_version = backend.repository.database_version()
            except GravesError as e:
                logger.warning("database_version.unavailable", error=e.message)
                self._database_version = "unknown"

            with self._lock:
                if self._backend is not backend:
                    return
                self._ready.set()
            backend.watchdog.start()
            logger.info(
                "persistence.ready",
                type=profile.display_name,
                version=self._database_version,
                graves=self._cache.grave_count(),
            )

    def _open(self, backend: _Backend) -> None:
        profile = backend.profile
        profile.prepare()
        if profile.requires_connectivity_test:
            profile.test_connection()
        backend.pool.open()

    def _migrate_legacy(self, backend: _Backend) -> None:
        migrator = LegacyMigrator(self._settings, backend.pool, backend.profile)
        if not migrator.needs_migration():
            return
        try:
            self._migration_report = migrator.migrate()
        except MigrationError as e:
            logger.error("migration.failed", error=e.message, source=str(migrator.legacy_path))

    def _disable(self, backend: _Backend, error: GravesError) -> None:
        with self._lock:
            if self._backend is backend:
                self._enabled = False
        backend.queue.discard_pending()
        logger.error(
            "persistence.disabled",
            backend=backend.profile.name,
            error=error.message,
            error_type=type(error).__name__,
        )

    def _load_all(self, repository: GraveRepository) -> None:
        graves = repository.load_graves()
        for grave in graves:
            if not self._cache.has_grave(grave.uuid):
                self._cache.put_grave(grave)
        logger.info("grave_map.loaded", count=len(graves))

        blocks = repository.load_blocks()
        for block in blocks:
            self._cache.get_chunk_data(block.location).add_block(block)
        logger.info("block_map.loaded", count=len(blocks))

        entities = 0
        for kind in self.entity_kinds():
            for entity in repository.load_entities(kind):
                self._cache.get_chunk_data(entity.location).add_entity(entity)
                entities += 1
        logger.info("entity_map.loaded", count=entities)

        holograms = repository.load_holograms()
        for hologram in holograms:
            self._cache.get_chunk_data(hologram.location).add_entity(hologram)
        logger.info("hologram_map.loaded", count=len(holograms))

    # =========================================================================
    # Graves
    # =========================================================================

    def add_grave(self, grave: Grave) -> None:
        self._cache.put_grave(grave)
        self._write(str(grave.uuid), "grave.insert", lambda repo: repo.insert_grave(grave))

    def remove_grave(self, grave: Grave | UUID) -> None:
        uuid = grave.uuid if isinstance(grave, Grave) else grave
        self._cache.remove_grave(uuid)
        self._write(str(uuid), "grave.delete", lambda repo: repo.delete_grave(uuid))

    def update_grave(self, grave: Grave, column: str, value: Any) -> None:
        """Set one persisted column on ``grave`` and in the backend.

        A grave that is no longer cached has been removed; the update is
        skipped so it does not come back.

        Raises:
            ValidationError: If ``column`` is not an updatable grave column
                or ``value`` cannot represent it.
        """
        attribute = UPDATABLE_COLUMNS.get(column)
        if attribute is None:
            raise ValidationError(
                f"Unknown grave column: {column}",
                field="column",
                value=column,
            )
        value = coerce_grave_value(column, value)
        uuid = grave.uuid
        cached = self._cache.get_grave(uuid)
        if cached is None:
            logger.warning("grave.update_skipped", grave=str(uuid), column=column, reason="not cached")
            return
        setattr(grave, attribute, value)
        if cached is not grave:
            setattr(cached, attribute, value)
        self._write(str(uuid), f"grave.update.{column}", lambda repo: repo.update_grave_column(uuid, column, value))

    def get_grave_map(self) -> dict[UUID, Grave]:
        return self._cache.get_grave_map()

    def get_oldest_grave(self, owner_uuid: UUID) -> Grave | None:
        return self._cache.get_oldest_grave(owner_uuid)

    def has_grave_at_location(self, location: Location) -> bool:
        return self._cache.has_grave_at(location)

    # =========================================================================
    # Chunks, blocks and entities
    # =========================================================================

    def get_chunk_data(self, location: Location) -> ChunkData:
        return self._cache.get_chunk_data(location)

    def has_chunk_data(self, location: Location) -> bool:
        return self._cache.has_chunk_data(location)

    def remove_chunk_data(self, chunk: ChunkData) -> None:
        self._cache.remove_chunk_data(chunk)

    def add_block_data(self, block: BlockData) -> None:
        self._cache.get_chunk_data(block.location).add_block(block)
        self._write(block.location.to_string(), "block.insert", lambda repo: repo.insert_block(block))

    def remove_block_data(self, location: Location) -> None:
        if self._cache.has_chunk_data(location):
            self._cache.get_chunk_data(location).remove_block(location)
            self._cache.discard_chunk_if_empty(location)
        self._write(location.to_string(), "block.delete", lambda repo: repo.delete_block(location))

    def add_entity_data(self, entity: EntityData) -> None:
        if isinstance(entity, HologramData):
            self.add_hologram_data(entity)
            return
        self._cache.get_chunk_data(entity.location).add_entity(entity)
        if not self._persists(entity.kind):
            return
        self._write(str(entity.entity_uuid), f"{entity.kind.table}.insert", lambda repo: repo.insert_entity(entity))

    def remove_entity_data(self, entities: Iterable[EntityData]) -> None:
        for entity in list(entities):
            if isinstance(entity, HologramData):
                self.remove_hologram_data([entity])
                continue
            self._evict_entity(entity)
            if not self._persists(entity.kind):
                continue
            kind, entity_uuid = entity.kind, entity.entity_uuid
            self._write(str(entity_uuid), f"{kind.table}.delete", lambda repo: repo.delete_entity(kind, entity_uuid))

    def add_hologram_data(self, hologram: HologramData) -> None:
        self._cache.get_chunk_data(hologram.location).add_entity(hologram)
        self._write(str(hologram.entity_uuid), "hologram.insert", lambda repo: repo.insert_hologram(hologram))

    def remove_hologram_data(self, holograms: Iterable[HologramData]) -> None:
        for hologram in list(holograms):
            self._evict_entity(hologram)
            entity_uuid = hologram.entity_uuid
            self._write(str(entity_uuid), "hologram.delete", lambda repo: repo.delete_hologram(entity_uuid))

    def _evict_entity(self, entity: EntityData) -> None:
        if self._cache.has_chunk_data(entity.location):
            self._cache.get_chunk_data(entity.location).remove_entity(entity.entity_uuid)
            self._cache.discard_chunk_if_empty(entity.location)

    def _persists(self, kind: EntityKind) -> bool:
        if kind.is_integration and not self._settings.integration_enabled(kind.table):
            logger.warning("entity.integration_disabled", kind=kind.value, table=kind.table)
            return False
        return True

    # =========================================================================
    # Introspection
    # =========================================================================

    def entity_kinds(self) -> list[EntityKind]:
        return EntityKind.entity_kinds(self._settings.integrations)

    def entity_tables(self) -> list[str]:
        return [kind.table for kind in self.entity_kinds()]

    def get_database_version(self) -> str:
        """Backend server version captured at bootstrap."""
        return self._database_version

    def get_type(self) -> str:
        """Display name of the active backend, e.g. ``PostgreSQL``."""
        backend = self._backend
        if backend is not None:
            return backend.profile.display_name
        return get_profile(self._settings.backend, self._settings).display_name

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def settings(self) -> StorageSettings:
        return self._settings

    @property
    def profile(self) -> BackendProfile | None:
        backend = self._backend
        return backend.profile if backend is not None else None

    @property
    def pool(self) -> ConnectionPool | None:
        backend = self._backend
        return backend.pool if backend is not None else None

    @property
    def schema_report(self) -> SchemaReport | None:
        return self._schema_report

    @property
    def migration_report(self) -> MigrationReport | None:
        return self._migration_report

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)

    def health(self) -> dict[str, Any]:
        backend = self._backend
        return {
            "enabled": self._enabled,
            "ready": self._ready.is_set(),
            "backend": backend.profile.name if backend is not None else self._settings.backend,
            "version": self._database_version,
            "cache": self._cache.stats(),
            "pool": backend.pool.status() if backend is not None else None,
            "writes": backend.queue.stats() if backend is not None else None,
            "watchdog": backend.watchdog.health() if backend is not None and backend.watchdog else None,
        }

    # =========================================================================
    # Write dispatch
    # =========================================================================

    def _write(self, key: str, action: str, operation: Callable[[GraveRepository], Any]) -> None:
        with self._lock:
            backend = self._backend
            enabled = self._enabled
        if backend is None or not enabled:
            logger.warning("write.skipped", action=action, key=key, reason="persistence disabled")
            return
        repository = backend.repository

        def task() -> None:
            try:
                operation(repository)
            except GravesError as e:
                logger.error(
                    "write.failed",
                    action=action,
                    key=key,
                    error=e.message,
                    retryable=e.retryable,
                    statement=e.context.statement,
                    backend=e.context.backend,
                )

        backend.queue.submit(key, task, description=action)


__all__ = [
    "DataManager",
]
