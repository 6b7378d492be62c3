"""Backend profile base class.

Manifesto:
    The data manager must never branch on a backend name. Everything that
    differs between engines (how to open a connection, how big the pool
    is, how booleans are bound, which errors mean "already exists", whether
    a rollback is attempted after a failed unlock) is supplied by one
    profile object resolved at startup.

Features:
    - Abstract ``connect()`` returning a raw PEP 249 connection
    - ``pool_settings()`` with idle/lifetime/leak limits in seconds
    - One-shot ``test_connection()`` on an unpooled connection
    - Dialect-backed type mapping and idempotency-error classification
    - Lock-recovery policy (``rollback_on_failed_unlock``)

Tags:
    graves, database, abstract-base, adapter-pattern, backend-profile

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from graves.core.dialect import ColumnType, Dialect, get_dialect
from graves.core.errors import DatabaseConnectionError
from graves.core.logging import get_logger
from graves.core.protocols import Connection
from graves.core.schema import ErrorClass, classify_error
from graves.core.settings import ServerSettings, StorageSettings

from .types import BackendType, PoolSettings

logger = get_logger(__name__)


class BackendProfile(ABC):
    """
    Abstract base class for backend profiles.

    Subclasses set ``backend_type`` and ``display_name`` and implement
    :meth:`connect`, :meth:`pool_settings` and :meth:`describe`.
    """

    backend_type: BackendType
    display_name: str

    # Whether startup runs the connectivity test and aborts on failure.
    requires_connectivity_test: bool = True
    # Whether lock recovery falls back to a rollback when the commit fails.
    rollback_on_failed_unlock: bool = True

    def __init__(self, settings: StorageSettings):
        self._settings = settings
        self._dialect: Dialect = get_dialect(self.backend_type.value)

    @property
    def settings(self) -> StorageSettings:
        return self._settings

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this profile's backend family."""
        return self._dialect

    @property
    def name(self) -> str:
        return self.backend_type.value

    @property
    def is_legacy_store(self) -> bool:
        """Whether this profile *is* the embedded single-file store."""
        return self.backend_type is BackendType.SQLITE

    @abstractmethod
    def connect(self) -> Connection:
        """Open a new, unpooled driver connection.

        Raises:
            ConfigError: If the driver package is not installed.
            DatabaseConnectionError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    def pool_settings(self) -> PoolSettings:
        """Pool sizing for this backend."""
        ...

    @abstractmethod
    def describe(self) -> str:
        """Connection target with credentials redacted, for logs."""
        ...

    def prepare(self) -> None:
        """Filesystem preparation run once before the pool is opened."""

    def inspect_server(self, conn: Connection) -> None:
        """Hook run on the connectivity-test connection."""

    def test_connection(self) -> None:
        """Run the one-shot connectivity test.

        Raises:
            DatabaseConnectionError: If the backend is unreachable or the
                probe statement fails.
        """
        conn = self.connect()
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(self.dialect.probe_query())
                cursor.fetchone()
            finally:
                cursor.close()
            self.inspect_server(conn)
        except Exception as e:
            raise DatabaseConnectionError(
                f"Connectivity test failed for {self.display_name}: {e}",
                cause=e,
            ).with_context(backend=self.name) from e
        finally:
            conn.close()
        logger.info("connectivity_test.passed", backend=self.name, target=self.describe())

    def bind_bool(self, value: bool) -> Any:
        """Bind a boolean for a flag column (int by default)."""
        return 1 if value else 0

    def column_type(self, logical: ColumnType) -> str:
        return self._dialect.column_type(logical)

    def classify_error(self, exc: BaseException) -> ErrorClass:
        return classify_error(self._dialect, exc)

    def _server_pool_settings(self, section: ServerSettings) -> PoolSettings:
        return PoolSettings.from_millis(
            max_size=section.max_pool_size,
            min_idle=self._settings.min_idle,
            connection_timeout_ms=section.connection_timeout_ms,
            idle_timeout_ms=self._settings.idle_timeout_ms,
            max_lifetime_ms=section.max_lifetime_ms,
            leak_detection_threshold_ms=self._settings.leak_detection_threshold_ms,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.describe()!r})"


__all__ = [
    "BackendProfile",
]
