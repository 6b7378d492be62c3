"""H2 backend profile.

H2 runs embedded in server mode (``AUTO_SERVER=TRUE``) so several
processes can share the store file. Python reaches it through the JDBC
bridge in ``JayDeBeApi``; the H2 jar is taken from
``settings.h2.driver_jar`` or the ``CLASSPATH``.

Install the driver::

    pip install graves-storage[h2]
"""

from __future__ import annotations

from graves.core.errors import ConfigError, DatabaseConnectionError
from graves.core.protocols import Connection

from .base import BackendProfile
from .types import BackendType, PoolSettings

H2_DRIVER_CLASS = "org.h2.Driver"


class H2Profile(BackendProfile):
    """Embedded server-mode H2 profile."""

    backend_type = BackendType.H2
    display_name = "H2"

    def jdbc_url(self) -> str:
        store = (self._settings.storage_dir / self._settings.h2.file_name).resolve()
        return f"jdbc:h2:file:{store};AUTO_SERVER=TRUE"

    def prepare(self) -> None:
        self._settings.storage_dir.mkdir(parents=True, exist_ok=True)

    def connect(self) -> Connection:
        try:
            import jaydebeapi
        except ImportError:
            raise ConfigError(
                "JayDeBeApi is required for H2. Install with: pip install graves-storage[h2]"
            ) from None

        options = self._settings.h2
        try:
            conn = jaydebeapi.connect(
                H2_DRIVER_CLASS,
                self.jdbc_url(),
                [options.username, options.password],
                jars=options.driver_jar,
            )
            conn.jconn.setAutoCommit(False)
        except Exception as e:
            raise DatabaseConnectionError(
                f"Failed to connect to H2: {e}",
                cause=e,
            ).with_context(backend=self.name) from e
        return conn

    def pool_settings(self) -> PoolSettings:
        options = self._settings.h2
        return PoolSettings.from_millis(
            max_size=options.max_pool_size,
            min_idle=self._settings.min_idle,
            connection_timeout_ms=options.connection_timeout_ms,
            idle_timeout_ms=self._settings.idle_timeout_ms,
            max_lifetime_ms=options.max_lifetime_ms,
            leak_detection_threshold_ms=self._settings.leak_detection_threshold_ms,
        )

    def describe(self) -> str:
        return f"{self.jdbc_url()} (user={self._settings.h2.username})"


__all__ = [
    "H2Profile",
]
