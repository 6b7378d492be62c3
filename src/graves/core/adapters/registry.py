"""Backend profile registry and factory.

Manifesto:
    Consumers should never hard-code profile class names. The registry
    maps backend identifiers to profile classes and ``get_profile()``
    turns a configured identifier into a ready profile, failing loudly on
    anything it does not recognise.

Features:
    - ``ProfileRegistry`` singleton with the six default families
    - ``register()`` for custom profiles and test doubles
    - ``get_profile()`` factory: identifier + settings -> profile

Tags:
    graves, database, registry, factory, singleton

Doc-Types:
    api-reference
"""

from __future__ import annotations

from graves.core.errors import UnknownBackendError
from graves.core.settings import StorageSettings

from .base import BackendProfile
from .h2 import H2Profile
from .mssql import MSSQLProfile
from .mysql import MariaDBProfile, MySQLProfile
from .postgresql import PostgreSQLProfile
from .sqlite import SQLiteProfile
from .types import BackendType


class ProfileRegistry:
    """
    Registry for backend profile classes.

    Pre-registered profiles:
    - ``sqlite`` - :class:`SQLiteProfile`
    - ``h2`` - :class:`H2Profile`
    - ``postgresql`` / ``postgres`` - :class:`PostgreSQLProfile`
    - ``mysql`` - :class:`MySQLProfile`
    - ``mariadb`` - :class:`MariaDBProfile`
    - ``mssql`` - :class:`MSSQLProfile`
    """

    def __init__(self):
        self._factories: dict[str, type[BackendProfile]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["sqlite"] = SQLiteProfile
        self._factories["h2"] = H2Profile
        self._factories["postgresql"] = PostgreSQLProfile
        self._factories["postgres"] = PostgreSQLProfile  # Alias
        self._factories["mysql"] = MySQLProfile
        self._factories["mariadb"] = MariaDBProfile
        self._factories["mssql"] = MSSQLProfile

    def register(self, name: str, profile_class: type[BackendProfile]) -> None:
        self._factories[name.lower()] = profile_class

    def create(self, name: str, settings: StorageSettings) -> BackendProfile:
        """Create a profile by identifier (case-insensitive)."""
        key = name.strip().lower()
        if key not in self._factories:
            raise UnknownBackendError(name, self.list_profiles())
        return self._factories[key](settings)

    def list_profiles(self) -> list[str]:
        return sorted(self._factories.keys())


# Global registry
profile_registry = ProfileRegistry()


def get_profile(
    backend: BackendType | str,
    settings: StorageSettings,
) -> BackendProfile:
    """
    Resolve a backend identifier to a profile.

    Usage:
        profile = get_profile("postgresql", settings)
        profile = get_profile(BackendType.SQLITE, settings)

    Raises:
        UnknownBackendError: If the identifier is not registered.
    """
    name = backend.value if isinstance(backend, BackendType) else backend
    return profile_registry.create(name, settings)


__all__ = [
    "ProfileRegistry",
    "profile_registry",
    "get_profile",
]
