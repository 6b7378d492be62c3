"""Backend profiles -- one binding per supported relational engine.

Manifesto:
    Graves must run on a single embedded file for small servers and on a
    shared database server for networks of servers. Every engine-specific
    decision lives in exactly one profile class so that switching engines
    is a configuration change.

    Each profile is **import-guarded**: the database driver is only required
    at ``connect()`` time, not at import time. Install the corresponding
    extra::

        pip install graves-storage[postgresql]   # psycopg2-binary
        pip install graves-storage[mysql]        # mysql-connector-python
        pip install graves-storage[mariadb]      # mariadb
        pip install graves-storage[mssql]        # pyodbc
        pip install graves-storage[h2]           # JayDeBeApi

Architecture::

    BackendProfile (base.py)         Abstract base: connect, pool sizing, test
        |-- SQLiteProfile            stdlib sqlite3 (always available)
        |-- H2Profile                jaydebeapi (optional)
        |-- PostgreSQLProfile        psycopg2 (optional)
        |-- MySQLProfile             mysql.connector (optional)
        |-- MariaDBProfile           mariadb (optional)
        |-- MSSQLProfile             pyodbc (optional)

    ProfileRegistry (registry.py)    identifier -> profile class
    BackendType (types.py)           Enum of supported backends
    PoolSettings (types.py)          Resolved pool limits

Tags:
    graves, database, adapters, multi-backend, import-guarded,
    registry-pattern

Doc-Types:
    package-overview, module-index
"""

from graves.core.dialect import Dialect, get_dialect
from graves.core.protocols import Connection

from .base import BackendProfile
from .h2 import H2Profile
from .mssql import MSSQLProfile
from .mysql import MariaDBProfile, MySQLProfile
from .postgresql import PostgreSQLProfile
from .registry import ProfileRegistry, get_profile, profile_registry
from .sqlite import SQLiteProfile, migrate_legacy_layout
from .types import BackendType, PoolSettings

__all__ = [
    "BackendType",
    "PoolSettings",
    "Connection",
    "Dialect",
    "get_dialect",
    "BackendProfile",
    "SQLiteProfile",
    "H2Profile",
    "PostgreSQLProfile",
    "MySQLProfile",
    "MariaDBProfile",
    "MSSQLProfile",
    "migrate_legacy_layout",
    "ProfileRegistry",
    "profile_registry",
    "get_profile",
]
