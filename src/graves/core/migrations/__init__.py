"""Legacy store migration for graves-storage.

Manifesto:
    Servers that outgrow the embedded SQLite store must be able to switch
    to a server backend without losing a single grave. The migrator copies
    the legacy file table by table and only marks it consumed once every
    table made it across.

Modules
-------
legacy    LegacyMigrator with needs_migration() / migrate()

Tags:
    graves, migrations, schema, database, sqlite

Doc-Types:
    package-overview
"""

from graves.core.migrations.legacy import LegacyMigrator, MigrationReport, TableMigration, map_legacy_type

__all__ = ["LegacyMigrator", "MigrationReport", "TableMigration", "map_legacy_type"]
