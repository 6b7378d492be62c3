"""Tests for the legacy SQLite -> backend migration."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from graves.core.adapters import PostgreSQLProfile, SQLiteProfile
from graves.core.dialect import ColumnType
from graves.core.migrations import LegacyMigrator, map_legacy_type
from graves.core.pool import ConnectionPool

GRAVE_UUID = "0b1c7a52-7a63-4d0a-9a43-0a1d5f6f1c10"


def _build_legacy(path: Path, *, duplicate_blocks: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            "CREATE TABLE grave (uuid VARCHAR(255) UNIQUE, owner_name VARCHAR(255), location_death VARCHAR(255),"
            " experience INT(16), protection INT(1), is_abandoned INT(1), time_alive INT(16),"
            " time_creation BIGINT, permissions TEXT)"
        )
        conn.execute(
            "INSERT INTO grave VALUES (?, 'Steve', 'world|1|64|2', 50, 1, 0, 3600000, 1700000000000, 'graves.open')",
            (GRAVE_UUID,),
        )
        conn.execute(
            "CREATE TABLE block (location VARCHAR(255), uuid_grave VARCHAR(255),"
            " replace_material VARCHAR(255), replace_data TEXT)"
        )
        blocks = [("world|1|64|2", GRAVE_UUID, "DIRT", "minecraft:dirt")]
        blocks.append(("world|1|64|2" if duplicate_blocks else "world|1|65|2", GRAVE_UUID, "AIR", None))
        conn.executemany("INSERT INTO block VALUES (?, ?, ?, ?)", blocks)
        conn.execute("CREATE TABLE armorstand (location VARCHAR(255), uuid_entity VARCHAR(255), uuid_grave VARCHAR(255))")
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def legacy_path(settings) -> Path:
    path = settings.legacy_path
    _build_legacy(path)
    return path


@pytest.fixture
def target(settings, tmp_path):
    profile = SQLiteProfile(settings, path=tmp_path / "target" / "graves.db")
    profile.prepare()
    pool = ConnectionPool(profile).open()
    yield profile, pool
    pool.close()


class TestMapLegacyType:
    @pytest.mark.parametrize(
        "column,declared,expected",
        [
            ("protection", "INT(1)", ColumnType.FLAG),
            ("is_abandoned", "BOOLEAN", ColumnType.FLAG),
            ("experience", "INT(16)", ColumnType.INT),
            ("time_alive", "INT(16)", ColumnType.BIGINT),
            ("line", "BIGINT", ColumnType.BIGINT),
            ("owner_name", "VARCHAR(255)", ColumnType.STRING),
            ("permissions", "TEXT", ColumnType.TEXT),
            ("yaw", "FLOAT(16)", ColumnType.REAL),
            ("payload", "BLOB", ColumnType.BLOB),
            ("verified", "BOOL", ColumnType.FLAG),
        ],
    )
    def test_mapping(self, column, declared, expected) -> None:
        assert map_legacy_type(column, declared) is expected

    def test_untyped_column_is_skipped(self) -> None:
        assert map_legacy_type("mystery", "") is None
        assert map_legacy_type("mystery", "JSONB") is None


class TestNeedsMigration:
    def test_false_when_target_is_legacy_store(self, settings, legacy_path) -> None:
        assert LegacyMigrator(settings, MagicMock(), SQLiteProfile(settings)).needs_migration() is False

    def test_true_for_server_backend(self, settings, legacy_path) -> None:
        profile = PostgreSQLProfile(settings)
        assert LegacyMigrator(settings, MagicMock(), profile).needs_migration() is True

    def test_false_without_legacy_file(self, settings) -> None:
        profile = PostgreSQLProfile(settings)
        assert LegacyMigrator(settings, MagicMock(), profile).needs_migration() is False


class TestMigrate:
    def test_copies_every_table_and_renames_source(self, settings, legacy_path, target) -> None:
        profile, pool = target

        report = LegacyMigrator(settings, pool, profile).migrate()

        assert report.success
        assert [t.name for t in report.tables] == ["armorstand", "block", "grave"]
        assert report.table("grave").rows == 1
        assert report.table("block").rows == 2
        assert report.table("armorstand").rows == 0
        assert report.total_rows == 3

        row = pool.query("SELECT * FROM grave")[0]
        assert row["uuid"] == GRAVE_UUID
        assert row["protection"] == 1
        assert row["time_creation"] == 1_700_000_000_000
        assert pool.scalar("SELECT COUNT(*) FROM block WHERE replace_data IS NULL") == 1

        assert not legacy_path.exists()
        assert report.renamed_to == legacy_path.with_name("data.old.db")
        assert report.renamed_to.exists()

    def test_numbered_name_when_old_file_exists(self, settings, legacy_path, target) -> None:
        profile, pool = target
        legacy_path.with_name("data.old.db").write_bytes(b"previous run")

        report = LegacyMigrator(settings, pool, profile).migrate()

        assert report.renamed_to == legacy_path.with_name("data.old.1.db")
        assert legacy_path.with_name("data.old.db").read_bytes() == b"previous run"

    def test_failed_table_keeps_source(self, settings, target) -> None:
        profile, pool = target
        _build_legacy(settings.legacy_path, duplicate_blocks=True)
        pool.execute("CREATE TABLE block (location VARCHAR(255) UNIQUE, uuid_grave VARCHAR(255),"
                     " replace_material VARCHAR(255), replace_data TEXT)")

        with capture_logs() as logs:
            report = LegacyMigrator(settings, pool, profile).migrate()

        assert not report.success
        assert set(report.errors) == {"block"}
        assert report.table("block").rows == 0
        assert report.table("grave").rows == 1
        assert pool.scalar("SELECT COUNT(*) FROM block") == 0
        assert settings.legacy_path.exists()
        assert report.renamed_to is None
        events = [e["event"] for e in logs]
        assert "migration.table_failed" in events
        assert "migration.incomplete" in events

    def test_retry_after_partial_failure_completes(self, settings, target) -> None:
        profile, pool = target
        _build_legacy(settings.legacy_path, duplicate_blocks=True)
        pool.execute("CREATE TABLE block (location VARCHAR(255) UNIQUE, uuid_grave VARCHAR(255),"
                     " replace_material VARCHAR(255), replace_data TEXT)")
        first = LegacyMigrator(settings, pool, profile).migrate()
        assert set(first.errors) == {"block"}
        assert first.table("grave").rows == 1

        pool.execute("DROP TABLE block")
        second = LegacyMigrator(settings, pool, profile).migrate()

        assert second.success, second.errors
        assert second.table("grave").rows == 0
        assert second.table("grave").already_present == 1
        assert second.table("block").rows == 2
        assert pool.scalar("SELECT COUNT(*) FROM grave") == 1
        assert not settings.legacy_path.exists()
        assert second.renamed_to == settings.legacy_path.with_name("data.old.db")

    def test_rows_already_on_target_are_not_duplicated(self, settings, legacy_path, target) -> None:
        profile, pool = target
        pool.execute("CREATE TABLE block (location VARCHAR(255), uuid_grave VARCHAR(255),"
                     " replace_material VARCHAR(255), replace_data TEXT)")
        pool.execute(
            "INSERT INTO block VALUES (?, ?, ?, ?)",
            ("world|1|64|2", GRAVE_UUID, "DIRT", "minecraft:dirt"),
        )

        report = LegacyMigrator(settings, pool, profile).migrate()

        assert report.success
        assert report.table("block").already_present == 1
        assert report.table("block").rows == 1
        assert pool.scalar("SELECT COUNT(*) FROM block") == 2

    def test_skips_unmapped_columns(self, settings, target) -> None:
        profile, pool = target
        path = settings.legacy_path
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE hologram (uuid_entity VARCHAR(255), line INT(16), extra)")
        conn.execute("INSERT INTO hologram VALUES ('e', 1, 'x')")
        conn.commit()
        conn.close()

        with capture_logs() as logs:
            report = LegacyMigrator(settings, pool, profile).migrate()

        hologram = report.table("hologram")
        assert hologram.columns == ["uuid_entity", "line"]
        assert hologram.skipped_columns == ["extra"]
        assert hologram.rows == 1
        assert any(e["event"] == "migration.column_skipped" for e in logs)
