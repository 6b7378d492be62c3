"""End-to-end tests for DataManager against the embedded SQLite store."""

from __future__ import annotations

from uuid import uuid4

import pytest
from structlog.testing import capture_logs

from graves.core.adapters import PostgreSQLProfile, SQLiteProfile
from graves.core.errors import ConfigError, DatabaseConnectionError, DatabaseError, ValidationError
from graves.core.manager import DataManager
from graves.core.models import BlockData, EntityData, EntityKind, HologramData, Location
from graves.core.repository import GraveRepository


@pytest.fixture
def manager(settings):
    dm = DataManager(settings)
    dm.start().result(timeout=30)
    yield dm
    dm.close()


def _reload(dm: DataManager) -> None:
    assert dm.flush(timeout=10)
    dm.reload().result(timeout=30)


class TestLifecycle:
    def test_start_sqlite(self, manager: DataManager) -> None:
        assert manager.is_enabled
        assert manager.is_ready
        assert manager.get_type() == "SQLite"
        assert manager.get_database_version() != "unknown"
        assert manager.schema_report is not None
        assert manager.migration_report is None

    def test_start_twice_rejected(self, manager: DataManager) -> None:
        with pytest.raises(RuntimeError):
            manager.start()

    def test_unknown_backend_from_start(self, settings) -> None:
        dm = DataManager(settings.model_copy(update={"backend": "oracle"}))
        try:
            with pytest.raises(ConfigError):
                dm.start()
        finally:
            dm.close()

    def test_unknown_backend_from_reload_keeps_running(self, manager: DataManager) -> None:
        with pytest.raises(ConfigError):
            manager.reload("derby")
        assert manager.is_ready
        assert manager.get_type() == "SQLite"

    def test_failed_bootstrap_disables_writes(self, settings, monkeypatch, make_grave) -> None:
        def _unreachable(self) -> None:
            raise DatabaseConnectionError("Connection refused")

        monkeypatch.setattr(PostgreSQLProfile, "test_connection", _unreachable)
        dm = DataManager(settings.model_copy(update={"backend": "postgresql"}))
        try:
            with capture_logs() as logs:
                future = dm.start()
                with pytest.raises(DatabaseConnectionError):
                    future.result(timeout=30)
                grave = make_grave()
                dm.add_grave(grave)

            assert dm.is_enabled is False
            assert dm.is_ready is False
            assert grave.uuid in dm.get_grave_map()
            events = [e["event"] for e in logs]
            assert "persistence.disabled" in events
            assert "write.skipped" in events
        finally:
            dm.close()

    def test_unexpected_bootstrap_error_disables_writes(self, settings, monkeypatch, make_grave) -> None:
        def _read_only(self) -> None:
            raise PermissionError("data directory is read-only")

        monkeypatch.setattr(SQLiteProfile, "prepare", _read_only)
        dm = DataManager(settings)
        try:
            with capture_logs() as logs:
                future = dm.start()
                with pytest.raises(DatabaseError) as info:
                    future.result(timeout=30)
                for _ in range(3):
                    dm.add_grave(make_grave())

            assert isinstance(info.value.cause, PermissionError)
            assert dm.is_enabled is False
            assert dm.health()["writes"]["pending"] == 0
            events = [e["event"] for e in logs]
            assert "persistence.disabled" in events
            assert events.count("write.skipped") == 3
        finally:
            dm.close()

    def test_failed_write_logs_retry_flag(self, manager: DataManager, monkeypatch, make_grave) -> None:
        def _refused(self, grave) -> int:
            raise DatabaseConnectionError("Connection refused")

        monkeypatch.setattr(GraveRepository, "insert_grave", _refused)
        with capture_logs() as logs:
            manager.add_grave(make_grave())
            assert manager.flush(timeout=10)

        failed = [e for e in logs if e["event"] == "write.failed"]
        assert len(failed) == 1
        assert failed[0]["action"] == "grave.insert"
        assert failed[0]["retryable"] is True

    def test_health(self, manager: DataManager) -> None:
        health = manager.health()
        assert health["enabled"] is True
        assert health["backend"] == "sqlite"
        assert health["watchdog"]["healthy"] is True


class TestGraves:
    def test_round_trip(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)

        _reload(manager)

        loaded = manager.get_grave_map()[grave.uuid]
        assert loaded is not grave
        assert loaded == grave

    def test_update_persists(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)
        manager.update_grave(grave, "experience", 75)
        manager.update_grave(grave, "is_abandoned", True)
        assert manager.get_grave_map()[grave.uuid].experience == 75

        _reload(manager)

        loaded = manager.get_grave_map()[grave.uuid]
        assert loaded.experience == 75
        assert loaded.abandoned is True

    def test_update_unknown_column(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)
        with pytest.raises(ValidationError):
            manager.update_grave(grave, "uuid; DROP TABLE grave", 1)
        with pytest.raises(ValidationError):
            manager.update_grave(grave, "uuid", uuid4())

    def test_remove_is_visible_immediately(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)
        manager.remove_grave(grave)
        assert grave.uuid not in manager.get_grave_map()

        _reload(manager)

        assert grave.uuid not in manager.get_grave_map()

    def test_update_after_remove_stays_removed(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)
        manager.remove_grave(grave)

        with capture_logs() as logs:
            manager.update_grave(grave, "protection", False)

        assert grave.uuid not in manager.get_grave_map()
        assert "grave.update_skipped" in [e["event"] for e in logs]
        assert manager.flush(timeout=10)
        assert manager.pool.scalar("SELECT COUNT(*) FROM grave") == 0

    def test_update_coerces_wire_values(self, manager: DataManager, make_grave) -> None:
        grave = make_grave()
        manager.add_grave(grave)

        manager.update_grave(grave, "location_death", "world|1|2|3")
        manager.update_grave(grave, "permissions", "graves.open|graves.break")
        manager.update_grave(grave, "is_abandoned", 1)

        assert grave.location_death == Location("world", 1, 2, 3)
        assert manager.has_grave_at_location(Location("world", 1, 2, 3))
        assert grave.permissions == ["graves.open", "graves.break"]
        assert grave.abandoned is True
        with pytest.raises(ValidationError):
            manager.update_grave(grave, "experience", "lots")
        with pytest.raises(ValidationError):
            manager.update_grave(grave, "location_death", "nowhere")

        _reload(manager)

        loaded = manager.get_grave_map()[grave.uuid]
        assert loaded.location_death == Location("world", 1, 2, 3)
        assert loaded.permissions == ["graves.open", "graves.break"]

    def test_oldest_and_location_lookup(self, manager: DataManager, make_grave) -> None:
        owner = uuid4()
        graves = [make_grave(owner_uuid=owner, time_creation=t) for t in (100, 50, 200)]
        for grave in graves:
            manager.add_grave(grave)

        assert manager.get_oldest_grave(owner) is graves[1]
        assert manager.has_grave_at_location(graves[0].location_death)
        assert not manager.has_grave_at_location(Location("world_the_end", 0, 0, 0))


class TestChunkData:
    def test_blocks_and_entities_reload_into_chunks(self, manager: DataManager) -> None:
        grave_uuid = uuid4()
        loc = Location("world", 33, 70, -2)
        block = BlockData(location=loc, grave_uuid=grave_uuid, replace_material="STONE", replace_data="minecraft:stone")
        stand = EntityData(location=loc, entity_uuid=uuid4(), grave_uuid=grave_uuid, kind=EntityKind.ARMOR_STAND)
        line = HologramData(location=loc, entity_uuid=uuid4(), grave_uuid=grave_uuid, line=1)
        manager.add_block_data(block)
        manager.add_entity_data(stand)
        manager.add_entity_data(line)

        _reload(manager)

        chunk = manager.get_chunk_data(loc)
        assert chunk.key == "world|2|-1"
        assert chunk.get_block(loc) == block
        assert {e.entity_uuid for e in chunk.entities} == {stand.entity_uuid, line.entity_uuid}
        hologram = next(e for e in chunk.entities if isinstance(e, HologramData))
        assert hologram.line == 1

    def test_removals_drop_empty_chunk(self, manager: DataManager) -> None:
        loc = Location("world", 0, 64, 0)
        block = BlockData(location=loc, grave_uuid=uuid4())
        stand = EntityData(location=loc, entity_uuid=uuid4(), grave_uuid=block.grave_uuid, kind=EntityKind.ARMOR_STAND)
        manager.add_block_data(block)
        manager.add_entity_data(stand)

        manager.remove_block_data(loc)
        assert manager.has_chunk_data(loc)
        manager.remove_entity_data([stand])
        assert not manager.has_chunk_data(loc)

        _reload(manager)

        assert not manager.has_chunk_data(loc)

    def test_orphan_block_with_null_replacement_loads_as_air(self, manager: DataManager) -> None:
        manager.pool.execute(
            "INSERT INTO block (location, uuid_grave, replace_material, replace_data) VALUES (?, ?, NULL, NULL)",
            ("world|5|60|5", str(uuid4())),
        )

        _reload(manager)

        block = manager.get_chunk_data(Location("world", 5, 60, 5)).get_block(Location("world", 5, 60, 5))
        assert block.replace_material == "AIR"
        assert block.replace_data == "minecraft:air"

    def test_disabled_integration_is_cached_not_persisted(self, manager: DataManager) -> None:
        loc = Location("world", 1, 1, 1)
        furniture = EntityData(location=loc, entity_uuid=uuid4(), grave_uuid=uuid4(), kind=EntityKind.ORAXEN)

        with capture_logs() as logs:
            manager.add_entity_data(furniture)

        assert furniture in manager.get_chunk_data(loc).entities
        assert logs[0]["event"] == "entity.integration_disabled"
        assert manager.flush(timeout=10)
        assert not manager.pool.query("SELECT name FROM sqlite_master WHERE name = 'oraxen'")

    def test_enabled_integration_gets_its_table(self, settings) -> None:
        dm = DataManager(settings.model_copy(update={"integrations": ["oraxen"]}))
        try:
            dm.start().result(timeout=30)
            loc = Location("world", 1, 1, 1)
            furniture = EntityData(location=loc, entity_uuid=uuid4(), grave_uuid=uuid4(), kind=EntityKind.ORAXEN)
            dm.add_entity_data(furniture)
            assert dm.flush(timeout=10)
            assert dm.pool.scalar("SELECT COUNT(*) FROM oraxen") == 1
        finally:
            dm.close()


class TestLegacyMigrationOnStart:
    def test_server_backend_not_triggered_for_sqlite(self, manager: DataManager) -> None:
        # data.db is the active store, so nothing is migrated or renamed.
        assert manager.settings.legacy_path.exists()
        assert manager.migration_report is None
