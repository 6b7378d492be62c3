"""Tests for ``graves.core.adapters``: backend profiles and registry."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from structlog.testing import capture_logs

from graves.core.adapters import (
    BackendType,
    H2Profile,
    MariaDBProfile,
    MSSQLProfile,
    MySQLProfile,
    PostgreSQLProfile,
    SQLiteProfile,
    get_profile,
    migrate_legacy_layout,
    profile_registry,
)
from graves.core.adapters.mysql import parse_mariadb_major
from graves.core.errors import ConfigError, DatabaseConnectionError, UnknownBackendError
from graves.core.settings import StorageSettings


def _settings(tmp_path: Path, **kwargs) -> StorageSettings:
    return StorageSettings(_env_file=None, data_dir=tmp_path, **kwargs)


# =========================================================================
# Registry
# =========================================================================


class TestRegistry:
    @pytest.mark.parametrize(
        "name,cls",
        [
            ("sqlite", SQLiteProfile),
            ("h2", H2Profile),
            ("postgresql", PostgreSQLProfile),
            ("postgres", PostgreSQLProfile),
            ("mysql", MySQLProfile),
            ("mariadb", MariaDBProfile),
            ("mssql", MSSQLProfile),
        ],
    )
    def test_create(self, tmp_path, name, cls) -> None:
        assert isinstance(get_profile(name, _settings(tmp_path)), cls)

    def test_case_insensitive(self, tmp_path) -> None:
        assert isinstance(get_profile("MySQL", _settings(tmp_path)), MySQLProfile)

    def test_enum_identifier(self, tmp_path) -> None:
        assert isinstance(get_profile(BackendType.MSSQL, _settings(tmp_path)), MSSQLProfile)

    def test_unknown_backend(self, tmp_path) -> None:
        with pytest.raises(UnknownBackendError) as info:
            get_profile("oracle", _settings(tmp_path))
        assert isinstance(info.value, ConfigError)
        assert "oracle" in info.value.message

    def test_list_profiles(self) -> None:
        names = profile_registry.list_profiles()
        assert {"sqlite", "h2", "postgresql", "mysql", "mariadb", "mssql"} <= set(names)


# =========================================================================
# Lock-recovery and binding policy
# =========================================================================


class TestPolicies:
    @pytest.mark.parametrize(
        "name,rollback",
        [
            ("sqlite", True),
            ("h2", True),
            ("postgresql", True),
            ("mysql", False),
            ("mariadb", False),
            ("mssql", False),
        ],
    )
    def test_rollback_on_failed_unlock(self, tmp_path, name, rollback) -> None:
        assert get_profile(name, _settings(tmp_path)).rollback_on_failed_unlock is rollback

    def test_bool_binding(self, tmp_path) -> None:
        assert get_profile("postgresql", _settings(tmp_path)).bind_bool(True) == 1
        assert get_profile("mssql", _settings(tmp_path)).bind_bool(True) is True

    def test_only_sqlite_skips_connectivity_test(self, tmp_path) -> None:
        skipping = {
            name
            for name in ("sqlite", "h2", "postgresql", "mysql", "mariadb", "mssql")
            if not get_profile(name, _settings(tmp_path)).requires_connectivity_test
        }
        assert skipping == {"sqlite"}


# =========================================================================
# Pool sizing
# =========================================================================


class TestPoolSettings:
    def test_sqlite_defaults(self, tmp_path) -> None:
        pool = get_profile("sqlite", _settings(tmp_path)).pool_settings()
        assert pool.max_size == 50
        assert pool.connection_timeout == 30.0
        assert pool.max_lifetime == 1800.0

    def test_server_defaults(self, tmp_path) -> None:
        pool = get_profile("postgresql", _settings(tmp_path)).pool_settings()
        assert pool.max_size == 20
        assert pool.min_idle == 2
        assert pool.idle_timeout == 600.0
        assert pool.leak_detection_threshold == 15.0

    def test_min_idle_clamped(self, tmp_path) -> None:
        settings = _settings(tmp_path, min_idle=40)
        assert get_profile("mysql", settings).pool_settings().min_idle == 20


# =========================================================================
# SQLite
# =========================================================================


class TestSQLiteProfile:
    def test_path_under_data_subdirectory(self, tmp_path) -> None:
        profile = SQLiteProfile(_settings(tmp_path))
        assert profile.path == tmp_path / "data" / "data.db"
        assert profile.describe() == f"sqlite:///{tmp_path / 'data' / 'data.db'}"

    def test_connect_applies_pragmas(self, tmp_path) -> None:
        profile = SQLiteProfile(_settings(tmp_path))
        profile.prepare()
        conn = profile.connect()
        try:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0].upper() == "WAL"
            assert conn.execute("PRAGMA synchronous").fetchone()[0] == 0
            assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 30000
        finally:
            conn.close()

    @patch("sqlite3.connect", side_effect=sqlite3.OperationalError("unable to open database"))
    def test_connect_failure_raises(self, mock_connect, tmp_path) -> None:
        with pytest.raises(DatabaseConnectionError):
            SQLiteProfile(_settings(tmp_path)).connect()

    def test_prepare_moves_legacy_layout(self, tmp_path) -> None:
        (tmp_path / "data.db").write_bytes(b"")
        (tmp_path / "data.db-wal").write_bytes(b"")
        profile = SQLiteProfile(_settings(tmp_path))
        profile.prepare()
        assert (tmp_path / "data" / "data.db").exists()
        assert (tmp_path / "data" / "data.db-wal").exists()
        assert not (tmp_path / "data.db").exists()

    def test_layout_migration_keeps_existing_destination(self, tmp_path) -> None:
        (tmp_path / "data").mkdir()
        (tmp_path / "data" / "data.db").write_bytes(b"new")
        (tmp_path / "data.db").write_bytes(b"old")
        with capture_logs() as logs:
            moved = migrate_legacy_layout(tmp_path)
        assert moved == []
        assert (tmp_path / "data" / "data.db").read_bytes() == b"new"
        assert any(e["event"] == "legacy_layout.destination_exists" for e in logs)

    def test_test_connection(self, tmp_path) -> None:
        profile = SQLiteProfile(_settings(tmp_path))
        profile.prepare()
        with capture_logs() as logs:
            profile.test_connection()
        assert any(e["event"] == "connectivity_test.passed" for e in logs)


# =========================================================================
# Server profiles
# =========================================================================


class TestH2Profile:
    def test_jdbc_url(self, tmp_path) -> None:
        url = H2Profile(_settings(tmp_path)).jdbc_url()
        assert url.startswith("jdbc:h2:file:")
        assert url.endswith(";AUTO_SERVER=TRUE")
        assert "graves.data" in url

    def test_missing_driver(self, tmp_path) -> None:
        with patch.dict("sys.modules", {"jaydebeapi": None}):
            with pytest.raises(ConfigError, match="graves-storage\\[h2\\]"):
                H2Profile(_settings(tmp_path)).connect()


class TestPostgreSQLProfile:
    def test_default_port(self, tmp_path) -> None:
        kwargs = PostgreSQLProfile(_settings(tmp_path)).connect_kwargs()
        assert kwargs["port"] == 5432
        assert kwargs["sslmode"] == "disable"

    def test_ssl_options(self, tmp_path) -> None:
        settings = _settings(
            tmp_path,
            postgresql={"ssl": True, "sslmode": "verify-full", "sslrootcert": "/etc/ca.pem"},
        )
        kwargs = PostgreSQLProfile(settings).connect_kwargs()
        assert kwargs["sslmode"] == "verify-full"
        assert kwargs["sslrootcert"] == "/etc/ca.pem"
        assert "sslcert" not in kwargs

    def test_describe_hides_password(self, tmp_path) -> None:
        settings = _settings(tmp_path, postgresql={"password": "hunter2"})
        assert "hunter2" not in PostgreSQLProfile(settings).describe()

    def test_missing_driver(self, tmp_path) -> None:
        with patch.dict("sys.modules", {"psycopg2": None}):
            with pytest.raises(ConfigError, match="psycopg2"):
                PostgreSQLProfile(_settings(tmp_path)).connect()


class TestMySQLProfile:
    @pytest.mark.parametrize(
        "banner,major",
        [
            ("8.0.36", None),
            ("10.11.6-MariaDB-0+deb12u1", 10),
            ("11.2.2-MariaDB-1:11.2.2+maria~ubu2204", 11),
        ],
    )
    def test_parse_mariadb_major(self, banner, major) -> None:
        assert parse_mariadb_major(banner) == major

    def _conn_returning(self, version: str) -> MagicMock:
        conn = MagicMock()
        conn.cursor.return_value.fetchone.return_value = (version,)
        return conn

    def test_warns_on_mariadb_11(self, tmp_path) -> None:
        profile = MySQLProfile(_settings(tmp_path))
        with capture_logs() as logs:
            profile.inspect_server(self._conn_returning("11.4.2-MariaDB"))
        assert [e["event"] for e in logs] == ["mysql_profile.mariadb_server"]

    def test_quiet_on_mysql(self, tmp_path) -> None:
        profile = MySQLProfile(_settings(tmp_path))
        with capture_logs() as logs:
            profile.inspect_server(self._conn_returning("8.0.36"))
        assert logs == []

    def test_mariadb_profile_shares_mysql_section(self, tmp_path) -> None:
        settings = _settings(tmp_path, mysql={"host": "db.internal", "port": 3307})
        assert MariaDBProfile(settings).describe() == "mariadb://graves@db.internal:3307/graves"


class TestMSSQLProfile:
    def test_connection_string(self, tmp_path) -> None:
        settings = _settings(tmp_path, mssql={"password": "s3cret"})
        profile = MSSQLProfile(settings)
        conn_str = profile.connection_string()
        assert "SERVER=localhost,1433" in conn_str
        assert "Encrypt=yes" in conn_str
        assert "TrustServerCertificate=no" in conn_str
        assert "s3cret" in conn_str
        assert "s3cret" not in profile.describe()
