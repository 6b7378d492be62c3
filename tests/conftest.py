"""
Shared pytest fixtures for graves-storage tests.

This module provides:
- Isolated ``StorageSettings`` rooted in a temporary data directory
- An opened SQLite profile/pool pair
- A grave factory with a full field set

Usage:
    Fixtures are auto-discovered by pytest; request them by name.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator
from pathlib import Path
from uuid import UUID, uuid4

import pytest

from graves.core.adapters.sqlite import SQLiteProfile
from graves.core.models import Grave, Location
from graves.core.pool import ConnectionPool
from graves.core.settings import StorageSettings


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Settings / backend fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> StorageSettings:
    """SQLite settings in a temp directory, no .env file, no idle warm-up."""
    return StorageSettings(
        _env_file=None,
        backend="sqlite",
        data_dir=tmp_path,
        min_idle=0,
        watchdog_interval_seconds=3600,
        write_workers=4,
    )


@pytest.fixture
def sqlite_profile(settings: StorageSettings) -> SQLiteProfile:
    profile = SQLiteProfile(settings)
    profile.prepare()
    return profile


@pytest.fixture
def sqlite_pool(sqlite_profile: SQLiteProfile) -> Iterator[ConnectionPool]:
    pool = ConnectionPool(sqlite_profile).open()
    yield pool
    pool.close()


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def make_grave() -> Callable[..., Grave]:
    """Factory for graves with every persisted field populated."""
    counter = itertools.count(1)

    def _make(**overrides) -> Grave:
        n = next(counter)
        fields = {
            "uuid": uuid4(),
            "owner_type": "PLAYER",
            "owner_name": f"Steve{n}",
            "owner_name_display": f"§aSteve{n}",
            "owner_uuid": UUID("11111111-1111-1111-1111-111111111111"),
            "owner_texture": "dGV4dHVyZQ==",
            "owner_texture_signature": "c2lnbmF0dXJl",
            "killer_type": "ZOMBIE",
            "killer_name": "Zombie",
            "killer_name_display": "Zombie",
            "killer_uuid": uuid4(),
            "location_death": Location("world", 10 * n, 64, -5 * n),
            "yaw": 90.0,
            "pitch": -12.5,
            "inventory": "rO0ABXNy...inventory",
            "equipment": "rO0ABXNy...equipment",
            "experience": 50,
            "protection": True,
            "abandoned": False,
            "time_alive": 3_600_000,
            "time_protection": 300_000,
            "time_creation": 1_700_000_000_000 + n,
            "permissions": ["graves.open", "graves.teleport"],
        }
        fields.update(overrides)
        return Grave(**fields)

    return _make
