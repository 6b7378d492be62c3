"""Backend types and pool sizing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BackendType(str, Enum):
    """Supported backend families."""

    SQLITE = "sqlite"
    H2 = "h2"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    MSSQL = "mssql"


@dataclass(frozen=True)
class PoolSettings:
    """
    Pool sizing resolved once per backend profile.

    All durations are in seconds so they can be handed straight to the
    pool implementation.
    """

    max_size: int
    min_idle: int
    connection_timeout: float
    idle_timeout: float
    max_lifetime: float
    leak_detection_threshold: float

    @classmethod
    def from_millis(
        cls,
        *,
        max_size: int,
        min_idle: int,
        connection_timeout_ms: int,
        idle_timeout_ms: int,
        max_lifetime_ms: int,
        leak_detection_threshold_ms: int,
    ) -> PoolSettings:
        return cls(
            max_size=max_size,
            min_idle=min(min_idle, max_size),
            connection_timeout=connection_timeout_ms / 1000,
            idle_timeout=idle_timeout_ms / 1000,
            max_lifetime=max_lifetime_ms / 1000,
            leak_detection_threshold=leak_detection_threshold_ms / 1000,
        )


__all__ = [
    "BackendType",
    "PoolSettings",
]
