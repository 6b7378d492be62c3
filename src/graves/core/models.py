"""
Domain models for graves and their auxiliary visual records.

All models are plain dataclasses. The storage layer never interprets the
serialized inventory/equipment payloads; it only carries them.

Wire formats:
    - Location: ``world|x|y|z`` using block coordinates
    - Chunk key: ``world|x>>4|z>>4``
    - Permissions: pipe-joined, NULL for an empty list

Tags:
    models, dataclass, domain, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from graves.core.errors import RowMappingError


@dataclass(frozen=True)
class Location:
    """A block position in a named world."""

    world: str
    x: int
    y: int
    z: int

    @classmethod
    def parse(cls, value: str | None) -> Location:
        """Parse the ``world|x|y|z`` wire form.

        Raises:
            RowMappingError: If the string is missing or malformed.
        """
        if not value:
            raise RowMappingError("Location is missing", field="location", value=value)
        parts = str(value).split("|")
        if len(parts) != 4 or not parts[0]:
            raise RowMappingError(f"Unparseable location: {value!r}", field="location", value=value)
        try:
            x, y, z = (int(float(part)) for part in parts[1:])
        except ValueError as e:
            raise RowMappingError(
                f"Unparseable location: {value!r}", field="location", value=value, cause=e
            ) from e
        return cls(parts[0], x, y, z)

    def to_string(self) -> str:
        return f"{self.world}|{self.x}|{self.y}|{self.z}"

    @property
    def chunk_x(self) -> int:
        return self.x >> 4

    @property
    def chunk_z(self) -> int:
        return self.z >> 4

    @property
    def chunk_key(self) -> str:
        return f"{self.world}|{self.chunk_x}|{self.chunk_z}"

    def __str__(self) -> str:
        return self.to_string()


@dataclass
class Grave:
    """One death event and everything needed to restore it."""

    uuid: UUID
    owner_type: str | None = None
    owner_name: str | None = None
    owner_name_display: str | None = None
    owner_uuid: UUID | None = None
    owner_texture: str | None = None
    owner_texture_signature: str | None = None
    killer_type: str | None = None
    killer_name: str | None = None
    killer_name_display: str | None = None
    killer_uuid: UUID | None = None
    location_death: Location | None = None
    yaw: float = 0.0
    pitch: float = 0.0
    inventory: str | None = None
    equipment: str | None = None
    experience: int = 0
    protection: bool = False
    abandoned: bool = False
    time_alive: int = 0
    time_protection: int = 0
    time_creation: int = 0
    permissions: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.experience < 0:
            raise ValueError("experience must be >= 0")


@dataclass(frozen=True)
class BlockData:
    """A world block replaced to represent a grave."""

    location: Location
    grave_uuid: UUID
    replace_material: str = "AIR"
    replace_data: str = "minecraft:air"


class EntityKind(str, Enum):
    """Visual entity kinds; each is persisted in its own table."""

    ARMOR_STAND = "ARMOR_STAND"
    ITEM_FRAME = "ITEM_FRAME"
    HOLOGRAM = "HOLOGRAM"
    FURNITURELIB = "FURNITURELIB"
    FURNITUREENGINE = "FURNITUREENGINE"
    ITEMSADDER = "ITEMSADDER"
    ORAXEN = "ORAXEN"
    PLAYERNPC = "PLAYERNPC"
    CITIZENSNPC = "CITIZENSNPC"

    @property
    def table(self) -> str:
        return self.value.lower().replace("_", "")

    @property
    def is_integration(self) -> bool:
        """Whether the kind belongs to an optional third-party integration."""
        return self not in _BUILTIN_KINDS

    @classmethod
    def entity_kinds(cls, integrations: list[str]) -> list[EntityKind]:
        """Entity-table kinds in use (holograms have their own shape)."""
        enabled = {name.lower() for name in integrations}
        return [
            kind
            for kind in cls
            if kind is not cls.HOLOGRAM and (not kind.is_integration or kind.table in enabled)
        ]


_BUILTIN_KINDS = frozenset({EntityKind.ARMOR_STAND, EntityKind.ITEM_FRAME, EntityKind.HOLOGRAM})


@dataclass(frozen=True)
class EntityData:
    """A marker entity belonging to a grave."""

    location: Location
    entity_uuid: UUID
    grave_uuid: UUID
    kind: EntityKind


@dataclass(frozen=True)
class HologramData(EntityData):
    """One floating text line of a grave hologram."""

    line: int = 0
    kind: EntityKind = EntityKind.HOLOGRAM


class ChunkData:
    """
    Cache-only aggregate of the blocks and entities inside one chunk.

    Created lazily by the cache manager and dropped once both collections
    are empty.
    """

    def __init__(self, world: str, x: int, z: int):
        self.world = world
        self.x = x
        self.z = z
        self._lock = threading.RLock()
        self._blocks: dict[str, BlockData] = {}
        self._entities: dict[UUID, EntityData] = {}

    @classmethod
    def for_location(cls, location: Location) -> ChunkData:
        return cls(location.world, location.chunk_x, location.chunk_z)

    @property
    def key(self) -> str:
        return f"{self.world}|{self.x}|{self.z}"

    # -- Blocks ------------------------------------------------------------

    def add_block(self, block: BlockData) -> None:
        with self._lock:
            self._blocks[block.location.to_string()] = block

    def remove_block(self, location: Location) -> BlockData | None:
        with self._lock:
            return self._blocks.pop(location.to_string(), None)

    def get_block(self, location: Location) -> BlockData | None:
        with self._lock:
            return self._blocks.get(location.to_string())

    @property
    def blocks(self) -> dict[str, BlockData]:
        with self._lock:
            return dict(self._blocks)

    # -- Entities ----------------------------------------------------------

    def add_entity(self, entity: EntityData) -> None:
        with self._lock:
            self._entities[entity.entity_uuid] = entity

    def remove_entity(self, entity_uuid: UUID) -> EntityData | None:
        with self._lock:
            return self._entities.pop(entity_uuid, None)

    @property
    def entities(self) -> list[EntityData]:
        with self._lock:
            return list(self._entities.values())

    def is_empty(self) -> bool:
        with self._lock:
            return not self._blocks and not self._entities

    def __repr__(self) -> str:
        return f"ChunkData({self.key!r}, blocks={len(self._blocks)}, entities={len(self._entities)})"


__all__ = [
    "Location",
    "Grave",
    "BlockData",
    "EntityKind",
    "EntityData",
    "HologramData",
    "ChunkData",
]
