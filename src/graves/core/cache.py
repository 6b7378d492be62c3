"""
In-memory authoritative cache for graves and chunk aggregates.

The cache is what every reader sees. The data manager mutates it
synchronously before scheduling any backend write, so a change is visible
to the calling thread the moment the call returns.

Manifesto:
    - **Owned, not global:** one ``CacheManager`` instance per data manager
    - **Pure data structure:** no I/O and no failure mode other than "not found"
    - **Explicit locking:** a single re-entrant lock guards every map so
      bulk-load threads and the simulation thread can share it

Features:
    - Grave map keyed by UUID, snapshot reads through ``get_grave_map()``
    - ``get_oldest_grave()`` for "replace oldest grave" policies
    - Chunk map keyed by ``world|cx|cz`` with lazy creation
    - Scratch maps: last known entity location, removed item stacks,
      right-clicked block per player

Examples:
    >>> cache = CacheManager()
    >>> cache.put_grave(grave)
    >>> cache.get_oldest_grave(grave.owner_uuid) is grave
    True

Tags:
    cache, in-memory, thread-safe, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from typing import Any
from uuid import UUID

from graves.core.models import ChunkData, Grave, Location


class CacheManager:
    """Synchronous key-value maps for graves, chunks and scratch state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._graves: dict[UUID, Grave] = {}
        self._chunks: dict[str, ChunkData] = {}
        self._last_locations: dict[UUID, Location] = {}
        self._removed_items: dict[UUID, list[Any]] = {}
        self._right_clicked_blocks: dict[str, Location] = {}

    # -- Graves ------------------------------------------------------------

    def get_grave_map(self) -> dict[UUID, Grave]:
        """Snapshot of all cached graves."""
        with self._lock:
            return dict(self._graves)

    def get_grave(self, uuid: UUID) -> Grave | None:
        with self._lock:
            return self._graves.get(uuid)

    def has_grave(self, uuid: UUID) -> bool:
        with self._lock:
            return uuid in self._graves

    def put_grave(self, grave: Grave) -> None:
        with self._lock:
            self._graves[grave.uuid] = grave

    def remove_grave(self, uuid: UUID) -> Grave | None:
        with self._lock:
            return self._graves.pop(uuid, None)

    def grave_count(self) -> int:
        with self._lock:
            return len(self._graves)

    def graves_of(self, owner_uuid: UUID) -> list[Grave]:
        with self._lock:
            return [grave for grave in self._graves.values() if grave.owner_uuid == owner_uuid]

    def get_oldest_grave(self, owner_uuid: UUID) -> Grave | None:
        """The owner's grave with the smallest creation timestamp, if any."""
        with self._lock:
            oldest: Grave | None = None
            for grave in self._graves.values():
                if grave.owner_uuid != owner_uuid:
                    continue
                if oldest is None or grave.time_creation < oldest.time_creation:
                    oldest = grave
            return oldest

    def has_grave_at(self, location: Location) -> bool:
        with self._lock:
            return any(grave.location_death == location for grave in self._graves.values())

    # -- Chunks ------------------------------------------------------------

    def get_chunk_data(self, location: Location) -> ChunkData:
        """Chunk aggregate for ``location``, created on first access."""
        key = location.chunk_key
        with self._lock:
            chunk = self._chunks.get(key)
            if chunk is None:
                chunk = ChunkData.for_location(location)
                self._chunks[key] = chunk
            return chunk

    def has_chunk_data(self, location: Location) -> bool:
        with self._lock:
            return location.chunk_key in self._chunks

    def remove_chunk_data(self, chunk: ChunkData) -> None:
        with self._lock:
            self._chunks.pop(chunk.key, None)

    def discard_chunk_if_empty(self, location: Location) -> bool:
        """Drop the chunk aggregate for ``location`` once it holds nothing."""
        key = location.chunk_key
        with self._lock:
            chunk = self._chunks.get(key)
            if chunk is not None and chunk.is_empty():
                del self._chunks[key]
                return True
            return False

    def get_chunk_map(self) -> dict[str, ChunkData]:
        with self._lock:
            return dict(self._chunks)

    # -- Scratch state -----------------------------------------------------

    def set_last_location(self, entity_uuid: UUID, location: Location) -> None:
        with self._lock:
            self._last_locations[entity_uuid] = location

    def get_last_location(self, entity_uuid: UUID) -> Location | None:
        with self._lock:
            return self._last_locations.get(entity_uuid)

    def pop_last_location(self, entity_uuid: UUID) -> Location | None:
        with self._lock:
            return self._last_locations.pop(entity_uuid, None)

    def set_removed_items(self, entity_uuid: UUID, items: list[Any]) -> None:
        with self._lock:
            self._removed_items[entity_uuid] = list(items)

    def pop_removed_items(self, entity_uuid: UUID) -> list[Any]:
        with self._lock:
            return self._removed_items.pop(entity_uuid, [])

    def set_right_clicked_block(self, player_name: str, location: Location) -> None:
        with self._lock:
            self._right_clicked_blocks[player_name] = location

    def get_right_clicked_block(self, player_name: str) -> Location | None:
        with self._lock:
            return self._right_clicked_blocks.get(player_name)

    def pop_right_clicked_block(self, player_name: str) -> Location | None:
        with self._lock:
            return self._right_clicked_blocks.pop(player_name, None)

    # -- Bulk --------------------------------------------------------------

    def clear(self) -> None:
        """Drop graves and chunks (used before a reload from the backend)."""
        with self._lock:
            self._graves.clear()
            self._chunks.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "graves": len(self._graves),
                "chunks": len(self._chunks),
                "last_locations": len(self._last_locations),
                "removed_items": len(self._removed_items),
                "right_clicked_blocks": len(self._right_clicked_blocks),
            }


__all__ = [
    "CacheManager",
]
