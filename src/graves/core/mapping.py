"""
Row <-> domain object mapping for graves and auxiliary records.

Binding type-dispatches on the Python value so callers can pass domain
objects straight through to parameterized statements:

    ========== ===================================================
    Value      Bound as
    ========== ===================================================
    bool       profile flag (``1``/``0`` or a native bit)
    int/float  unchanged
    str        unchanged
    UUID       ``str(uuid)``
    Location   ``world|x|y|z``
    list       pipe-joined string, ``None`` when empty
    bytes      unchanged (blob)
    None       NULL
    ========== ===================================================

Reading is tolerant: legacy rows may carry NULL names, textures, flags or
timestamps. A row whose primary UUID or location cannot be read raises
:class:`~graves.core.errors.RowMappingError`, which bulk loaders catch and
log before moving on to the next row.

Tags:
    mapping, serialization, rows, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import UUID

from graves.core.errors import RowMappingError, ValidationError
from graves.core.logging import get_logger
from graves.core.models import BlockData, EntityData, EntityKind, Grave, HologramData, Location

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile

logger = get_logger(__name__)


# Persisted column -> Grave attribute, in table order.
GRAVE_COLUMNS: dict[str, str] = {
    "uuid": "uuid",
    "owner_type": "owner_type",
    "owner_name": "owner_name",
    "owner_name_display": "owner_name_display",
    "owner_uuid": "owner_uuid",
    "owner_texture": "owner_texture",
    "owner_texture_signature": "owner_texture_signature",
    "killer_type": "killer_type",
    "killer_name": "killer_name",
    "killer_name_display": "killer_name_display",
    "killer_uuid": "killer_uuid",
    "location_death": "location_death",
    "yaw": "yaw",
    "pitch": "pitch",
    "inventory": "inventory",
    "equipment": "equipment",
    "experience": "experience",
    "protection": "protection",
    "is_abandoned": "abandoned",
    "time_alive": "time_alive",
    "time_protection": "time_protection",
    "time_creation": "time_creation",
    "permissions": "permissions",
}

# Columns accepted by ``update_grave``; the primary key is immutable.
UPDATABLE_COLUMNS: dict[str, str] = {
    column: attribute for column, attribute in GRAVE_COLUMNS.items() if column != "uuid"
}


# =============================================================================
# Binding
# =============================================================================


def bind_value(value: Any, profile: BackendProfile) -> Any:
    """Convert a Python value into a driver parameter for ``profile``."""
    if value is None:
        return None
    # bool is a subclass of int and must be checked first
    if isinstance(value, bool):
        return profile.bind_bool(value)
    if isinstance(value, (int, float, str, bytes)):
        return value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Location):
        return value.to_string()
    if isinstance(value, (list, tuple)):
        return "|".join(str(item) for item in value) if value else None
    return str(value)


def grave_to_params(grave: Grave, profile: BackendProfile) -> tuple[Any, ...]:
    """Parameters for an insert into ``grave`` in :data:`GRAVE_COLUMNS` order."""
    return tuple(bind_value(getattr(grave, attribute), profile) for attribute in GRAVE_COLUMNS.values())


def block_to_params(block: BlockData) -> tuple[Any, ...]:
    return (
        block.location.to_string(),
        str(block.grave_uuid),
        block.replace_material,
        block.replace_data,
    )


def entity_to_params(entity: EntityData) -> tuple[Any, ...]:
    return (entity.location.to_string(), str(entity.entity_uuid), str(entity.grave_uuid))


def hologram_to_params(hologram: HologramData) -> tuple[Any, ...]:
    return (
        str(hologram.entity_uuid),
        str(hologram.grave_uuid),
        hologram.line,
        hologram.location.to_string(),
    )


# =============================================================================
# Reading
# =============================================================================


def _uuid(row: Mapping[str, Any], column: str, *, required: bool = False) -> UUID | None:
    raw = row.get(column)
    if raw is None or raw == "":
        if required:
            raise RowMappingError(f"Column {column} is empty", field=column, value=raw)
        return None
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw).strip())
    except ValueError as e:
        if required:
            raise RowMappingError(f"Unreadable UUID in {column}: {raw!r}", field=column, value=raw, cause=e) from e
        logger.warning("row.bad_uuid", column=column, value=str(raw))
        return None


def _flag(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "t", "yes", "y")
    return bool(raw)


def _int(raw: Any) -> int:
    if raw is None or raw == "":
        return 0
    return int(raw)


def _float(raw: Any) -> float:
    if raw is None or raw == "":
        return 0.0
    return float(raw)


def _text(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("utf-8")
    return str(raw)


def _permissions(raw: Any) -> list[str]:
    text = _text(raw)
    if not text:
        return []
    return text.split("|")


def row_to_grave(row: Mapping[str, Any]) -> Grave:
    """Build a :class:`Grave` from a row keyed by lower-case column name.

    Raises:
        RowMappingError: If the UUID or death location cannot be read, or a
            numeric column holds garbage.
    """
    uuid = _uuid(row, "uuid", required=True)
    location = Location.parse(_text(row.get("location_death")))
    try:
        return Grave(
            uuid=uuid,
            owner_type=_text(row.get("owner_type")),
            owner_name=_text(row.get("owner_name")),
            owner_name_display=_text(row.get("owner_name_display")),
            owner_uuid=_uuid(row, "owner_uuid"),
            owner_texture=_text(row.get("owner_texture")),
            owner_texture_signature=_text(row.get("owner_texture_signature")),
            killer_type=_text(row.get("killer_type")),
            killer_name=_text(row.get("killer_name")),
            killer_name_display=_text(row.get("killer_name_display")),
            killer_uuid=_uuid(row, "killer_uuid"),
            location_death=location,
            yaw=_float(row.get("yaw")),
            pitch=_float(row.get("pitch")),
            inventory=_text(row.get("inventory")),
            equipment=_text(row.get("equipment")),
            experience=_int(row.get("experience")),
            protection=_flag(row.get("protection")),
            abandoned=_flag(row.get("is_abandoned")),
            time_alive=_int(row.get("time_alive")),
            time_protection=_int(row.get("time_protection")),
            time_creation=_int(row.get("time_creation")),
            permissions=_permissions(row.get("permissions")),
        )
    except (TypeError, ValueError) as e:
        raise RowMappingError(f"Malformed grave row {uuid}: {e}", field="grave", value=str(uuid), cause=e) from e


_UUID_COLUMNS = frozenset({"owner_uuid", "killer_uuid"})
_REAL_COLUMNS = frozenset({"yaw", "pitch"})
_FLAG_COLUMNS = frozenset({"protection", "is_abandoned"})
_NUMBER_COLUMNS = frozenset({"experience", "time_alive", "time_protection", "time_creation"})


def coerce_grave_value(column: str, value: Any) -> Any:
    """Convert ``value`` to the type of the Grave attribute behind ``column``.

    Accepts the wire forms too, so ``"world|1|64|2"`` becomes a
    :class:`Location` and ``"a|b"`` a permission list.

    Raises:
        ValidationError: If ``value`` cannot represent ``column``.
    """
    try:
        if column == "location_death":
            return value if isinstance(value, Location) else Location.parse(_text(value))
        if column in _UUID_COLUMNS:
            if value is None or isinstance(value, UUID):
                return value
            return UUID(str(value).strip())
        if column in _REAL_COLUMNS:
            return _float(value)
        if column in _FLAG_COLUMNS:
            return value if isinstance(value, bool) else _flag(value)
        if column in _NUMBER_COLUMNS:
            number = _int(value)
            if column == "experience" and number < 0:
                raise ValueError("experience must be >= 0")
            return number
        if column == "permissions":
            if isinstance(value, (list, tuple)):
                return [str(item) for item in value]
            return _permissions(value)
        return _text(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Invalid value for grave column {column}: {value!r}", field=column, value=value, cause=e
        ) from e


def row_to_block(row: Mapping[str, Any]) -> BlockData:
    location = Location.parse(_text(row.get("location")))
    grave_uuid = _uuid(row, "uuid_grave", required=True)
    material = _text(row.get("replace_material"))
    data = _text(row.get("replace_data"))
    if material is None or data is None:
        logger.warning("block.null_replacement", location=location.to_string(), grave=str(grave_uuid))
    return BlockData(
        location=location,
        grave_uuid=grave_uuid,
        replace_material=material if material is not None else "AIR",
        replace_data=data if data is not None else "minecraft:air",
    )


def row_to_entity(row: Mapping[str, Any], kind: EntityKind) -> EntityData:
    return EntityData(
        location=Location.parse(_text(row.get("location"))),
        entity_uuid=_uuid(row, "uuid_entity", required=True),
        grave_uuid=_uuid(row, "uuid_grave", required=True),
        kind=kind,
    )


def row_to_hologram(row: Mapping[str, Any]) -> HologramData:
    try:
        line = _int(row.get("line"))
    except (TypeError, ValueError) as e:
        raise RowMappingError("Malformed hologram line", field="line", value=row.get("line"), cause=e) from e
    return HologramData(
        location=Location.parse(_text(row.get("location"))),
        entity_uuid=_uuid(row, "uuid_entity", required=True),
        grave_uuid=_uuid(row, "uuid_grave", required=True),
        line=line,
    )


__all__ = [
    "GRAVE_COLUMNS",
    "UPDATABLE_COLUMNS",
    "bind_value",
    "coerce_grave_value",
    "grave_to_params",
    "block_to_params",
    "entity_to_params",
    "hologram_to_params",
    "row_to_grave",
    "row_to_block",
    "row_to_entity",
    "row_to_hologram",
]
