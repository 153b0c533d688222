"""
Legend Logger - Persistence Gateway
The only component allowed to write to the entity store.

Lookups are forgiving: a missing or unreadable record is logged and comes
back as None or an empty list. Mutations are not: a failed commit raises
StorageFailure to the caller.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import inspect, select

from legend_logger.config import Settings, get_settings
from legend_logger.exceptions import StorageFailure
from legend_logger.models.character import Character, Color, Point
from legend_logger.models.map import Map
from legend_logger.services.entity_store import EntityStore

logger = logging.getLogger(__name__)


def _as_uuid(value: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _check_size(size: float) -> float:
    size = float(size)
    if not (size > 0 and math.isfinite(size)):
        raise ValueError(f"Character size must be a positive number, got {size}")
    return size


def _check_position(x: float, y: float) -> Point:
    point = Point(float(x), float(y))
    if not (math.isfinite(point.x) and math.isfinite(point.y)):
        raise ValueError(f"Character position must be finite, got {tuple(point)}")
    return point


class Persistence:
    """
    CRUD gateway over an EntityStore.

    Every mutating call commits before returning, so one gateway call maps to
    at most one commit.
    """

    def __init__(self, store: EntityStore, settings: Settings = None):
        self.store = store
        self.settings = settings or get_settings()

    # ============================================================
    # Maps
    # ============================================================

    async def add_map(self, image_data: bytes, name: Optional[str] = None) -> Map:
        """Store a new map photo. Raises StorageFailure if the commit fails."""
        map_obj = Map(
            id=uuid.uuid4(),
            name=name if name is not None else self.settings.new_map_name,
            created_at=datetime.now(timezone.utc),
            image_data=image_data if image_data is not None else b"",
        )
        self.store.insert(map_obj)
        await self.store.commit()

        logger.info(f"Map '{map_obj.display_name}' saved with id {map_obj.id}")
        return map_obj

    async def list_maps(self) -> List[Map]:
        """All maps, in no particular order."""
        return await self.store.fetch(select(Map))

    async def find_map(self, map_id: Union[str, uuid.UUID]) -> Optional[Map]:
        """The map with this id, or None if there is none (or it can't be read)."""
        key = _as_uuid(map_id)
        if key is None:
            logger.warning(f"Invalid map id: {map_id!r}")
            return None

        try:
            maps = await self.store.fetch(select(Map).where(Map.id == key))
        except StorageFailure as e:
            logger.error(f"Failed to fetch map by id {key}: {e}")
            return None
        return maps[0] if maps else None

    async def delete_map(self, map_obj: Map) -> None:
        """Delete a map and, through cascade, all of its characters."""
        await self.store.delete(map_obj)
        await self.store.commit()
        logger.info(f"Map {map_obj.id} deleted")

    async def rename_map(self, map_id: Union[str, uuid.UUID], new_name: str) -> Optional[Map]:
        """
        Rename a map.

        The map is resolved through the session's identity map; a stale
        reference is refreshed from storage before it is modified. Returns
        None (and changes nothing) if the map cannot be resolved.
        """
        key = _as_uuid(map_id)
        if key is None:
            logger.warning(f"No map found with id {map_id!r}")
            return None

        try:
            map_obj = await self.store.get(Map, key)
            if map_obj is not None and self.store.is_expired(map_obj):
                await self.store.refresh(map_obj)
        except StorageFailure as e:
            logger.error(f"Failed to fetch map {key} for rename: {e}")
            return None

        if map_obj is None:
            logger.warning(f"No map found with id {key}")
            return None

        map_obj.name = new_name
        await self.store.commit()
        logger.info(f"Map {key} renamed to '{new_name}'")
        return map_obj

    async def restore_map(self, snapshot: dict) -> Optional[Map]:
        """
        Recreate a map (keeping its id) and its characters from a backup
        snapshot. Returns None if a map with that id already exists.
        """
        key = _as_uuid(snapshot.get("id"))
        if key is None:
            logger.warning(f"Backup entry has an invalid map id: {snapshot.get('id')!r}")
            return None

        if await self.find_map(key) is not None:
            logger.info(f"Map {key} already exists, skipping restore")
            return None

        map_obj = Map(
            id=key,
            name=snapshot.get("name"),
            created_at=snapshot.get("created_at") or datetime.now(timezone.utc),
            image_data=snapshot.get("image_data") or b"",
        )
        self.store.insert(map_obj)

        for entry in snapshot.get("characters", []):
            color = entry.get("color") or {}
            self.store.insert(Character(
                map_id=key,
                position_x=float(entry.get("position_x", 0.0)),
                position_y=float(entry.get("position_y", 0.0)),
                size=_check_size(entry.get("size", self.settings.default_token_size)),
                color_r=float(color.get("r", 0.0)),
                color_g=float(color.get("g", 0.0)),
                color_b=float(color.get("b", 0.0)),
                color_a=float(color.get("a", 0.0)),
                name=entry.get("name"),
            ))

        await self.store.commit()
        logger.info(f"Map {key} restored with {len(snapshot.get('characters', []))} characters")
        return map_obj

    # ============================================================
    # Characters
    # ============================================================

    async def add_character(
        self,
        owner_id: Union[str, uuid.UUID],
        position_x: float,
        position_y: float,
        color: Color,
        size: float,
        name: Optional[str] = None,
    ) -> Optional[Character]:
        """
        Create a character on an existing map.

        Returns None without creating anything if the owner map cannot be
        resolved.
        """
        size = _check_size(size)
        position = _check_position(position_x, position_y)
        owner = await self.find_map(owner_id)
        if owner is None:
            logger.warning(f"Character not saved: no map with id {owner_id}")
            return None

        r, g, b, a = color
        character = Character(
            map_id=owner.id,
            position_x=position.x,
            position_y=position.y,
            size=size,
            color_r=float(r),
            color_g=float(g),
            color_b=float(b),
            color_a=float(a),
            name=name,
        )
        self.store.insert(character)
        await self.store.commit()

        logger.info(f"Character {character.id} saved for map with id {owner.id}")
        return character

    async def list_characters(self, map_obj: Map) -> List[Character]:
        """Characters owned by the given map, in no particular order."""
        try:
            return await self.store.fetch(select(Character).where(Character.map_id == map_obj.id))
        except StorageFailure as e:
            logger.error(f"Failed to fetch characters for map {map_obj.id}: {e}")
            return []

    async def find_character(self, character_id: int) -> Optional[Character]:
        """The character with this id, or None."""
        try:
            characters = await self.store.fetch(select(Character).where(Character.id == character_id))
        except StorageFailure as e:
            logger.error(f"Failed to fetch character {character_id}: {e}")
            return None
        return characters[0] if characters else None

    async def update_character(self, character: Character, new_position: Point, new_size: float) -> bool:
        """
        Move and resize a character. Color and name are left untouched.

        Returns False without writing anything if the character's row is gone
        (its map was deleted in the meantime).
        """
        new_size = _check_size(new_size)
        x, y = _check_position(*new_position)

        identity = inspect(character).identity
        key = identity[0] if identity else None
        try:
            rows = []
            if key is not None:
                rows = await self.store.fetch(select(Character.id).where(Character.id == key))
        except StorageFailure as e:
            logger.error(f"Failed to check character {key} before update: {e}")
            return False
        if not rows:
            logger.warning(f"Character {key} not updated: it no longer exists")
            return False

        character.position_x = x
        character.position_y = y
        character.size = new_size

        await self.store.commit()
        logger.info(f"Character {key} updated with position: ({x}, {y}) and size: {new_size}")
        return True
