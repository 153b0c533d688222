"""
Legend Logger - Editable Layout
In-memory token layout for one map during an edit session.

A layout is hydrated from the persistence gateway, mutated by discrete input
events and flushed back through the gateway. Intermediate gesture frames
(drag_changed) only touch memory; the terminal event of a gesture, and the
add button, each make exactly one gateway call.
"""
import asyncio
import enum
import logging
import math
import random
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from legend_logger.database import async_session_maker
from legend_logger.exceptions import InvalidImageError, LayoutStateError
from legend_logger.models.character import Character, Color, Point
from legend_logger.services.entity_store import EntityStore
from legend_logger.services.imaging import image_dimensions
from legend_logger.services.persistence import Persistence

logger = logging.getLogger(__name__)


class LayoutState(str, enum.Enum):
    """Lifecycle of an edit session."""
    UNINITIALIZED = "uninitialized"
    HYDRATED = "hydrated"        # Loaded, no user input yet
    SESSION = "session"          # At least one event applied
    FLUSHED = "flushed"          # Closed, no further events accepted


@dataclass
class Token:
    """Editable stand-in for a stored Character."""
    position: Point
    color: Color
    size: float
    name: str
    character: Optional[Character] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Set while a drag is in progress and not yet persisted
    moving: bool = False


def random_color() -> Color:
    return Color(random.random(), random.random(), random.random(), 1.0)


class MapLayout:
    """
    Editable token layout for a single map.

    Events return True when they were applied and False when they were
    ignored (layout locked, unknown token, invalid value). Events sent
    before hydrate() or after close() raise LayoutStateError.

    A token only takes a new position or size once the gateway has stored
    it; a token whose character was deleted underneath the layout is
    dropped.
    """

    def __init__(self, persistence: Persistence, map_id, locked: bool = True):
        self.persistence = persistence
        self.map_id = map_id
        self.locked = locked
        self.state = LayoutState.UNINITIALIZED
        self.title: Optional[str] = None
        self.image_size = (0, 0)
        self.tokens: List[Token] = []
        self.selected_token_id: Optional[str] = None

    # ============================================================
    # Lifecycle
    # ============================================================

    async def hydrate(self) -> bool:
        """Load the map and build one token per stored character."""
        if self.state != LayoutState.UNINITIALIZED:
            raise LayoutStateError(f"Layout already {self.state.value}")

        map_obj = await self.persistence.find_map(self.map_id)
        if map_obj is None:
            logger.warning(f"Cannot open layout: no map with id {self.map_id}")
            return False

        self.map_id = map_obj.id
        self.title = map_obj.display_name
        try:
            self.image_size = image_dimensions(map_obj.image)
        except InvalidImageError as e:
            logger.warning(f"Map {map_obj.id} image could not be decoded: {e}")
            self.image_size = (0, 0)

        characters = await self.persistence.list_characters(map_obj)
        self.tokens = [
            Token(
                position=character.position,
                color=character.color,
                size=character.size,
                name=character.display_name,
                character=character,
            )
            for character in characters
        ]
        self.state = LayoutState.HYDRATED
        logger.info(f"Loaded {len(self.tokens)} characters for map {self.map_id}")
        return True

    async def close(self) -> int:
        """
        End the session. Drags that never delivered their end event are
        persisted first. Returns the number of tokens written.
        """
        self._require_active()
        flushed = 0
        for token in list(self.tokens):
            if token.moving and await self._persist(token, token.position, token.size):
                flushed += 1
        self.state = LayoutState.FLUSHED
        self.selected_token_id = None
        return flushed

    def _require_active(self) -> None:
        if self.state in (LayoutState.UNINITIALIZED, LayoutState.FLUSHED):
            raise LayoutStateError(f"Layout is {self.state.value}")

    def _touch(self) -> None:
        self.state = LayoutState.SESSION

    def get_token(self, token_id: str) -> Optional[Token]:
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None

    def _editable_token(self, token_id: str, action: str) -> Optional[Token]:
        self._require_active()
        if self.locked:
            logger.debug(f"Ignoring {action} on locked layout")
            return None
        token = self.get_token(token_id)
        if token is None:
            logger.warning(f"Ignoring {action}: unknown token {token_id}")
        return token

    async def _persist(self, token: Token, position: Point, size: float) -> bool:
        """
        Write a token's new geometry, applying it in memory only once stored.

        A token whose character is gone from storage is dropped from the
        layout. A failed commit raises StorageFailure and leaves the token as
        it was, still marked moving if a drag was in progress.
        """
        if token.character is None:
            logger.warning(f"Token {token.id} has no stored character, nothing to update")
            return False
        stored = await self.persistence.update_character(token.character, position, size)
        if not stored:
            self._drop(token)
            return False
        token.position = position
        token.size = size
        token.moving = False
        return True

    def _drop(self, token: Token) -> None:
        logger.warning(f"Dropping token {token.id}: its character no longer exists")
        self.tokens = [t for t in self.tokens if t is not token]
        if self.selected_token_id == token.id:
            self.selected_token_id = None

    @property
    def selected_token(self) -> Optional[Token]:
        if self.selected_token_id is None:
            return None
        return self.get_token(self.selected_token_id)

    # ============================================================
    # Events
    # ============================================================

    async def add_token(
        self,
        position: Optional[Point] = None,
        color: Optional[Color] = None,
        size: Optional[float] = None,
        name: Optional[str] = None,
    ) -> Optional[Token]:
        """
        Create a character and, only if the gateway stored it, add its token.
        Defaults: image center, random opaque color, configured size.
        """
        self._require_active()
        if self.locked:
            logger.debug("Ignoring add on locked layout")
            return None

        if position is None:
            width, height = self.image_size
            position = Point(width / 2, height / 2)
        color = color or random_color()
        size = size if size is not None else self.persistence.settings.default_token_size

        character = await self.persistence.add_character(
            self.map_id, position.x, position.y, color, size, name=name
        )
        if character is None:
            logger.warning("Failed to save character, token not added")
            return None

        token = Token(
            position=character.position,
            color=character.color,
            size=character.size,
            name=character.display_name,
            character=character,
        )
        self.tokens.append(token)
        self._touch()
        return token

    def drag_changed(self, token_id: str, position: Point) -> bool:
        """Move a token in memory while the drag is in progress."""
        token = self._editable_token(token_id, "drag")
        if token is None:
            return False
        position = Point(*position)
        if not (math.isfinite(position.x) and math.isfinite(position.y)):
            logger.warning(f"Ignoring drag to non-finite position {tuple(position)}")
            return False
        token.position = position
        token.moving = True
        self._touch()
        return True

    async def drag_ended(self, token_id: str) -> bool:
        """Persist the token's position at the end of a drag."""
        token = self._editable_token(token_id, "drag end")
        if token is None:
            return False
        self._touch()
        return await self._persist(token, token.position, token.size)

    async def pinch_ended(self, token_id: str, scale: float) -> bool:
        """Scale a token's size by the pinch factor and persist it."""
        token = self._editable_token(token_id, "pinch")
        if token is None:
            return False
        new_size = token.size * scale
        if not (scale > 0 and new_size > 0 and math.isfinite(new_size)):
            logger.warning(f"Ignoring pinch with scale {scale}")
            return False
        self._touch()
        return await self._persist(token, token.position, new_size)

    def tap_selected(self, token_id: str) -> bool:
        """Select a token; any previous selection is dropped."""
        token = self._editable_token(token_id, "select")
        if token is None:
            return False
        self.selected_token_id = token.id
        self._touch()
        return True

    async def rename(self, new_name: str) -> bool:
        """Rename the underlying map."""
        self._require_active()
        map_obj = await self.persistence.rename_map(self.map_id, new_name)
        if map_obj is None:
            return False
        self.title = map_obj.display_name
        self._touch()
        return True

    def toggle_lock(self) -> bool:
        """Flip the lock. Returns the new locked flag."""
        self._require_active()
        self.locked = not self.locked
        if self.locked:
            self.selected_token_id = None
        self._touch()
        return self.locked


@dataclass
class LayoutSession:
    """An open layout with the store session backing it."""
    id: str
    layout: MapLayout
    store: EntityStore
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class LayoutSessionManager:
    """
    Keeps the open edit sessions.

    Each session gets its own database session for its whole lifetime, so the
    characters its tokens point at stay attached while the user edits.
    """

    def __init__(self, session_factory: Callable = None):
        self._session_factory = session_factory or async_session_maker
        self._sessions: Dict[str, LayoutSession] = {}

    async def open(self, map_id, locked: bool = True) -> Optional[LayoutSession]:
        store = EntityStore(self._session_factory())
        layout = MapLayout(Persistence(store), map_id, locked=locked)
        try:
            hydrated = await layout.hydrate()
            if hydrated:
                await store.release()
        except Exception:
            await store.close()
            raise
        if not hydrated:
            await store.close()
            return None

        session = LayoutSession(id=uuid.uuid4().hex, layout=layout, store=store)
        self._sessions[session.id] = session
        logger.info(f"Opened edit session {session.id} for map {layout.map_id}")
        return session

    def get(self, session_id: str) -> Optional[LayoutSession]:
        return self._sessions.get(session_id)

    async def close(self, session_id: str) -> Optional[int]:
        """Flush and discard a session. Returns None if it does not exist."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        try:
            async with session.lock:
                return await session.layout.close()
        finally:
            await session.store.close()
            logger.info(f"Closed edit session {session_id}")

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
