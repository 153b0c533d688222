"""
Legend Logger - Edit Sessions Router
Drive a map's editable layout with discrete gesture events.

Only terminal events (drag_ended, pinch_ended, add_token, rename) reach the
database; drag_changed frames stay in memory.
"""
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query, status

from legend_logger.dependencies import get_layout_manager
from legend_logger.exceptions import LayoutStateError
from legend_logger.schemas.character import ColorSchema, PointSchema
from legend_logger.schemas.layout import (
    AddToken,
    DragChanged,
    DragEnded,
    EventResult,
    LayoutEventBody,
    LayoutResponse,
    PinchEnded,
    Rename,
    SessionClosed,
    TapSelected,
    ToggleLock,
    TokenResponse,
)
from legend_logger.services.layout import LayoutSession, LayoutSessionManager, MapLayout

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


def build_layout_response(session: LayoutSession) -> LayoutResponse:
    layout = session.layout
    width, height = layout.image_size
    return LayoutResponse(
        session_id=session.id,
        map_id=layout.map_id,
        title=layout.title,
        state=layout.state.value,
        locked=layout.locked,
        image_width=width,
        image_height=height,
        selected_token_id=layout.selected_token_id,
        tokens=[
            TokenResponse(
                id=token.id,
                character_id=token.character.id if token.character is not None else None,
                name=token.name,
                position=PointSchema(x=token.position.x, y=token.position.y),
                size=token.size,
                color=ColorSchema.from_color(token.color),
                selected=token.id == layout.selected_token_id,
            )
            for token in layout.tokens
        ],
    )


def get_session_or_404(session_id: str, manager: LayoutSessionManager) -> LayoutSession:
    session = manager.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Edit session {session_id} not found"
        )
    return session


async def apply_event(layout: MapLayout, event) -> bool:
    """Dispatch one gesture event to the layout."""
    if isinstance(event, DragChanged):
        return layout.drag_changed(event.token_id, event.position.to_point())
    if isinstance(event, DragEnded):
        return await layout.drag_ended(event.token_id)
    if isinstance(event, PinchEnded):
        return await layout.pinch_ended(event.token_id, event.scale)
    if isinstance(event, TapSelected):
        return layout.tap_selected(event.token_id)
    if isinstance(event, AddToken):
        token = await layout.add_token(
            position=event.position.to_point() if event.position else None,
            color=event.color.to_color() if event.color else None,
            size=event.size,
            name=event.name,
        )
        return token is not None
    if isinstance(event, Rename):
        return await layout.rename(event.name)
    if isinstance(event, ToggleLock):
        layout.toggle_lock()
        return True
    raise ValueError(f"Unsupported event: {event!r}")


@router.post(
    "/maps/{map_id}/sessions",
    response_model=LayoutResponse,
    status_code=status.HTTP_201_CREATED
)
async def open_session(
    map_id: uuid.UUID,
    locked: bool = Query(True, description="Open the layout locked (view only)"),
    manager: LayoutSessionManager = Depends(get_layout_manager)
):
    """
    Open an edit session on a map.

    Existing maps are usually opened locked and freshly imported maps
    unlocked; the client can flip it with a toggle_lock event.
    """
    session = await manager.open(map_id, locked=locked)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Map with id {map_id} not found"
        )
    return build_layout_response(session)


@router.get("/sessions/{session_id}", response_model=LayoutResponse)
async def get_session(
    session_id: str,
    manager: LayoutSessionManager = Depends(get_layout_manager)
):
    """Current layout of an edit session."""
    session = get_session_or_404(session_id, manager)
    return build_layout_response(session)


@router.post("/sessions/{session_id}/events", response_model=EventResult)
async def post_event(
    session_id: str,
    body: LayoutEventBody,
    manager: LayoutSessionManager = Depends(get_layout_manager)
):
    """
    Apply one input event.

    Events on a locked layout or on unknown tokens are ignored and reported
    with applied=false.
    """
    session = get_session_or_404(session_id, manager)
    async with session.lock:
        try:
            applied = await apply_event(session.layout, body.root)
        except LayoutStateError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        finally:
            # Idle sessions must not pin a pooled connection
            await session.store.release()
        return EventResult(applied=applied, layout=build_layout_response(session))


@router.delete("/sessions/{session_id}", response_model=SessionClosed)
async def close_session(
    session_id: str,
    manager: LayoutSessionManager = Depends(get_layout_manager)
):
    """Close an edit session, persisting any unfinished drags."""
    flushed = await manager.close(session_id)
    if flushed is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Edit session {session_id} not found"
        )
    return SessionClosed(session_id=session_id, flushed=flushed)
