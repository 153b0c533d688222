"""
Legend Logger - Edit Session Schemas
Input events delivered by the client's gesture layer.
"""
import uuid
from pydantic import BaseModel, Field, RootModel
from typing import Annotated, List, Literal, Optional, Union

from legend_logger.schemas.character import ColorSchema, PointSchema


class DragChanged(BaseModel):
    """Intermediate drag frame, applied in memory only."""
    type: Literal["drag_changed"]
    token_id: str
    position: PointSchema


class DragEnded(BaseModel):
    type: Literal["drag_ended"]
    token_id: str


class PinchEnded(BaseModel):
    type: Literal["pinch_ended"]
    token_id: str
    scale: float = Field(..., gt=0, allow_inf_nan=False)


class TapSelected(BaseModel):
    type: Literal["tap_selected"]
    token_id: str


class AddToken(BaseModel):
    """Add button; every field falls back to the layout's defaults."""
    type: Literal["add_token"]
    position: Optional[PointSchema] = None
    color: Optional[ColorSchema] = None
    size: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    name: Optional[str] = Field(default=None, max_length=255)


class Rename(BaseModel):
    type: Literal["rename"]
    name: str = Field(..., min_length=1, max_length=255)


class ToggleLock(BaseModel):
    type: Literal["toggle_lock"]


LayoutEvent = Annotated[
    Union[DragChanged, DragEnded, PinchEnded, TapSelected, AddToken, Rename, ToggleLock],
    Field(discriminator="type"),
]


class LayoutEventBody(RootModel[LayoutEvent]):
    """Request body carrying a single event, selected by its "type" field."""


class TokenResponse(BaseModel):
    id: str
    character_id: Optional[int] = None
    name: str
    position: PointSchema
    size: float
    color: ColorSchema
    selected: bool = False


class LayoutResponse(BaseModel):
    """Current state of an edit session."""
    session_id: str
    map_id: uuid.UUID
    title: str
    state: str
    locked: bool
    image_width: int
    image_height: int
    selected_token_id: Optional[str] = None
    tokens: List[TokenResponse] = []


class EventResult(BaseModel):
    applied: bool
    layout: LayoutResponse


class SessionClosed(BaseModel):
    session_id: str
    flushed: int
