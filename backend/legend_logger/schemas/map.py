"""
Legend Logger - Map Pydantic Schemas
"""
import uuid
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List

from legend_logger.schemas.character import CharacterResponse


class MapUpdate(BaseModel):
    """Schema for renaming a map."""
    name: str = Field(..., min_length=1, max_length=255, description="New map name")


class MapResponse(BaseModel):
    """Schema for map response."""
    id: uuid.UUID
    name: str
    created_at: datetime
    image_url: str  # Computed URL for frontend access
    image_width: int = 0
    image_height: int = 0

    model_config = ConfigDict(from_attributes=True)


class MapWithCharacters(MapResponse):
    """Map response with its placed characters."""
    characters: List[CharacterResponse] = []
