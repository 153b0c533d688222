"""
Legend Logger - Character Pydantic Schemas
"""
import uuid
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from legend_logger.models.character import Character, Color, Point


class ColorSchema(BaseModel):
    """RGBA color, channels in [0, 1]."""
    r: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    g: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    b: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    a: float = Field(default=1.0, ge=0.0, le=1.0, allow_inf_nan=False)

    def to_color(self) -> Color:
        return Color(self.r, self.g, self.b, self.a)

    @classmethod
    def from_color(cls, color: Color) -> "ColorSchema":
        return cls(r=color.r, g=color.g, b=color.b, a=color.a)


class PointSchema(BaseModel):
    """Position in map image coordinates."""
    x: float = Field(..., allow_inf_nan=False)
    y: float = Field(..., allow_inf_nan=False)

    def to_point(self) -> Point:
        return Point(self.x, self.y)


class CharacterCreate(BaseModel):
    """Schema for placing a new character on a map."""
    position: PointSchema
    color: ColorSchema
    size: float = Field(..., gt=0, allow_inf_nan=False, description="Token diameter")
    name: Optional[str] = Field(default=None, max_length=255)


class CharacterUpdate(BaseModel):
    """Schema for moving/resizing a character. Color and name are fixed after creation."""
    position: PointSchema
    size: float = Field(..., gt=0, allow_inf_nan=False, description="Token diameter")


class CharacterResponse(BaseModel):
    """Schema for character response."""
    id: int
    map_id: uuid.UUID
    name: str
    position: PointSchema
    size: float
    color: ColorSchema

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_character(cls, character: Character) -> "CharacterResponse":
        x, y = character.position
        return cls(
            id=character.id,
            map_id=character.map_id,
            name=character.display_name,
            position=PointSchema(x=x, y=y),
            size=character.size,
            color=ColorSchema.from_color(character.color),
        )
