"""
Legend Logger - Character Model
Colored, sized tokens positioned on a map image
"""
import uuid
from sqlalchemy import String, Float, Integer, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from typing import NamedTuple, Optional

from legend_logger.config import get_settings
from legend_logger.database import Base


class Point(NamedTuple):
    """Coordinates in the map image's pixel space."""
    x: float
    y: float


class Color(NamedTuple):
    """RGBA color, each channel in [0, 1]."""
    r: float
    g: float
    b: float
    a: float = 1.0


class Character(Base):
    """
    Character token placed on a map.

    Attributes:
        id: Store-managed identifier
        map_id: Owning map (cascade on map delete)
        position_x, position_y: Token center in image coordinates
        size: Token diameter, always > 0
        color_r, color_g, color_b, color_a: Token color channels
        name: Optional label, read through display_name
    """
    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    map_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("maps.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    size: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")

    color_r: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    color_g: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    color_b: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    color_a: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def position(self) -> Point:
        return Point(self.position_x or 0.0, self.position_y or 0.0)

    @property
    def color(self) -> Color:
        return Color(self.color_r or 0.0, self.color_g or 0.0, self.color_b or 0.0, self.color_a or 0.0)

    @property
    def display_name(self) -> str:
        return self.name if self.name is not None else get_settings().default_character_name

    def __repr__(self) -> str:
        return f"<Character(id={self.id}, map_id={self.map_id}, at=({self.position_x}, {self.position_y}), size={self.size})>"
