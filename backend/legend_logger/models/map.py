"""
Legend Logger - Map Model
Photographed game maps that character tokens are placed on
"""
import uuid
from sqlalchemy import String, DateTime, LargeBinary, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from typing import Optional

from legend_logger.config import get_settings
from legend_logger.database import Base


class Map(Base):
    """
    Map model for storing imported map photos.

    Characters reference their map through characters.map_id; there is no
    ORM collection on this side, use Persistence.list_characters().

    Optional columns are read through the display_name/created/image
    properties, which substitute defaults instead of returning None.
    """
    __tablename__ = "maps"

    # Allocated by the persistence gateway, never by the database
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Encoded image payload (PNG after import)
    image_data: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    @property
    def display_name(self) -> str:
        return self.name if self.name is not None else get_settings().default_map_name

    @property
    def created(self) -> datetime:
        if self.created_at is None:
            return datetime.now(timezone.utc)
        # SQLite hands back naive datetimes; they were written as UTC
        if self.created_at.tzinfo is None:
            return self.created_at.replace(tzinfo=timezone.utc)
        return self.created_at

    @property
    def image(self) -> bytes:
        return self.image_data if self.image_data is not None else b""

    def __repr__(self) -> str:
        return f"<Map(id={self.id}, name='{self.name}')>"
