"""
Legend Logger - FastAPI dependencies
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from legend_logger.database import get_db
from legend_logger.services.entity_store import EntityStore
from legend_logger.services.layout import LayoutSessionManager
from legend_logger.services.persistence import Persistence


async def get_store(db: AsyncSession = Depends(get_db)) -> EntityStore:
    """Entity store bound to the request's database session."""
    return EntityStore(db)


async def get_persistence(store: EntityStore = Depends(get_store)) -> Persistence:
    """Persistence gateway for the request."""
    return Persistence(store)


def get_layout_manager(request: Request) -> LayoutSessionManager:
    """Edit session registry created at startup."""
    return request.app.state.layouts
