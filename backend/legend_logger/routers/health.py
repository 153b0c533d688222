"""
Legend Logger - Health Check Router
"""
import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from legend_logger.config import get_settings
from legend_logger.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])
settings = get_settings()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    app_name: str
    database_status: str


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    Verifies the database answers a trivial query.
    """
    database_status = "connected"

    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        database_status = "unreachable"

    return HealthResponse(
        status="healthy" if database_status == "connected" else "degraded",
        app_name=settings.app_name,
        database_status=database_status
    )
