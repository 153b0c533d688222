"""
Legend Logger - API Routers
"""
from legend_logger.routers.backup import router as backup_router
from legend_logger.routers.health import router as health_router
from legend_logger.routers.maps import router as maps_router
from legend_logger.routers.sessions import router as sessions_router

__all__ = ["backup_router", "health_router", "maps_router", "sessions_router"]
