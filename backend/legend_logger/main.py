"""
Legend Logger - Main Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from legend_logger import __version__
from legend_logger.config import get_settings
from legend_logger.database import init_db
from legend_logger.exceptions import StorageFailure
from legend_logger.routers import backup_router, health_router, maps_router, sessions_router
from legend_logger.services.layout import LayoutSessionManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    try:
        await app.state.layouts.close_all()
    except StorageFailure as e:
        logger.critical(f"Open edit sessions could not be flushed: {e}")
    logger.info(f"Shutting down {settings.app_name}...")


async def storage_failure_handler(request: Request, exc: StorageFailure):
    """Storage errors end the request; the client decides whether to retry."""
    logger.critical(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage failure, changes were not saved"}
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Photograph game maps and keep track of where the characters are",
        version=__version__,
        lifespan=lifespan
    )
    app.state.layouts = LayoutSessionManager()

    # CORS middleware for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StorageFailure, storage_failure_handler)

    # Include routers
    app.include_router(health_router, prefix="/api")
    app.include_router(maps_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.include_router(backup_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs",
            "health": "/api/health"
        }

    return app


app = create_app()
