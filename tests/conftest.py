"""
Shared test fixtures.

Provides: in-memory SQLite engine, entity store, persistence gateway,
PNG payloads and an HTTP client bound to the test database.
"""

import io
import os

# Must be set before legend_logger.config is imported anywhere
os.environ.setdefault("LEGEND_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool


def make_png(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    """Encode a solid-color PNG."""
    img = Image.new("RGB", (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_jpeg(width: int = 64, height: int = 48, orientation: int = None) -> bytes:
    """Encode a JPEG, optionally tagged with an EXIF orientation."""
    img = Image.new("RGB", (width, height), (10, 120, 40))
    buf = io.BytesIO()
    if orientation is None:
        img.save(buf, format="JPEG")
    else:
        exif = Image.Exif()
        exif[0x0112] = orientation
        img.save(buf, format="JPEG", exif=exif)
    return buf.getvalue()


@pytest.fixture
async def test_engine():
    """In-memory database with the schema created."""
    from legend_logger.database import create_engine, init_db

    engine = create_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_async_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(test_async_db):
    from legend_logger.services.entity_store import EntityStore

    return EntityStore(test_async_db)


@pytest.fixture
def persistence(store):
    from legend_logger.services.persistence import Persistence

    return Persistence(store)


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
async def app(session_factory):
    """Application wired to the test database (lifespan is not run)."""
    from legend_logger.database import get_db
    from legend_logger.main import create_app
    from legend_logger.services.layout import LayoutSessionManager

    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.state.layouts = LayoutSessionManager(session_factory)

    yield application

    await application.state.layouts.close_all()


@pytest.fixture
async def client(app):
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
