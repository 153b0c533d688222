"""
Legend Logger - Database Configuration
Async SQLAlchemy setup over a local SQLite file (single-user, local-first).

SQLite only enforces ON DELETE CASCADE when the foreign_keys pragma is on,
so every new connection turns it on.
"""
import logging
from pathlib import Path

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import Connection
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import CreateColumn

from legend_logger.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    _, _, path = database_url.partition(":///")
    if path and not path.startswith(":memory:"):
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on foreign key enforcement for every pooled SQLite connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with the SQLite specifics applied."""
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        _ensure_sqlite_directory(database_url)
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    new_engine = create_async_engine(database_url, echo=settings.debug, **kwargs)
    if is_sqlite:
        enable_sqlite_foreign_keys(new_engine)
    return new_engine


engine = create_engine(settings.database_url)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


async def get_db() -> AsyncSession:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def apply_migrations(conn: Connection) -> list:
    """
    Add columns declared on the models but missing from existing tables.

    Only nullable columns or columns with a server default can be added to a
    populated table, so anything else is logged and left alone.

    Returns the list of "table.column" names that were added.
    """
    inspector = inspect(conn)
    existing_tables = set(inspector.get_table_names())
    added = []

    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        present = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in present:
                continue
            if not column.nullable and column.server_default is None:
                logger.warning(
                    f"Cannot add NOT NULL column {table.name}.{column.name} without a server default"
                )
                continue
            ddl = CreateColumn(column).compile(dialect=conn.dialect)
            conn.exec_driver_sql(f"ALTER TABLE {table.name} ADD COLUMN {ddl}")
            added.append(f"{table.name}.{column.name}")
            logger.info(f"Migrated schema: added column {table.name}.{column.name}")

    return added


async def init_db(target: AsyncEngine = None):
    """Initialize database tables and bring older schemas up to date."""
    # Register the models on Base.metadata before create_all
    import legend_logger.models  # noqa: F401

    target = target or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(apply_migrations)
