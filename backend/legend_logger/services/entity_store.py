"""
Legend Logger - Entity Store
Keyed storage for Map and Character records over one async session.

Every read and write of a store goes through the same AsyncSession, so a
store is the single logical writer for whoever holds it. Nothing here
retries: read errors and commit errors both surface as StorageFailure.
"""
import logging
from typing import Any, List, Optional, Type

from sqlalchemy import delete, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from legend_logger.database import Base
from legend_logger.exceptions import StorageFailure

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Thin wrapper around an AsyncSession exposing the operations the
    persistence gateway needs: insert, fetch, get, refresh, delete, commit.

    Deleting a record also deletes rows of every mapped table that declares
    an ON DELETE CASCADE foreign key to it, even when the engine itself does
    not enforce foreign keys.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._pending_writes = False

    def insert(self, record: Base) -> None:
        """Add a new record; store-managed identity is assigned on commit."""
        self.session.add(record)

    async def fetch(self, statement) -> List[Any]:
        """Run a select and return the matching records (possibly empty)."""
        try:
            result = await self.session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Fetch failed: {e}")
            raise StorageFailure(f"Fetch failed: {e}") from e

    async def get(self, model: Type[Base], ident: Any) -> Optional[Base]:
        """Primary key lookup, served from the identity map when possible."""
        try:
            return await self.session.get(model, ident)
        except SQLAlchemyError as e:
            logger.error(f"Lookup of {model.__name__} {ident} failed: {e}")
            raise StorageFailure(f"Lookup of {model.__name__} {ident} failed: {e}") from e

    def is_expired(self, record: Base) -> bool:
        """True when some of the record's loaded state has been expired."""
        return bool(inspect(record).expired_attributes)

    async def refresh(self, record: Base) -> None:
        """Reload the record's attributes from the database."""
        try:
            await self.session.refresh(record)
        except SQLAlchemyError as e:
            logger.error(f"Refresh of {record!r} failed: {e}")
            raise StorageFailure(f"Refresh of {record!r} failed: {e}") from e

    async def delete(self, record: Base) -> None:
        """Remove a record together with the rows that cascade from it."""
        table = record.__table__
        try:
            for mapper in Base.registry.mappers:
                child = mapper.class_
                for fk in child.__table__.foreign_keys:
                    if fk.column.table is not table:
                        continue
                    if (fk.ondelete or "").upper() != "CASCADE":
                        continue
                    parent_value = getattr(record, fk.column.key)
                    await self.session.execute(delete(child).where(fk.parent == parent_value))
            await self.session.delete(record)
        except SQLAlchemyError as e:
            logger.critical(f"Delete of {record!r} failed: {e}")
            raise StorageFailure(f"Delete of {record!r} failed: {e}") from e
        self._pending_writes = True

    def is_dirty(self) -> bool:
        """Whether there are mutations not yet committed."""
        session = self.session
        return self._pending_writes or bool(session.new or session.dirty or session.deleted)

    async def commit(self) -> bool:
        """
        Flush and commit pending mutations.

        Returns False when there was nothing to commit. A failed commit is
        rolled back and raised as StorageFailure.
        """
        if not self.is_dirty():
            return False

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self._pending_writes = False
            logger.critical(f"Commit failed, in-memory state no longer matches storage: {e}")
            raise StorageFailure(f"Commit failed: {e}") from e

        self._pending_writes = False
        return True

    async def release(self) -> None:
        """
        End a read-only transaction so the connection goes back to the pool.

        Loaded records stay usable (sessions are made with
        expire_on_commit=False). Does nothing while writes are pending.
        """
        if self.is_dirty() or not self.session.in_transaction():
            return
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Ending read transaction failed: {e}")
            raise StorageFailure(f"Ending read transaction failed: {e}") from e

    async def close(self) -> None:
        await self.session.close()
