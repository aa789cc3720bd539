"""
Base repository shared by the problem, technician and outbox repositories.
"""
from typing import Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.database.connection import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with the operations every table needs."""

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """
        Args:
            session: SQLAlchemy async session (the caller owns the transaction)
            model: SQLAlchemy model class
        """
        self.session = session
        self.model = model

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[ModelType]:
        """
        Get a single record by ID.

        Args:
            id: Record UUID
            for_update: Lock the row until the transaction ends

        Returns:
            Model instance or None if not found
        """
        query = select(self.model).where(self.model.id == id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, obj: ModelType) -> ModelType:
        """
        Insert a record.

        Flushes so the server-generated id and timestamps are available
        before the transaction commits.
        """
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def update(self, obj: ModelType) -> ModelType:
        """Flush pending changes to a record and reload server-side values."""
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def delete(self, obj: ModelType) -> None:
        await self.session.delete(obj)
        await self.session.flush()
