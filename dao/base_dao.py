"""
Base DAO with common database operations.
"""
import uuid
from typing import Generic, TypeVar, Type, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from dao.models.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)

IdType = Union[str, uuid.UUID]


def as_uuid(value: Optional[IdType]) -> Optional[uuid.UUID]:
    """Coerce a UUID string to uuid.UUID, passing None and UUIDs through."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class BaseDAO(Generic[ModelType]):
    """Base DAO class with common CRUD operations."""

    def __init__(self, model: Type[ModelType]):
        """
        Initialize DAO with a model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model

    async def get_by_id(
        self, session: AsyncSession, id: IdType
    ) -> Optional[ModelType]:
        """
        Get a record by ID.

        Args:
            session: Database session
            id: Record ID (UUID)

        Returns:
            Model instance or None if not found
        """
        query = select(self.model).where(self.model.id == as_uuid(id))
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def create(
        self, session: AsyncSession, **kwargs
    ) -> ModelType:
        """
        Create a new record.

        Args:
            session: Database session
            **kwargs: Model attributes

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def update(
        self, session: AsyncSession, id: IdType, **kwargs
    ) -> Optional[ModelType]:
        """
        Update a record by ID.

        Args:
            session: Database session
            id: Record ID
            **kwargs: Attributes to update

        Returns:
            Updated model instance or None if not found
        """
        instance = await self.get_by_id(session, id)
        if not instance:
            return None

        for key, value in kwargs.items():
            setattr(instance, key, value)

        await session.flush()
        await session.refresh(instance)
        return instance

