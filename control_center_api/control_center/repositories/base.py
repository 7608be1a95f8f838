from __future__ import annotations

from typing import Any, Generic, Iterable, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy import Executable, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """
    Base class for repositories providing common helpers.

    Note:
      RLS enforcement is handled by Postgres using the `app.tenant_id` GUC.
      Ensure the session you're using has tenant context set via tenant_context.

    Subclasses set `model` to get id-based get/create/update/delete for free.
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def all(self, statement: Executable) -> List[Any]:
        return list(await self.scalars(statement))

    # Generic CRUD on `model`

    async def get(self, entity_id: UUID) -> Optional[ModelT]:
        stmt = select(self.model).where(self.model.id == entity_id)
        return await self.scalar_one_or_none(stmt)

    async def create(self, **values: Any) -> ModelT:
        """Insert a row and return it with server defaults loaded."""
        entity = self.model(**values)
        await self.add(entity)
        await self.commit()
        await self.session.refresh(entity)
        return entity

    async def update(self, entity_id: UUID, **values: Any) -> Optional[ModelT]:
        """
        Apply the given values to the row; returns None when it does not exist.

        None clears a nullable column and is ignored for a NOT NULL one.
        """
        entity = await self.get(entity_id)
        if entity is None:
            return None
        columns = self.model.__table__.columns
        changes = {
            k: v for k, v in values.items()
            if v is not None or (k in columns and columns[k].nullable)
        }
        if not changes:
            return entity
        for key, value in changes.items():
            setattr(entity, key, value)
        await self.commit()
        await self.session.refresh(entity)
        return entity

    async def delete(self, entity_id: UUID) -> bool:
        """Delete by id; returns False when no row matched."""
        result = await self.execute(delete(self.model).where(self.model.id == entity_id))
        await self.commit()
        return bool(result.rowcount)
