"""Base repository with organization-scoped queries."""

from typing import Any, Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with organization-scoped query methods."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def get_by_id(self, organization_id: str | None, id: str) -> ModelType | None:
        """Get entity by ID, scoped to organization."""
        if organization_id is None:
            # Unscoped lookups (users, organizations themselves)
            stmt = select(self.model).where(self.model.id == id)
        else:
            stmt = select(self.model).where(
                self.model.id == id,
                self.model.organization_id == organization_id,
            )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        organization_id: str | None,
        skip: int = 0,
        limit: int = 100,
        **filters: Any,
    ) -> list[ModelType]:
        """List entities, scoped to organization."""
        stmt = select(self.model)

        if organization_id is not None:
            stmt = stmt.where(self.model.organization_id == organization_id)

        for key, value in filters.items():
            if hasattr(self.model, key):
                stmt = stmt.where(getattr(self.model, key) == value)

        stmt = stmt.offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, organization_id: str | None, **data: Any) -> ModelType:
        """Create new entity with organization_id."""
        if organization_id is not None:
            data["organization_id"] = organization_id
        instance = self.model(**data)
        self.session.add(instance)
        await self.session.commit()
        await self.session.refresh(instance)
        return instance

    async def update(self, organization_id: str | None, id: str, **data: Any) -> ModelType | None:
        """Update entity, scoped to organization."""
        instance = await self.get_by_id(organization_id, id)
        if instance is None:
            return None

        for key, value in data.items():
            setattr(instance, key, value)

        await self.session.commit()
        await self.session.refresh(instance)
        return instance

    async def delete(self, organization_id: str | None, id: str) -> bool:
        """Delete entity, scoped to organization."""
        instance = await self.get_by_id(organization_id, id)
        if instance is None:
            return False

        await self.session.delete(instance)
        await self.session.commit()
        return True
