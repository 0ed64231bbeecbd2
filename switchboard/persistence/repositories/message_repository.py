"""Message repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.message import Message, MessageType
from switchboard.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message entities."""

    def __init__(self, session: AsyncSession):
        """Initialize message repository."""
        super().__init__(Message, session)

    async def find_by_external_id(self, organization_id: str, external_id: str) -> Message | None:
        """Find a message by its gateway message id (the dedup key)."""
        stmt = select(Message).where(
            Message.organization_id == organization_id,
            Message.external_id == external_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_status_by_external_id(
        self, organization_id: str, external_id: str, status: str
    ) -> Message | None:
        """Apply a delivery receipt to a message.

        Returns:
            Updated message, or None if the receipt refers to an unknown message
        """
        message = await self.find_by_external_id(organization_id, external_id)
        if message is None or message.status == status:
            return message
        message.status = status
        await self.session.commit()
        await self.session.refresh(message)
        return message

    async def list_page(
        self,
        organization_id: str,
        contact_id: str,
        limit: int = 50,
        before: datetime | None = None,
    ) -> tuple[list[Message], bool]:
        """Get one page of a contact's history, walking backwards in time.

        Args:
            organization_id: Organization ID
            contact_id: Contact ID
            limit: Page size
            before: Only messages created strictly before this instant

        Returns:
            Tuple of (messages in ascending order, whether older messages exist)
        """
        stmt = select(Message).where(
            Message.organization_id == organization_id,
            Message.contact_id == contact_id,
        )
        if before is not None:
            stmt = stmt.where(Message.created_at < before)
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit + 1)
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        page = rows[:limit]
        page.reverse()
        return page, has_more

    async def list_recent_for_widget(
        self, organization_id: str, contact_id: str, limit: int = 100
    ) -> list[Message]:
        """Get the latest visitor-visible messages (internal notes excluded), ascending."""
        stmt = (
            select(Message)
            .where(
                Message.organization_id == organization_id,
                Message.contact_id == contact_id,
                Message.type != MessageType.NOTE,
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return rows
