"""Contact repository."""

from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.contact import Contact, ConversationStatus
from switchboard.persistence.repositories.base import BaseRepository

# Sentinel distinguishing "leave assignment alone" from "clear assignment"
UNCHANGED = object()


class ContactRepository(BaseRepository[Contact]):
    """Repository for Contact entities."""

    def __init__(self, session: AsyncSession):
        """Initialize contact repository."""
        super().__init__(Contact, session)

    async def find_by_external_id(self, organization_id: str, external_id: str) -> Contact | None:
        """Find a contact by its gateway identity within an organization.

        The channel is intentionally not part of the lookup: a contact keeps
        its thread when the gateway instance behind it is re-created.

        Args:
            organization_id: Organization ID
            external_id: Gateway-specific identity (e.g. WhatsApp JID)

        Returns:
            Oldest matching contact or None
        """
        stmt = (
            select(Contact)
            .where(
                Contact.organization_id == organization_id,
                Contact.external_id == external_id,
            )
            .order_by(Contact.created_at.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_email(
        self, organization_id: str, email: str, channel_id: str | None = None
    ) -> Contact | None:
        """Find a contact by email (case-insensitive), optionally within one channel."""
        stmt = select(Contact).where(
            Contact.organization_id == organization_id,
            func.lower(Contact.email) == email.strip().lower(),
        )
        if channel_id is not None:
            stmt = stmt.where(Contact.channel_id == channel_id)
        stmt = stmt.order_by(Contact.created_at.asc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        organization_id: str,
        *,
        email: str | None,
        channel_id: str | None = None,
        defaults: dict | None = None,
        **fields,
    ) -> tuple[Contact, bool]:
        """Update the contact matching an email, or create a new one.

        Without an email there is nothing to key on, so a new contact is
        always created.

        Args:
            organization_id: Organization ID
            email: Email used as the natural key
            channel_id: Restrict the match to one channel and stamp new rows with it
            defaults: Fallbacks used only when creating, for fields left None
            **fields: Attributes to set; None values never overwrite stored data

        Returns:
            Tuple of (contact, created)
        """
        contact = None
        if email:
            contact = await self.find_by_email(organization_id, email, channel_id=channel_id)

        if contact is None:
            values = {key: value for key, value in (defaults or {}).items() if fields.get(key) is None}
            values.update({key: value for key, value in fields.items() if value is not None})
            contact = await self.create(
                organization_id, email=email, channel_id=channel_id, **values
            )
            return contact, True

        changed = False
        for key, value in fields.items():
            if value is not None and getattr(contact, key) != value:
                setattr(contact, key, value)
                changed = True
        if changed:
            await self.session.commit()
            await self.session.refresh(contact)
        return contact, False

    async def update_status(
        self,
        organization_id: str,
        contact_id: str,
        conv_status: str | None | object = UNCHANGED,
        assigned_to_id: str | None | object = UNCHANGED,
    ) -> Contact | None:
        """Write conversation status and/or assignment (last write wins).

        Args:
            organization_id: Organization ID
            contact_id: Contact ID
            conv_status: New status, or UNCHANGED
            assigned_to_id: New assignee (None clears), or UNCHANGED

        Returns:
            Updated contact or None if not found
        """
        values: dict = {"updated_at": datetime.utcnow()}
        if conv_status is not UNCHANGED:
            values["conv_status"] = conv_status
        if assigned_to_id is not UNCHANGED:
            values["assigned_to_id"] = assigned_to_id
        return await self.update(organization_id, contact_id, **values)

    async def rename_by_external_id(self, organization_id: str, external_id: str, name: str) -> int:
        """Rename contacts with a gateway identity when the name differs.

        Returns:
            Number of contacts renamed
        """
        stmt = (
            update(Contact)
            .where(
                Contact.organization_id == organization_id,
                Contact.external_id == external_id,
                or_(Contact.name.is_(None), Contact.name != name),
            )
            .values(name=name, updated_at=datetime.utcnow())
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount or 0

    async def count_active_assignments(self, organization_id: str, agent_id: str) -> int:
        """Count an agent's open or pending conversations."""
        stmt = select(func.count(Contact.id)).where(
            Contact.organization_id == organization_id,
            Contact.assigned_to_id == agent_id,
            Contact.conv_status.in_((ConversationStatus.OPEN, ConversationStatus.PENDING)),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_for_inbox(
        self,
        organization_id: str,
        search: str | None = None,
        conv_status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Contact]:
        """List contacts by most recent activity.

        Args:
            organization_id: Organization ID
            search: Case-insensitive substring of name, phone or email
            conv_status: Only contacts in this status
            skip: Offset
            limit: Page size

        Returns:
            Contacts ordered by updated_at descending
        """
        stmt = select(Contact).where(Contact.organization_id == organization_id)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Contact.name).like(pattern),
                    func.lower(Contact.phone).like(pattern),
                    func.lower(Contact.email).like(pattern),
                )
            )
        if conv_status:
            stmt = stmt.where(Contact.conv_status == conv_status)
        stmt = stmt.order_by(Contact.updated_at.desc(), Contact.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
