"""Tag repository."""

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.tag import ContactTag, Tag
from switchboard.persistence.repositories.base import BaseRepository


class TagRepository(BaseRepository[Tag]):
    """Repository for Tag entities and their contact links."""

    def __init__(self, session: AsyncSession):
        """Initialize tag repository."""
        super().__init__(Tag, session)

    async def find_for_label(
        self, organization_id: str, wa_label_id: str | None, name: str | None
    ) -> Tag | None:
        """Find the tag mirroring a WhatsApp label, by label id or by name.

        Args:
            organization_id: Organization ID
            wa_label_id: Gateway label id
            name: Label name (matched case-insensitively)

        Returns:
            Matching tag, preferring an exact label id match
        """
        conditions = []
        if wa_label_id:
            conditions.append(Tag.wa_label_id == wa_label_id)
        if name:
            conditions.append(func.lower(Tag.name) == name.lower())
        if not conditions:
            return None

        stmt = select(Tag).where(Tag.organization_id == organization_id, or_(*conditions))
        result = await self.session.execute(stmt)
        tags = list(result.scalars().all())
        for tag in tags:
            if wa_label_id and tag.wa_label_id == wa_label_id:
                return tag
        return tags[0] if tags else None

    async def link_contact(self, contact_id: str, tag_id: str) -> bool:
        """Attach a tag to a contact (idempotent).

        Returns:
            True if a new link was created
        """
        stmt = select(ContactTag).where(
            ContactTag.contact_id == contact_id,
            ContactTag.tag_id == tag_id,
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            return False
        self.session.add(ContactTag(contact_id=contact_id, tag_id=tag_id))
        await self.session.commit()
        return True

    async def unlink_contact(self, contact_id: str, tag_id: str) -> bool:
        """Detach a tag from a contact.

        Returns:
            True if a link was removed
        """
        stmt = delete(ContactTag).where(
            ContactTag.contact_id == contact_id,
            ContactTag.tag_id == tag_id,
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return (result.rowcount or 0) > 0

    async def delete_with_links(self, tag: Tag) -> None:
        """Delete a tag together with every contact link pointing at it."""
        await self.session.execute(delete(ContactTag).where(ContactTag.tag_id == tag.id))
        await self.session.execute(delete(Tag).where(Tag.id == tag.id))
        await self.session.commit()

    async def list_tag_ids_for_contact(self, contact_id: str) -> list[str]:
        """List ids of the tags attached to a contact."""
        stmt = select(ContactTag.tag_id).where(ContactTag.contact_id == contact_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
