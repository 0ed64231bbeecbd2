"""Campaign and lead repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.campaign import Campaign, CampaignLead
from switchboard.persistence.repositories.base import BaseRepository


class CampaignRepository(BaseRepository[Campaign]):
    """Repository for Campaign entities and captured leads."""

    def __init__(self, session: AsyncSession):
        """Initialize campaign repository."""
        super().__init__(Campaign, session)

    async def list_by_page(self, organization_id: str, page_id: str) -> list[Campaign]:
        """List campaigns bound to a Facebook page."""
        stmt = (
            select(Campaign)
            .where(
                Campaign.organization_id == organization_id,
                Campaign.fb_page_id == page_id,
            )
            .order_by(Campaign.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def lead_exists(self, fb_lead_id: str) -> bool:
        """Check whether a lead id was already recorded."""
        stmt = select(CampaignLead.id).where(CampaignLead.fb_lead_id == fb_lead_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def create_lead(self, **data) -> CampaignLead:
        """Record a captured lead."""
        lead = CampaignLead(**data)
        self.session.add(lead)
        await self.session.commit()
        await self.session.refresh(lead)
        return lead
