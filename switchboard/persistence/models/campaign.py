"""Campaign and lead capture models."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id


class Campaign(Base):
    """A Facebook Lead Ads campaign bound to a page and optional form ids."""

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    fb_page_id = Column(String(64), nullable=True, index=True)
    fb_page_token = Column(String(1024), nullable=True)
    fb_form_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, organization_id={self.organization_id}, fb_page_id={self.fb_page_id})>"


class CampaignLead(Base):
    """A captured lead, linked to a contact when its form data identifies one."""

    __tablename__ = "campaign_leads"

    id = Column(String(36), primary_key=True, default=generate_id)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=True, index=True)
    fb_lead_id = Column(String(64), nullable=True, unique=True)
    form_name = Column(String(255), nullable=True)
    source = Column(String(32), nullable=False, default="facebook")
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CampaignLead(id={self.id}, campaign_id={self.campaign_id}, fb_lead_id={self.fb_lead_id})>"
