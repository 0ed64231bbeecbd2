"""Contact model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id


class ConversationStatus:
    """Conversation states owned by the conversation state machine."""

    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"


class Contact(Base):
    """One conversation thread with one external party."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "channel_id", "external_id", name="uq_contacts_org_channel_external"
        ),
        Index("ix_contacts_org_updated", "organization_id", "updated_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Deleting a channel keeps its contacts
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="SET NULL"), nullable=True, index=True)
    external_id = Column(String(255), nullable=True, index=True)  # e.g. WhatsApp JID
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    conv_status = Column(String(20), nullable=True)  # open, pending, resolved
    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, organization_id={self.organization_id}, external_id={self.external_id}, conv_status={self.conv_status})>"
