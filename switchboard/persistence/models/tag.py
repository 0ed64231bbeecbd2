"""Tag models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id

DEFAULT_TAG_COLOR = "#6366f1"


class Tag(Base):
    """Organization-scoped label, optionally mirrored to a WhatsApp label."""

    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    color = Column(String(16), nullable=False, default=DEFAULT_TAG_COLOR)
    wa_label_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name={self.name}, wa_label_id={self.wa_label_id})>"


class ContactTag(Base):
    """Association between a contact and a tag."""

    __tablename__ = "contact_tags"
    __table_args__ = (UniqueConstraint("contact_id", "tag_id", name="uq_contact_tags_contact_tag"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

