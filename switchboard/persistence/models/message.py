"""Message model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id


class MessageDirection:
    """Message directions."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageType:
    """Message content types."""

    TEXT = "text"
    NOTE = "note"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"

    MEDIA = frozenset((IMAGE, AUDIO, VIDEO, DOCUMENT, STICKER))


class Message(Base):
    """One unit of conversation content.

    Immutable after creation except for ``status``, which delivery receipts update.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_messages_org_external"),
        Index("ix_messages_contact_created", "contact_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="SET NULL"), nullable=True)
    direction = Column(String(10), nullable=False)  # inbound, outbound
    type = Column(String(20), nullable=False, default=MessageType.TEXT)
    content = Column(Text, nullable=False, default="")
    status = Column(String(32), nullable=False, default="sent")
    external_id = Column(String(255), nullable=True)  # gateway message id
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, contact_id={self.contact_id}, direction={self.direction}, type={self.type})>"
