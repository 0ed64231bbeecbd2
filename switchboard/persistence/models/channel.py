"""Channel model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from switchboard.persistence.database import Base
from switchboard.persistence.models.organization import generate_id


class ChannelKind:
    """Channel kinds."""

    WIDGET = "widget"
    WHATSAPP = "whatsapp"
    FACEBOOK_LEAD = "facebook-lead"


class ChannelStatus:
    """Channel connection states."""

    PENDING = "pending"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Channel(Base):
    """A configured ingress surface belonging to an organization.

    Ingestion only reads the promoted columns (instance name, webhook secret,
    widget api key); everything else lives in the opaque ``config`` blob.
    """

    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    kind = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=ChannelStatus.PENDING)
    external_instance_id = Column(String(255), nullable=True, unique=True, index=True)
    webhook_secret = Column(String(255), nullable=True)
    api_key = Column(String(255), nullable=True, unique=True, index=True)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, organization_id={self.organization_id}, kind={self.kind}, status={self.status})>"
