"""Website widget sessions."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.channel import Channel
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository

logger = logging.getLogger(__name__)

DEFAULT_WIDGET_CONFIG: dict[str, Any] = {
    "primaryColor": "#6366f1",
    "welcomeText": "Hi! How can we help you today?",
    "agentName": "Support",
    "agentAvatarUrl": None,
    "position": "right",
}


class WidgetService:
    """Resolves widget API keys and visitor contacts."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.channel_repo = ChannelRepository(session)
        self.contact_repo = ContactRepository(session)

    async def get_channel(self, api_key: str | None) -> Channel | None:
        """Get the widget channel for an API key."""
        if not api_key:
            return None
        return await self.channel_repo.get_widget_by_api_key(api_key)

    async def get_owned_contact(self, channel: Channel, contact_id: str | None) -> Contact | None:
        """Get a contact only if it belongs to the widget channel.

        Checked on every widget call, not just at session creation.
        """
        if not contact_id:
            return None
        contact = await self.contact_repo.get_by_id(channel.organization_id, contact_id)
        if contact is None or contact.channel_id != channel.id:
            return None
        return contact

    async def start_session(
        self, channel: Channel, name: str, email: str, phone: str | None = None
    ) -> tuple[Contact, bool]:
        """Resume the visitor's contact by email, or create it.

        Args:
            channel: Widget channel
            name: Visitor name
            email: Visitor email (the session key)
            phone: Optional phone

        Returns:
            Tuple of (contact, created)
        """
        contact, created = await self.contact_repo.upsert(
            channel.organization_id,
            email=email.strip().lower(),
            channel_id=channel.id,
            name=name.strip() or None,
            phone=(phone or "").strip() or None,
        )
        logger.info(
            f"Widget session {'created' if created else 'resumed'} for contact {contact.id}",
            extra={"contact_id": contact.id, "channel_id": channel.id},
        )
        return contact, created

    @staticmethod
    def display_config(channel: Channel) -> dict[str, Any]:
        """Widget display settings with defaults for anything unset."""
        config = channel.config or {}
        return {key: config.get(key, default) for key, default in DEFAULT_WIDGET_CONFIG.items()}
