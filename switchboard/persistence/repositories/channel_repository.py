"""Channel repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.channel import Channel, ChannelKind
from switchboard.persistence.repositories.base import BaseRepository


class ChannelRepository(BaseRepository[Channel]):
    """Repository for Channel entities."""

    def __init__(self, session: AsyncSession):
        """Initialize channel repository."""
        super().__init__(Channel, session)

    async def get_widget_by_api_key(self, api_key: str) -> Channel | None:
        """Get the widget channel owning an API key."""
        stmt = select(Channel).where(
            Channel.api_key == api_key,
            Channel.kind == ChannelKind.WIDGET,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_whatsapp_by_instance(self, instance_name: str) -> Channel | None:
        """Get the WhatsApp channel bound to a gateway instance name."""
        stmt = select(Channel).where(
            Channel.external_instance_id == instance_name,
            Channel.kind == ChannelKind.WHATSAPP,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_connection(
        self, channel: Channel, status: str, phone: str | None = None
    ) -> Channel:
        """Record a connection-state change reported by the gateway.

        Args:
            channel: Channel to update
            status: New channel status
            phone: Phone number reported by the gateway, if any

        Returns:
            Updated channel
        """
        channel.status = status
        if phone:
            # Reassign so the JSON column is flagged dirty
            channel.config = {**(channel.config or {}), "phone": phone}
        await self.session.commit()
        await self.session.refresh(channel)
        return channel
