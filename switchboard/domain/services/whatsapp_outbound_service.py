"""Agent replies delivered through the WhatsApp gateway."""

import logging
from dataclasses import dataclass

from switchboard.domain.services.whatsapp_decoder import jid_to_number
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.models.channel import Channel, ChannelStatus
from switchboard.persistence.models.contact import Contact
from switchboard.settings import settings

logger = logging.getLogger(__name__)


class ChannelNotConnectedError(Exception):
    """Raised when a gateway call is attempted on a channel that is not connected."""


class GatewayError(Exception):
    """Raised when the gateway cannot be reached or refuses a request."""


@dataclass(frozen=True)
class GatewayTarget:
    """Where one channel's gateway instance lives."""

    base_url: str
    api_key: str | None
    instance: str


def gateway_target(channel: Channel) -> GatewayTarget | None:
    """Resolve the gateway URL, key and instance for a WhatsApp channel.

    Channel config wins over the deployment defaults.
    """
    config = channel.config or {}
    base_url = config.get("evolutionUrl") or settings.evolution_api_url
    api_key = config.get("evolutionApiKey") or settings.evolution_api_key
    if not base_url or not channel.external_instance_id:
        return None
    return GatewayTarget(base_url=base_url, api_key=api_key, instance=channel.external_instance_id)


class WhatsAppSender:
    """Sends agent text replies to a contact's WhatsApp chat."""

    def __init__(self, client: EvolutionClient):
        self.client = client

    async def send_text(self, channel: Channel, contact: Contact, text: str) -> str | None:
        """Deliver a text message.

        Args:
            channel: The contact's WhatsApp channel
            contact: Recipient
            text: Message body

        Returns:
            Gateway message id, used to recognize the gateway's echo of this send

        Raises:
            ChannelNotConnectedError: If the channel is not connected
            GatewayError: If the send cannot be addressed or the gateway fails
        """
        if channel.status != ChannelStatus.CONNECTED:
            raise ChannelNotConnectedError(f"Channel {channel.id} is {channel.status}")

        target = gateway_target(channel)
        if target is None:
            raise GatewayError(f"Channel {channel.id} has no gateway URL or instance name")

        if contact.external_id:
            number = jid_to_number(contact.external_id)
        else:
            number = (contact.phone or "").lstrip("+")
        if not number:
            raise GatewayError(f"Contact {contact.id} has no WhatsApp number")

        data = await self.client.send_text(target.base_url, target.api_key, target.instance, number, text)
        if data is None:
            raise GatewayError(f"Gateway refused message to contact {contact.id}")

        message_id = (data.get("key") or {}).get("id")
        logger.info(
            f"[WA_SEND] Message to {number} accepted by {target.instance}",
            extra={"contact_id": contact.id, "external_id": message_id},
        )
        return message_id
