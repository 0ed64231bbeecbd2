"""Routes Evolution API webhook events to ingestion and state sync."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.domain.models.events import MessageStatusEvent
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_decoder import is_stable_jid
from switchboard.persistence.models.channel import Channel, ChannelStatus
from switchboard.persistence.models.tag import DEFAULT_TAG_COLOR
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.message_repository import MessageRepository
from switchboard.persistence.repositories.tag_repository import TagRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

# WhatsApp Business label palette (color index -> hex)
WA_COLORS: dict[int, str] = {
    0: "#00A884", 1: "#25D366", 2: "#128C7E", 3: "#075E54",
    4: "#B2DFDB", 5: "#FF6B6B", 6: "#FF8A65", 7: "#FF7043",
    8: "#FFD54F", 9: "#FFB300", 10: "#9B59B6", 11: "#3498DB",
    12: "#2ECC71", 13: "#E67E22", 14: "#E74C3C", 15: "#1ABC9C",
    16: "#F39C12", 17: "#D35400", 18: "#C0392B", 19: "#2980B9",
    20: "#8E44AD",
}

CONNECTION_STATES = {
    "open": ChannelStatus.CONNECTED,
    "connecting": ChannelStatus.CONNECTING,
    "close": ChannelStatus.DISCONNECTED,
}

# Receipt names and their numeric protobuf equivalents
DELIVERY_STATUSES = {
    "ERROR": "failed",
    "PENDING": "pending",
    "SERVER_ACK": "sent",
    "DELIVERY_ACK": "delivered",
    "READ": "read",
    "PLAYED": "read",
    0: "failed",
    1: "pending",
    2: "sent",
    3: "delivered",
    4: "read",
    5: "read",
}


def normalize_event_name(event: str | None) -> str:
    """``messages.upsert`` and ``MESSAGES_UPSERT`` both become ``MESSAGES_UPSERT``."""
    return (event or "").upper().replace(".", "_")


def label_color(label: dict[str, Any]) -> str | None:
    """Hex color of a gateway label, if it carries one."""
    if label.get("colorHex"):
        return label["colorHex"]
    color = label.get("color")
    if isinstance(color, int):
        return WA_COLORS.get(color)
    return None


def _as_list(data: Any) -> list[dict]:
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        return [data]
    return []


class WhatsAppEventService:
    """Handles one gateway webhook delivery.

    Every event kind gets its own handler; unknown kinds are acknowledged and
    ignored.
    """

    def __init__(self, session: AsyncSession, pipeline: MessageIngestionPipeline):
        self.session = session
        self.pipeline = pipeline
        self.channel_repo = ChannelRepository(session)
        self.contact_repo = ContactRepository(session)
        self.message_repo = MessageRepository(session)
        self.tag_repo = TagRepository(session)
        self._handlers = {
            "CONNECTION_UPDATE": self.handle_connection_update,
            "MESSAGES_UPSERT": self.handle_messages_upsert,
            "SEND_MESSAGE": self.handle_messages_upsert,
            "MESSAGES_UPDATE": self.handle_messages_update,
            "CONTACTS_UPSERT": self.handle_contacts_sync,
            "CONTACTS_UPDATE": self.handle_contacts_sync,
            "LABELS_EDIT": self.handle_labels_edit,
            "LABELS_ASSOCIATION": self.handle_labels_association,
        }

    async def handle(self, body: dict[str, Any]) -> str | None:
        """Dispatch a webhook body to its event handler.

        Args:
            body: Webhook JSON ({event, instance, data})

        Returns:
            Normalized event name if a handler ran, else None
        """
        event = normalize_event_name(body.get("event"))
        instance = body.get("instance")
        logger.info(f"[WA_WEBHOOK] {instance or '?'} -> {event}")

        if not instance:
            return None

        channel = await self.channel_repo.get_whatsapp_by_instance(instance)
        if channel is None:
            logger.warning(f"[WA_WEBHOOK] Unknown instance {instance!r}")
            return None

        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"[WA_WEBHOOK] No handler for {event}")
            return None

        await handler(channel, body.get("data"))
        return event

    async def handle_connection_update(self, channel: Channel, data: Any) -> None:
        """Map the gateway connection state onto the channel status."""
        if not isinstance(data, dict):
            return
        status = CONNECTION_STATES.get(data.get("state") or "")
        if status is None:
            return
        await self.channel_repo.update_connection(channel, status, phone=data.get("number"))
        logger.info(f"[WA_WEBHOOK] Channel {channel.id} is now {status}")

    async def handle_messages_upsert(self, channel: Channel, data: Any) -> None:
        """Ingest each upserted message."""
        for item in _as_list(data):
            result = await self.pipeline.ingest(channel, item)
            if result.dropped:
                continue
            logger.info(
                f"[WA_WEBHOOK] {result.message.direction} message {result.message.id} "
                f"(duplicate={result.duplicate}, new_contact={result.is_new_contact})"
            )

    async def handle_messages_update(self, channel: Channel, data: Any) -> None:
        """Apply delivery receipts to stored messages."""
        for item in _as_list(data):
            key = item.get("key") or {}
            external_id = item.get("keyId") or key.get("id")
            raw_status = item.get("status")
            if raw_status is None:
                raw_status = (item.get("update") or {}).get("status")
            if not external_id or not isinstance(raw_status, (str, int)):
                continue

            status = DELIVERY_STATUSES.get(raw_status)
            if status is None:
                status = str(raw_status).lower()

            message = await self.message_repo.update_status_by_external_id(
                channel.organization_id, external_id, status
            )
            if message is None:
                continue
            event = MessageStatusEvent(contact_id=message.contact_id, message_id=message.id, status=message.status)
            self.pipeline.event_bus.publish_to_organization(channel.organization_id, event.to_event())

    async def handle_contacts_sync(self, channel: Channel, data: Any) -> None:
        """Rename known contacts from the phone's address book."""
        for item in _as_list(data):
            jid = item.get("id") or item.get("remoteJid") or ""
            if not is_stable_jid(jid, settings.whatsapp_stable_jid_suffixes):
                continue
            name = (item.get("name") or item.get("pushName") or "").strip()
            if not name:
                continue
            await self.contact_repo.rename_by_external_id(channel.organization_id, jid, name)

    async def handle_labels_edit(self, channel: Channel, data: Any) -> None:
        """Rename, recolor or delete the tag mirroring an edited label."""
        if not isinstance(data, dict):
            return
        wa_label_id = str(data.get("id") or "").strip()
        if not wa_label_id:
            return
        name = (data.get("name") or "").strip()

        tag = await self.tag_repo.find_for_label(channel.organization_id, wa_label_id, name or None)
        if tag is None:
            return

        if data.get("deleted"):
            await self.tag_repo.delete_with_links(tag)
            logger.info(f"[WA_WEBHOOK] Tag {tag.id} deleted with its WhatsApp label")
            return

        updates: dict[str, Any] = {"wa_label_id": wa_label_id}
        if name and name != tag.name:
            updates["name"] = name
        color = label_color(data)
        if color:
            updates["color"] = color
        await self.tag_repo.update(channel.organization_id, tag.id, **updates)

    async def handle_labels_association(self, channel: Channel, data: Any) -> None:
        """Mirror a label being added to or removed from a chat."""
        if not isinstance(data, dict):
            return
        jid = data.get("id") or data.get("chatId") or ""
        label = data.get("label") or {}
        label_name = (label.get("name") or "").strip()
        wa_label_id = str(label.get("id") or "").strip() or None
        action = data.get("type")

        if not label_name or not is_stable_jid(jid, settings.whatsapp_stable_jid_suffixes):
            return

        contact = await self.contact_repo.find_by_external_id(channel.organization_id, jid)
        if contact is None:
            logger.warning(f"[WA_WEBHOOK] Label association for unknown contact {jid}")
            return

        tag = await self.tag_repo.find_for_label(channel.organization_id, wa_label_id, label_name)
        if action == "add":
            if tag is None:
                tag = await self.tag_repo.create(
                    channel.organization_id,
                    name=label_name,
                    color=label_color(label) or DEFAULT_TAG_COLOR,
                    wa_label_id=wa_label_id,
                )
            elif wa_label_id and not tag.wa_label_id:
                await self.tag_repo.update(channel.organization_id, tag.id, wa_label_id=wa_label_id)
            await self.tag_repo.link_contact(contact.id, tag.id)
        elif action == "remove":
            if tag is None:
                logger.warning(f"[WA_WEBHOOK] No tag {label_name!r} to remove from {contact.id}")
                return
            await self.tag_repo.unlink_contact(contact.id, tag.id)
