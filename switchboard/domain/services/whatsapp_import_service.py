"""Backfills from a WhatsApp instance: labels, chat labels and message history."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_decoder import is_stable_jid, parse_whatsapp_upsert
from switchboard.domain.services.whatsapp_event_service import label_color
from switchboard.domain.services.whatsapp_outbound_service import (
    ChannelNotConnectedError,
    GatewayError,
    GatewayTarget,
    gateway_target,
)
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.models.channel import Channel, ChannelStatus
from switchboard.persistence.models.tag import DEFAULT_TAG_COLOR
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.tag_repository import TagRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 200


@dataclass
class LabelImportResult:
    created: int = 0
    skipped: int = 0
    total: int = 0


@dataclass
class HistoryImportResult:
    chats: int = 0
    imported_messages: int = 0
    imported_contacts: int = 0


def chat_jid(chat: dict) -> str:
    """JID of a findChats entry (``remoteJid``, or ``id.remote`` on older gateways)."""
    jid = chat.get("remoteJid")
    if not jid and isinstance(chat.get("id"), dict):
        jid = chat["id"].get("remote")
    return jid or ""


class WhatsAppImportService:
    """Pulls state that predates the webhook subscription from the gateway.

    Every operation needs a connected channel and fails as a whole when the
    gateway cannot list labels or chats. Per-chat failures while importing
    history are logged and skipped.
    """

    def __init__(self, session: AsyncSession, pipeline: MessageIngestionPipeline, client: EvolutionClient):
        self.session = session
        self.pipeline = pipeline
        self.client = client
        self.contact_repo = ContactRepository(session)
        self.tag_repo = TagRepository(session)

    @staticmethod
    def _target(channel: Channel) -> GatewayTarget:
        if channel.status != ChannelStatus.CONNECTED:
            raise ChannelNotConnectedError(f"Channel {channel.id} is {channel.status}")
        target = gateway_target(channel)
        if target is None:
            raise GatewayError(f"Channel {channel.id} has no gateway URL or instance name")
        return target

    async def import_labels(self, channel: Channel) -> LabelImportResult:
        """Create a tag for every WhatsApp label not yet mirrored.

        Existing tags matched by name get the label id recorded if they lack one.

        Raises:
            ChannelNotConnectedError: If the channel is not connected
            GatewayError: If the labels cannot be listed
        """
        organization_id = channel.organization_id
        target = self._target(channel)
        labels = await self.client.find_labels(target.base_url, target.api_key, target.instance)
        if labels is None:
            raise GatewayError(f"Could not list labels of {target.instance}")

        result = LabelImportResult(total=len(labels))
        for label in labels:
            name = (label.get("name") or "").strip()
            wa_label_id = str(label.get("id") or "").strip() or None
            if not name:
                result.skipped += 1
                continue

            tag = await self.tag_repo.find_for_label(organization_id, wa_label_id, name)
            if tag is not None:
                if wa_label_id and not tag.wa_label_id:
                    await self.tag_repo.update(organization_id, tag.id, wa_label_id=wa_label_id)
                result.skipped += 1
                continue

            await self.tag_repo.create(
                organization_id,
                name=name,
                color=label_color(label) or DEFAULT_TAG_COLOR,
                wa_label_id=wa_label_id,
            )
            result.created += 1

        logger.info(
            f"[WA_IMPORT] Labels of {target.instance}: {result.created} created, {result.skipped} skipped",
            extra={"channel_id": channel.id},
        )
        return result

    async def sync_label_contacts(self, channel: Channel) -> int:
        """Link known contacts to the tags matching their chats' labels.

        Labels without a matching tag are ignored; run ``import_labels`` first.

        Returns:
            Number of newly created contact-tag links

        Raises:
            ChannelNotConnectedError: If the channel is not connected
            GatewayError: If the chats cannot be listed
        """
        organization_id = channel.organization_id
        target = self._target(channel)
        chats = await self.client.find_chats(target.base_url, target.api_key, target.instance)
        if chats is None:
            raise GatewayError(f"Could not list chats of {target.instance}")

        linked = 0
        for chat in chats:
            jid = chat_jid(chat)
            labels = [label for label in chat.get("labels") or [] if isinstance(label, dict)]
            if not labels or not is_stable_jid(jid, settings.whatsapp_stable_jid_suffixes):
                continue

            contact = await self.contact_repo.find_by_external_id(organization_id, jid)
            if contact is None:
                continue

            for label in labels:
                name = (label.get("name") or "").strip()
                if not name:
                    continue
                wa_label_id = str(label.get("id") or "").strip() or None
                tag = await self.tag_repo.find_for_label(organization_id, wa_label_id, name)
                if tag is not None and await self.tag_repo.link_contact(contact.id, tag.id):
                    linked += 1

        logger.info(f"[WA_IMPORT] {linked} label links synced from {target.instance}")
        return linked

    async def sync_history(self, channel: Channel, limit: int = DEFAULT_HISTORY_LIMIT) -> HistoryImportResult:
        """Import stored messages of every individual chat.

        Messages go through the ingestion pipeline as history, so gateway
        message ids deduplicate against webhook deliveries and earlier
        imports, and nothing is published or reassigned.

        Args:
            channel: Connected WhatsApp channel
            limit: Maximum messages fetched per chat

        Raises:
            ChannelNotConnectedError: If the channel is not connected
            GatewayError: If the chats cannot be listed
        """
        organization_id = channel.organization_id
        target = self._target(channel)
        chats = await self.client.find_chats(target.base_url, target.api_key, target.instance)
        if chats is None:
            raise GatewayError(f"Could not list chats of {target.instance}")

        result = HistoryImportResult()
        for chat in chats:
            jid = chat_jid(chat)
            if not is_stable_jid(jid, settings.whatsapp_stable_jid_suffixes):
                continue

            messages = await self.client.find_messages(
                target.base_url, target.api_key, target.instance, jid, limit
            )
            if not messages:
                continue
            result.chats += 1

            for raw in messages:
                normalized = parse_whatsapp_upsert(raw, settings.whatsapp_stable_jid_suffixes)
                if normalized is None or not normalized.external_message_id:
                    continue
                ingested = await self.pipeline.ingest_normalized(
                    organization_id, channel, normalized, historical=True
                )
                if ingested.dropped or ingested.duplicate:
                    continue
                result.imported_messages += 1
                if ingested.is_new_contact:
                    result.imported_contacts += 1

        logger.info(
            f"[WA_IMPORT] History of {target.instance}: {result.imported_messages} messages, "
            f"{result.imported_contacts} new contacts from {result.chats} chats",
            extra={"channel_id": channel.id},
        )
        return result
