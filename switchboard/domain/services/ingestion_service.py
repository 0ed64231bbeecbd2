"""Single normalization point for every inbound or agent-sent message."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.domain.models.events import (
    ContactSummary,
    MessagePayload,
    NewMessageEvent,
    WidgetMessageEvent,
)
from switchboard.domain.models.inbound import NormalizedMessage
from switchboard.domain.services.assignment_service import AssignmentService
from switchboard.domain.services.conversation_state import (
    ContactNotFoundError,
    ConversationStateMachine,
)
from switchboard.domain.services.lead_service import LeadService, verify_lead_signature
from switchboard.domain.services.whatsapp_decoder import parse_whatsapp_upsert
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.event_bus import EventBus
from switchboard.infrastructure.facebook_client import FacebookGraphClient
from switchboard.persistence.models.channel import Channel, ChannelKind
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.message import Message, MessageDirection, MessageType
from switchboard.persistence.models.organization import Organization
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.message_repository import MessageRepository
from switchboard.persistence.repositories.organization_repository import OrganizationRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of one ingestion call."""

    message: Message | None
    contact: Contact | None
    is_new_contact: bool = False
    duplicate: bool = False

    @property
    def dropped(self) -> bool:
        """True when the payload carried nothing worth storing."""
        return self.message is None


def parse_widget_payload(raw_payload: dict[str, Any]) -> NormalizedMessage:
    """Widget payloads arrive already normalized; only defaults are filled in."""
    return NormalizedMessage(
        direction=raw_payload.get("direction") or MessageDirection.INBOUND,
        content_type=raw_payload.get("type") or MessageType.TEXT,
        content=(raw_payload.get("content") or "").strip(),
        external_message_id=raw_payload.get("externalId") or None,
        contact_id=raw_payload.get("contactId"),
        sender_display_name=raw_payload.get("name") or None,
    )


class MessageIngestionPipeline:
    """Normalizes payloads from every channel kind into Message and Contact rows.

    Publishing happens inline on the request task. Only auto-assignment and
    lead processing are handed to the background runner.
    """

    def __init__(
        self,
        session: AsyncSession,
        event_bus: EventBus,
        task_runner: BackgroundTaskRunner | None = None,
        session_factory: async_sessionmaker | None = None,
        graph_client: FacebookGraphClient | None = None,
    ):
        self.session = session
        self.event_bus = event_bus
        self.task_runner = task_runner
        self.session_factory = session_factory
        self.graph_client = graph_client
        self.contact_repo = ContactRepository(session)
        self.message_repo = MessageRepository(session)
        self.org_repo = OrganizationRepository(session)
        self.state_machine = ConversationStateMachine(session, event_bus)

    def parse(self, channel: Channel, raw_payload: dict[str, Any]) -> NormalizedMessage | None:
        """Parse a channel-specific payload.

        Returns:
            Normalized message, or None if the payload must be dropped
        """
        if channel.kind == ChannelKind.WIDGET:
            return parse_widget_payload(raw_payload)
        if channel.kind == ChannelKind.WHATSAPP:
            return parse_whatsapp_upsert(raw_payload, settings.whatsapp_stable_jid_suffixes)
        raise ValueError(f"Channel kind {channel.kind!r} does not carry messages; use ingest_lead")

    async def ingest(self, channel: Channel, raw_payload: dict[str, Any]) -> IngestResult:
        """Ingest one raw message payload arriving on a channel.

        Args:
            channel: Channel the payload arrived on
            raw_payload: Channel-specific payload

        Returns:
            IngestResult with the stored (or pre-existing) message and contact
        """
        normalized = self.parse(channel, raw_payload)
        if normalized is None:
            return IngestResult(message=None, contact=None)
        return await self.ingest_normalized(channel.organization_id, channel, normalized)

    async def ingest_normalized(
        self,
        organization_id: str,
        channel: Channel | None,
        normalized: NormalizedMessage,
        historical: bool = False,
    ) -> IngestResult:
        """Store and broadcast an already-normalized message.

        Args:
            organization_id: Owning organization
            channel: Channel the message travels on (None for internal notes)
            normalized: Parsed message
            historical: Imported backlog; stored and deduplicated only, with no
                renames, status change, events or auto-assignment

        Returns:
            IngestResult

        Raises:
            ContactNotFoundError: If ``normalized.contact_id`` is not in the organization
        """
        if not normalized.content and normalized.content_type not in MessageType.MEDIA:
            logger.debug("Dropping message with empty content")
            return IngestResult(message=None, contact=None)

        if normalized.external_message_id:
            existing = await self.message_repo.find_by_external_id(
                organization_id, normalized.external_message_id
            )
            if existing is not None:
                return await self._duplicate(organization_id, existing)

        contact, is_new_contact = await self._resolve_contact(organization_id, channel, normalized, historical)

        try:
            message = await self.message_repo.create(
                organization_id,
                contact_id=contact.id,
                channel_id=channel.id if channel else None,
                direction=normalized.direction,
                type=normalized.content_type,
                content=normalized.content,
                status=normalized.status,
                external_id=normalized.external_message_id,
                sender_id=normalized.sender_id,
                created_at=normalized.created_at or datetime.utcnow(),
            )
        except IntegrityError:
            # A concurrent delivery of the same message won the insert
            await self._rollback_after_conflict(channel)
            existing = None
            if normalized.external_message_id:
                existing = await self.message_repo.find_by_external_id(
                    organization_id, normalized.external_message_id
                )
            if existing is None:
                raise
            return await self._duplicate(organization_id, existing)

        if historical:
            return IngestResult(message=message, contact=contact, is_new_contact=is_new_contact)

        if normalized.direction == MessageDirection.INBOUND:
            # A brand-new contact is announced by the new_message summary instead
            await self.state_machine.on_inbound_message(contact, announce=not is_new_contact)

        self._publish(contact, message, channel, is_new_contact)

        if is_new_contact:
            await self._schedule_auto_assignment(organization_id, contact.id)

        return IngestResult(message=message, contact=contact, is_new_contact=is_new_contact)

    async def ingest_lead(
        self,
        organization: Organization,
        raw_body: bytes,
        signature_header: str | None,
    ) -> bool:
        """Verify a lead webhook batch and schedule its processing.

        Verification happens before anything else so a forged batch has no
        side effects. Processing runs in the background so the sender gets
        its acknowledgment immediately.

        Args:
            organization: Organization the webhook URL belongs to
            raw_body: Raw request body (the signed bytes)
            signature_header: ``X-Hub-Signature-256`` header value

        Returns:
            True if a batch was scheduled for processing

        Raises:
            InvalidSignatureError: If verification fails
        """
        verify_lead_signature(organization, raw_body, signature_header)

        try:
            payload = json.loads(raw_body)
        except ValueError:
            logger.warning("[FB_LEAD] Verified body is not valid JSON")
            return False

        if not isinstance(payload, dict) or payload.get("object") != "page":
            return False

        if self.task_runner is None or self.session_factory is None or self.graph_client is None:
            raise RuntimeError("Lead ingestion needs a task runner, session factory and graph client")

        self.task_runner.dispatch("lead-batch", self._process_leads, organization.id, payload)
        return True

    async def _process_leads(self, organization_id: str, payload: dict[str, Any]) -> None:
        async with self.session_factory() as session:
            await LeadService(session, self.graph_client).process_batch(organization_id, payload)

    async def _duplicate(self, organization_id: str, existing: Message) -> IngestResult:
        logger.warning(
            f"[DUPLICATE_WEBHOOK] Message already ingested: {existing.external_id}",
            extra={"external_id": existing.external_id, "message_id": existing.id},
        )
        contact = await self.contact_repo.get_by_id(organization_id, existing.contact_id)
        return IngestResult(message=existing, contact=contact, duplicate=True)

    async def _resolve_contact(
        self,
        organization_id: str,
        channel: Channel | None,
        normalized: NormalizedMessage,
        historical: bool = False,
    ) -> tuple[Contact, bool]:
        is_inbound = normalized.direction == MessageDirection.INBOUND
        # Old messages never overwrite the current name
        renames = is_inbound and not historical

        if normalized.contact_id:
            contact = await self.contact_repo.get_by_id(organization_id, normalized.contact_id)
            if contact is None:
                raise ContactNotFoundError(f"Contact {normalized.contact_id} not found")
            await self._refresh_name(contact, normalized, renames)
            return contact, False

        if not normalized.external_contact_id:
            raise ValueError("Normalized message identifies no contact")

        contact = await self.contact_repo.find_by_external_id(organization_id, normalized.external_contact_id)
        if contact is not None:
            await self._refresh_name(contact, normalized, renames)
            return contact, False

        number = (normalized.phone or "").lstrip("+")
        try:
            contact = await self.contact_repo.create(
                organization_id,
                channel_id=channel.id if channel else None,
                external_id=normalized.external_contact_id,
                name=(normalized.sender_display_name if is_inbound else None) or number or "Unknown",
                phone=normalized.phone,
            )
        except IntegrityError:
            # Another delivery created the contact first
            await self._rollback_after_conflict(channel)
            contact = await self.contact_repo.find_by_external_id(
                organization_id, normalized.external_contact_id
            )
            if contact is None:
                raise
            return contact, False

        logger.info(
            f"New contact from {channel.kind if channel else 'manual'}: {contact.id}",
            extra={"contact_id": contact.id, "external_id": contact.external_id},
        )
        return contact, True

    async def _rollback_after_conflict(self, channel: Channel | None) -> None:
        """Roll back a lost insert race and reload the channel the rollback expired."""
        await self.session.rollback()
        if channel is not None:
            await self.session.refresh(channel)

    async def _refresh_name(self, contact: Contact, normalized: NormalizedMessage, allowed: bool) -> None:
        # Outbound echoes carry the agent's identity, never the contact's
        name = normalized.sender_display_name
        if not allowed or not name or name == contact.name:
            return
        contact.name = name
        await self.session.commit()
        await self.session.refresh(contact)

    def _publish(
        self,
        contact: Contact,
        message: Message,
        channel: Channel | None,
        is_new_contact: bool,
    ) -> None:
        payload = MessagePayload.from_message(message)
        event = NewMessageEvent(
            contact_id=contact.id,
            channel_id=message.channel_id,
            external_id=contact.external_id,
            contact_name=contact.name,
            contact_avatar_url=contact.avatar_url,
            assigned_to_id=contact.assigned_to_id,
            message=payload,
            contact=ContactSummary.from_contact(contact) if is_new_contact else None,
        )
        self.event_bus.publish_to_organization(contact.organization_id, event.to_event())

        # The visitor renders its own messages optimistically; only replies go back
        if (
            channel is not None
            and channel.kind == ChannelKind.WIDGET
            and message.direction == MessageDirection.OUTBOUND
            and message.type != MessageType.NOTE
        ):
            widget_event = WidgetMessageEvent(contact_id=contact.id, message=payload)
            self.event_bus.publish_to_contact(contact.id, widget_event.to_event())

    async def _schedule_auto_assignment(self, organization_id: str, contact_id: str) -> None:
        if self.task_runner is None or self.session_factory is None:
            return
        organization = await self.org_repo.get_by_id(None, organization_id)
        if organization is None or not organization.auto_assignment_enabled:
            return
        self.task_runner.dispatch(f"auto-assign:{contact_id}", self._auto_assign, organization_id, contact_id)

    async def _auto_assign(self, organization_id: str, contact_id: str) -> None:
        async with self.session_factory() as session:
            await AssignmentService(session, self.event_bus).auto_assign(organization_id, contact_id)
