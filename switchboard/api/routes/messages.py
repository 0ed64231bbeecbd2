"""Conversation history and agent sends."""

import logging
from datetime import datetime, timezone
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import (
    MemberContext,
    get_evolution_client,
    get_ingestion_pipeline,
    require_membership,
)
from switchboard.domain.models.events import CamelModel, MessagePayload
from switchboard.domain.models.inbound import NormalizedMessage
from switchboard.domain.services.conversation_state import ContactNotFoundError
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_outbound_service import (
    ChannelNotConnectedError,
    GatewayError,
    WhatsAppSender,
)
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.database import get_db
from switchboard.persistence.models.channel import ChannelKind
from switchboard.persistence.models.message import MessageDirection, MessageType
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.message_repository import MessageRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


class MessagePageResponse(CamelModel):
    """One page of history in ascending order."""

    messages: list[MessagePayload]
    has_more: bool


class SendMessageRequest(CamelModel):
    """Agent reply or internal note."""

    contact_id: str
    content: str
    type: Literal["text", "note"] = "text"


@router.get("", response_model=MessagePageResponse)
async def list_messages(
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    contact_id: Annotated[str, Query(alias="contactId")],
    limit: Annotated[int | None, Query(ge=1, le=200)] = None,
    before: datetime | None = None,
) -> MessagePageResponse:
    """Page backwards through a contact's history.

    Args:
        context: Caller membership
        db: Database session
        contact_id: Contact whose history to read
        limit: Page size (defaults to the configured page size)
        before: Cursor; the ``createdAt`` of the oldest message already shown

    Returns:
        Messages in ascending order and whether older ones exist
    """
    contact = await ContactRepository(db).get_by_id(context.organization_id, contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )

    if before is not None and before.tzinfo is not None:
        # Stored timestamps are naive UTC
        before = before.astimezone(timezone.utc).replace(tzinfo=None)

    messages, has_more = await MessageRepository(db).list_page(
        context.organization_id,
        contact.id,
        limit=limit or settings.message_page_size,
        before=before,
    )
    return MessagePageResponse(
        messages=[MessagePayload.from_message(message) for message in messages],
        has_more=has_more,
    )


@router.post("", response_model=MessagePayload, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: SendMessageRequest,
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    pipeline: Annotated[MessageIngestionPipeline, Depends(get_ingestion_pipeline)],
    evolution_client: Annotated[EvolutionClient, Depends(get_evolution_client)],
) -> MessagePayload:
    """Record an agent reply or an internal note.

    Notes never travel on a channel. Replies are stored on the contact's
    channel and reach a widget visitor through the contact stream. WhatsApp
    replies are sent through the gateway first and stored under the
    gateway's message id, so its echo of the send is recognized.
    """
    content = message_data.content.strip()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message content is required",
        )

    contact = await ContactRepository(db).get_by_id(context.organization_id, message_data.contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )

    channel = None
    if message_data.type != MessageType.NOTE and contact.channel_id:
        channel = await ChannelRepository(db).get_by_id(context.organization_id, contact.channel_id)

    external_message_id = None
    if channel is not None and channel.kind == ChannelKind.WHATSAPP:
        try:
            external_message_id = await WhatsAppSender(evolution_client).send_text(channel, contact, content)
        except ChannelNotConnectedError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="WhatsApp channel is not connected",
            )
        except GatewayError as e:
            logger.error(f"[WA_SEND] Reply to contact {contact.id} not delivered: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="WhatsApp gateway did not accept the message",
            )

    normalized = NormalizedMessage(
        direction=MessageDirection.OUTBOUND,
        content_type=message_data.type,
        content=content,
        external_message_id=external_message_id,
        contact_id=contact.id,
        sender_id=context.user.id,
    )
    try:
        result = await pipeline.ingest_normalized(context.organization_id, channel, normalized)
    except ContactNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )

    logger.info(
        f"Agent {context.user.id} sent {message_data.type} to contact {contact.id}",
        extra={"contact_id": contact.id, "message_id": result.message.id},
    )
    return MessagePayload.from_message(result.message)
