"""Public website widget endpoints, authenticated by channel API key."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import (
    get_event_bus,
    get_ingestion_pipeline,
    get_widget_channel,
    get_widget_contact,
)
from switchboard.api.streaming import open_stream
from switchboard.domain.models.events import CamelModel, MessagePayload
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.widget_service import WidgetService
from switchboard.infrastructure.event_bus import EventBus, TopicKind
from switchboard.persistence.database import get_db
from switchboard.persistence.models.channel import Channel
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.message import MessageDirection, MessageType
from switchboard.persistence.repositories.message_repository import MessageRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionRequest(CamelModel):
    """Visitor identification."""

    name: str
    email: str
    phone: str | None = None


class SessionResponse(CamelModel):
    """Widget session handle."""

    contact_id: str
    name: str | None = None
    is_new: bool


class VisitorMessageRequest(CamelModel):
    """Visitor message."""

    content: str


@router.get("/config")
async def get_widget_config(
    channel: Annotated[Channel, Depends(get_widget_channel)],
) -> dict[str, Any]:
    """Display settings for the widget embed."""
    return WidgetService.display_config(channel)


@router.post("/session", response_model=SessionResponse)
async def create_session(
    session_data: SessionRequest,
    response: Response,
    channel: Annotated[Channel, Depends(get_widget_channel)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Start or resume a visitor session keyed by email.

    Returns 201 when a contact was created, 200 when an existing one resumed.
    """
    email = session_data.email.strip()
    if not email or not session_data.name.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Name and email are required",
        )

    contact, created = await WidgetService(db).start_session(
        channel, session_data.name, email, session_data.phone
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return SessionResponse(contact_id=contact.id, name=contact.name, is_new=created)


@router.get("/messages", response_model=list[MessagePayload])
async def get_history(
    contact: Annotated[Contact, Depends(get_widget_contact)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[MessagePayload]:
    """Visitor-visible history, oldest first."""
    messages = await MessageRepository(db).list_recent_for_widget(
        contact.organization_id, contact.id, limit=settings.widget_history_limit
    )
    return [MessagePayload.from_message(message) for message in messages]


@router.post("/messages", response_model=MessagePayload, status_code=status.HTTP_201_CREATED)
async def post_visitor_message(
    message_data: VisitorMessageRequest,
    channel: Annotated[Channel, Depends(get_widget_channel)],
    contact: Annotated[Contact, Depends(get_widget_contact)],
    pipeline: Annotated[MessageIngestionPipeline, Depends(get_ingestion_pipeline)],
) -> MessagePayload:
    """Ingest a visitor message on the widget channel."""
    result = await pipeline.ingest(
        channel,
        {
            "direction": MessageDirection.INBOUND,
            "type": MessageType.TEXT,
            "content": message_data.content,
            "contactId": contact.id,
        },
    )
    if result.dropped:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message content is required",
        )
    return MessagePayload.from_message(result.message)


@router.get("/sse/{contact_id}")
async def visitor_stream(
    contact_id: str,
    request: Request,
    channel: Annotated[Channel, Depends(get_widget_channel)],
    db: Annotated[AsyncSession, Depends(get_db)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> StreamingResponse:
    """Contact-scoped stream delivering agent replies to the visitor."""
    contact = await WidgetService(db).get_owned_contact(channel, contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid session",
        )
    return open_stream(request, event_bus, TopicKind.CONTACT, contact.id)
