"""WhatsApp channel backfills: label import, label links and message history."""

import logging
from typing import Annotated, Awaitable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import (
    MemberContext,
    get_evolution_client,
    get_ingestion_pipeline,
    require_membership,
)
from switchboard.domain.models.events import CamelModel
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_import_service import (
    DEFAULT_HISTORY_LIMIT,
    WhatsAppImportService,
)
from switchboard.domain.services.whatsapp_outbound_service import ChannelNotConnectedError, GatewayError
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.database import get_db
from switchboard.persistence.models.channel import Channel, ChannelKind
from switchboard.persistence.repositories.channel_repository import ChannelRepository

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")


class LabelImportResponse(CamelModel):
    created: int
    skipped: int
    total: int


class LabelSyncResponse(CamelModel):
    synced: int


class HistorySyncRequest(CamelModel):
    limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1, le=1000)


class HistorySyncResponse(CamelModel):
    chats: int
    imported_messages: int
    imported_contacts: int


async def _whatsapp_channel(db: AsyncSession, context: MemberContext, channel_id: str) -> Channel:
    channel = await ChannelRepository(db).get_by_id(context.organization_id, channel_id)
    if channel is None or channel.kind != ChannelKind.WHATSAPP:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="WhatsApp channel not found",
        )
    return channel


async def _gateway_call(call: Awaitable[T]) -> T:
    try:
        return await call
    except ChannelNotConnectedError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="WhatsApp channel is not connected",
        )
    except GatewayError as e:
        logger.error(f"[WA_IMPORT] {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="WhatsApp gateway request failed",
        )


def get_import_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    pipeline: Annotated[MessageIngestionPipeline, Depends(get_ingestion_pipeline)],
    evolution_client: Annotated[EvolutionClient, Depends(get_evolution_client)],
) -> WhatsAppImportService:
    return WhatsAppImportService(db, pipeline, evolution_client)


@router.post("/{channel_id}/whatsapp/import-labels", response_model=LabelImportResponse)
async def import_labels(
    channel_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[WhatsAppImportService, Depends(get_import_service)],
) -> LabelImportResponse:
    """Create tags for the WhatsApp Business labels of a channel."""
    channel = await _whatsapp_channel(db, context, channel_id)
    result = await _gateway_call(service.import_labels(channel))
    return LabelImportResponse(created=result.created, skipped=result.skipped, total=result.total)


@router.post("/{channel_id}/whatsapp/sync-label-contacts", response_model=LabelSyncResponse)
async def sync_label_contacts(
    channel_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[WhatsAppImportService, Depends(get_import_service)],
) -> LabelSyncResponse:
    """Tag known contacts with the labels their WhatsApp chats carry."""
    channel = await _whatsapp_channel(db, context, channel_id)
    synced = await _gateway_call(service.sync_label_contacts(channel))
    return LabelSyncResponse(synced=synced)


@router.post("/{channel_id}/whatsapp/sync-history", response_model=HistorySyncResponse)
async def sync_history(
    channel_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[WhatsAppImportService, Depends(get_import_service)],
    payload: HistorySyncRequest | None = None,
) -> HistorySyncResponse:
    """Import the stored message history of a channel's individual chats.

    Args:
        channel_id: WhatsApp channel
        context: Caller membership
        db: Database session
        service: Import service
        payload: Optional ``{limit}`` of messages fetched per chat (default 200)

    Returns:
        Counts of chats read, messages stored and contacts created
    """
    channel = await _whatsapp_channel(db, context, channel_id)
    limit = payload.limit if payload else DEFAULT_HISTORY_LIMIT
    result = await _gateway_call(service.sync_history(channel, limit=limit))
    return HistorySyncResponse(
        chats=result.chats,
        imported_messages=result.imported_messages,
        imported_contacts=result.imported_contacts,
    )
