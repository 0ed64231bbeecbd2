"""WhatsApp gateway (Evolution API) webhook."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import get_ingestion_pipeline
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_event_service import WhatsAppEventService
from switchboard.persistence.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/whatsapp/webhook")
async def whatsapp_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    pipeline: Annotated[MessageIngestionPipeline, Depends(get_ingestion_pipeline)],
) -> dict:
    """Receive every gateway event kind on one endpoint.

    Always answers 200: a failure status makes the gateway redeliver the
    whole event, which would only repeat the failure.

    Args:
        request: FastAPI request
        db: Database session
        pipeline: Ingestion pipeline

    Returns:
        Acknowledgment
    """
    try:
        body = await request.json()
        if not isinstance(body, dict):
            logger.warning("[WA_WEBHOOK] Ignoring non-object body")
            return {"ok": True}

        await WhatsAppEventService(db, pipeline).handle(body)

    except Exception as e:
        logger.error(f"Error processing WhatsApp webhook: {e}", exc_info=True)

    return {"ok": True}
