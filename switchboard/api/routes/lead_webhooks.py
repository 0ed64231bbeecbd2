"""Facebook Lead Ads webhook (subscription handshake and lead delivery)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import get_ingestion_pipeline
from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.lead_service import InvalidSignatureError, expected_verify_token
from switchboard.persistence.database import get_db
from switchboard.persistence.repositories.organization_repository import OrganizationRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()

ACK = "EVENT_RECEIVED"


@router.get("/facebook/webhook/{organization_id}", response_class=PlainTextResponse)
async def verify_subscription(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> PlainTextResponse:
    """Echo the challenge when the verify token matches the organization's.

    Raises:
        HTTPException: 403 on any mismatch
    """
    organization = await OrganizationRepository(db).get_by_id(None, organization_id)
    if (
        organization is None
        or mode != "subscribe"
        or not token
        or token != expected_verify_token(organization, settings.facebook_verify_token_prefix)
    ):
        logger.warning(f"[FB_LEAD] Subscription verification failed for {organization_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Verification failed",
        )
    return PlainTextResponse(challenge or "")


@router.post("/facebook/webhook/{organization_id}", response_class=PlainTextResponse)
async def receive_leads(
    organization_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    pipeline: Annotated[MessageIngestionPipeline, Depends(get_ingestion_pipeline)],
) -> PlainTextResponse:
    """Verify a lead batch and acknowledge it before processing.

    Entries are processed by the background runner. Only a signature
    failure is reported back as an error.

    Raises:
        HTTPException: 403 if the signature is missing or wrong
    """
    raw_body = await request.body()
    try:
        organization = await OrganizationRepository(db).get_by_id(None, organization_id)
        if organization is None:
            logger.warning(f"[FB_LEAD] Lead webhook for unknown organization {organization_id}")
            return PlainTextResponse(ACK)
        if not organization.fb_app_secret:
            logger.warning(f"[FB_LEAD] Organization {organization_id} has no app secret; batch not processed")
            return PlainTextResponse(ACK)

        await pipeline.ingest_lead(organization, raw_body, request.headers.get("x-hub-signature-256"))

    except InvalidSignatureError as e:
        logger.warning(f"[FB_LEAD] Rejected batch for {organization_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature",
        )
    except Exception as e:
        logger.error(f"Error processing lead webhook: {e}", exc_info=True)

    return PlainTextResponse(ACK)
