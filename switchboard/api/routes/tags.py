"""Tag links on contacts."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.api.deps import (
    MemberContext,
    get_evolution_client,
    get_task_runner,
    require_membership,
)
from switchboard.domain.models.events import CamelModel
from switchboard.domain.services.conversation_state import ContactNotFoundError
from switchboard.domain.services.tag_service import TagNotFoundError, TagService
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.database import get_db, get_session_factory

router = APIRouter()


class TagLinkRequest(CamelModel):
    """Contact to tag."""

    contact_id: str


class TagLinkResponse(CamelModel):
    """Result of a link or unlink."""

    tag_id: str
    contact_id: str
    changed: bool


def get_tag_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    task_runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    session_factory: Annotated[async_sessionmaker, Depends(get_session_factory)],
    evolution_client: Annotated[EvolutionClient, Depends(get_evolution_client)],
) -> TagService:
    return TagService(
        db,
        task_runner=task_runner,
        session_factory=session_factory,
        evolution_client=evolution_client,
    )


@router.post("/{tag_id}/contacts", response_model=TagLinkResponse)
async def add_tag_to_contact(
    tag_id: str,
    link_data: TagLinkRequest,
    context: Annotated[MemberContext, Depends(require_membership)],
    tag_service: Annotated[TagService, Depends(get_tag_service)],
) -> TagLinkResponse:
    """Tag a contact. Linking twice is a no-op."""
    try:
        created = await tag_service.add_to_contact(context.organization_id, tag_id, link_data.contact_id)
    except (TagNotFoundError, ContactNotFoundError) as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    return TagLinkResponse(tag_id=tag_id, contact_id=link_data.contact_id, changed=created)


@router.delete("/{tag_id}/contacts/{contact_id}", response_model=TagLinkResponse)
async def remove_tag_from_contact(
    tag_id: str,
    contact_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    tag_service: Annotated[TagService, Depends(get_tag_service)],
) -> TagLinkResponse:
    """Untag a contact."""
    try:
        removed = await tag_service.remove_from_contact(context.organization_id, tag_id, contact_id)
    except (TagNotFoundError, ContactNotFoundError) as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    return TagLinkResponse(tag_id=tag_id, contact_id=contact_id, changed=removed)
