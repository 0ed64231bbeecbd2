"""Agent dashboard stream and team listing."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import MemberContext, get_event_bus, require_membership
from switchboard.api.streaming import EventFilter, open_stream
from switchboard.domain.models.events import CamelModel
from switchboard.infrastructure.event_bus import EventBus, TopicKind
from switchboard.persistence.database import get_db
from switchboard.persistence.repositories.organization_repository import MemberRepository

router = APIRouter()


class MemberResponse(CamelModel):
    """Organization member as shown in assignment pickers."""

    id: str
    user_id: str
    name: str | None = None
    email: str
    role: str


def assigned_or_unassigned(user_id: str) -> EventFilter:
    """Filter keeping events for unassigned contacts or contacts assigned to ``user_id``.

    Status changes always pass so a dashboard sees a conversation move away
    from its agent.
    """

    def _filter(event: dict) -> bool:
        if event.get("type") == "conv_updated":
            return True
        assigned_to_id = event.get("assignedToId")
        return assigned_to_id is None or assigned_to_id == user_id

    return _filter


@router.get("/sse")
async def agent_stream(
    request: Request,
    context: Annotated[MemberContext, Depends(require_membership)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    only_assigned: Annotated[bool, Query(alias="onlyAssigned")] = False,
) -> StreamingResponse:
    """Organization-wide event stream for the agent dashboard.

    Args:
        request: Incoming request
        context: Caller membership
        event_bus: Process event bus
        only_assigned: Drop events about contacts assigned to someone else

    Returns:
        text/event-stream response
    """
    event_filter = assigned_or_unassigned(context.user.id) if only_assigned else None
    return open_stream(
        request,
        event_bus,
        TopicKind.ORGANIZATION,
        context.organization_id,
        event_filter=event_filter,
    )


@router.get("/members", response_model=list[MemberResponse])
async def list_members(
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[MemberResponse]:
    """List the organization's members."""
    members = await MemberRepository(db).list_members(context.organization_id)
    return [
        MemberResponse(
            id=member.id,
            user_id=member.user_id,
            name=member.user.name if member.user else None,
            email=member.user.email if member.user else "",
            role=member.role,
        )
        for member in members
    ]
