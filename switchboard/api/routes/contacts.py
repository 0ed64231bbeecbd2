"""Contacts API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.api.deps import MemberContext, get_event_bus, require_membership
from switchboard.domain.models.events import CamelModel, ContactSummary
from switchboard.domain.services.conversation_state import (
    ContactNotFoundError,
    ConversationStateMachine,
    InvalidAssigneeError,
)
from switchboard.infrastructure.event_bus import EventBus
from switchboard.persistence.database import get_db
from switchboard.persistence.models.contact import ConversationStatus
from switchboard.persistence.repositories.contact_repository import ContactRepository

router = APIRouter()


class ContactCreateRequest(CamelModel):
    """Manual contact creation."""

    name: str
    email: str | None = None
    phone: str | None = None


class AssignRequest(CamelModel):
    """Assignment change; null clears the assignment."""

    assigned_to_id: str | None = None


def get_state_machine(
    db: Annotated[AsyncSession, Depends(get_db)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> ConversationStateMachine:
    return ConversationStateMachine(db, event_bus)


@router.get("", response_model=list[ContactSummary])
async def list_contacts(
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
    search: str | None = None,
    conv_status: Annotated[str | None, Query(alias="status")] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> list[ContactSummary]:
    """List contacts by most recent activity.

    Args:
        context: Caller membership
        db: Database session
        search: Case-insensitive match on name, phone or email
        conv_status: Conversation status filter
        skip: Offset
        limit: Page size

    Returns:
        Contacts, most recently active first
    """
    contacts = await ContactRepository(db).list_for_inbox(
        context.organization_id,
        search=search,
        conv_status=conv_status,
        skip=skip,
        limit=limit,
    )
    return [ContactSummary.from_contact(contact) for contact in contacts]


@router.post("", response_model=ContactSummary, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact_data: ContactCreateRequest,
    context: Annotated[MemberContext, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContactSummary:
    """Create a contact by hand; it starts out open."""
    name = contact_data.name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Name is required",
        )
    contact = await ContactRepository(db).create(
        context.organization_id,
        name=name,
        email=(contact_data.email or "").strip().lower() or None,
        phone=(contact_data.phone or "").strip() or None,
        conv_status=ConversationStatus.OPEN,
    )
    return ContactSummary.from_contact(contact)


@router.patch("/{contact_id}/assign", response_model=ContactSummary)
async def assign_contact(
    contact_id: str,
    assign_data: AssignRequest,
    context: Annotated[MemberContext, Depends(require_membership)],
    state_machine: Annotated[ConversationStateMachine, Depends(get_state_machine)],
) -> ContactSummary:
    """Assign the conversation to a member, or clear the assignment."""
    try:
        contact = await state_machine.assign(context.organization_id, contact_id, assign_data.assigned_to_id)
    except ContactNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    except InvalidAssigneeError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return ContactSummary.from_contact(contact)


@router.patch("/{contact_id}/resolve", response_model=ContactSummary)
async def resolve_contact(
    contact_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    state_machine: Annotated[ConversationStateMachine, Depends(get_state_machine)],
) -> ContactSummary:
    """Resolve the conversation; this also unassigns it."""
    try:
        contact = await state_machine.resolve(context.organization_id, contact_id)
    except ContactNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    return ContactSummary.from_contact(contact)


@router.patch("/{contact_id}/open", response_model=ContactSummary)
async def open_contact(
    contact_id: str,
    context: Annotated[MemberContext, Depends(require_membership)],
    state_machine: Annotated[ConversationStateMachine, Depends(get_state_machine)],
) -> ContactSummary:
    """Mark the conversation as being worked on."""
    try:
        contact = await state_machine.open(context.organization_id, contact_id)
    except ContactNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    return ContactSummary.from_contact(contact)
