"""Conversation status and assignment transitions."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.domain.models.events import ConvUpdatedEvent
from switchboard.infrastructure.event_bus import EventBus
from switchboard.persistence.models.contact import Contact, ConversationStatus
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class ContactNotFoundError(Exception):
    """Raised when a contact does not exist in the caller's organization."""


class InvalidAssigneeError(Exception):
    """Raised when an assignment targets a user outside the organization."""


class ConversationStateMachine:
    """Owns ``conv_status`` and ``assigned_to_id`` on contacts.

    Writes are last-write-wins on the contact row. Every explicit agent action
    republishes the resulting state so dashboards converge.
    """

    def __init__(self, session: AsyncSession, event_bus: EventBus):
        self.session = session
        self.event_bus = event_bus
        self.contact_repo = ContactRepository(session)
        self.member_repo = MemberRepository(session)
        self.user_repo = UserRepository(session)

    async def on_inbound_message(self, contact: Contact, announce: bool = True) -> bool:
        """Apply the inbound-message trigger.

        Only a resolved (or never-set) conversation moves to pending; open and
        pending conversations keep their state. Assignment is never touched.
        Activity time is bumped either way.

        Args:
            contact: Contact that just received an inbound message
            announce: Publish conv_updated when the status changes

        Returns:
            True if the status changed
        """
        previous = contact.conv_status
        changed = previous is None or previous == ConversationStatus.RESOLVED
        if changed:
            contact.conv_status = ConversationStatus.PENDING
        contact.updated_at = datetime.utcnow()
        await self.session.commit()
        await self.session.refresh(contact)

        if changed:
            logger.info(
                f"Conversation reopened by inbound message: {contact.id} {previous} -> pending",
                extra={"contact_id": contact.id},
            )
            if announce:
                await self.publish_state(contact)
        return changed

    async def open(self, organization_id: str, contact_id: str) -> Contact:
        """Agent opens the conversation; assignment is unchanged."""
        contact = await self._write(organization_id, contact_id, conv_status=ConversationStatus.OPEN)
        await self.publish_state(contact)
        return contact

    async def resolve(self, organization_id: str, contact_id: str) -> Contact:
        """Agent resolves the conversation, which also clears its assignment."""
        contact = await self._write(
            organization_id,
            contact_id,
            conv_status=ConversationStatus.RESOLVED,
            assigned_to_id=None,
        )
        await self.publish_state(contact)
        return contact

    async def assign(self, organization_id: str, contact_id: str, assignee_id: str | None) -> Contact:
        """Agent (re)assigns the conversation, or clears it with None.

        Args:
            organization_id: Organization ID
            contact_id: Contact ID
            assignee_id: User ID of the new assignee, or None to unassign

        Returns:
            Updated contact

        Raises:
            ContactNotFoundError: If the contact is not in the organization
            InvalidAssigneeError: If the assignee is not a member of the organization
        """
        if assignee_id is not None:
            membership = await self.member_repo.get_membership(organization_id, assignee_id)
            if membership is None:
                raise InvalidAssigneeError(f"User {assignee_id} is not a member of this organization")

        contact = await self._write(organization_id, contact_id, assigned_to_id=assignee_id)
        await self.publish_state(contact)
        return contact

    async def publish_state(self, contact: Contact) -> None:
        """Broadcast a contact's current status and assignment."""
        event = ConvUpdatedEvent(
            contact_id=contact.id,
            conv_status=contact.conv_status,
            assigned_to_id=contact.assigned_to_id,
            assigned_to_name=await self.assignee_name(contact.assigned_to_id),
        )
        self.event_bus.publish_to_organization(contact.organization_id, event.to_event())

    async def assignee_name(self, user_id: str | None) -> str | None:
        """Display name of an assignee."""
        if user_id is None:
            return None
        user = await self.user_repo.get_by_id(None, user_id)
        if user is None:
            return None
        return user.name or user.email

    async def _write(self, organization_id: str, contact_id: str, **values) -> Contact:
        contact = await self.contact_repo.update_status(organization_id, contact_id, **values)
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found")
        logger.info(
            f"Conversation updated: {contact_id} status={contact.conv_status} assigned_to={contact.assigned_to_id}",
            extra={"contact_id": contact_id},
        )
        return contact
