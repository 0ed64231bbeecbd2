"""Contact tagging with best-effort WhatsApp label mirroring."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.domain.services.conversation_state import ContactNotFoundError
from switchboard.domain.services.whatsapp_decoder import is_stable_jid, jid_to_number
from switchboard.domain.services.whatsapp_outbound_service import gateway_target
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.persistence.models.channel import ChannelKind, ChannelStatus
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.tag_repository import TagRepository
from switchboard.settings import settings

logger = logging.getLogger(__name__)

LABEL_ADD = "add"
LABEL_REMOVE = "remove"


class TagNotFoundError(Exception):
    """Raised when a tag does not exist in the caller's organization."""


async def sync_whatsapp_label(
    session: AsyncSession,
    client: EvolutionClient,
    organization_id: str,
    contact_id: str,
    tag_id: str,
    action: str,
) -> bool:
    """Mirror a tag change onto the contact's WhatsApp chat label.

    Every precondition failure is logged and skipped; nothing is raised for
    expected conditions (non-WhatsApp contact, disconnected channel, label
    missing on the phone).

    Returns:
        True if the gateway accepted the change
    """
    contact = await ContactRepository(session).get_by_id(organization_id, contact_id)
    tag = await TagRepository(session).get_by_id(organization_id, tag_id)
    if contact is None or tag is None:
        logger.warning(f"[LABEL_SYNC] Contact {contact_id} or tag {tag_id} no longer exists")
        return False
    if not contact.external_id or not contact.channel_id:
        logger.info(f"[LABEL_SYNC] Contact {contact_id} has no JID or channel, skipping")
        return False
    if not is_stable_jid(contact.external_id, settings.whatsapp_stable_jid_suffixes):
        logger.info(f"[LABEL_SYNC] {contact.external_id!r} is not an individual WhatsApp chat, skipping")
        return False

    channel = await ChannelRepository(session).get_by_id(organization_id, contact.channel_id)
    if channel is None or channel.kind != ChannelKind.WHATSAPP:
        logger.info(f"[LABEL_SYNC] Contact {contact_id} is not on a WhatsApp channel, skipping")
        return False
    if channel.status != ChannelStatus.CONNECTED:
        logger.warning(f"[LABEL_SYNC] Channel {channel.id} is {channel.status}, skipping")
        return False

    target = gateway_target(channel)
    if target is None:
        logger.warning(f"[LABEL_SYNC] Channel {channel.id} has no gateway URL or instance name")
        return False

    labels = await client.find_labels(target.base_url, target.api_key, target.instance) or []
    match = next(
        (label for label in labels if (label.get("name") or "").lower() == tag.name.lower()),
        None,
    )
    if match is None or not match.get("id"):
        logger.warning(f"[LABEL_SYNC] Label {tag.name!r} does not exist on WhatsApp instance {target.instance}")
        return False

    accepted = await client.handle_label(
        target.base_url,
        target.api_key,
        target.instance,
        number=jid_to_number(contact.external_id),
        label_id=str(match["id"]),
        action=action,
    )
    if accepted:
        logger.info(
            f"[LABEL_SYNC] Label {tag.name!r} {action} applied to {contact.external_id}",
            extra={"contact_id": contact_id, "tag_id": tag_id},
        )
    return accepted


class TagService:
    """Links tags to contacts; the local write always wins over gateway sync."""

    def __init__(
        self,
        session: AsyncSession,
        task_runner: BackgroundTaskRunner | None = None,
        session_factory: async_sessionmaker | None = None,
        evolution_client: EvolutionClient | None = None,
    ):
        self.session = session
        self.task_runner = task_runner
        self.session_factory = session_factory
        self.evolution_client = evolution_client
        self.tag_repo = TagRepository(session)
        self.contact_repo = ContactRepository(session)

    async def add_to_contact(self, organization_id: str, tag_id: str, contact_id: str) -> bool:
        """Attach a tag to a contact (idempotent) and schedule label sync.

        Returns:
            True if a new link was created

        Raises:
            TagNotFoundError: If the tag is not in the organization
            ContactNotFoundError: If the contact is not in the organization
        """
        await self._ensure_exists(organization_id, tag_id, contact_id)
        created = await self.tag_repo.link_contact(contact_id, tag_id)
        self._schedule_sync(organization_id, contact_id, tag_id, LABEL_ADD)
        return created

    async def remove_from_contact(self, organization_id: str, tag_id: str, contact_id: str) -> bool:
        """Detach a tag from a contact and schedule label sync.

        Returns:
            True if a link was removed
        """
        await self._ensure_exists(organization_id, tag_id, contact_id)
        removed = await self.tag_repo.unlink_contact(contact_id, tag_id)
        self._schedule_sync(organization_id, contact_id, tag_id, LABEL_REMOVE)
        return removed

    async def _ensure_exists(self, organization_id: str, tag_id: str, contact_id: str) -> None:
        if await self.tag_repo.get_by_id(organization_id, tag_id) is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        if await self.contact_repo.get_by_id(organization_id, contact_id) is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found")

    def _schedule_sync(self, organization_id: str, contact_id: str, tag_id: str, action: str) -> None:
        if self.task_runner is None or self.session_factory is None or self.evolution_client is None:
            return
        self.task_runner.dispatch(
            f"label-sync:{action}:{contact_id}",
            self._sync,
            organization_id,
            contact_id,
            tag_id,
            action,
        )

    async def _sync(self, organization_id: str, contact_id: str, tag_id: str, action: str) -> None:
        async with self.session_factory() as session:
            await sync_whatsapp_label(
                session, self.evolution_client, organization_id, contact_id, tag_id, action
            )
