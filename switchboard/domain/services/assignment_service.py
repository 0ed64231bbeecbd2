"""Automatic agent assignment for new conversations."""

import logging
import random

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.domain.services.conversation_state import (
    ConversationStateMachine,
    InvalidAssigneeError,
)
from switchboard.infrastructure.event_bus import EventBus
from switchboard.persistence.models.assignment_rule import AssignmentRule
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.organization import Organization
from switchboard.persistence.repositories.assignment_rule_repository import AssignmentRuleRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    OrganizationRepository,
)

logger = logging.getLogger(__name__)

AGENT_ROLE = "agent"

STRATEGY_ROUND_ROBIN = "round_robin"
STRATEGY_LOAD_BALANCING = "load_balancing"
STRATEGY_RANDOM = "random"


def normalize_strategy(strategy: str | None) -> str:
    """``load-balancing`` and ``load_balancing`` name the same strategy."""
    return (strategy or STRATEGY_ROUND_ROBIN).strip().lower().replace("-", "_")


class AssignmentPolicy:
    """Picks one agent for an unassigned contact, or declines."""

    def __init__(self, session: AsyncSession, rng: random.Random | None = None):
        self.rule_repo = AssignmentRuleRepository(session)
        self.member_repo = MemberRepository(session)
        self.contact_repo = ContactRepository(session)
        self.rng = rng or random.Random()

    async def determine_assignee(self, organization: Organization, contact: Contact) -> str | None:
        """Choose an assignee for a contact.

        Args:
            organization: Owning organization
            contact: Contact needing an agent

        Returns:
            User ID of the chosen agent, or None
        """
        if not organization.auto_assignment_enabled:
            return None

        rules = await self.rule_repo.list_matching_rules(organization.id)
        rule = next((r for r in rules if self.rule_matches(r, contact)), None)

        pool = await self._candidate_pool(organization.id, rule)
        if not pool:
            logger.info(
                f"[ASSIGNMENT] No candidate agents for contact {contact.id}",
                extra={"contact_id": contact.id, "rule_id": rule.id if rule else None},
            )
            return None

        return await self._select(organization.id, pool, organization.auto_assignment_strategy)

    @staticmethod
    def rule_matches(rule: AssignmentRule, contact: Contact) -> bool:
        """Evaluate a rule's condition against a contact.

        Tag, keyword and time-window conditions are stored but not evaluated;
        they never match.
        """
        if rule.condition_type == "always":
            return True
        if rule.condition_type == "channel":
            value = rule.condition_value or {}
            channel_ids = value.get("channelIds") or value.get("channel_ids") or []
            return contact.channel_id is not None and contact.channel_id in channel_ids
        return False

    async def _candidate_pool(self, organization_id: str, rule: AssignmentRule | None) -> list[str]:
        agents = await self.member_repo.list_agents_with_role(organization_id, AGENT_ROLE)
        if rule is not None and rule.assign_to == "specific" and rule.assignee_ids:
            # Rule order, without repeats or ids that are not agents here
            return [user_id for user_id in dict.fromkeys(rule.assignee_ids) if user_id in agents]
        return agents

    async def _select(self, organization_id: str, pool: list[str], strategy: str | None) -> str:
        strategy = normalize_strategy(strategy)
        if strategy == STRATEGY_RANDOM:
            return self.rng.choice(pool)

        if strategy not in (STRATEGY_ROUND_ROBIN, STRATEGY_LOAD_BALANCING):
            logger.warning(f"[ASSIGNMENT] Unknown strategy {strategy!r}, using {STRATEGY_ROUND_ROBIN}")

        # Fewest open/pending conversations; strict < keeps the first on ties
        best_agent, best_load = pool[0], None
        for agent_id in pool:
            load = await self.contact_repo.count_active_assignments(organization_id, agent_id)
            if best_load is None or load < best_load:
                best_agent, best_load = agent_id, load
        return best_agent


class AssignmentService:
    """Runs the assignment policy for a new contact and records the result."""

    def __init__(self, session: AsyncSession, event_bus: EventBus, policy: AssignmentPolicy | None = None):
        self.session = session
        self.org_repo = OrganizationRepository(session)
        self.contact_repo = ContactRepository(session)
        self.policy = policy or AssignmentPolicy(session)
        self.state_machine = ConversationStateMachine(session, event_bus)

    async def auto_assign(self, organization_id: str, contact_id: str) -> str | None:
        """Assign a contact if it is still unassigned.

        Args:
            organization_id: Organization ID
            contact_id: Contact ID

        Returns:
            Assigned user ID, or None if nothing was assigned
        """
        organization = await self.org_repo.get_by_id(None, organization_id)
        contact = await self.contact_repo.get_by_id(organization_id, contact_id)
        if organization is None or contact is None:
            return None
        if contact.assigned_to_id is not None:
            logger.debug(f"[ASSIGNMENT] Contact {contact_id} already assigned, skipping")
            return None

        agent_id = await self.policy.determine_assignee(organization, contact)
        if agent_id is None:
            return None

        try:
            await self.state_machine.assign(organization_id, contact_id, agent_id)
        except InvalidAssigneeError:
            logger.warning(
                f"[ASSIGNMENT] {agent_id} left the organization; contact {contact_id} left unassigned",
                extra={"contact_id": contact_id},
            )
            return None

        logger.info(
            f"[ASSIGNMENT] Contact {contact_id} assigned to {agent_id}",
            extra={"contact_id": contact_id, "assigned_to_id": agent_id},
        )
        return agent_id
