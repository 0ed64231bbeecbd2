"""Tests for automatic agent assignment."""

import logging
import random

import pytest

from switchboard.domain.services.assignment_service import AssignmentPolicy, AssignmentService
from switchboard.persistence.models.contact import ConversationStatus
from switchboard.persistence.repositories.assignment_rule_repository import AssignmentRuleRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)


async def _add_member(db_session, organization, email, role="agent"):
    user = await UserRepository(db_session).create(None, email=email, name=email.split("@")[0], hashed_password="x")
    await MemberRepository(db_session).create(organization.id, user_id=user.id, role=role)
    return user


async def _enable(db_session, organization, strategy="round_robin"):
    await OrganizationRepository(db_session).update(
        None, organization.id, auto_assignment_enabled=True, auto_assignment_strategy=strategy
    )


async def _contact(db_session, organization, **fields):
    fields.setdefault("conv_status", ConversationStatus.PENDING)
    return await ContactRepository(db_session).create(organization.id, name="Visitor", **fields)


@pytest.fixture
async def bob(db_session, organization, agent):
    return await _add_member(db_session, organization, "bob@acme.test")


@pytest.fixture
def service(db_session, event_bus):
    return AssignmentService(db_session, event_bus)


class TestStrategies:
    """Selection among candidate agents."""

    @pytest.mark.asyncio
    async def test_least_loaded_agent_wins(self, db_session, organization, agent, bob, service):
        """The agent with fewer open or pending conversations is chosen."""
        await _enable(db_session, organization)
        await _contact(db_session, organization, assigned_to_id=agent.id)
        await _contact(db_session, organization, assigned_to_id=agent.id, conv_status=ConversationStatus.OPEN)
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == bob.id

    @pytest.mark.asyncio
    async def test_resolved_conversations_do_not_count(self, db_session, organization, agent, bob, service):
        """Only open and pending conversations make up an agent's load."""
        await _enable(db_session, organization)
        await _contact(db_session, organization, assigned_to_id=agent.id, conv_status=ConversationStatus.RESOLVED)
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_ties_go_to_first_member(self, db_session, organization, agent, bob, service):
        """Equal load picks the earliest member."""
        await _enable(db_session, organization, strategy="load_balancing")
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_random_uses_injected_rng(self, db_session, event_bus, organization, agent, bob):
        """The random strategy is reproducible with a seeded generator."""
        await _enable(db_session, organization, strategy="random")
        contact = await _contact(db_session, organization)
        expected = random.Random(7).choice([agent.id, bob.id])
        service = AssignmentService(db_session, event_bus, policy=AssignmentPolicy(db_session, rng=random.Random(7)))

        assert await service.auto_assign(organization.id, contact.id) == expected

    @pytest.mark.asyncio
    async def test_non_agent_roles_excluded(self, db_session, organization, service):
        """Owners and admins are never in the default pool."""
        await _enable(db_session, organization)
        await _add_member(db_session, organization, "owner@acme.test", role="owner")
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", ["round-robin", "load-balancing", "Load_Balancing"])
    async def test_strategy_spellings(self, db_session, organization, agent, bob, service, caplog, strategy):
        """Hyphenated and mixed-case strategies select by load without a warning."""
        await _enable(db_session, organization, strategy=strategy)
        await _contact(db_session, organization, assigned_to_id=agent.id)
        contact = await _contact(db_session, organization)

        with caplog.at_level(logging.WARNING, logger="switchboard.domain.services.assignment_service"):
            assert await service.auto_assign(organization.id, contact.id) == bob.id

        assert "Unknown strategy" not in caplog.text


class TestRules:
    """Rule matching and candidate pools."""

    @pytest.mark.asyncio
    async def test_specific_pool(self, db_session, organization, agent, bob, service):
        """A matching rule with a specific pool restricts the candidates."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Bob only", condition_type="always", assign_to="specific", assignee_ids=[bob.id]
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == bob.id

    @pytest.mark.asyncio
    async def test_channel_rule(self, db_session, organization, agent, bob, whatsapp_channel, widget_channel, service):
        """Channel rules only match contacts on the listed channels."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id,
            name="WhatsApp to Bob",
            condition_type="channel",
            condition_value={"channelIds": [whatsapp_channel.id]},
            assign_to="specific",
            assignee_ids=[bob.id],
        )
        on_whatsapp = await _contact(db_session, organization, channel_id=whatsapp_channel.id)
        on_widget = await _contact(db_session, organization, channel_id=widget_channel.id)

        assert await service.auto_assign(organization.id, on_whatsapp.id) == bob.id
        # Falls back to every agent; bob now carries one conversation
        assert await service.auto_assign(organization.id, on_widget.id) == agent.id

    @pytest.mark.asyncio
    async def test_higher_priority_rule_wins(self, db_session, organization, agent, bob, service):
        """Rules are evaluated highest priority first."""
        await _enable(db_session, organization)
        rules = AssignmentRuleRepository(db_session)
        await rules.create(organization.id, name="Low", priority=1, assign_to="specific", assignee_ids=[agent.id])
        await rules.create(organization.id, name="High", priority=10, assign_to="specific", assignee_ids=[bob.id])
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == bob.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("condition_type", ["tag", "keyword", "time"])
    async def test_unevaluated_conditions_never_match(
        self, db_session, organization, agent, bob, service, condition_type
    ):
        """Tag, keyword and time rules are skipped."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id,
            name="Unsupported",
            priority=5,
            condition_type=condition_type,
            condition_value={"value": "vip"},
            assign_to="specific",
            assignee_ids=[bob.id],
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_inactive_rule_ignored(self, db_session, organization, agent, bob, service):
        """Inactive rules are not considered."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Off", active=False, assign_to="specific", assignee_ids=[bob.id]
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_only_departed_assignees_leaves_unassigned(self, db_session, organization, agent, service, collected):
        """A rule listing nobody who is still an agent assigns no one and announces nothing."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Stale", assign_to="specific", assignee_ids=["departed-user"]
        )
        contact = await _contact(db_session, organization)
        events = collected(organization.id)

        assert await service.auto_assign(organization.id, contact.id) is None
        await db_session.refresh(contact)
        assert contact.assigned_to_id is None
        assert events == []

    @pytest.mark.asyncio
    async def test_departed_assignee_skipped(self, db_session, organization, agent, service):
        """Ids that are no longer agents are dropped before load is compared."""
        await _enable(db_session, organization)
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Mixed", assign_to="specific", assignee_ids=["departed-user", agent.id]
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_specific_pool_excludes_non_agent_members(self, db_session, organization, agent, service):
        """An owner listed in a specific pool is not a candidate."""
        await _enable(db_session, organization)
        owner = await _add_member(db_session, organization, "owner@acme.test", role="owner")
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Owner first", assign_to="specific", assignee_ids=[owner.id, agent.id]
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == agent.id

    @pytest.mark.asyncio
    async def test_empty_specific_pool_uses_every_agent(self, db_session, organization, agent, bob, service):
        """A specific rule with no ids falls back to all agents."""
        await _enable(db_session, organization)
        await _contact(db_session, organization, assigned_to_id=agent.id)
        await AssignmentRuleRepository(db_session).create(
            organization.id, name="Empty", assign_to="specific", assignee_ids=[]
        )
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) == bob.id


class TestSkips:
    """Cases where nothing is assigned."""

    @pytest.mark.asyncio
    async def test_disabled_organization(self, db_session, organization, agent, service):
        contact = await _contact(db_session, organization)

        assert await service.auto_assign(organization.id, contact.id) is None

    @pytest.mark.asyncio
    async def test_already_assigned(self, db_session, organization, agent, bob, service):
        """An existing assignee is never replaced."""
        await _enable(db_session, organization)
        contact = await _contact(db_session, organization, assigned_to_id=bob.id)

        assert await service.auto_assign(organization.id, contact.id) is None
        await db_session.refresh(contact)
        assert contact.assigned_to_id == bob.id

    @pytest.mark.asyncio
    async def test_assignment_publishes_conv_updated(self, db_session, organization, agent, service, collected):
        """A successful assignment announces the new assignee."""
        await _enable(db_session, organization)
        contact = await _contact(db_session, organization)
        events = collected(organization.id)

        await service.auto_assign(organization.id, contact.id)

        assert events == [
            {
                "type": "conv_updated",
                "contactId": contact.id,
                "convStatus": "pending",
                "assignedToId": agent.id,
                "assignedToName": "Alice Agent",
            }
        ]
