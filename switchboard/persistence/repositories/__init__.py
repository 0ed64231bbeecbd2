"""Repository layer."""

from switchboard.persistence.repositories.assignment_rule_repository import AssignmentRuleRepository
from switchboard.persistence.repositories.campaign_repository import CampaignRepository
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.message_repository import MessageRepository
from switchboard.persistence.repositories.organization_repository import (
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)
from switchboard.persistence.repositories.tag_repository import TagRepository

__all__ = [
    "AssignmentRuleRepository",
    "CampaignRepository",
    "ChannelRepository",
    "ContactRepository",
    "MemberRepository",
    "MessageRepository",
    "OrganizationRepository",
    "TagRepository",
    "UserRepository",
]
