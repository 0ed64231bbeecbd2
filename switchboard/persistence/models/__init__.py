"""Database models."""

from switchboard.persistence.models.assignment_rule import AssignmentRule
from switchboard.persistence.models.campaign import Campaign, CampaignLead
from switchboard.persistence.models.channel import Channel, ChannelKind, ChannelStatus
from switchboard.persistence.models.contact import Contact, ConversationStatus
from switchboard.persistence.models.message import Message, MessageDirection, MessageType
from switchboard.persistence.models.organization import Member, Organization, User
from switchboard.persistence.models.tag import ContactTag, Tag

__all__ = [
    "AssignmentRule",
    "Campaign",
    "CampaignLead",
    "Channel",
    "ChannelKind",
    "ChannelStatus",
    "Contact",
    "ContactTag",
    "ConversationStatus",
    "Member",
    "Message",
    "MessageDirection",
    "MessageType",
    "Organization",
    "Tag",
    "User",
]
