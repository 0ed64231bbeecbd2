"""Real-time event payloads pushed to agent dashboards and widget visitors."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.message import Message


class CamelModel(BaseModel):
    """Base model serializing to camelCase wire keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_event(self) -> dict:
        """Dump to a JSON-ready dict with wire keys."""
        return self.model_dump(by_alias=True, mode="json")


class MessagePayload(CamelModel):
    """Message as rendered in a conversation pane."""

    id: str
    direction: str
    type: str
    content: str
    status: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessagePayload":
        return cls(
            id=message.id,
            direction=message.direction,
            type=message.type,
            content=message.content,
            status=message.status,
            created_at=message.created_at,
        )


class ContactSummary(CamelModel):
    """Contact fields a dashboard needs to render a brand-new conversation."""

    id: str
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    external_id: str | None = None
    channel_id: str | None = None
    conv_status: str | None = None
    assigned_to_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_contact(cls, contact: Contact) -> "ContactSummary":
        return cls(
            id=contact.id,
            name=contact.name,
            phone=contact.phone,
            email=contact.email,
            avatar_url=contact.avatar_url,
            external_id=contact.external_id,
            channel_id=contact.channel_id,
            conv_status=contact.conv_status,
            assigned_to_id=contact.assigned_to_id,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )


class NewMessageEvent(CamelModel):
    """Published on the organization topic for every stored message."""

    type: Literal["new_message"] = "new_message"
    contact_id: str
    channel_id: str | None = None
    external_id: str | None = None
    contact_name: str | None = None
    contact_avatar_url: str | None = None
    assigned_to_id: str | None = None
    message: MessagePayload
    contact: ContactSummary | None = None

    def to_event(self) -> dict:
        # Known contacts carry no summary
        exclude = {"contact"} if self.contact is None else None
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


class ConvUpdatedEvent(CamelModel):
    """Published on the organization topic whenever status or assignment changes."""

    type: Literal["conv_updated"] = "conv_updated"
    contact_id: str
    conv_status: str | None = None
    assigned_to_id: str | None = None
    assigned_to_name: str | None = None


class WidgetMessageEvent(CamelModel):
    """Published on a contact topic so the visitor's widget receives agent replies."""

    type: Literal["message"] = "message"
    contact_id: str
    message: MessagePayload


class MessageStatusEvent(CamelModel):
    """Published on the organization topic when a delivery receipt lands."""

    type: Literal["message_status"] = "message_status"
    contact_id: str
    message_id: str
    status: str
