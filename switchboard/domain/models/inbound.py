"""Normalized inbound message shapes shared by every channel parser."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TextContent:
    """Plain text, or a fixed placeholder for non-media structured messages."""

    text: str


@dataclass(frozen=True)
class MediaContent:
    """A media message; ``kind`` is one of image, audio, video, document, sticker."""

    kind: str
    caption: str = ""


@dataclass(frozen=True)
class UnrecognizedContent:
    """Anything with no user-visible payload (receipts, empty reactions, protocol noise)."""

    keys: tuple[str, ...] = ()


WhatsAppContent = TextContent | MediaContent | UnrecognizedContent


@dataclass
class NormalizedMessage:
    """Channel-independent view of one inbound or echoed message.

    Gateway channels identify the counterpart with ``external_contact_id``;
    widget and agent paths already know the contact and set ``contact_id``.
    """

    direction: str
    content_type: str
    content: str
    external_message_id: str | None = None
    external_contact_id: str | None = None
    contact_id: str | None = None
    sender_display_name: str | None = None
    phone: str | None = None
    created_at: datetime | None = None
    status: str = "sent"
    sender_id: str | None = None
