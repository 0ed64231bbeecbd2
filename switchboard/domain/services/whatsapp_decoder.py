"""Decoder for Evolution API (WhatsApp gateway) message payloads."""

import logging
from datetime import datetime
from typing import Any, Callable

from switchboard.domain.models.inbound import (
    MediaContent,
    NormalizedMessage,
    TextContent,
    UnrecognizedContent,
    WhatsAppContent,
)
from switchboard.persistence.models.message import MessageDirection, MessageType

logger = logging.getLogger(__name__)

# Wrappers whose inner ``message`` carries the real content
_ENVELOPE_KEYS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "documentWithCaptionMessage",
)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _field(name: str) -> Callable[[Any], str]:
    return lambda body: _text(body.get(name)) if isinstance(body, dict) else ""


def _decode_reaction(body: Any) -> WhatsAppContent | None:
    emoji = _field("text")(body)
    # A reaction removal carries no text and is not worth a row
    return TextContent(f"[Reaction: {emoji}]") if emoji else None


# Ordered: the first key present in the payload decides the variant.
_DECODERS: tuple[tuple[str, Callable[[Any], WhatsAppContent | None]], ...] = (
    ("conversation", lambda body: TextContent(_text(body)) if _text(body) else None),
    ("extendedTextMessage", lambda body: TextContent(_field("text")(body)) if _field("text")(body) else None),
    ("imageMessage", lambda body: MediaContent(MessageType.IMAGE, _field("caption")(body))),
    ("videoMessage", lambda body: MediaContent(MessageType.VIDEO, _field("caption")(body))),
    ("audioMessage", lambda body: MediaContent(MessageType.AUDIO)),
    ("documentMessage", lambda body: MediaContent(MessageType.DOCUMENT, _field("fileName")(body))),
    ("stickerMessage", lambda body: MediaContent(MessageType.STICKER)),
    ("locationMessage", lambda body: TextContent("[Location]")),
    ("contactMessage", lambda body: TextContent("[Contact]")),
    ("reactionMessage", _decode_reaction),
)


def _unwrap(message: dict) -> dict:
    for key in _ENVELOPE_KEYS:
        inner = message.get(key)
        if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
            return _unwrap(inner["message"])
    return message


def decode_whatsapp_content(message: dict | None) -> WhatsAppContent:
    """Decode the ``message`` object of a MESSAGES_UPSERT into a closed variant.

    Args:
        message: Gateway message object (may be None for protocol events)

    Returns:
        TextContent, MediaContent or UnrecognizedContent
    """
    if not isinstance(message, dict):
        return UnrecognizedContent()

    message = _unwrap(message)
    for key, decode in _DECODERS:
        if message.get(key) is None:
            continue
        content = decode(message[key])
        if content is not None:
            return content
    return UnrecognizedContent(tuple(sorted(message.keys())))


def is_stable_jid(jid: str, stable_suffixes: list[str]) -> bool:
    """Whether a JID identifies a stable one-to-one contact."""
    return any(jid.endswith(suffix) for suffix in stable_suffixes)


def jid_to_number(jid: str) -> str:
    """Strip the server part of a JID (``5511999@s.whatsapp.net`` -> ``5511999``)."""
    return jid.split("@", 1)[0]


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, dict):
        # Protobuf Long serialized as {low, high, unsigned}
        value = value.get("low")
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return datetime.utcfromtimestamp(seconds)


def parse_whatsapp_upsert(data: dict, stable_suffixes: list[str]) -> NormalizedMessage | None:
    """Normalize one MESSAGES_UPSERT item.

    Args:
        data: The event's ``data`` object
        stable_suffixes: JID suffixes accepted as stable contact identities

    Returns:
        NormalizedMessage, or None when the item must be dropped (groups,
        broadcast lists, content with no user-visible payload)
    """
    key = data.get("key") or {}
    remote_jid = key.get("remoteJid") or ""
    if not is_stable_jid(remote_jid, stable_suffixes):
        logger.debug(f"Skipping non-contact JID {remote_jid!r}")
        return None

    content = decode_whatsapp_content(data.get("message"))
    if isinstance(content, TextContent):
        content_type, text = MessageType.TEXT, content.text
    elif isinstance(content, MediaContent):
        content_type, text = content.kind, content.caption
    else:
        logger.debug(f"Dropping unrecognized WhatsApp content: keys={content.keys}")
        return None

    from_me = bool(key.get("fromMe"))
    number = jid_to_number(remote_jid)
    return NormalizedMessage(
        direction=MessageDirection.OUTBOUND if from_me else MessageDirection.INBOUND,
        content_type=content_type,
        content=text,
        external_message_id=key.get("id") or None,
        external_contact_id=remote_jid,
        # pushName on our own echo is the agent's name, never the contact's
        sender_display_name=None if from_me else (_text(data.get("pushName")) or None),
        phone=f"+{number}" if number else None,
        created_at=_parse_timestamp(data.get("messageTimestamp")),
    )
