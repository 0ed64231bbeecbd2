"""Tests for WhatsApp gateway payload decoding."""

from datetime import datetime

import pytest

from switchboard.domain.models.inbound import MediaContent, TextContent, UnrecognizedContent
from switchboard.domain.services.whatsapp_decoder import (
    decode_whatsapp_content,
    is_stable_jid,
    jid_to_number,
    parse_whatsapp_upsert,
)

STABLE = ["@s.whatsapp.net", "@c.us"]


class TestDecodeContent:
    """The closed set of content variants."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ({"conversation": "oi"}, TextContent("oi")),
            ({"extendedTextMessage": {"text": "see https://x.test"}}, TextContent("see https://x.test")),
            ({"imageMessage": {"caption": "receipt"}}, MediaContent("image", "receipt")),
            ({"videoMessage": {}}, MediaContent("video", "")),
            ({"audioMessage": {"ptt": True}}, MediaContent("audio")),
            ({"documentMessage": {"fileName": "quote.pdf"}}, MediaContent("document", "quote.pdf")),
            ({"stickerMessage": {}}, MediaContent("sticker")),
            ({"locationMessage": {"degreesLatitude": 1.0}}, TextContent("[Location]")),
            ({"contactMessage": {"displayName": "Zé"}}, TextContent("[Contact]")),
            ({"reactionMessage": {"text": "👍"}}, TextContent("[Reaction: 👍]")),
        ],
    )
    def test_variants(self, message, expected):
        """Each known message field maps to exactly one variant."""
        assert decode_whatsapp_content(message) == expected

    def test_envelopes_are_unwrapped(self):
        """Ephemeral and view-once wrappers expose the inner message."""
        message = {"ephemeralMessage": {"message": {"viewOnceMessage": {"message": {"imageMessage": {}}}}}}

        assert decode_whatsapp_content(message) == MediaContent("image", "")

    def test_receipt_like_payload_is_unrecognized(self):
        """Protocol noise decodes to the unrecognized variant."""
        content = decode_whatsapp_content({"protocolMessage": {"type": 0}})

        assert isinstance(content, UnrecognizedContent)
        assert content.keys == ("protocolMessage",)

    def test_missing_message_is_unrecognized(self):
        """No message object at all is unrecognized, not an error."""
        assert isinstance(decode_whatsapp_content(None), UnrecognizedContent)

    def test_blank_text_is_unrecognized(self):
        """Whitespace-only text carries nothing to show."""
        assert isinstance(decode_whatsapp_content({"conversation": "   "}), UnrecognizedContent)


class TestJids:
    """Identity helpers."""

    def test_stable_suffixes(self):
        """Only configured suffixes count as stable 1:1 contacts."""
        assert is_stable_jid("5511999990000@s.whatsapp.net", STABLE)
        assert is_stable_jid("5511999990000@c.us", STABLE)
        assert not is_stable_jid("120363025@g.us", STABLE)
        assert not is_stable_jid("1234567890@lid", STABLE)
        assert not is_stable_jid("status@broadcast", STABLE)

    def test_allowlist_is_configurable(self):
        """A deployment can accept extra identifier kinds."""
        assert is_stable_jid("1234567890@lid", STABLE + ["@lid"])

    def test_jid_to_number(self):
        assert jid_to_number("5511999990000@s.whatsapp.net") == "5511999990000"


class TestParseUpsert:
    """MESSAGES_UPSERT item normalization."""

    def test_inbound_text(self):
        """Inbound text keeps pushName, phone and the gateway timestamp."""
        normalized = parse_whatsapp_upsert(
            {
                "key": {"remoteJid": "5511999990000@s.whatsapp.net", "fromMe": False, "id": "ABC"},
                "pushName": "Bruno",
                "message": {"conversation": "oi"},
                "messageTimestamp": "1717000000",
            },
            STABLE,
        )

        assert normalized.direction == "inbound"
        assert normalized.content_type == "text"
        assert normalized.content == "oi"
        assert normalized.external_message_id == "ABC"
        assert normalized.external_contact_id == "5511999990000@s.whatsapp.net"
        assert normalized.sender_display_name == "Bruno"
        assert normalized.phone == "+5511999990000"
        assert normalized.created_at == datetime(2024, 5, 29, 16, 26, 40)

    def test_from_me_drops_push_name(self):
        """Our own echo is outbound and never names the contact."""
        normalized = parse_whatsapp_upsert(
            {
                "key": {"remoteJid": "5511999990000@s.whatsapp.net", "fromMe": True, "id": "DEF"},
                "pushName": "Alice Agent",
                "message": {"conversation": "Olá"},
            },
            STABLE,
        )

        assert normalized.direction == "outbound"
        assert normalized.sender_display_name is None
        assert normalized.created_at is None

    def test_protobuf_long_timestamp(self):
        """Timestamps serialized as {low, high} are understood."""
        normalized = parse_whatsapp_upsert(
            {
                "key": {"remoteJid": "5511999990000@s.whatsapp.net", "id": "GHI"},
                "message": {"conversation": "x"},
                "messageTimestamp": {"low": 1717000000, "high": 0, "unsigned": False},
            },
            STABLE,
        )

        assert normalized.created_at == datetime(2024, 5, 29, 16, 26, 40)

    def test_group_dropped(self):
        """Group JIDs produce no message."""
        assert (
            parse_whatsapp_upsert(
                {"key": {"remoteJid": "120363025@g.us", "id": "X"}, "message": {"conversation": "hi"}},
                STABLE,
            )
            is None
        )

    def test_unrecognized_dropped(self):
        """Unrecognized content produces no message."""
        assert (
            parse_whatsapp_upsert(
                {"key": {"remoteJid": "5511999990000@s.whatsapp.net", "id": "X"}, "message": {"senderKeyDistributionMessage": {}}},
                STABLE,
            )
            is None
        )
