"""Tests for WhatsApp label and history imports."""

import pytest
from sqlalchemy import func, select

from switchboard.domain.services.ingestion_service import MessageIngestionPipeline
from switchboard.domain.services.whatsapp_import_service import WhatsAppImportService, chat_jid
from switchboard.domain.services.whatsapp_outbound_service import ChannelNotConnectedError, GatewayError
from switchboard.persistence.models.channel import ChannelKind, ChannelStatus
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.models.message import Message
from switchboard.persistence.models.tag import DEFAULT_TAG_COLOR, Tag
from switchboard.persistence.repositories.channel_repository import ChannelRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository
from switchboard.persistence.repositories.tag_repository import TagRepository
from tests.conftest import WA_INSTANCE

JID = "5511999990000@s.whatsapp.net"
GROUP_JID = "120363025246125486@g.us"


def stored_message(message_id, text="oi", from_me=False, jid=JID, timestamp=1717000000):
    """One findMessages record."""
    return {
        "key": {"remoteJid": jid, "fromMe": from_me, "id": message_id},
        "pushName": "Bruno Silva",
        "message": {"conversation": text},
        "messageTimestamp": timestamp,
    }


@pytest.fixture
def pipeline(db_session, event_bus, task_runner, session_factory):
    return MessageIngestionPipeline(
        db_session,
        event_bus,
        task_runner=task_runner,
        session_factory=session_factory,
    )


@pytest.fixture
def service(db_session, pipeline, evolution_client):
    return WhatsAppImportService(db_session, pipeline, evolution_client)


@pytest.fixture
async def wa_contact(db_session, organization, whatsapp_channel):
    return await ContactRepository(db_session).create(
        organization.id,
        channel_id=whatsapp_channel.id,
        external_id=JID,
        name="Bruno",
        phone="+5511999990000",
        conv_status="resolved",
    )


async def _count(db_session, model) -> int:
    result = await db_session.execute(select(func.count(model.id)))
    return result.scalar_one()


class TestChatJid:
    """Chat identity across gateway versions."""

    def test_remote_jid(self):
        assert chat_jid({"remoteJid": JID}) == JID

    def test_legacy_id(self):
        assert chat_jid({"id": {"remote": JID}}) == JID

    def test_missing(self):
        assert chat_jid({"id": "abc"}) == ""


class TestLabelImport:
    """Gateway labels become tags."""

    @pytest.mark.asyncio
    async def test_creates_missing_tags(self, db_session, organization, whatsapp_channel, service, evolution_client):
        evolution_client.find_labels.return_value = [
            {"id": "1", "name": "Novo cliente", "color": 1},
            {"id": "2", "name": "Pago", "colorHex": "#00a884"},
            {"id": "3", "name": "  "},
        ]

        result = await service.import_labels(whatsapp_channel)

        assert (result.created, result.skipped, result.total) == (2, 1, 3)
        evolution_client.find_labels.assert_awaited_once_with("http://evolution.test", "evo-key", WA_INSTANCE)
        paid = await TagRepository(db_session).find_for_label(organization.id, "2", None)
        assert paid.name == "Pago"
        assert paid.color == "#00a884"

    @pytest.mark.asyncio
    async def test_existing_tag_gets_label_id(self, db_session, organization, whatsapp_channel, service, evolution_client):
        """A tag matched by name is kept and records the label id it mirrors."""
        tag = await TagRepository(db_session).create(organization.id, name="VIP", color="#111111")
        evolution_client.find_labels.return_value = [{"id": "7", "name": "vip"}]

        result = await service.import_labels(whatsapp_channel)

        assert (result.created, result.skipped) == (0, 1)
        await db_session.refresh(tag)
        assert tag.wa_label_id == "7"
        assert tag.color == "#111111"
        assert await _count(db_session, Tag) == 1

    @pytest.mark.asyncio
    async def test_uncolored_label_uses_default(self, db_session, organization, whatsapp_channel, service, evolution_client):
        evolution_client.find_labels.return_value = [{"id": "9", "name": "Retorno"}]

        await service.import_labels(whatsapp_channel)

        tag = await TagRepository(db_session).find_for_label(organization.id, "9", None)
        assert tag.color == DEFAULT_TAG_COLOR

    @pytest.mark.asyncio
    async def test_gateway_failure(self, whatsapp_channel, service, evolution_client):
        evolution_client.find_labels.return_value = None

        with pytest.raises(GatewayError):
            await service.import_labels(whatsapp_channel)

    @pytest.mark.asyncio
    async def test_disconnected_channel(self, db_session, whatsapp_channel, service, evolution_client):
        whatsapp_channel.status = ChannelStatus.DISCONNECTED
        await db_session.commit()

        with pytest.raises(ChannelNotConnectedError):
            await service.import_labels(whatsapp_channel)
        evolution_client.find_labels.assert_not_awaited()


class TestLabelContactSync:
    """Chat labels become contact tags."""

    @pytest.mark.asyncio
    async def test_links_known_contacts(
        self, db_session, organization, whatsapp_channel, wa_contact, service, evolution_client
    ):
        tag_repo = TagRepository(db_session)
        vip = await tag_repo.create(organization.id, name="VIP", wa_label_id="7")
        evolution_client.find_chats.return_value = [
            {"remoteJid": JID, "labels": [{"id": "7", "name": "VIP"}, {"id": "8", "name": "Unmirrored"}]},
            {"remoteJid": "5511888880000@s.whatsapp.net", "labels": [{"id": "7", "name": "VIP"}]},
            {"remoteJid": GROUP_JID, "labels": [{"id": "7", "name": "VIP"}]},
        ]

        assert await service.sync_label_contacts(whatsapp_channel) == 1
        assert await tag_repo.list_tag_ids_for_contact(wa_contact.id) == [vip.id]

        # Links already present are not counted again
        assert await service.sync_label_contacts(whatsapp_channel) == 0

    @pytest.mark.asyncio
    async def test_gateway_failure(self, whatsapp_channel, service, evolution_client):
        evolution_client.find_chats.return_value = None

        with pytest.raises(GatewayError):
            await service.sync_label_contacts(whatsapp_channel)


class TestHistorySync:
    """Stored chat history through the ingestion pipeline."""

    @pytest.mark.asyncio
    async def test_imports_individual_chats(
        self, db_session, organization, whatsapp_channel, service, evolution_client, collected, task_runner
    ):
        """New contacts and messages are stored quietly; group chats are skipped."""
        events = collected(organization.id)
        evolution_client.find_chats.return_value = [{"remoteJid": JID}, {"remoteJid": GROUP_JID}]
        evolution_client.find_messages.return_value = [
            stored_message("H1", "oi", timestamp=1717000000),
            stored_message("H2", "tudo bem?", from_me=True, timestamp=1717000060),
            stored_message("H3", "", timestamp=1717000120),
        ]

        result = await service.sync_history(whatsapp_channel, limit=50)

        assert (result.chats, result.imported_messages, result.imported_contacts) == (1, 2, 1)
        evolution_client.find_messages.assert_awaited_once_with(
            "http://evolution.test", "evo-key", WA_INSTANCE, JID, 50
        )
        contact = await ContactRepository(db_session).find_by_external_id(organization.id, JID)
        assert contact.name == "Bruno Silva"
        assert contact.assigned_to_id is None
        await task_runner.drain()
        assert events == []

    @pytest.mark.asyncio
    async def test_rerun_deduplicates(self, db_session, whatsapp_channel, service, evolution_client):
        evolution_client.find_chats.return_value = [{"remoteJid": JID}]
        evolution_client.find_messages.return_value = [stored_message("H1"), stored_message("H2", "e aí")]

        await service.sync_history(whatsapp_channel)
        again = await service.sync_history(whatsapp_channel)

        assert (again.imported_messages, again.imported_contacts) == (0, 0)
        assert await _count(db_session, Message) == 2
        assert await _count(db_session, Contact) == 1

    @pytest.mark.asyncio
    async def test_existing_contact_untouched(self, db_session, whatsapp_channel, wa_contact, service, evolution_client):
        """Old messages neither rename nor reopen the conversation."""
        evolution_client.find_chats.return_value = [{"remoteJid": JID}]
        evolution_client.find_messages.return_value = [stored_message("H1")]

        result = await service.sync_history(whatsapp_channel)

        assert (result.imported_messages, result.imported_contacts) == (1, 0)
        await db_session.refresh(wa_contact)
        assert wa_contact.name == "Bruno"
        assert wa_contact.conv_status == "resolved"

    @pytest.mark.asyncio
    async def test_unreadable_chat_skipped(self, db_session, whatsapp_channel, service, evolution_client):
        evolution_client.find_chats.return_value = [{"remoteJid": JID}]
        evolution_client.find_messages.return_value = None

        result = await service.sync_history(whatsapp_channel)

        assert (result.chats, result.imported_messages) == (0, 0)
        assert await _count(db_session, Message) == 0


class TestImportRoutes:
    """HTTP surface of the imports."""

    @pytest.mark.asyncio
    async def test_import_labels(self, client, auth_headers, whatsapp_channel, evolution_client):
        evolution_client.find_labels.return_value = [{"id": "1", "name": "Novo cliente"}]

        response = await client.post(f"/channels/{whatsapp_channel.id}/whatsapp/import-labels", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"created": 1, "skipped": 0, "total": 1}

    @pytest.mark.asyncio
    async def test_sync_label_contacts(self, client, auth_headers, whatsapp_channel, evolution_client):
        evolution_client.find_chats.return_value = []

        response = await client.post(
            f"/channels/{whatsapp_channel.id}/whatsapp/sync-label-contacts", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"synced": 0}

    @pytest.mark.asyncio
    async def test_sync_history(self, client, auth_headers, whatsapp_channel, evolution_client):
        evolution_client.find_chats.return_value = [{"remoteJid": JID}]
        evolution_client.find_messages.return_value = [stored_message("H1")]

        response = await client.post(
            f"/channels/{whatsapp_channel.id}/whatsapp/sync-history", headers=auth_headers, json={"limit": 20}
        )

        assert response.status_code == 200
        assert response.json() == {"chats": 1, "importedMessages": 1, "importedContacts": 1}
        assert evolution_client.find_messages.await_args.args[-1] == 20

    @pytest.mark.asyncio
    async def test_sync_history_limit_bounds(self, client, auth_headers, whatsapp_channel):
        response = await client.post(
            f"/channels/{whatsapp_channel.id}/whatsapp/sync-history", headers=auth_headers, json={"limit": 0}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_disconnected_channel(self, client, db_session, auth_headers, whatsapp_channel):
        whatsapp_channel.status = ChannelStatus.DISCONNECTED
        await db_session.commit()

        response = await client.post(f"/channels/{whatsapp_channel.id}/whatsapp/import-labels", headers=auth_headers)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_gateway_failure(self, client, auth_headers, whatsapp_channel, evolution_client):
        evolution_client.find_chats.return_value = None

        response = await client.post(f"/channels/{whatsapp_channel.id}/whatsapp/sync-history", headers=auth_headers)

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_widget_channel_not_found(self, client, auth_headers, widget_channel):
        response = await client.post(f"/channels/{widget_channel.id}/whatsapp/import-labels", headers=auth_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_channel_of_other_organization(self, client, db_session, auth_headers, other_organization):
        foreign = await ChannelRepository(db_session).create(
            other_organization.id,
            name="WhatsApp",
            kind=ChannelKind.WHATSAPP,
            status=ChannelStatus.CONNECTED,
            external_instance_id="globex-whatsapp",
        )

        response = await client.post(f"/channels/{foreign.id}/whatsapp/import-labels", headers=auth_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_membership(self, client, whatsapp_channel):
        response = await client.post(f"/channels/{whatsapp_channel.id}/whatsapp/import-labels")

        assert response.status_code == 401
