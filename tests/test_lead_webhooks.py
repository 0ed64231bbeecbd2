"""Tests for Facebook Lead Ads capture."""

import json

import pytest
from sqlalchemy import select

from switchboard.core.signatures import compute_signature
from switchboard.domain.services.lead_service import LeadFieldExtractor
from switchboard.persistence.models.campaign import CampaignLead
from switchboard.persistence.models.contact import Contact
from switchboard.persistence.repositories.campaign_repository import CampaignRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository

LEAD_DATA = {
    "id": "L-1001",
    "ad_name": "Spring promo",
    "field_data": [
        {"name": "full_name", "values": ["Ana Souza"]},
        {"name": "email", "values": ["Ana@Example.test"]},
        {"name": "phone_number", "values": ["+5511977776666"]},
    ],
}


def lead_batch(leadgen_id="L-1001", page_id="page-1", form_id="form-1") -> bytes:
    return json.dumps(
        {
            "object": "page",
            "entry": [
                {
                    "id": page_id,
                    "changes": [
                        {
                            "field": "leadgen",
                            "value": {"leadgen_id": leadgen_id, "page_id": page_id, "form_id": form_id},
                        }
                    ],
                }
            ],
        }
    ).encode()


def signed(body: bytes, secret: str = "fb-app-secret") -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Hub-Signature-256": f"sha256={compute_signature(secret, body)}",
    }


@pytest.fixture
async def campaign(db_session, organization):
    return await CampaignRepository(db_session).create(
        organization.id,
        name="Spring",
        fb_page_id="page-1",
        fb_page_token="page-token",
        fb_form_ids=[],
    )


class TestSubscriptionHandshake:
    """GET verification."""

    @pytest.mark.asyncio
    async def test_default_token_echoes_challenge(self, client, organization):
        response = await client.get(
            f"/campaigns/facebook/webhook/{organization.id}",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": f"switchboard-fb-{organization.id}",
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    @pytest.mark.asyncio
    async def test_wrong_token_forbidden(self, client, organization):
        response = await client.get(
            f"/campaigns/facebook/webhook/{organization.id}",
            params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_custom_token(self, client, db_session, organization):
        """An organization-specific verify token replaces the derived one."""
        organization.fb_verify_token = "my-own-token"
        await db_session.commit()

        response = await client.get(
            f"/campaigns/facebook/webhook/{organization.id}",
            params={"hub.mode": "subscribe", "hub.verify_token": "my-own-token", "hub.challenge": "42"},
        )

        assert response.status_code == 200
        assert response.text == "42"

    @pytest.mark.asyncio
    async def test_unknown_organization_forbidden(self, client):
        response = await client.get(
            "/campaigns/facebook/webhook/missing",
            params={"hub.mode": "subscribe", "hub.verify_token": "switchboard-fb-missing", "hub.challenge": "1"},
        )

        assert response.status_code == 403


class TestLeadDelivery:
    """POST lead batches."""

    @pytest.mark.asyncio
    async def test_signed_batch_records_lead(
        self, client, db_session, organization, campaign, graph_client, task_runner
    ):
        """A verified batch creates the contact and the campaign lead."""
        graph_client.fetch_lead.return_value = LEAD_DATA
        body = lead_batch()

        response = await client.post(
            f"/campaigns/facebook/webhook/{organization.id}", content=body, headers=signed(body)
        )
        await task_runner.drain()

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        graph_client.fetch_lead.assert_awaited_once_with("L-1001", "page-token")

        lead = (await db_session.execute(select(CampaignLead))).scalar_one()
        assert lead.campaign_id == campaign.id
        assert lead.fb_lead_id == "L-1001"
        assert lead.form_name == "Spring promo"

        contact = (await db_session.execute(select(Contact).where(Contact.id == lead.contact_id))).scalar_one()
        assert contact.organization_id == organization.id
        assert contact.name == "Ana Souza"
        assert contact.email == "ana@example.test"
        assert contact.phone == "+5511977776666"

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, client, db_session, organization, campaign, graph_client, task_runner):
        """A forged batch gets 403 and has no side effects."""
        body = lead_batch()

        response = await client.post(
            f"/campaigns/facebook/webhook/{organization.id}",
            content=body,
            headers=signed(body, secret="not-the-secret"),
        )
        await task_runner.drain()

        assert response.status_code == 403
        graph_client.fetch_lead.assert_not_awaited()
        assert (await db_session.execute(select(CampaignLead))).first() is None

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, client, organization, campaign):
        response = await client.post(
            f"/campaigns/facebook/webhook/{organization.id}",
            content=lead_batch(),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_redelivered_lead_recorded_once(
        self, client, db_session, organization, campaign, graph_client, task_runner
    ):
        """The same leadgen id delivered twice produces a single lead."""
        graph_client.fetch_lead.return_value = LEAD_DATA
        body = lead_batch()
        url = f"/campaigns/facebook/webhook/{organization.id}"

        await client.post(url, content=body, headers=signed(body))
        await task_runner.drain()
        await client.post(url, content=body, headers=signed(body))
        await task_runner.drain()

        leads = (await db_session.execute(select(CampaignLead))).scalars().all()
        assert len(leads) == 1
        assert graph_client.fetch_lead.await_count == 1

    @pytest.mark.asyncio
    async def test_existing_contact_matched_by_email(
        self, client, db_session, organization, campaign, graph_client, task_runner
    ):
        """A lead for a known email updates that contact instead of creating one."""
        existing = await ContactRepository(db_session).create(organization.id, email="ana@example.test")
        graph_client.fetch_lead.return_value = LEAD_DATA
        body = lead_batch()

        await client.post(f"/campaigns/facebook/webhook/{organization.id}", content=body, headers=signed(body))
        await task_runner.drain()

        contacts = (await db_session.execute(select(Contact))).scalars().all()
        assert [c.id for c in contacts] == [existing.id]
        await db_session.refresh(existing)
        assert existing.name == "Ana Souza"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field_data, expected_name",
        [
            ([{"name": "email", "values": ["Ana@Example.test"]}], "ana@example.test"),
            ([{"name": "phone_number", "values": ["+5511977776666"]}], "+5511977776666"),
        ],
    )
    async def test_nameless_lead_named_after_email_or_phone(
        self, client, db_session, organization, campaign, graph_client, task_runner, field_data, expected_name
    ):
        graph_client.fetch_lead.return_value = {"id": "L-1001", "field_data": field_data}
        body = lead_batch()

        await client.post(f"/campaigns/facebook/webhook/{organization.id}", content=body, headers=signed(body))
        await task_runner.drain()

        lead = (await db_session.execute(select(CampaignLead))).scalar_one()
        contact = (await db_session.execute(select(Contact).where(Contact.id == lead.contact_id))).scalar_one()
        assert contact.name == expected_name

    @pytest.mark.asyncio
    async def test_lead_without_identity_has_no_contact(
        self, client, db_session, organization, campaign, graph_client, task_runner
    ):
        """A form with no name, email or phone is recorded without creating a contact."""
        graph_client.fetch_lead.return_value = {
            "id": "L-1001",
            "field_data": [{"name": "city", "values": ["São Paulo"]}],
        }
        body = lead_batch()

        await client.post(f"/campaigns/facebook/webhook/{organization.id}", content=body, headers=signed(body))
        await task_runner.drain()

        lead = (await db_session.execute(select(CampaignLead))).scalar_one()
        assert lead.fb_lead_id == "L-1001"
        assert lead.contact_id is None
        assert (await db_session.execute(select(Contact))).first() is None

    @pytest.mark.asyncio
    async def test_form_filter(self, client, db_session, organization, graph_client, task_runner):
        """Campaigns listing form ids ignore leads from other forms."""
        await CampaignRepository(db_session).create(
            organization.id, name="Form 9 only", fb_page_id="page-1", fb_page_token="t", fb_form_ids=["form-9"]
        )
        body = lead_batch(form_id="form-1")

        response = await client.post(
            f"/campaigns/facebook/webhook/{organization.id}", content=body, headers=signed(body)
        )
        await task_runner.drain()

        assert response.status_code == 200
        graph_client.fetch_lead.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_organization_acknowledged(self, client, graph_client, task_runner):
        body = lead_batch()

        response = await client.post("/campaigns/facebook/webhook/missing", content=body, headers=signed(body))
        await task_runner.drain()

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        graph_client.fetch_lead.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_organization_without_secret_acknowledged(
        self, client, other_organization, graph_client, task_runner
    ):
        """Without a secret nothing can be verified, so nothing is processed."""
        body = lead_batch()

        response = await client.post(
            f"/campaigns/facebook/webhook/{other_organization.id}", content=body, headers=signed(body)
        )
        await task_runner.drain()

        assert response.status_code == 200
        graph_client.fetch_lead.assert_not_awaited()


class TestLeadFieldExtractor:
    """Form field heuristics."""

    def test_portuguese_field_names(self):
        fields = LeadFieldExtractor().extract(
            [
                {"name": "nome_completo", "values": ["João Lima"]},
                {"name": "e-mail_email", "values": ["JOAO@x.test"]},
                {"name": "telefone", "values": ["11 98888-7777"]},
            ]
        )

        assert fields == {"name": "João Lima", "email": "joao@x.test", "phone": "11 98888-7777"}

    def test_key_preference_beats_field_order(self):
        """full_name is preferred over first_name wherever it appears."""
        fields = LeadFieldExtractor().extract(
            [
                {"name": "first_name", "values": ["Ana"]},
                {"name": "full_name", "values": ["Ana Souza"]},
            ]
        )

        assert fields["name"] == "Ana Souza"

    def test_missing_and_empty_values(self):
        fields = LeadFieldExtractor().extract([{"name": "email", "values": []}, {"name": "city", "values": ["SP"]}])

        assert fields == {"name": None, "email": None, "phone": None}

    def test_no_field_data(self):
        assert LeadFieldExtractor().extract(None) == {"name": None, "email": None, "phone": None}
