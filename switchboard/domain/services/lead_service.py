"""Facebook Lead Ads capture."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.core.signatures import verify_sha256_signature
from switchboard.infrastructure.facebook_client import FacebookGraphClient
from switchboard.persistence.models.campaign import Campaign, CampaignLead
from switchboard.persistence.models.organization import Organization
from switchboard.persistence.repositories.campaign_repository import CampaignRepository
from switchboard.persistence.repositories.contact_repository import ContactRepository

logger = logging.getLogger(__name__)


class InvalidSignatureError(Exception):
    """Raised when a lead webhook batch fails signature verification."""


class LeadFieldExtractor:
    """Best-effort mapping of free-form lead form fields to contact fields.

    A field matches a key when the key is a substring of the field name; keys
    are tried in preference order and the first hit wins.
    """

    NAME_KEYS = ["full_name", "nome", "name", "first_name"]
    EMAIL_KEYS = ["email"]
    PHONE_KEYS = ["phone", "telefone", "celular", "mobile"]

    def extract(self, field_data: list[dict] | None) -> dict[str, str | None]:
        """Extract name, email and phone from Graph API ``field_data``.

        Args:
            field_data: List of {"name": ..., "values": [...]} entries

        Returns:
            Dict with name, email and phone (None when not found)
        """
        fields: list[tuple[str, str]] = []
        for entry in field_data or []:
            name = str(entry.get("name") or "").lower()
            values = entry.get("values") or []
            value = str(values[0]).strip() if values else ""
            if name and value:
                fields.append((name, value))

        email = self._first_match(fields, self.EMAIL_KEYS)
        return {
            "name": self._first_match(fields, self.NAME_KEYS),
            "email": email.lower() if email else None,
            "phone": self._first_match(fields, self.PHONE_KEYS),
        }

    @staticmethod
    def _first_match(fields: list[tuple[str, str]], keys: list[str]) -> str | None:
        for key in keys:
            for name, value in fields:
                if key in name:
                    return value
        return None


def expected_verify_token(organization: Organization, prefix: str) -> str:
    """Token a subscription handshake must present for this organization."""
    return organization.fb_verify_token or f"{prefix}-{organization.id}"


def verify_lead_signature(organization: Organization, raw_body: bytes, signature_header: str | None) -> None:
    """Check the ``X-Hub-Signature-256`` header of a lead batch.

    Raises:
        InvalidSignatureError: If the header is missing or does not match
    """
    if not organization.fb_app_secret:
        raise InvalidSignatureError("Organization has no app secret configured")
    if not verify_sha256_signature(organization.fb_app_secret, raw_body, signature_header):
        raise InvalidSignatureError("Lead webhook signature mismatch")


class LeadService:
    """Turns verified leadgen notifications into contacts and campaign leads."""

    def __init__(
        self,
        session: AsyncSession,
        graph_client: FacebookGraphClient,
        extractor: LeadFieldExtractor | None = None,
    ):
        self.session = session
        self.graph_client = graph_client
        self.extractor = extractor or LeadFieldExtractor()
        self.campaign_repo = CampaignRepository(session)
        self.contact_repo = ContactRepository(session)

    async def process_batch(self, organization_id: str, payload: dict[str, Any]) -> list[CampaignLead]:
        """Process every leadgen change of a verified webhook batch.

        Args:
            organization_id: Organization the webhook URL belongs to
            payload: Parsed webhook body

        Returns:
            Newly recorded leads
        """
        if payload.get("object") != "page":
            logger.info(f"[FB_LEAD] Ignoring webhook object {payload.get('object')!r}")
            return []

        recorded: list[CampaignLead] = []
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                if change.get("field") != "leadgen":
                    continue
                value = change.get("value") or {}
                try:
                    lead = await self.process_change(organization_id, value)
                except Exception:
                    # One bad entry must not sink the rest of the batch
                    logger.error(
                        f"[FB_LEAD] Failed to process lead {value.get('leadgen_id')}",
                        exc_info=True,
                    )
                    await self.session.rollback()
                    continue
                if lead is not None:
                    recorded.append(lead)
        return recorded

    async def process_change(self, organization_id: str, value: dict[str, Any]) -> CampaignLead | None:
        """Process one leadgen change.

        Args:
            organization_id: Organization ID
            value: Change value ({leadgen_id, page_id, form_id, ...})

        Returns:
            Recorded lead, or None if skipped
        """
        lead_id = str(value.get("leadgen_id") or "")
        page_id = str(value.get("page_id") or "")
        form_id = str(value.get("form_id") or "")
        if not lead_id or not page_id:
            logger.warning(f"[FB_LEAD] Change without leadgen_id/page_id: {value}")
            return None

        campaign = await self._match_campaign(organization_id, page_id, form_id)
        if campaign is None:
            logger.info(f"[FB_LEAD] No campaign for page={page_id} form={form_id}")
            return None

        if await self.campaign_repo.lead_exists(lead_id):
            logger.warning(
                f"[DUPLICATE_WEBHOOK] Lead already recorded: {lead_id}",
                extra={"fb_lead_id": lead_id, "campaign_id": campaign.id},
            )
            return None

        if not campaign.fb_page_token:
            logger.warning(f"[FB_LEAD] Campaign {campaign.id} has no page token; cannot fetch lead {lead_id}")
            return None

        lead_data = await self.graph_client.fetch_lead(lead_id, campaign.fb_page_token)
        if lead_data is None:
            return None

        fields = self.extractor.extract(lead_data.get("field_data"))
        contact, created = None, False
        if fields["name"] or fields["email"] or fields["phone"]:
            contact, created = await self.contact_repo.upsert(
                organization_id,
                email=fields["email"],
                defaults={"name": fields["email"] or fields["phone"]},
                name=fields["name"],
                phone=fields["phone"],
            )
        else:
            logger.info(f"[FB_LEAD] Lead {lead_id} carries no name, email or phone; recording without contact")

        lead = await self.campaign_repo.create_lead(
            campaign_id=campaign.id,
            contact_id=contact.id if contact else None,
            fb_lead_id=lead_id,
            form_name=lead_data.get("ad_name"),
            source="facebook",
            raw_data=lead_data,
        )
        logger.info(
            f"[FB_LEAD] Lead {lead_id} recorded for campaign {campaign.id} (new_contact={created})",
            extra={"fb_lead_id": lead_id, "contact_id": lead.contact_id},
        )
        return lead

    async def _match_campaign(self, organization_id: str, page_id: str, form_id: str) -> Campaign | None:
        for campaign in await self.campaign_repo.list_by_page(organization_id, page_id):
            form_ids = [str(f) for f in (campaign.fb_form_ids or [])]
            if form_ids and form_id not in form_ids:
                continue
            return campaign
        return None
