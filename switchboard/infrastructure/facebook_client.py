"""Facebook Graph API client for Lead Ads."""

import logging

import httpx

from switchboard.settings import settings

logger = logging.getLogger(__name__)

LEAD_FIELDS = "field_data,created_time,ad_name,form_id"


class FacebookGraphClient:
    """Fetches lead details referenced by leadgen webhook notifications."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.facebook_graph_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.outbound_http_timeout_seconds

    async def fetch_lead(self, lead_id: str, access_token: str) -> dict | None:
        """Fetch one lead's field data.

        Args:
            lead_id: Leadgen id from the webhook change
            access_token: Page access token of the owning campaign

        Returns:
            Lead dict ({field_data, created_time, ad_name, form_id}) or None on failure
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(
                    f"{self.base_url}/{lead_id}",
                    params={"access_token": access_token, "fields": LEAD_FIELDS},
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.TimeoutException:
            logger.warning(f"[FB_LEAD] Timeout fetching lead {lead_id}")
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"[FB_LEAD] HTTP {e.response.status_code} fetching lead {lead_id}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[FB_LEAD] Failed to fetch lead {lead_id}: {e}")
            return None
