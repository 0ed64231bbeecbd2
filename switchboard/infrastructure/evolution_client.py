"""Evolution API (WhatsApp gateway) client.

Agent replies go out through sendText. Tag changes are mirrored to WhatsApp
Business labels on a best-effort basis, and the history and label imports
read chats and labels back from the instance.
"""

import logging

import httpx

from switchboard.settings import settings

logger = logging.getLogger(__name__)


class EvolutionClient:
    """Thin async client for one Evolution API deployment per call."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.outbound_http_timeout_seconds

    @staticmethod
    def _headers(api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        return headers

    async def find_labels(self, base_url: str, api_key: str | None, instance: str) -> list[dict] | None:
        """List the WhatsApp labels of an instance.

        Args:
            base_url: Gateway base URL
            api_key: Gateway API key
            instance: Instance name

        Returns:
            Label dicts ({id, name, color}), or None on failure
        """
        url = f"{base_url.rstrip('/')}/label/findLabels/{instance}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, headers=self._headers(api_key))
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"[LABEL_SYNC] findLabels returned HTTP {e.response.status_code} for {instance}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[LABEL_SYNC] findLabels failed for {instance}: {e}")
            return None
        return data if isinstance(data, list) else []

    async def handle_label(
        self,
        base_url: str,
        api_key: str | None,
        instance: str,
        number: str,
        label_id: str,
        action: str,
    ) -> bool:
        """Add or remove a label on a chat.

        Args:
            base_url: Gateway base URL
            api_key: Gateway API key
            instance: Instance name
            number: Bare phone number (JID without the server suffix)
            label_id: Gateway label id
            action: "add" or "remove"

        Returns:
            True if the gateway accepted the change
        """
        url = f"{base_url.rstrip('/')}/label/handleLabel/{instance}"
        payload = {"number": number, "labelId": label_id, "action": action}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers(api_key))
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"[LABEL_SYNC] handleLabel returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
            return False
        except httpx.HTTPError as e:
            logger.warning(f"[LABEL_SYNC] handleLabel failed for {instance}: {e}")
            return False
        return True

    async def send_text(
        self,
        base_url: str,
        api_key: str | None,
        instance: str,
        number: str,
        text: str,
    ) -> dict | None:
        """Send a text message to a WhatsApp number.

        Args:
            base_url: Gateway base URL
            api_key: Gateway API key
            instance: Instance name
            number: Bare phone number (JID without the server suffix)
            text: Message body

        Returns:
            Gateway response (carries ``key.id``), or None on failure
        """
        url = f"{base_url.rstrip('/')}/message/sendText/{instance}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    url, json={"number": number, "text": text}, headers=self._headers(api_key)
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[WA_SEND] sendText returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[WA_SEND] sendText failed for {instance}: {e}")
            return None
        return data if isinstance(data, dict) else {}

    async def find_chats(self, base_url: str, api_key: str | None, instance: str) -> list[dict] | None:
        """List the chats of an instance, each with its labels.

        Returns:
            Chat dicts, or None on failure
        """
        url = f"{base_url.rstrip('/')}/chat/findChats/{instance}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json={}, headers=self._headers(api_key))
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"[WA_IMPORT] findChats returned HTTP {e.response.status_code} for {instance}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[WA_IMPORT] findChats failed for {instance}: {e}")
            return None
        return [chat for chat in data if isinstance(chat, dict)] if isinstance(data, list) else []

    async def find_messages(
        self,
        base_url: str,
        api_key: str | None,
        instance: str,
        remote_jid: str,
        limit: int,
    ) -> list[dict] | None:
        """Fetch stored messages of one chat.

        The gateway answers with a bare list, ``{messages: [...]}``,
        ``{messages: {records: [...]}}`` or ``{records: [...]}`` depending on
        its version; all are flattened to a list.

        Args:
            base_url: Gateway base URL
            api_key: Gateway API key
            instance: Instance name
            remote_jid: Chat JID
            limit: Maximum messages to return

        Returns:
            Message dicts in the MESSAGES_UPSERT item shape, or None on failure
        """
        url = f"{base_url.rstrip('/')}/chat/findMessages/{instance}"
        payload = {"where": {"key": {"remoteJid": remote_jid}}, "limit": limit}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers(api_key))
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"[WA_IMPORT] findMessages returned HTTP {e.response.status_code} for {remote_jid}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[WA_IMPORT] findMessages failed for {remote_jid}: {e}")
            return None

        if isinstance(data, dict):
            messages = data.get("messages")
            if isinstance(messages, dict):
                messages = messages.get("records")
            data = messages if messages is not None else data.get("records")
        if not isinstance(data, list):
            return []
        return [message for message in data if isinstance(message, dict)]
