"""
Outbound WhatsApp delivery through the Graph API

One text reply per inbound message. Delivery is best-effort: errors are
logged and reported as False, never raised into the webhook handler.
"""

import logging
from typing import Optional

import httpx

from .config import TurnosConfig

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com/v22.0"


class WhatsAppSender:
    """Sends text messages from the configured business phone"""

    def __init__(
        self,
        token: Optional[str],
        phone_id: Optional[str],
        allowed_to: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.phone_id = phone_id
        self.allowed_to = allowed_to
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: TurnosConfig) -> "WhatsAppSender":
        return cls(config.whatsapp_token, config.phone_id, config.allowed_to, config.http_timeout)

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_id)

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self.phone_id}/messages"

    def resolve_recipient(self, sender: Optional[str]) -> Optional[str]:
        """The fixed override recipient when set, else the message sender"""
        return self.allowed_to or sender

    async def send(self, to: Optional[str], text: str) -> bool:
        """
        Send a text message.

        Args:
            to: Recipient phone number (E.164 digits)
            text: Message body

        Returns:
            True if the Graph API accepted the message
        """
        if not self.configured:
            logger.warning("️ WhatsApp sender not configured; reply dropped")
            return False
        if not to:
            logger.warning("️ No recipient for reply; reply dropped")
            return False

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "text": {"body": text},
        }
        try:
            response = await self.client.post(
                self.messages_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"️ WhatsApp send rejected ({e.response.status_code}): {e.response.text[:200]}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"️ WhatsApp send failed: {e}")
            return False

        logger.info(f" Reply sent to {to}")
        return True

    async def close(self):
        await self.client.aclose()
