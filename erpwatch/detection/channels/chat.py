"""
Chat webhook notification channel.

Posts an adaptive-card message to an incoming webhook (Teams-style) using
aiohttp. Any non-2xx response is a failed delivery.

Example:
    >>> channel = ChatChannel(webhook_url="https://example.webhook.office.com/...")
    >>> result = await channel.send(["#erp-oncall"], subject, body)
    >>> await channel.close()
"""

import asyncio
from typing import Any, Dict, Optional, Sequence

import aiohttp
import structlog

from erpwatch.config.models import ChatChannelConfig
from erpwatch.detection.dispatcher import CHANNEL_CHAT
from erpwatch.models.escalation import DeliveryResult

logger = structlog.get_logger(__name__)


ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"


def build_card_payload(
    subject: str,
    body: str,
    recipients: Sequence[str] = (),
) -> Dict[str, Any]:
    """
    Build the webhook payload for one message.

    Recipients are listed as a trailing text block; the webhook itself
    decides the target channel.
    """
    blocks = [
        {
            "type": "TextBlock",
            "text": subject,
            "weight": "Bolder",
            "size": "Large",
            "color": "Attention",
        },
        {
            "type": "TextBlock",
            "text": body,
            "wrap": True,
            "spacing": "Medium",
        },
    ]
    if recipients:
        blocks.append(
            {
                "type": "TextBlock",
                "text": "Notify: " + ", ".join(recipients),
                "isSubtle": True,
                "wrap": True,
            }
        )
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": "application/vnd.microsoft.card.adaptive",
                "content": {
                    "type": "AdaptiveCard",
                    "version": "1.4",
                    "$schema": ADAPTIVE_CARD_SCHEMA,
                    "body": blocks,
                },
            }
        ],
    }


class ChatChannel:
    """
    Webhook chat channel.

    Attributes:
        name: Channel name ("chat").
        webhook_url: Incoming webhook URL.
        timeout_seconds: Request timeout.
    """

    name = CHANNEL_CHAT

    def __init__(self, webhook_url: str, timeout_seconds: int = 10) -> None:
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info("chat_channel_initialized", timeout_seconds=timeout_seconds)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is created."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "erpwatch/1.0"},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("chat_channel_session_closed")

    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> DeliveryResult:
        """
        Post a message to the webhook.

        Returns:
            DeliveryResult: Failed on a non-2xx status, client error or timeout.
        """
        payload = build_card_payload(subject, body, recipients)
        session = await self._ensure_session()

        try:
            async with session.post(self.webhook_url, json=payload) as response:
                if response.status < 200 or response.status >= 300:
                    error_text = await response.text()
                    logger.error(
                        "chat_send_failed",
                        status=response.status,
                        error=error_text[:200],
                    )
                    return DeliveryResult.failed(
                        self.name, f"webhook returned HTTP {response.status}"
                    )
        except aiohttp.ClientError as e:
            logger.error("chat_client_error", error=str(e))
            return DeliveryResult.failed(self.name, f"webhook request failed: {e}")
        except asyncio.TimeoutError:
            logger.error("chat_timeout", timeout=self.timeout_seconds)
            return DeliveryResult.failed(
                self.name, f"webhook timeout after {self.timeout_seconds}s"
            )

        logger.info("chat_message_sent", subject=subject)
        return DeliveryResult.ok(self.name)


def create_chat_channel(config: ChatChannelConfig) -> ChatChannel:
    """
    Create a ChatChannel from configuration.

    Raises:
        ValueError: If webhook_url is missing.
    """
    if not config.webhook_url:
        raise ValueError("chat channel requires webhook_url")
    return ChatChannel(
        webhook_url=config.webhook_url,
        timeout_seconds=config.timeout_seconds,
    )
