"""
Channel dispatcher for routing notifications to delivery channels.

This module provides the NotificationChannel protocol and the
ChannelDispatcher class, which resolves a channel by name and sends one
message through it. Channel failures never propagate: every send returns
a DeliveryResult.

Example:
    >>> dispatcher = ChannelDispatcher(
    ...     channels={"email": email_channel, "chat": chat_channel},
    ... )
    >>> result = await dispatcher.send("email", ["ops@example.com"], subject, body)
    >>> result.success
    True
"""

from typing import Dict, List, Optional, Protocol, Sequence

import structlog

from erpwatch.models.escalation import DeliveryResult

logger = structlog.get_logger(__name__)


CHANNEL_EMAIL = "email"
CHANNEL_CHAT = "chat"


class NotificationChannel(Protocol):
    """
    Protocol for notification channels.

    Any channel implementation must expose a ``name`` and an async
    ``send`` returning a DeliveryResult.
    """

    name: str

    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> DeliveryResult:
        """Send one message to the given recipients."""
        ...


class ChannelDispatcher:
    """
    Routes notifications to named channels.

    Attributes:
        channels: Dict mapping channel name to channel instance.
    """

    def __init__(self, channels: Optional[Dict[str, NotificationChannel]] = None) -> None:
        """
        Initialize the channel dispatcher.

        Args:
            channels: Dict mapping channel name to channel instance. Only
                enabled channels should be registered.
        """
        self.channels: Dict[str, NotificationChannel] = dict(channels or {})

        logger.info(
            "channel_dispatcher_initialized",
            available_channels=list(self.channels.keys()),
        )

    def register(self, channel: NotificationChannel) -> None:
        """Register a channel under its own name."""
        self.channels[channel.name] = channel

    def has_channel(self, channel_name: str) -> bool:
        """Check whether a channel is registered."""
        return channel_name in self.channels

    @property
    def channel_names(self) -> List[str]:
        return list(self.channels.keys())

    async def close(self) -> None:
        """Release channel resources (HTTP sessions)."""
        for name, channel in self.channels.items():
            close = getattr(channel, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning("channel_close_error", channel=name, error=str(e))

    async def send(
        self,
        channel_name: str,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> DeliveryResult:
        """
        Send a message through one channel.

        Args:
            channel_name: Registered channel name (e.g., "email").
            recipients: Recipient addresses or handles.
            subject: Message subject.
            body: Message body (plain text).

        Returns:
            DeliveryResult: Success, or failure with the error text. An
                unknown channel and a raised exception both produce a
                failed result.
        """
        channel = self.channels.get(channel_name)
        if channel is None:
            logger.warning("channel_not_found", channel=channel_name)
            return DeliveryResult.failed(
                channel_name, f"channel '{channel_name}' not configured"
            )

        try:
            result = await channel.send(list(recipients), subject, body)
        except Exception as e:
            logger.error(
                "channel_dispatch_failed",
                channel=channel_name,
                recipients=len(recipients),
                error=str(e),
            )
            return DeliveryResult.failed(channel_name, str(e) or type(e).__name__)

        if result.success:
            logger.debug(
                "notification_dispatched",
                channel=channel_name,
                recipients=len(recipients),
            )
        else:
            logger.warning(
                "notification_failed",
                channel=channel_name,
                error=result.error,
            )
        return result
