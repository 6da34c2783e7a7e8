"""
Notification channels.

Components:
    email: SMTP email with text and HTML parts
    chat: Incoming-webhook chat messages via aiohttp

Example:
    >>> from erpwatch.detection.channels import create_dispatcher
    >>> dispatcher = create_dispatcher(config.channels)
    >>> await dispatcher.send("email", ["ops@example.com"], subject, body)
"""

from typing import Dict, Optional

import structlog

from erpwatch.config.models import ChannelsConfig
from erpwatch.detection.channels.chat import (
    ChatChannel,
    build_card_payload,
    create_chat_channel,
)
from erpwatch.detection.channels.email import (
    EmailChannel,
    create_email_channel,
)
from erpwatch.detection.dispatcher import ChannelDispatcher, NotificationChannel

logger = structlog.get_logger(__name__)


def create_dispatcher(config: Optional[ChannelsConfig] = None) -> ChannelDispatcher:
    """
    Create a ChannelDispatcher with every enabled channel registered.

    Args:
        config: Channel configuration; None registers no channels.

    Returns:
        ChannelDispatcher: Dispatcher with "email" and/or "chat".
    """
    channels: Dict[str, NotificationChannel] = {}
    if config is not None:
        if config.email.enabled:
            channels["email"] = create_email_channel(config.email)
        if config.chat.enabled:
            channels["chat"] = create_chat_channel(config.chat)
    if not channels:
        logger.warning("no_notification_channels_enabled")
    return ChannelDispatcher(channels=channels)


__all__ = [
    # Chat
    "ChatChannel",
    "build_card_payload",
    "create_chat_channel",
    # Email
    "EmailChannel",
    "create_email_channel",
    # Dispatcher
    "create_dispatcher",
]
