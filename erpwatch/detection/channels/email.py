"""
SMTP email notification channel.

Builds a multipart (plain text + HTML) message and sends it with smtplib.
The blocking SMTP conversation runs in a worker thread so the event loop
is never blocked.

Example:
    >>> channel = EmailChannel(
    ...     smtp_host="smtp.example.com",
    ...     sender="erp-monitor@example.com",
    ... )
    >>> result = await channel.send(["ops@example.com"], subject, body)
"""

import asyncio
import html
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Sequence

import structlog

from erpwatch.config.models import EmailChannelConfig
from erpwatch.detection.dispatcher import CHANNEL_EMAIL
from erpwatch.models.escalation import DeliveryResult

logger = structlog.get_logger(__name__)


class EmailChannel:
    """
    Email channel over SMTP with optional STARTTLS and login.

    Attributes:
        name: Channel name ("email").
        smtp_host: SMTP server host.
        smtp_port: SMTP server port.
        sender: From address.
    """

    name = CHANNEL_EMAIL

    def __init__(
        self,
        smtp_host: str,
        sender: str,
        smtp_port: int = 587,
        use_tls: bool = True,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender_name: str = "ERP Monitor",
        timeout_seconds: int = 10,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.use_tls = use_tls
        self.username = username
        self.password = password
        self.sender = sender
        self.sender_name = sender_name
        self.timeout_seconds = timeout_seconds

        logger.info(
            "email_channel_initialized",
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            use_tls=use_tls,
        )

    async def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> DeliveryResult:
        """
        Send an email to all recipients.

        Returns:
            DeliveryResult: Failed with the SMTP error text on any SMTP or
                socket error.
        """
        if not recipients:
            return DeliveryResult.failed(self.name, "no recipients")

        message = self.build_message(recipients, subject, body)
        try:
            await asyncio.to_thread(self._deliver, message, list(recipients))
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "email_send_failed",
                smtp_host=self.smtp_host,
                recipients=len(recipients),
                error=str(e),
            )
            return DeliveryResult.failed(self.name, f"SMTP error: {e}")

        logger.info("email_sent", recipients=len(recipients), subject=subject)
        return DeliveryResult.ok(self.name)

    def build_message(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> MIMEMultipart:
        """Build the multipart/alternative message."""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.sender_name, self.sender))
        message["To"] = ", ".join(recipients)

        html_body = (
            "<html><body>"
            f"<h2>{html.escape(subject)}</h2>"
            f"<pre style=\"font-family: Consolas, monospace;\">{html.escape(body)}</pre>"
            "</body></html>"
        )
        message.attach(MIMEText(body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def _deliver(self, message: MIMEMultipart, recipients: Sequence[str]) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message, from_addr=self.sender, to_addrs=list(recipients))


def create_email_channel(config: EmailChannelConfig) -> EmailChannel:
    """
    Create an EmailChannel from configuration.

    Raises:
        ValueError: If smtp_host or sender is missing.
    """
    if not config.smtp_host or not config.sender:
        raise ValueError("email channel requires smtp_host and sender")
    return EmailChannel(
        smtp_host=config.smtp_host,
        sender=config.sender,
        smtp_port=config.smtp_port,
        use_tls=config.use_tls,
        username=config.username,
        password=config.password,
        sender_name=config.sender_name,
        timeout_seconds=config.timeout_seconds,
    )
