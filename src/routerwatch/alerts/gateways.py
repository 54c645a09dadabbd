"""Outbound alert delivery: email and webhooks.

Gateways never retry. They return False or raise on failure and the
NotificationSink logs the outcome.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

import httpx

from routerwatch.alerts.models import CATEGORY_CONFIG, Alert

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """An alert could not be handed to its delivery channel."""


def _format_key(key: str) -> str:
    """Turn a details key like mac_address into "Mac Address"."""
    words = key.replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def render_alert_text(alert: Alert) -> str:
    """Plain-text email body for an alert."""
    lines = [
        f"{alert.icon} {alert.title}",
        f"{alert.priority.upper()} PRIORITY",
        "",
        alert.message,
    ]
    if alert.details:
        lines += ["", "Details:"]
        lines += [f"  {_format_key(k)}: {v}" for k, v in alert.details.items()]
    lines += ["", f"Sent on {alert.timestamp.isoformat()}"]
    return "\n".join(lines)


class NotificationGateway(ABC):
    """A delivery channel for alerts."""

    @abstractmethod
    async def deliver(self, alert: Alert) -> bool:
        """Deliver one alert. Return True on success."""


class EmailSender(ABC):
    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> bool:
        """Send one message. Return False or raise on failure."""


class SmtpEmailSender(EmailSender):
    """Sends mail through an SMTP relay in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        use_tls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username or "routerwatch@localhost"
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_sync(self, recipient: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, recipient, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(f"SMTP send to {recipient} failed: {e}") from e
        logger.info("Email sent to %s: %s", recipient, subject)
        return True


class EmailGateway(NotificationGateway):
    """Emails every alert to the configured admin recipients."""

    def __init__(self, sender: EmailSender, recipients: list[str]) -> None:
        self.sender = sender
        self.recipients = recipients

    async def deliver(self, alert: Alert) -> bool:
        subject = f"{CATEGORY_CONFIG[alert.category].subject} ({alert.priority})"
        body = render_alert_text(alert)
        ok = True
        for recipient in self.recipients:
            ok = await self.sender.send(recipient, subject, body) and ok
        return ok


class WebhookGateway(NotificationGateway):
    """POSTs alert JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout

    async def deliver(self, alert: Alert) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=alert.model_dump(mode="json"))
        if response.is_success:
            logger.info(
                "Webhook delivered: %s → %s (HTTP %d)",
                alert.category,
                self.url,
                response.status_code,
            )
        else:
            logger.warning(
                "Webhook failed: %s → %s (HTTP %d)",
                alert.category,
                self.url,
                response.status_code,
            )
        return response.is_success
