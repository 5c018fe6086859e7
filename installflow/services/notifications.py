"""Outbound client notifications: email via Resend, SMS and WhatsApp via Twilio."""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from installflow.config import NotificationConfig

logger = logging.getLogger(__name__)

CHANNELS = ("email", "sms", "whatsapp")


class NotificationChannel(Protocol):
    name: str

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        """Deliver one message. Returns True on success."""
        ...


class EmailChannel:
    name = "email"

    def __init__(self, api_key: str, sender: str):
        self._api_key = api_key
        self._sender = sender

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        if not self._api_key:
            logger.warning("RESEND_API_KEY not set, email to %s not sent: %s", recipient, subject)
            return False
        if not recipient:
            logger.warning("No email address for recipient, skipping: %s", subject)
            return False

        import resend
        resend.api_key = self._api_key

        try:
            await asyncio.to_thread(resend.Emails.send, {
                "from": self._sender,
                "to": [recipient],
                "subject": subject,
                "html": f"<p>{html.escape(body)}</p>",
            })
            return True
        except Exception:
            logger.exception("Failed to send email to %s", recipient)
            return False


class SmsChannel:
    """Twilio Messages API. WhatsApp reuses it with the whatsapp: address prefix."""

    name = "sms"
    _prefix = ""

    def __init__(self, account_sid: str, auth_token: str, sender: str):
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._sender = sender

    async def send(self, recipient: str, subject: str, body: str) -> bool:
        if not (self._account_sid and self._auth_token and self._sender):
            logger.warning("Twilio credentials not set, %s to %s not sent", self.name, recipient)
            return False
        if not recipient or not recipient.startswith("+"):
            logger.warning("Phone number not in E.164 format: %r", recipient)
            return False

        data = {
            "To": f"{self._prefix}{recipient}",
            "From": f"{self._prefix}{self._sender}",
            "Body": body,
        }
        url = f"https://api.twilio.com/2010-04-01/Accounts/{self._account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(url, data=data, auth=(self._account_sid, self._auth_token))
        except httpx.HTTPError:
            logger.exception("Twilio request failed for %s", recipient)
            return False

        if response.status_code >= 400:
            logger.error("Twilio rejected %s to %s: %s %s", self.name, recipient, response.status_code, response.text)
            return False
        return True


class WhatsAppChannel(SmsChannel):
    name = "whatsapp"
    _prefix = "whatsapp:"


@dataclass
class DeliveryReport:
    delivered_via: str | None = None
    attempts: list[dict] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.delivered_via is not None


class NotificationRouter:
    """Resolves channel names to channel implementations."""

    def __init__(self, channels: dict[str, NotificationChannel]):
        self._channels = channels

    def get(self, name: str) -> NotificationChannel | None:
        return self._channels.get(name)

    async def deliver(
        self, client, channel: str, subject: str, body: str, fallback: str | None = None,
    ) -> DeliveryReport:
        """Send through channel, then through fallback if configured and the first failed."""
        report = DeliveryReport()
        sequence = [channel]
        if fallback and fallback != channel:
            sequence.append(fallback)

        for name in sequence:
            impl = self.get(name)
            recipient = recipient_for(name, client)
            if impl is None:
                report.attempts.append({"channel": name, "recipient": recipient, "ok": False, "error": "unconfigured"})
                continue
            ok = await impl.send(recipient, subject, body)
            report.attempts.append({"channel": name, "recipient": recipient, "ok": ok})
            if ok:
                report.delivered_via = name
                break
            logger.warning("Delivery via %s to %s failed", name, recipient)
        return report


def recipient_for(channel: str, client) -> str:
    if channel == "email":
        return client.email or ""
    return client.phone or ""


def build_router(config: NotificationConfig) -> NotificationRouter:
    return NotificationRouter({
        "email": EmailChannel(config.resend_api_key, config.email_from),
        "sms": SmsChannel(config.twilio_account_sid, config.twilio_auth_token, config.twilio_sms_from),
        "whatsapp": WhatsAppChannel(config.twilio_account_sid, config.twilio_auth_token, config.twilio_whatsapp_from),
    })
