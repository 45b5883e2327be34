# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel.

Two transports are supported:
- resend: POST to the Resend HTTP API with httpx (default)
- smtp: async SMTP with aiosmtplib, for local mail catchers

Configuration comes from EmailSettings (EMAIL_* environment variables and
RESEND_API_KEY).
"""

import html as html_lib
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import aiosmtplib
import httpx

from src.core.config.settings import EmailSettings
from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

_TAG_RE = re.compile(r"<[^>]+>")
_BREAK_RE = re.compile(r"<\s*(br|/p|/div|/h[1-6]|/li)\s*/?>", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def html_to_text(body_html: str) -> str:
    """Produce a plain text alternative for an HTML body."""
    text = _BREAK_RE.sub("\n", body_html)
    text = _TAG_RE.sub("", text)
    text = html_lib.unescape(text)
    lines = [line.strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


class EmailChannel(BaseChannel):
    """Email channel with Resend and SMTP transports.

    An httpx client may be injected for the Resend transport; otherwise a
    short-lived client is created per send.
    """

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        settings: EmailSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._http_client = http_client

    def configuration_error(self) -> str | None:
        """Describe missing configuration for the selected transport.

        Returns:
            Error message, or None when the transport can send.
        """
        if self._settings.provider == "resend":
            if self._settings.resend_api_key is None:
                return "RESEND_API_KEY is not set"
            return None

        if not self._settings.smtp_host:
            return "EMAIL_SMTP_HOST is not set"
        return None

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send an email.

        Args:
            payload: Rendered email.

        Returns:
            ChannelResult with delivery status.
        """
        if not payload.recipient_email:
            return self.skipped(payload, "No recipient email address")

        config_error = self.configuration_error()
        if config_error:
            self.logger.warning("Email not sent to %s: %s", payload.recipient_email, config_error)
            return self.failed(payload, config_error)

        if self._settings.provider == "resend":
            return await self._send_resend(payload)
        return await self._send_smtp(payload)

    async def _send_resend(self, payload: NotificationPayload) -> ChannelResult:
        api_key = self._settings.resend_api_key.get_secret_value()
        body = {
            "from": self._settings.from_address,
            "to": [payload.recipient_email],
            "subject": payload.subject,
            "html": payload.html,
            "text": payload.text or html_to_text(payload.html),
        }
        headers = {"Authorization": f"Bearer {api_key}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._settings.resend_api_url, json=body, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
                    response = await client.post(
                        self._settings.resend_api_url, json=body, headers=headers
                    )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.logger.error(
                "Resend rejected email to %s: %s %s",
                payload.recipient_email,
                e.response.status_code,
                e.response.text,
            )
            return self.failed(
                payload, f"Resend error {e.response.status_code}: {e.response.text}"
            )
        except httpx.HTTPError as e:
            self.logger.error("Resend request failed for %s: %s", payload.recipient_email, str(e))
            return self.failed(payload, f"Resend request failed: {e}")

        message_id = response.json().get("id")
        self.logger.info("Email sent to %s via Resend: %s", payload.recipient_email, message_id)
        return self.sent(payload, message_id)

    async def _send_smtp(self, payload: NotificationPayload) -> ChannelResult:
        message = self.build_mime_message(payload)
        password = self._settings.smtp_password

        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.smtp_host,
                port=self._settings.smtp_port,
                username=self._settings.smtp_user,
                password=password.get_secret_value() if password else None,
                start_tls=self._settings.smtp_use_tls,
                timeout=self._settings.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error(
                "Failed to send email to %s: %s",
                payload.recipient_email,
                str(e),
                exc_info=True,
            )
            return self.failed(payload, f"SMTP error: {e}")

        self.logger.info("Email sent to %s via SMTP: %s", payload.recipient_email, payload.subject)
        return self.sent(payload, message["Message-ID"])

    def build_mime_message(self, payload: NotificationPayload) -> MIMEMultipart:
        """Build a multipart/alternative message with text and HTML parts."""
        message = MIMEMultipart("alternative")
        message["From"] = self._settings.from_address
        message["To"] = payload.recipient_email
        message["Subject"] = payload.subject
        message["Message-ID"] = make_msgid(domain="pleeno.com")

        message.attach(MIMEText(payload.text or html_to_text(payload.html), "plain", "utf-8"))
        message.attach(MIMEText(payload.html, "html", "utf-8"))
        return message
