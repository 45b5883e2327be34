# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification delivery for Pleeno.

This package holds the delivery channels used by the notification
dispatcher. Rule matching, templates and deduplication live in
src.domains.notification; channels only know how to send one message.

Key Components:
- EmailChannel: Resend HTTP API or SMTP delivery
- NotificationPayload: Data structure for message content
- ChannelResult: Outcome of a single delivery attempt

Usage:
    from src.infrastructure.notifications import EmailChannel, NotificationPayload

    channel = EmailChannel(settings.email)
    result = await channel.send(
        NotificationPayload(
            recipient_email="finance@college.edu",
            subject="Payment Reminder",
            html="<p>...</p>",
        )
    )

Configuration (environment variables):
- EMAIL_PROVIDER: resend or smtp
- EMAIL_FROM_ADDRESS: Sender email address
- RESEND_API_KEY: Resend API key
- EMAIL_SMTP_HOST / EMAIL_SMTP_PORT: SMTP server
"""

from src.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailChannel,
    NotificationPayload,
    html_to_text,
)

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "EmailChannel",
    "NotificationPayload",
    "html_to_text",
]
