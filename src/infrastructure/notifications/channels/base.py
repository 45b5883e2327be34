# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Channel contract for outbound notification delivery.

A channel sends one rendered message to one address. Delivery problems come
back as a FAILED ChannelResult rather than an exception: the dispatcher
must keep going through the rest of an agency's recipients, and only a SENT
result may be written to notification_log.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.utils.datetime import utc_now


class ChannelType(str, Enum):
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NotificationPayload:
    """A rendered email.

    ``text`` falls back to a plain rendering of ``html``. ``metadata`` (for
    example installment_id and rule_id) is echoed on the result.
    """

    recipient_email: str
    subject: str
    html: str
    text: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChannelResult:
    channel: ChannelType
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime = field(default_factory=utc_now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == DeliveryStatus.SENT


class BaseChannel(ABC):
    """A delivery transport. Subclasses implement send() and never raise from it."""

    channel_type: ChannelType

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Deliver ``payload`` and report the outcome."""

    def sent(self, payload: NotificationPayload, message_id: str | None) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            metadata=payload.metadata,
        )

    def failed(self, payload: NotificationPayload, error: str) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_message=error,
            metadata=payload.metadata,
        )

    def skipped(self, payload: NotificationPayload, reason: str) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SKIPPED,
            error_message=reason,
            metadata=payload.metadata,
        )
