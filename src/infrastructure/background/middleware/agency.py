# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agency context middleware for background processing.

Carries the agency a message was sent for through Dramatiq, so log lines
emitted while processing it are tagged with the same agency_id as the
request or job that enqueued it.
"""

import contextvars
import logging
from typing import Any

import dramatiq
import structlog
from dramatiq import Message, Middleware

logger = logging.getLogger(__name__)


_agency_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "agency_id", default=None
)


def get_current_agency() -> str | None:
    """Get the current agency ID from context."""
    return _agency_context.get()


def set_current_agency(agency_id: str | None) -> contextvars.Token[str | None]:
    """Set the current agency ID in context.

    Args:
        agency_id: Agency to set, or None to clear.

    Returns:
        Context token for resetting.
    """
    return _agency_context.set(agency_id)


class AgencyContextMiddleware(Middleware):
    """Middleware for propagating agency context in Dramatiq tasks.

    Adds agency_id to message options when sending, and restores it (and
    binds it to the structlog context) when processing.

    Usage:
        set_current_agency(agency_id)
        send_overdue_notifications.send(installment_ids)
        # inside the actor, get_current_agency() returns agency_id
    """

    AGENCY_KEY = "agency_id"

    def before_enqueue(
        self,
        broker: dramatiq.Broker,
        message: Message,
        delay: int | None,
    ) -> None:
        agency_id = get_current_agency()

        if agency_id and self.AGENCY_KEY not in message.options:
            message.options[self.AGENCY_KEY] = agency_id
            logger.debug(
                "Added agency context to message: %s (agency: %s)",
                message.message_id,
                agency_id,
            )

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        agency_id = message.options.get(self.AGENCY_KEY)

        if agency_id:
            set_current_agency(agency_id)
            structlog.contextvars.bind_contextvars(agency_id=agency_id)

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        self._clear()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        self._clear()

    @staticmethod
    def _clear() -> None:
        set_current_agency(None)
        structlog.contextvars.unbind_contextvars("agency_id")
