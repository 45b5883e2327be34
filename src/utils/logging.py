# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Services log through the standard library (logging.getLogger(__name__) with
%-style arguments). Those records are rendered by structlog's
ProcessorFormatter, so the request_id, agency_id and user_id bound by the
request context middleware, or by the Dramatiq agency middleware, appear on
every line, including lines from background workers.

Example:
    >>> from src.utils.logging import setup_logging, get_logger
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> logger.info("Payment recorded", installment_id="123")
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

QUIET_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "apscheduler",
    "dramatiq",
    "aiosmtplib",
    "asyncio",
)


def mask_email(value: str) -> str:
    """Mask the local part of an email address.

    >>> mask_email("mei.chen@student.example.com")
    'm***@student.example.com'
    """
    local, sep, domain = value.partition("@")
    if not sep or not local:
        return value
    return f"{local[0]}***@{domain}"


def mask_email_fields(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Mask values of *email keys so student and contact addresses stay out of logs."""
    for key, value in event_dict.items():
        if key.endswith("email") and isinstance(value, str):
            event_dict[key] = mask_email(value)
    return event_dict


def setup_logging(settings: "Settings") -> None:
    """Configure structlog and route standard library logging through it.

    Development gets colored console output. Other environments get one JSON
    object per line with email fields masked.

    Args:
        settings: Application settings containing log_level and environment.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    console = settings.is_development or settings.debug

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if not console:
        shared_processors.append(mask_email_fields)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    final: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if console:
        final.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        final += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.ExtraAdder(), *shared_processors],
        processors=final,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name."""
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind values to every subsequent log line in this context.

    Example:
        >>> bind_context(request_id="abc-123", agency_id="agency-456")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables at the end of a request."""
    structlog.contextvars.clear_contextvars()
