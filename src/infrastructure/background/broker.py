# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker for the installment jobs and notification sends.

Two queues are used. "jobs" carries the batch jobs (status update, due soon
reminders, job health) and runs without Dramatiq retries because each job
records its own run and retries transient database errors itself.
"notifications" carries overdue sends; a retried send is safe because
delivered emails are deduplicated through notification_log.

DRAMATIQ_TEST_MODE=true selects an in-memory StubBroker so that tests and
local runs can enqueue without Redis.

Example:
    from src.infrastructure.background.broker import setup_dramatiq

    broker = setup_dramatiq()
"""

import logging
import os

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import TimeLimit

from src.core.config import get_settings
from src.infrastructure.background.middleware import (
    AgencyContextMiddleware,
    get_current_agency,
    set_current_agency,
)

logger = logging.getLogger(__name__)

REDIS_NAMESPACE = "pleeno-tasks"

# Hard ceiling for one actor invocation. The status job loops over every
# agency, so it gets far more than a single email send.
JOB_TIME_LIMIT_MS = 15 * 60 * 1000


class Queues:
    """Queue names."""

    JOBS = "jobs"
    NOTIFICATIONS = "notifications"

    ALL = (JOBS, NOTIFICATIONS)


class Priority:
    """Actor priorities, lower runs first."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def _use_stub_broker() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


class BrokerManager:
    """Creates the broker once and tears it down on shutdown."""

    def __init__(self) -> None:
        self._broker: dramatiq.Broker | None = None

    @property
    def broker(self) -> dramatiq.Broker:
        if self._broker is None:
            raise RuntimeError("Broker not initialized. Call setup() first.")
        return self._broker

    def setup(self) -> dramatiq.Broker:
        """Create the broker and register it with Dramatiq."""
        if self._broker is not None:
            return self._broker

        if _use_stub_broker():
            broker: dramatiq.Broker = StubBroker()
            broker.emit_after("process_boot")
            logger.info("Using StubBroker")
        else:
            redis_url = get_settings().redis.url
            broker = RedisBroker(url=redis_url, namespace=REDIS_NAMESPACE)
            logger.info("Redis broker on %s", redis_url.split("@")[-1])

        for middleware in broker.middleware:
            if isinstance(middleware, TimeLimit):
                middleware.time_limit = JOB_TIME_LIMIT_MS
        broker.add_middleware(AgencyContextMiddleware())

        dramatiq.set_broker(broker)
        self._broker = broker
        return broker

    def shutdown(self) -> None:
        if self._broker is not None:
            self._broker.close()
            self._broker = None
            logger.info("Broker shutdown complete")


_broker_manager: BrokerManager | None = None


def get_broker_manager() -> BrokerManager:
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq() -> dramatiq.Broker:
    """Set up the broker. Task modules call this at import time, so it is idempotent."""
    return get_broker_manager().setup()


def get_broker() -> dramatiq.Broker:
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None


__all__ = [
    "AgencyContextMiddleware",
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "get_current_agency",
    "set_current_agency",
    "setup_dramatiq",
    "shutdown_dramatiq",
]
