# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure module for Pleeno.

Provides background task processing with Dramatiq:
- Redis broker for message persistence and durability
- Agency context propagation middleware
- APScheduler integration for the daily installment jobs

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4

Scheduler:
    from src.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler(settings)
    await stop_scheduler()
"""

from src.infrastructure.background.broker import (
    AgencyContextMiddleware,
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    get_current_agency,
    set_current_agency,
    setup_dramatiq,
    shutdown_dramatiq,
)
from src.infrastructure.background.scheduler import (
    DramatiqScheduler,
    ScheduledJob,
    get_scheduler,
    register_default_tasks,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported lazily to avoid circular imports.
# Use: from src.infrastructure.background.tasks import send_overdue_notifications

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
    "DramatiqScheduler",
    "ScheduledJob",
    "get_scheduler",
    "register_default_tasks",
    "start_scheduler",
    "stop_scheduler",
]
