# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bridge from synchronous Dramatiq actors to the async job code.

Dramatiq runs actors on plain worker threads. asyncpg connections belong to
the event loop that opened them, so each worker thread keeps its own loop
for its whole life and the worker's engine uses NullPool: every session
connects on whichever thread's loop is running it and closes when done.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from src.core.config import get_settings
from src.infrastructure.database import init_database, is_database_initialized

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _ThreadLoop(threading.local):
    loop: asyncio.AbstractEventLoop | None = None

    def get(self) -> asyncio.AbstractEventLoop:
        if self.loop is None or self.loop.is_closed():
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)
            logger.debug("Event loop created for %s", threading.current_thread().name)
        return self.loop


_thread_loop = _ThreadLoop()
_engine_lock = threading.Lock()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a job coroutine to completion on this thread's loop.

    The first call in the worker process also creates the NullPool engine.

    Example:
        @dramatiq.actor(queue_name=Queues.JOBS)
        def update_installment_statuses_job():
            return run_async(run_status_update_job(get_settings()))
    """
    loop = _thread_loop.get()
    with _engine_lock:
        if not is_database_initialized():
            loop.run_until_complete(init_database(get_settings(), null_pool=True))
            logger.info("Worker database engine initialized")
    return loop.run_until_complete(coro)
