# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request logging context middleware.

Resolves the caller's agency from the token claims into
request.state.agency_id and binds a request ID, plus the agency and user
once authenticated, to the structlog context so every log line of the
request carries them. The request ID is echoed back in the X-Request-ID
header.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware binding request metadata to the logging context.

    Must run after AuthMiddleware so request.state.user is populated.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        clear_context()
        bind_context(request_id=request_id, path=request.url.path, method=request.method)

        user = getattr(request.state, "user", None)
        request.state.agency_id = user.agency_id if user else None
        if user:
            bind_context(agency_id=user.agency_id, user_id=user.id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            clear_context()

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.debug(
            "%s %s -> %d (%.2fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
