# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""slowapi limits for the API.

Signed in staff are counted per agency user, so colleagues behind one office
NAT do not share a budget; anonymous callers are counted per IP. Counters
are kept in Redis (RATE_LIMIT_STORAGE_URI or the REDIS_* URL) and fall back
to process memory while Redis is unreachable.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import get_settings
from src.core.errors import error_body

logger = logging.getLogger(__name__)

# CSV imports, offer letter uploads and report exports are expensive.
RATE_LIMIT_UPLOAD = "10/minute"
RATE_LIMIT_EXPORT = "10/minute"


def get_client_identifier(request: Request) -> str:
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"agency:{user.agency_id}:user:{user.id}"
    return f"ip:{get_remote_address(request)}"


def get_ip_only(request: Request) -> str:
    """Key for the login route, where no user exists yet."""
    return f"login:{get_remote_address(request)}"


def login_limit() -> str:
    return f"{get_settings().rate_limit.login_per_minute}/minute"


def _build_limiter() -> Limiter:
    config = get_settings()
    return Limiter(
        key_func=get_client_identifier,
        default_limits=[f"{config.rate_limit.requests_per_minute}/minute"],
        storage_uri=config.rate_limit.storage_uri or config.redis.url,
        enabled=config.rate_limit.enabled,
        in_memory_fallback_enabled=True,
    )


limiter = _build_limiter()


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the standard error envelope."""
    logger.warning("Rate limit %s hit by %s", exc.detail, get_client_identifier(request))
    return JSONResponse(
        status_code=429,
        content=error_body("RATE_LIMITED", "Too many requests. Please try again later."),
        headers={"Retry-After": "60"},
    )
