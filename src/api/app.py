# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the Pleeno API.

Run locally with ``python -m src.api.app`` (API_HOST, API_PORT, API_RELOAD),
or point any ASGI server at ``src.api.app:create_app`` as a factory.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import __version__
from src.api.middleware.auth import AuthMiddleware
from src.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.core.errors import AppError, error_body, handle_api_error
from src.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from src.infrastructure.cache import RedisError, close_redis, init_redis
from src.infrastructure.database import close_database, init_database
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    429: "RATE_LIMITED",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the database, cache, broker and scheduler, and stop them in reverse.

    PostgreSQL is required. Redis only backs the dashboard cache, so a Redis
    outage at startup is logged and the API starts without it. The scheduler
    is stopped first on shutdown so it cannot enqueue into a closed broker.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting Pleeno API %s (%s)", __version__, settings.environment)

    async with AsyncExitStack() as stack:
        await init_database(settings)
        stack.push_async_callback(close_database)

        try:
            await init_redis(settings)
        except RedisError as e:
            logger.warning("Redis unavailable, dashboard cache disabled: %s", e)
        else:
            stack.push_async_callback(close_redis)

        setup_dramatiq()
        stack.callback(shutdown_dramatiq)

        if settings.jobs.scheduler_enabled:
            await start_scheduler(settings)
            stack.push_async_callback(stop_scheduler)

        yield
        logger.info("Shutting down Pleeno API")


def _error_context(request: Request) -> dict[str, Any]:
    user = getattr(request.state, "user", None)
    return {
        "path": request.url.path,
        "method": request.method,
        "agency_id": user.agency_id if user else None,
        "user_id": user.id if user else None,
    }


def register_exception_handlers(app: FastAPI, expose_internal: bool = False) -> None:
    """Route every error through handle_api_error into the error envelope.

    Args:
        app: Application to register on.
        expose_internal: Include raw messages of unexpected errors.
    """

    async def app_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code, body = handle_api_error(exc, _error_context(request))
        return JSONResponse(status_code=status_code, content=body)

    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        default_code = "SERVER_ERROR" if exc.status_code >= 500 else "ERROR"
        code = HTTP_ERROR_CODES.get(exc.status_code, default_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code, body = handle_api_error(
            exc, _error_context(request), expose_internal=expose_internal
        )
        return JSONResponse(status_code=status_code, content=body)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


def create_app() -> FastAPI:
    """Build the Pleeno API. OpenAPI docs are only served with DEBUG on."""
    settings = get_settings()
    docs = settings.debug

    app = FastAPI(
        title="Pleeno API",
        description="Payment plans, commissions and notifications for education agencies",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
        lifespan=lifespan,
        # A 307 to the slash variant drops the Authorization header.
        redirect_slashes=False,
    )
    app.state.limiter = limiter
    register_exception_handlers(app, expose_internal=settings.is_development)

    # Last added runs first: CORS, then auth, then request context, which
    # reads the user that auth attached.
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(AuthMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)
    return app


if __name__ == "__main__":
    import uvicorn

    server = get_settings().api
    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=server.host,
        port=server.port,
        reload=server.reload,
    )
