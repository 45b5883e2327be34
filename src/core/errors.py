# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed application errors and the uniform API error envelope.

Every domain service raises subclasses of AppError. The API layer converts
them into a JSON body of the form:

    {"success": false, "error": {"code": "...", "message": "...", "details": ...}}

Unknown exceptions become SERVER_ERROR responses. Outside development the
message is replaced with a generic one so internals never leak.

Example:
    >>> from src.core.errors import NotFoundError, handle_api_error
    >>> status_code, body = handle_api_error(NotFoundError("Payment plan not found"))
    >>> status_code
    404
"""

import logging
from typing import Any

from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "secret",
        "api_key",
        "apikey",
        "authorization",
        "credit_card",
        "ssn",
    }
)

REDACTED = "[REDACTED]"
GENERIC_SERVER_MESSAGE = "An unexpected error occurred"


class AppError(Exception):
    """Base class for errors that map to a known HTTP response.

    Attributes:
        code: Machine readable error code.
        status_code: HTTP status code.
        message: Human readable message.
        details: Optional structured details.
    """

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    """Input failed a business or format rule."""

    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(AppError):
    """Caller is not authenticated."""

    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(AppError):
    """Caller lacks permission for the resource."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(AppError):
    """Resource does not exist or belongs to another agency."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    """Resource state or uniqueness conflict."""

    code = "CONFLICT"
    status_code = 409


class ExternalServiceError(AppError):
    """A downstream service such as the email provider failed."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502


def sanitize_details(details: Any) -> Any:
    """Redact sensitive values from error details.

    Walks dicts and lists recursively and replaces the value of any key
    whose lowercase name is in SENSITIVE_KEYS.

    Args:
        details: Arbitrary details payload.

    Returns:
        A copy of the payload with sensitive values replaced.
    """
    if isinstance(details, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else sanitize_details(value)
            for key, value in details.items()
        }
    if isinstance(details, list | tuple):
        return [sanitize_details(item) for item in details]
    return details


def field_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error entries into {field, message} pairs.

    The leading "body" or "query" location segment is dropped.
    """
    result = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        result.append({"field": ".".join(loc) or None, "message": err.get("msg", "")})
    return result


def error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    """Build the error envelope."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = sanitize_details(details)
    return {"success": False, "error": error}


def handle_api_error(
    error: BaseException,
    context: dict[str, Any] | None = None,
    expose_internal: bool = False,
) -> tuple[int, dict[str, Any]]:
    """Map any exception to an HTTP status code and error envelope.

    Args:
        error: The exception raised while handling a request.
        context: Request context for logging (path, agency_id, user_id).
        expose_internal: Include the raw message of unknown errors.
            Enabled in development only.

    Returns:
        Tuple of (status_code, response body).
    """
    context = context or {}

    if isinstance(error, AppError):
        if error.status_code >= 500:
            logger.error(
                "%s: %s (context=%s)", error.code, error.message, context, exc_info=error
            )
        else:
            logger.info("%s: %s (context=%s)", error.code, error.message, context)
        return error.status_code, error_body(error.code, error.message, error.details)

    if isinstance(error, PydanticValidationError | RequestValidationError):
        errors = field_errors(list(error.errors()))
        logger.info("Validation failed: %d errors (context=%s)", len(errors), context)
        return 400, error_body("VALIDATION_ERROR", "Invalid input", errors)

    logger.error("Unhandled error: %s (context=%s)", error, context, exc_info=error)
    message = GENERIC_SERVER_MESSAGE
    if expose_internal and str(error):
        message = str(error)
    return 500, error_body("SERVER_ERROR", message)

