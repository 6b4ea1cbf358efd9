"""Exception hierarchy and HTTP error shapes for the Keystone service.

Startup errors (``ConfigurationError``, ``StartupError``) are fatal and end the
process before a listener is opened. Request errors are turned into JSON
responses with a stable ``{statusCode, error, message}`` shape and never leave
the request that raised them.
"""

from __future__ import annotations

from http import HTTPStatus
import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")


class KeystoneError(Exception):
    """Base class for all Keystone errors."""


class ConfigurationError(KeystoneError):
    """The environment failed schema validation.

    Carries every violated rule, not only the first one found.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        bullets = "\n".join(f"  • {error}" for error in self.errors)
        super().__init__(f"Configuration validation failed:\n{bullets}")


class StartupError(KeystoneError):
    """Startup-specific error with detailed context."""

    def __init__(
        self, message: str, phase: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.details = details or {}


def error_body(status_code: int, message: str | list[str]) -> dict[str, Any]:
    """Build the JSON error body shared by every HTTP error response."""
    return {
        "statusCode": status_code,
        "error": HTTPStatus(status_code).phrase,
        "message": message,
    }


def _format_validation_error(error: dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    if loc and loc[0] in REQUEST_LOCATIONS:
        loc = loc[1:] or loc
    field = ".".join(loc)
    return f"{field}: {error['msg']}" if field else str(error["msg"])


async def request_validation_exception_handler(  # noqa: RUF029 - FastAPI handler
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject an invalid request with 400 and one message per violation."""
    messages = [_format_validation_error(error) for error in exc.errors()]
    logger.info(
        "Rejected request to %s: %d validation error(s)",
        request.url.path,
        len(messages),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, messages),
    )


async def http_exception_handler(  # noqa: RUF029 - FastAPI handler
    _request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render framework HTTP errors in the shared error shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )
