"""Rate Limiting Middleware.

Applies a global per-client request ceiling using slowapi. Throttled requests
get a fixed 429 body that is part of the public API contract.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import sync_check_limits
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from keystone.middleware.security_headers import SecurityHeadersMiddleware

if TYPE_CHECKING:
    from keystone.startup.config_schema import RateLimitConfig

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED_BODY: dict[str, Any] = {
    "statusCode": 429,
    "error": "Too Many Requests",
    "message": "Rate limit exceeded, retry in a few minutes",
}


def limit_string(rate_limit: RateLimitConfig) -> str:
    """Express the configured ceiling in ``limits`` notation.

    Windows are rounded up to whole seconds.
    """
    window_seconds = max(1, math.ceil(rate_limit.window_ms / 1000))
    return f"{rate_limit.max} per {window_seconds} second"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Return the fixed 429 body with security and rate limit headers.

    Kept synchronous so ``RateLimitMiddleware`` can call it directly.
    """
    logger.warning(
        "Rate limit exceeded for %s - Limit: %s",
        request.url.path,
        exc.detail,
    )

    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=RATE_LIMIT_EXCEEDED_BODY,
    )
    SecurityHeadersMiddleware.add_security_headers_to_response(response)

    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    limiter: Limiter | None = getattr(request.app.state, "limiter", None)
    if limiter is not None and view_rate_limit is not None:
        return limiter._inject_headers(  # type: ignore[no-any-return]  # noqa: SLF001
            response, view_rate_limit
        )
    return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Check the application-wide limit on every request.

    Unlike slowapi's own middleware this does not look up a route handler
    first, so requests that match no route are counted too.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        limiter: Limiter = request.app.state.limiter
        if not limiter.enabled:
            return await call_next(request)

        error_response, should_inject_headers = sync_check_limits(
            limiter, request, None, request.app
        )
        if error_response is not None:
            return error_response

        response = await call_next(request)
        if should_inject_headers:
            response = limiter._inject_headers(  # noqa: SLF001
                response, request.state.view_rate_limit
            )
        return response


def create_limiter(
    rate_limit: RateLimitConfig, storage_uri: str | None = None
) -> Limiter:
    """Create a limiter with one ceiling shared by all routes per client.

    Args:
        rate_limit: Ceiling and window from the validated configuration
        storage_uri: ``limits`` storage URI (in-memory when omitted)

    Returns:
        Configured Limiter instance
    """
    application_limit = limit_string(rate_limit)
    limiter = Limiter(
        key_func=get_remote_address,
        application_limits=[application_limit],
        storage_uri=storage_uri or "memory://",
        headers_enabled=True,
        strategy="fixed-window",
    )

    logger.info(
        "Rate limiter initialized with %s, storage: %s",
        application_limit,
        "in-memory" if storage_uri is None else storage_uri,
    )
    return limiter


def setup_rate_limiting(
    app: FastAPI, rate_limit: RateLimitConfig, storage_uri: str | None = None
) -> Limiter:
    """Set up global rate limiting for a FastAPI application.

    Returns:
        The limiter attached to ``app.state.limiter``
    """
    limiter = create_limiter(rate_limit, storage_uri)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(RateLimitMiddleware)

    logger.info("Rate limiting middleware configured")
    return limiter
