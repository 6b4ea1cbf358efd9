"""Security headers middleware for the Keystone service.

Adds the common set of browser security headers to every HTTP response.
The content policy keeps scripts, styles and other sources same-origin;
images may also come from data URIs and HTTPS origins.
"""

import logging
from typing import Any

from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

CSP_DIRECTIVES: dict[str, tuple[str, ...]] = {
    "default-src": ("'self'",),
    "base-uri": ("'self'",),
    "font-src": ("'self'", "https:", "data:"),
    "form-action": ("'self'",),
    "frame-ancestors": ("'self'",),
    "img-src": ("'self'", "data:", "https:"),
    "object-src": ("'none'",),
    "script-src": ("'self'",),
    "script-src-attr": ("'none'",),
    "style-src": ("'self'", "'unsafe-inline'"),
    "upgrade-insecure-requests": (),
}

DEFAULT_HSTS_MAX_AGE = 15552000  # 180 days


def build_csp(directives: dict[str, tuple[str, ...]]) -> str:
    """Serialize CSP directives into a header value."""
    return "; ".join(
        " ".join((name, *sources)) for name, sources in directives.items()
    )


DEFAULT_CSP = build_csp(CSP_DIRECTIVES)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Protects against XSS, clickjacking, MIME sniffing and protocol downgrade.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        csp_policy: str = DEFAULT_CSP,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
    ) -> None:
        """Initialize security headers middleware.

        Args:
            app: The ASGI application
            csp_policy: Content-Security-Policy header value
            hsts_max_age: Max age for HSTS in seconds
        """
        super().__init__(app)
        self.csp_policy = csp_policy
        self.hsts_max_age = hsts_max_age

        logger.info("SecurityHeadersMiddleware initialized - CSP: %s", csp_policy)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        self.add_security_headers_to_response(
            response, csp_policy=self.csp_policy, hsts_max_age=self.hsts_max_age
        )
        return response

    @staticmethod
    def add_security_headers_to_response(
        response: Response,
        *,
        csp_policy: str = DEFAULT_CSP,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
    ) -> None:
        """Add security headers to any response object.

        Used by the middleware and by handlers that build responses outside it.
        """
        headers = response.headers
        headers["Content-Security-Policy"] = csp_policy
        headers["Cross-Origin-Opener-Policy"] = "same-origin"
        headers["Cross-Origin-Resource-Policy"] = "same-origin"
        headers["Origin-Agent-Cluster"] = "?1"
        headers["Referrer-Policy"] = "no-referrer"
        headers["Strict-Transport-Security"] = (
            f"max-age={hsts_max_age}; includeSubDomains"
        )
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-DNS-Prefetch-Control"] = "off"
        headers["X-Download-Options"] = "noopen"
        headers["X-Frame-Options"] = "SAMEORIGIN"
        headers["X-Permitted-Cross-Domain-Policies"] = "none"
        # Disables legacy browser XSS auditors.
        headers["X-XSS-Protection"] = "0"


def setup_security_headers(app: Starlette, **options: Any) -> None:
    """Register the security headers middleware on a Starlette/FastAPI app."""
    app.add_middleware(SecurityHeadersMiddleware, **options)
    logger.info("Security headers middleware configured")
