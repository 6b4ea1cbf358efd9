"""Middleware package for the Keystone service.

Security headers and global rate limiting, registered by the bootstrap
sequencer in that order.
"""

from keystone.middleware.rate_limiting import (
    RATE_LIMIT_EXCEEDED_BODY,
    create_limiter,
    rate_limit_exceeded_handler,
    setup_rate_limiting,
)
from keystone.middleware.security_headers import (
    SecurityHeadersMiddleware,
    setup_security_headers,
)

__all__ = [
    "RATE_LIMIT_EXCEEDED_BODY",
    "SecurityHeadersMiddleware",
    "create_limiter",
    "rate_limit_exceeded_handler",
    "setup_rate_limiting",
    "setup_security_headers",
]
