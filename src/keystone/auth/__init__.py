"""Route-level access control."""

from keystone.auth.access import (
    PUBLIC_ROUTE,
    AccessControl,
    AccessGuard,
    public_endpoints,
    public_paths,
)

__all__ = [
    "PUBLIC_ROUTE",
    "AccessControl",
    "AccessGuard",
    "public_endpoints",
    "public_paths",
]
