"""HTTP API routers mounted under the global route prefix."""

from keystone.api.health import router as health_router

__all__ = [
    "health_router",
]
