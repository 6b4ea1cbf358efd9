"""Global access control with an explicit public-route allow-list.

Routes opt out of the guard by carrying ``PUBLIC_ROUTE`` in their registration
metadata. The allow-list is computed once when routers are mounted; the guard
itself is supplied by the embedding application.
"""

from collections.abc import Awaitable, Callable
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.routing import APIRoute

logger = logging.getLogger(__name__)

PUBLIC_ROUTE_FLAG = "x-public"
PUBLIC_ROUTE: dict[str, bool] = {PUBLIC_ROUTE_FLAG: True}

AccessGuard = Callable[[Request], Awaitable[bool]]


def is_public_route(route: APIRoute) -> bool:
    """Check the public flag in a route's registration metadata."""
    return bool((route.openapi_extra or {}).get(PUBLIC_ROUTE_FLAG))


def _public_routes(router: APIRouter) -> list[APIRoute]:
    return [
        route
        for route in router.routes
        if isinstance(route, APIRoute) and is_public_route(route)
    ]


def public_paths(router: APIRouter, prefix: str = "") -> frozenset[str]:
    """Collect the full paths of routes flagged public on a router."""
    return frozenset(f"{prefix}{route.path}" for route in _public_routes(router))


def public_endpoints(router: APIRouter) -> frozenset[Callable[..., Any]]:
    """Collect the endpoint functions of routes flagged public on a router."""
    return frozenset(route.endpoint for route in _public_routes(router))


class AccessControl:
    """FastAPI dependency enforcing the guard outside the allow-list.

    Requests are matched by the endpoint the router resolved, which stays the
    same however the router was mounted or prefixed.
    """

    def __init__(
        self,
        public_endpoints: frozenset[Callable[..., Any]],
        guard: AccessGuard | None = None,
    ) -> None:
        self.public_endpoints = public_endpoints
        self.guard = guard

    def is_public(self, request: Request) -> bool:
        return request.scope.get("endpoint") in self.public_endpoints

    async def __call__(self, request: Request) -> None:
        if self.is_public(request) or self.guard is None:
            return

        if not await self.guard(request):
            logger.info("Access denied for %s %s", request.method, request.url.path)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )
