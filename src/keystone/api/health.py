"""Liveness endpoint."""

from __future__ import annotations

from datetime import UTC, datetime
import time
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from keystone import PROCESS_STARTED_AT
from keystone.auth.access import PUBLIC_ROUTE

router = APIRouter(tags=["health"])


class HealthReport(BaseModel):
    """Process status snapshot built per request."""

    status: Literal["ok"] = "ok"
    timestamp: str = Field(description="Current time, ISO-8601 UTC")
    uptime: float = Field(
        description="Seconds since the keystone package was first imported"
    )


def iso_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = moment or datetime.now(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.get("/health", openapi_extra=PUBLIC_ROUTE)
async def check_health() -> HealthReport:
    """Report that the process is up."""
    return HealthReport(
        timestamp=iso_timestamp(),
        uptime=time.monotonic() - PROCESS_STARTED_AT,
    )
