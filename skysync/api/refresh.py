"""On demand tracker refresh, normally triggered by a cron job."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field

from skysync.config import settings
from skysync.trackers import SkylinesRefresher, SqlDeviceStore

router = APIRouter(prefix="/api/v1", tags=["refresh"])

logger = logging.getLogger("skysync.refresh")


class RefreshResponse(BaseModel):
    """Outcome of one refresh run."""

    provider: str = Field(..., description="Refreshed provider")
    active: int = Field(..., description="Number of devices with recent points")
    processed: int = Field(..., description="Number of devices refreshed")
    errors: int = Field(..., description="Number of devices that failed")
    timed_out: bool = Field(..., description="True when the time budget ran out")


async def run_skylines_refresh() -> RefreshResponse:
    refresher = SkylinesRefresher(SqlDeviceStore())
    active = await refresher.refresh(
        settings.refresh_max_hours, settings.refresh_timeout_seconds
    )
    stats = refresher.last_stats
    return RefreshResponse(
        provider="skylines",
        active=active,
        processed=stats.processed,
        errors=stats.errors,
        timed_out=stats.timed_out,
    )


@router.post(
    "/refresh/skylines",
    response_model=RefreshResponse,
    summary="Refresh stale SkyLines devices",
)
async def refresh_skylines() -> RefreshResponse:
    """Poll SkyLines for every stale device within the configured budget."""

    response = await run_skylines_refresh()
    logger.info("SkyLines refresh: %s active", response.active)
    return response
