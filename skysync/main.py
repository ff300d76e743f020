from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from fastapi import FastAPI, Request

from skysync.api import api_router
from skysync.api.refresh import run_skylines_refresh
from skysync.config import settings
from skysync.db import init_db

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("skysync")


async def refresh_loop(interval_seconds: float) -> None:
    """Refresh trackers forever, one run every ``interval_seconds``."""

    while True:
        started = time.monotonic()
        try:
            await run_skylines_refresh()
        except asyncio.CancelledError:
            logger.info("Refresh loop cancelled")
            raise
        except Exception as exc:  # pragma: no cover - defensive logging
            logger.error("Refresh run failed: %s", exc)

        elapsed = time.monotonic() - started
        await asyncio.sleep(max(interval_seconds - elapsed, 0))


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown lifecycle."""

    init_db()
    logger.info("Database initialized")

    if settings.enable_refresh_loop:
        app.state.refresh_task = asyncio.create_task(
            refresh_loop(settings.refresh_interval_seconds)
        )
        logger.info(
            "Refresh loop started (every %ss)", settings.refresh_interval_seconds
        )

    try:
        yield
    finally:
        task = getattr(app.state, "refresh_task", None)
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


app = FastAPI(title="SkySync", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log basic request information for observability."""

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        "HTTP %s %s -> %s (%.2f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(api_router)


@app.get("/", summary="Root")
def read_root() -> dict[str, str]:
    """Basic root endpoint for quick verification."""

    return {"message": "SkySync is running"}
