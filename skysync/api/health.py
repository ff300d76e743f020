"""Health check endpoint."""

from fastapi import APIRouter, Request
from skysync.config import settings

router = APIRouter()


@router.get("/healthz", summary="Health check")
def health_check(request: Request) -> dict[str, object]:
    """Report liveness and whether the periodic tracker refresh is running."""
    task = getattr(request.app.state, "refresh_task", None)
    return {
        "status": "ok",
        "env": settings.skysync_env,
        "refresh_loop": task is not None and not task.done(),
        "refresh_every_seconds": settings.refresh_interval_seconds,
    }
