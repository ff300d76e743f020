"""Configuration settings for SkySync."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger("skysync.config")


def _get_bool(env_var: str, default: bool = False) -> bool:
    """Parse an environment variable into a boolean with a default."""

    value = os.getenv(env_var)
    if value is None:
        return default

    return value.lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    skysync_env: str = os.getenv("SKYSYNC_ENV", "local")
    log_level: str = os.getenv("SKYSYNC_LOG_LEVEL", "INFO")

    # SkyLines live tracking
    skylines_base_url: str = os.getenv(
        "SKYLINES_BASE_URL", "https://skylines.aero/api/live"
    )
    skylines_timeout: float = float(os.getenv("SKYLINES_TIMEOUT", "10.0"))

    # Devices not updated for this many minutes are refreshed.
    refresh_every_minutes: int = int(os.getenv("REFRESH_EVERY_MINUTES", "2"))
    refresh_max_hours: float = float(os.getenv("REFRESH_MAX_HOURS", "12"))
    refresh_timeout_seconds: float = float(os.getenv("REFRESH_TIMEOUT_SECONDS", "50"))

    # Background refresh loop run by the service
    enable_refresh_loop: bool = _get_bool("ENABLE_REFRESH_LOOP")
    refresh_interval_seconds: float = float(os.getenv("REFRESH_INTERVAL_SECONDS", "60"))

    # Client side metadata polling
    metadata_fetch_every_seconds: float = float(
        os.getenv("METADATA_FETCH_EVERY_SECONDS", "15")
    )
    metadata_fetch_for_minutes: float = float(
        os.getenv("METADATA_FETCH_FOR_MINUTES", "3")
    )


settings = Settings()

__all__ = ["settings", "Settings"]
