"""SkyLines live tracking: flight decoding and device refresh."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import math
import re
import time
from typing import Any, Callable

import httpx

from skysync.config import settings
from skysync.models.device import Device
from skysync.models.geo import GeoPoint
from skysync.trackers.features import create_features
from skysync.trackers.polyline import decode_deltas
from skysync.trackers.store import DeviceStore, PersistenceError

logger = logging.getLogger("skysync.trackers.skylines")

PROVIDER = "skylines"
SECONDS_IN_DAY = 60 * 60 * 24

_ID_RE = re.compile(r"[0-9]+")


class MalformedFlightError(ValueError):
    """Raised when a SkyLines flight payload cannot be decoded."""


def decode_flight(
    flight: Any, name: str, max_hours: float, now_ms: float | None = None
) -> list[GeoPoint]:
    """Decode a SkyLines live flight into time ordered points.

    ``barogram_t`` holds seconds since midnight UTC of the day the track
    started. The day itself is not transmitted: a track whose time of day is
    later than the current time of day is assumed to have started the day
    before. This only holds for tracks younger than 24h so ``now_ms`` must be
    close to the actual time.

    Points older than ``max_hours`` before ``now_ms`` are dropped.
    """

    try:
        times = decode_deltas(flight["barogram_t"], 1, 1)
        latlon = decode_deltas(flight["points"], 2)
        heights = decode_deltas(flight["barogram_h"], 1, 1)
        geoid = float(flight.get("geoid") or 0)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedFlightError(f"Invalid flight payload: {exc}") from exc

    if not times:
        return []
    if len(latlon) != 2 * len(times) or len(heights) != len(times):
        raise MalformedFlightError(
            f"Mismatched series: {len(times)} times, {len(latlon) // 2} points, "
            f"{len(heights)} heights"
        )

    if now_ms is None:
        now_ms = time.time() * 1000

    start_seconds = int(times[0])
    start_day_seconds = start_seconds % SECONDS_IN_DAY
    now_seconds = math.ceil(now_ms / 1000)
    now_day_seconds = now_seconds % SECONDS_IN_DAY
    started_on_previous_day = start_day_seconds > now_day_seconds
    start_of_day_seconds = now_seconds - now_day_seconds
    start_ts_seconds = (
        start_of_day_seconds
        - (SECONDS_IN_DAY if started_on_previous_day else 0)
        + start_day_seconds
    )
    max_age_seconds = max_hours * 3600

    points: list[GeoPoint] = []
    for index, seconds in enumerate(times):
        ts_seconds = start_ts_seconds + int(seconds) - start_seconds
        if now_seconds - ts_seconds > max_age_seconds:
            continue
        points.append(
            GeoPoint(
                ts=ts_seconds * 1000,
                lat=round(latlon[index * 2], 5),
                lon=round(latlon[index * 2 + 1], 5),
                alt=math.floor(heights[index] + geoid + 0.5),
                name=name,
                emergency=False,
            )
        )
    return points


@dataclass
class RefreshStats:
    """Counters for one refresh run."""

    processed: int = 0
    active: int = 0
    errors: int = 0
    skipped: int = 0
    timed_out: bool = False


class SkylinesRefresher:
    """Poll SkyLines for every stale device within a time budget."""

    def __init__(
        self,
        store: DeviceStore,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        refresh_every_minutes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.base_url = (base_url or settings.skylines_base_url).rstrip("/")
        self.timeout = timeout or settings.skylines_timeout
        self.refresh_every_minutes = (
            refresh_every_minutes
            if refresh_every_minutes is not None
            else settings.refresh_every_minutes
        )
        self.transport = transport
        self._clock = clock
        self.last_stats = RefreshStats()

    async def refresh(self, max_hours: float, timeout_seconds: float) -> int:
        """Refresh stale devices and return how many are active.

        The budget is checked before each device. Devices left over when it
        runs out stay stale and are picked up by the next run.
        """

        start = self._clock()
        stale_before = int(start * 1000) - self.refresh_every_minutes * 60 * 1000
        devices = self.store.query(PROVIDER, stale_before)
        stats = RefreshStats()

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            for index, device in enumerate(devices):
                if self._clock() - start >= timeout_seconds:
                    stats.timed_out = True
                    logger.warning(
                        "Timeout for skylines devices (%ss), %s left stale",
                        timeout_seconds,
                        len(devices) - index,
                    )
                    break

                skylines_id = device.skylines or ""
                if not _ID_RE.fullmatch(skylines_id):
                    stats.skipped += 1
                    continue

                await self._refresh_device(client, device, skylines_id, max_hours, stats)

        logger.info(
            "Refreshed %s skylines devices in %.2fs, %s active",
            stats.processed,
            self._clock() - start,
            stats.active,
        )
        self.last_stats = stats
        return stats.active

    async def _refresh_device(
        self,
        client: httpx.AsyncClient,
        device: Device,
        skylines_id: str,
        max_hours: float,
        stats: RefreshStats,
    ) -> None:
        logger.info("Refreshing skylines @ %s", skylines_id)
        try:
            response = await client.get(f"{self.base_url}/{skylines_id}")
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.warning("Error refreshing skylines @ %s: %s", skylines_id, exc)
            stats.errors += 1
            return

        if response.status_code != 200:
            logger.warning(
                "Error refreshing skylines @ %s: HTTP %s",
                skylines_id,
                response.status_code,
            )
            stats.errors += 1
            return

        try:
            live = response.json()
        except ValueError as exc:
            logger.warning("Invalid JSON from skylines @ %s: %s", skylines_id, exc)
            stats.errors += 1
            return
        if not isinstance(live, dict):
            logger.warning("Unexpected payload from skylines @ %s", skylines_id)
            stats.errors += 1
            return

        now_ms = int(self._clock() * 1000)
        points: list[GeoPoint] = []
        flights = live.get("flights")
        if isinstance(flights, list) and flights:
            try:
                points = decode_flight(flights[0], _pilot_name(live), max_hours, now_ms)
            except MalformedFlightError as exc:
                logger.warning("Skipping flight from skylines @ %s: %s", skylines_id, exc)

        device.features = json.dumps(create_features(points))
        device.updated = now_ms
        device.active = len(points) > 0

        try:
            self.store.save(device, exclude_from_indexes=["features"])
        except PersistenceError as exc:
            logger.error("Failed to store skylines @ %s: %s", skylines_id, exc)
            stats.errors += 1
            return

        stats.processed += 1
        if device.active:
            stats.active += 1


def _pilot_name(live: dict[str, Any]) -> str:
    pilots = live.get("pilots")
    if isinstance(pilots, list) and pilots and isinstance(pilots[0], dict):
        name = pilots[0].get("name")
        if name is not None:
            return str(name)
    return "unknown"


async def refresh(
    store: DeviceStore, max_hours: float, timeout_seconds: float, **kwargs: Any
) -> int:
    """Run one SkyLines refresh and return the number of active devices."""

    return await SkylinesRefresher(store, **kwargs).refresh(max_hours, timeout_seconds)


__all__ = [
    "MalformedFlightError",
    "RefreshStats",
    "SkylinesRefresher",
    "decode_flight",
    "refresh",
]
