"""Client side track enrichment run off the event loop."""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor, ProcessPoolExecutor
import logging
import math
from typing import Callable, Optional

from skysync.models.track import Track, TrackPatch

logger = logging.getLogger("skysync.sync.worker")


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""

    R = 6371.0  # Earth radius in km

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def enrich_track(track: Track) -> TrackPatch:
    """Compute altitude bounds, vertical speed and distance for a track.

    Runs in a worker process; must stay a picklable module level function.
    """

    vz = [0.0]
    distance = 0.0
    for i in range(1, len(track.ts)):
        dt = (track.ts[i] - track.ts[i - 1]) / 1000
        vz.append(round((track.alt[i] - track.alt[i - 1]) / dt, 2) if dt > 0 else 0.0)
        distance += haversine_distance(
            track.lat[i - 1], track.lon[i - 1], track.lat[i], track.lon[i]
        )

    return {
        "id": track.id,
        "min_alt": min(track.alt),
        "max_alt": max(track.alt),
        "vz": vz,
        "distance_km": round(distance, 3),
    }


def _default_executor() -> Executor:
    return ProcessPoolExecutor(max_workers=1)


class TrackWorker:
    """Owns the executor that enriches tracks.

    The executor is created on the first submission and shut down by
    :meth:`close`.
    """

    def __init__(self, executor_factory: Callable[[], Executor] = _default_executor) -> None:
        self._executor_factory = executor_factory
        self._executor: Optional[Executor] = None

    @property
    def started(self) -> bool:
        return self._executor is not None

    def submit(self, track: Track) -> "asyncio.Future[TrackPatch]":
        if self._executor is None:
            self._executor = self._executor_factory()
            logger.debug("Track worker started")
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, enrich_track, track)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            logger.debug("Track worker stopped")


__all__ = ["TrackWorker", "enrich_track", "haversine_distance"]
