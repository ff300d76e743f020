"""Groups waiting for server side post-processing."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

logger = logging.getLogger("skysync.sync.pending")


class PendingMetadataTracker:
    """Map group ids to the time (seconds) their metadata was first requested.

    Entries are never refreshed: re-adding a pending group keeps its original
    request time so that it still expires on schedule.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._started: dict[int, float] = {}

    def add(self, group_id: int, now: float | None = None) -> bool:
        """Start tracking ``group_id``. Returns False when already pending."""

        if group_id in self._started:
            return False
        self._started[group_id] = self._clock() if now is None else now
        return True

    def discard(self, group_id: int) -> None:
        self._started.pop(group_id, None)

    def sweep_expired(self, now: float, ttl: float) -> list[int]:
        """Drop every group requested at or before ``now - ttl``."""

        drop_before = now - ttl
        expired = [gid for gid, started in self._started.items() if started <= drop_before]
        for group_id in expired:
            del self._started[group_id]
        if expired:
            logger.info("Gave up waiting for metadata of groups %s", expired)
        return expired

    def started_at(self, group_id: int) -> float | None:
        return self._started.get(group_id)

    def ids(self) -> list[int]:
        return list(self._started)

    def is_empty(self) -> bool:
        return not self._started

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._started

    def __len__(self) -> int:
        return len(self._started)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._started))


__all__ = ["PendingMetadataTracker"]
