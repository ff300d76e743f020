"""In-memory collection of the tracks shown by the viewer."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional

from skysync.models.track import Track, extract_group_id

logger = logging.getLogger("skysync.sync.track_store")


class TrackStore:
    """Tracks keyed by id, kept sorted by the timestamp of their first sample.

    Tracks are only ever changed through :meth:`patch`, which merges fields so
    that enrichment results arriving in any order do not overwrite each other.
    """

    def __init__(self) -> None:
        self._tracks: dict[str, Track] = {}
        self._ids: list[str] = []
        self._current_track_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @property
    def current_track_id(self) -> Optional[str]:
        return self._current_track_id

    def get(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    def ids(self) -> list[str]:
        """Track ids in natural order (first sample timestamp ascending)."""
        return list(self._ids)

    def group_ids(self) -> list[int]:
        seen: dict[int, None] = {}
        for track_id in self._ids:
            seen.setdefault(extract_group_id(track_id), None)
        return list(seen)

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks

    def __iter__(self) -> Iterator[Track]:
        return (self._tracks[track_id] for track_id in self._ids)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert_many(self, tracks: Iterable[Track]) -> None:
        """Add tracks. Callers must not insert an id twice."""

        for track in tracks:
            self._tracks[track.id] = track
            self._ids.append(track.id)
        # Stable sort: tracks starting at the same time keep insertion order.
        self._ids.sort(key=lambda track_id: self._tracks[track_id].start_ts)

    def patch(self, track_id: str, changes: Mapping[str, Any]) -> bool:
        """Merge ``changes`` into a track. Unknown ids are ignored."""

        track = self._tracks.get(track_id)
        if track is None:
            logger.debug("Ignoring patch for unknown track %s", track_id)
            return False

        update = {
            name: value
            for name, value in changes.items()
            if name != "id" and name in Track.model_fields
        }
        if not update:
            return True
        # Revalidate so nested values coming from dicts become models.
        self._tracks[track_id] = Track.model_validate({**track.model_dump(), **update})
        return True

    def remove_by_group_ids(self, group_ids: Iterable[int]) -> list[str]:
        """Remove every track of the given groups and return their ids."""

        groups = {int(group_id) for group_id in group_ids}
        removed = [tid for tid in self._ids if extract_group_id(tid) in groups]
        for track_id in removed:
            del self._tracks[track_id]
        self._ids = [tid for tid in self._ids if tid in self._tracks]

        if not self._ids:
            self._current_track_id = None
        elif self._current_track_id is not None and self._current_track_id not in self._tracks:
            self._current_track_id = self._ids[0]
        return removed

    def set_current_track_id(self, track_id: Optional[str]) -> None:
        if track_id is not None and track_id not in self._tracks:
            raise KeyError(f"Unknown track {track_id}")
        self._current_track_id = track_id

    def select_next(self) -> Optional[str]:
        """Move the current track to the next one, wrapping around."""

        if self._current_track_id is None or not self._ids:
            return self._current_track_id
        index = self._ids.index(self._current_track_id)
        self._current_track_id = self._ids[(index + 1) % len(self._ids)]
        return self._current_track_id


__all__ = ["TrackStore"]
