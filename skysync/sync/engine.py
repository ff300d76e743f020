"""Keeps viewer tracks in sync with background and server enrichment."""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
import logging
import time
from typing import Any, Callable, Iterable, Optional

import httpx
from pydantic import ValidationError

from skysync.config import settings
from skysync.models.metadata import MetadataBatch, MetadataResult, NotReady
from skysync.models.track import Track, TrackBatch, TrackPatch, create_track_id
from skysync.sync.codec import MetadataDecodeError, decode_metadata
from skysync.sync.pending import PendingMetadataTracker
from skysync.sync.track_store import TrackStore
from skysync.sync.worker import TrackWorker

logger = logging.getLogger("skysync.sync.engine")

GroupListener = Callable[[list[int]], None]


class SyncState(str, Enum):
    IDLE = "idle"
    POLL_SCHEDULED = "poll_scheduled"
    POLL_IN_FLIGHT = "poll_in_flight"


class TrackFetchError(RuntimeError):
    """Raised when a track batch cannot be fetched or decoded."""


class TrackSyncEngine:
    """Own the viewer tracks and merge enrichment results into them.

    Loading tracks sends each one to the :class:`TrackWorker` and registers the
    groups that still lack server metadata. A single poll task then asks the
    server for that metadata every ``poll_delay`` seconds until nothing is
    pending. Groups waiting longer than ``metadata_ttl`` seconds are dropped.

    Must be used from a running asyncio event loop.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        store: TrackStore | None = None,
        pending: PendingMetadataTracker | None = None,
        worker: TrackWorker | None = None,
        poll_delay: float | None = None,
        metadata_ttl: float | None = None,
        metadata_path: str = "_metadata",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.http_client = http_client
        self.store = store or TrackStore()
        self.pending = pending or PendingMetadataTracker(clock=clock)
        self.poll_delay = (
            poll_delay if poll_delay is not None else settings.metadata_fetch_every_seconds
        )
        self.metadata_ttl = (
            metadata_ttl
            if metadata_ttl is not None
            else settings.metadata_fetch_for_minutes * 60
        )
        self.metadata_path = metadata_path
        self._clock = clock

        self._worker = worker or TrackWorker()
        self._enrichments: set[asyncio.Future] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._groups_added: list[GroupListener] = []
        self._groups_removed: list[GroupListener] = []
        self._closed = False

        self.state = SyncState.IDLE
        self.fetching = False
        # Time reference (ms) set when the first tracks are shown.
        self.timestamp: Optional[int] = None

    async def __aenter__(self) -> "TrackSyncEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_groups_added_listener(self, listener: GroupListener) -> None:
        self._groups_added.append(listener)

    def add_groups_removed_listener(self, listener: GroupListener) -> None:
        self._groups_removed.append(listener)

    def _notify(self, listeners: list[GroupListener], group_ids: list[int]) -> None:
        for listener in listeners:
            try:
                listener(group_ids)
            except Exception as exc:
                logger.error("Group listener error: %s", exc)

    # ------------------------------------------------------------------
    # Tracks
    # ------------------------------------------------------------------

    @property
    def current_track_id(self) -> Optional[str]:
        return self.store.current_track_id

    def set_current_track_id(self, track_id: Optional[str]) -> None:
        self.store.set_current_track_id(track_id)

    def select_next(self) -> Optional[str]:
        return self.store.select_next()

    async def fetch_tracks(self, url: str, **request_kwargs: Any) -> list[int]:
        """Download a JSON track batch and load it. Returns the new group ids."""

        self.fetching = True
        try:
            response = await self.http_client.get(url, **request_kwargs)
            response.raise_for_status()
            batch = TrackBatch.model_validate_json(response.content)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Track fetch returned error: status=%s url=%s",
                exc.response.status_code,
                url,
            )
            raise TrackFetchError("Track fetch failed") from exc
        except httpx.RequestError as exc:
            logger.error("Track request failed: %s", exc)
            raise TrackFetchError("Track request failed") from exc
        except ValidationError as exc:
            logger.error("Invalid track batch from %s: %s", url, exc)
            raise TrackFetchError("Invalid track batch") from exc
        finally:
            self.fetching = False

        return self.load_tracks(batch.tracks)

    def load_tracks(self, tracks: Iterable[Track]) -> list[int]:
        """Insert a batch of tracks and start their enrichment.

        Returns the group ids of the batch in order of appearance.
        """

        tracks = list(tracks)
        if not tracks:
            return []

        was_empty = len(self.store) == 0
        self.store.insert_many(tracks)

        group_ids: list[int] = []
        for track in tracks:
            if track.group_id not in group_ids:
                group_ids.append(track.group_id)
            self._dispatch_enrichment(track)
            if not track.is_post_processed:
                self.request_metadata(track.group_id)

        if was_empty:
            self.timestamp = tracks[0].start_ts
            self.store.set_current_track_id(tracks[0].id)

        logger.info("Loaded %s tracks from groups %s", len(tracks), group_ids)
        self._notify(self._groups_added, group_ids)
        return group_ids

    def remove_groups(self, group_ids: Iterable[int]) -> list[str]:
        """Remove the tracks of the given groups.

        Pending metadata for those groups is left alone; late results are
        ignored by the store.
        """

        group_ids = [int(group_id) for group_id in group_ids]
        removed = self.store.remove_by_group_ids(group_ids)
        self._notify(self._groups_removed, group_ids)
        return removed

    def apply_patch(self, patch: TrackPatch) -> bool:
        track_id = patch.get("id")
        if track_id is None:
            logger.warning("Ignoring track patch without id")
            return False
        try:
            return self.store.patch(str(track_id), patch)
        except ValidationError as exc:
            logger.warning("Invalid patch for track %s: %s", track_id, exc)
            return False

    # ------------------------------------------------------------------
    # Client side enrichment
    # ------------------------------------------------------------------

    def _dispatch_enrichment(self, track: Track) -> None:
        future = self._worker.submit(track)
        self._enrichments.add(future)
        future.add_done_callback(self._on_enriched)

    def _on_enriched(self, future: asyncio.Future) -> None:
        self._enrichments.discard(future)
        if future.cancelled() or self._closed:
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Track enrichment failed: %s", exc)
            return
        self.apply_patch(future.result())

    async def wait_enrichment(self) -> None:
        """Wait until every dispatched enrichment has been applied."""

        while self._enrichments:
            await asyncio.gather(*list(self._enrichments), return_exceptions=True)
            # Let the done callbacks run.
            await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Server metadata
    # ------------------------------------------------------------------

    def request_metadata(self, group_id: int) -> None:
        """Wait for server metadata of ``group_id`` and make sure a poll is due."""

        self.pending.add(group_id)
        self._schedule_poll()

    def _schedule_poll(self) -> None:
        if self._closed or self.state is not SyncState.IDLE:
            return
        self.state = SyncState.POLL_SCHEDULED
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        try:
            while True:
                self.state = SyncState.POLL_SCHEDULED
                await asyncio.sleep(self.poll_delay)

                self.state = SyncState.POLL_IN_FLIGHT
                self.pending.sweep_expired(self._clock(), self.metadata_ttl)
                group_ids = self.pending.ids()
                if not group_ids:
                    break

                try:
                    result = await self._fetch_metadata(group_ids)
                    self.apply_metadata(result)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("Metadata poll failed for groups %s: %s", group_ids, exc)
                if self.pending.is_empty():
                    break
        finally:
            self.state = SyncState.IDLE
            self._poll_task = None

    async def _fetch_metadata(self, group_ids: list[int]) -> MetadataResult:
        ids = ",".join(str(group_id) for group_id in group_ids)
        try:
            response = await self.http_client.get(self.metadata_path, params={"ids": ids})
        except httpx.HTTPError as exc:
            logger.debug("Metadata request failed: %s", exc)
            return NotReady()

        # 204 (No Content) until the server has processed the groups.
        if response.status_code == 204 or (
            response.status_code == 200 and not response.content
        ):
            logger.debug("Metadata not ready for groups %s", ids)
            return NotReady()
        if response.status_code != 200:
            logger.warning("Metadata request returned HTTP %s", response.status_code)
            return NotReady()

        try:
            return MetadataBatch(groups=decode_metadata(response.content))
        except MetadataDecodeError as exc:
            logger.warning("Failed to decode metadata for groups %s: %s", ids, exc)
            return NotReady()

    def apply_metadata(self, result: MetadataResult) -> int:
        """Patch tracks from a metadata result. Returns the number of patches."""

        if isinstance(result, NotReady):
            return 0

        patched = 0
        for group in result.groups:
            self.pending.discard(group.id)
            for index, gnd_alt in enumerate(group.ground_altitudes or []):
                if self.store.patch(create_track_id(group.id, index), {"gnd_alt": gnd_alt}):
                    patched += 1
            for index, crossings in enumerate(group.airspaces or []):
                if self.store.patch(create_track_id(group.id, index), {"airspaces": crossings}):
                    patched += 1
        logger.debug("Applied %s metadata patches", patched)
        return patched

    async def wait_idle(self) -> None:
        """Wait for the current poll chain, if any, to finish."""

        task = self._poll_task
        if task is not None:
            await task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Stop polling and release the worker."""

        self._closed = True
        task = self._poll_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for future in list(self._enrichments):
            future.cancel()
        self._enrichments.clear()
        self._worker.close()


__all__ = ["SyncState", "TrackFetchError", "TrackSyncEngine"]
