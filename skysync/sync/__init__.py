"""Client side track synchronization."""

from .codec import MetadataDecodeError, decode_metadata, encode_metadata
from .engine import SyncState, TrackFetchError, TrackSyncEngine
from .pending import PendingMetadataTracker
from .track_store import TrackStore
from .worker import TrackWorker, enrich_track

__all__ = [
    "MetadataDecodeError",
    "PendingMetadataTracker",
    "SyncState",
    "TrackFetchError",
    "TrackStore",
    "TrackSyncEngine",
    "TrackWorker",
    "decode_metadata",
    "encode_metadata",
    "enrich_track",
]
