"""Pydantic models for SkySync."""

from .device import Device
from .geo import GeoPoint
from .metadata import MetadataBatch, MetadataResult, MetaTrackGroup, NotReady
from .track import (
    AirspaceCrossing,
    Track,
    TrackBatch,
    TrackPatch,
    create_track_id,
    extract_group_id,
)

__all__ = [
    "AirspaceCrossing",
    "Device",
    "GeoPoint",
    "MetaTrackGroup",
    "MetadataBatch",
    "MetadataResult",
    "NotReady",
    "Track",
    "TrackBatch",
    "TrackPatch",
    "create_track_id",
    "extract_group_id",
]
