"""Client side track models and track id helpers."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Partial track update keyed by "id".
TrackPatch = dict[str, Any]


def create_track_id(group_id: int, index: int) -> str:
    """Build the id of the track at ``index`` within ``group_id``."""

    return f"{group_id}-{index}"


def extract_group_id(track_id: str) -> int:
    """Return the group id encoded in a track id."""

    return int(str(track_id).split("-", 1)[0])


class AirspaceCrossing(BaseModel):
    """An airspace entered by a track between two sample indices."""

    name: str = Field(..., description="Airspace name")
    category: str = Field(default="", description="Airspace class or category")
    top: int = Field(..., description="Airspace ceiling in meters")
    bottom: int = Field(..., description="Airspace floor in meters")
    start: int = Field(..., description="Index of the first sample inside the airspace")
    end: int = Field(..., description="Index of the last sample inside the airspace")

    model_config = ConfigDict(frozen=True)


class Track(BaseModel):
    """One flight held by the viewer."""

    id: str = Field(..., description="Track id, '<group id>-<index>'")
    name: str = Field(default="unknown", description="Pilot name")
    ts: list[int] = Field(..., description="Sample timestamps in milliseconds")
    lat: list[float] = Field(..., description="Sample latitudes")
    lon: list[float] = Field(..., description="Sample longitudes")
    alt: list[int] = Field(..., description="Sample GPS altitudes in meters")
    is_post_processed: bool = Field(
        default=False, description="True when the server already added metadata"
    )

    # Server side post-processing.
    gnd_alt: Optional[list[int]] = Field(
        default=None, description="Ground altitude below each sample"
    )
    airspaces: Optional[list[AirspaceCrossing]] = Field(
        default=None, description="Airspaces crossed by the track"
    )

    # Client side enrichment.
    min_alt: Optional[int] = Field(default=None, description="Lowest altitude")
    max_alt: Optional[int] = Field(default=None, description="Highest altitude")
    vz: Optional[list[float]] = Field(
        default=None, description="Vertical speed at each sample in m/s"
    )
    distance_km: Optional[float] = Field(
        default=None, description="Total flown distance in kilometers"
    )

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def _check_series(self) -> "Track":
        size = len(self.ts)
        if size == 0:
            raise ValueError("a track needs at least one sample")
        if not (len(self.lat) == len(self.lon) == len(self.alt) == size):
            raise ValueError("track series must have the same length")
        return self

    @property
    def group_id(self) -> int:
        return extract_group_id(self.id)

    @property
    def start_ts(self) -> int:
        return self.ts[0]


class TrackBatch(BaseModel):
    """A group of tracks as returned by the track endpoint."""

    tracks: list[Track] = Field(default_factory=list)


__all__ = [
    "AirspaceCrossing",
    "Track",
    "TrackBatch",
    "TrackPatch",
    "create_track_id",
    "extract_group_id",
]
