"""Server computed track metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import BaseModel, Field

from skysync.models.track import AirspaceCrossing


class MetaTrackGroup(BaseModel):
    """Post-processing results for every track of one group.

    Both series are indexed like the tracks of the group: entry ``i`` belongs
    to the track with id ``<id>-<i>``.
    """

    id: int = Field(..., description="Group id")
    ground_altitudes: Optional[list[list[int]]] = Field(
        default=None, description="Ground altitude series per track"
    )
    airspaces: Optional[list[list[AirspaceCrossing]]] = Field(
        default=None, description="Airspace crossings per track"
    )


@dataclass(frozen=True)
class NotReady:
    """The server has no metadata yet for the requested groups."""


@dataclass(frozen=True)
class MetadataBatch:
    """Metadata decoded from one server response."""

    groups: list[MetaTrackGroup] = field(default_factory=list)


MetadataResult = Union[NotReady, MetadataBatch]


__all__ = ["MetaTrackGroup", "MetadataBatch", "MetadataResult", "NotReady"]
