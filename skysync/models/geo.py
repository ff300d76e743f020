"""Geographic telemetry samples produced by tracker decoders."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeoPoint(BaseModel):
    """One decoded telemetry sample with an absolute timestamp."""

    ts: int = Field(..., description="Timestamp in milliseconds since epoch")
    lat: float = Field(..., description="Latitude in decimal degrees")
    lon: float = Field(..., description="Longitude in decimal degrees")
    alt: int = Field(..., description="Altitude in meters")
    name: str = Field(..., description="Pilot or device display name")
    emergency: bool = Field(default=False, description="Emergency flag")

    model_config = ConfigDict(frozen=True)


__all__ = ["GeoPoint"]
