"""Live tracking device records as seen by the refresh side."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Device(BaseModel):
    """A tracked device held in the datastore."""

    id: Optional[int] = Field(default=None, description="Datastore key")
    device: str = Field(..., description="Provider discriminator, e.g. 'skylines'")
    skylines: Optional[str] = Field(
        default=None, description="SkyLines pilot identifier"
    )
    updated: int = Field(default=0, description="Last update in milliseconds since epoch")
    active: bool = Field(default=False, description="True when recent points exist")
    features: Optional[str] = Field(
        default=None, description="Serialized GeoJSON feature collection"
    )

    model_config = ConfigDict(from_attributes=True)


__all__ = ["Device"]
