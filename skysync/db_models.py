"""SQLAlchemy ORM models for SkySync."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from skysync.db import Base


class TrackerRecord(Base):
    """A live tracking device and its most recent decoded features."""

    __tablename__ = "trackers"
    __table_args__ = (Index("ix_trackers_device_updated", "device", "updated"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    skylines: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    updated: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Serialized GeoJSON, never indexed.
    features: Mapped[str | None] = mapped_column(Text, nullable=True)
