"""Datastore access for tracker devices."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skysync.db import SessionLocal
from skysync.db_models import TrackerRecord
from skysync.models.device import Device

logger = logging.getLogger("skysync.trackers.store")


class PersistenceError(Exception):
    """Raised when a device cannot be read from or written to the datastore."""


class DeviceStore(Protocol):
    """Narrow read/write contract used by the refreshers."""

    def query(self, provider: str, stale_before: int) -> list[Device]:
        """Return the devices of ``provider`` updated before ``stale_before`` (ms)."""

    def save(self, device: Device, *, exclude_from_indexes: Sequence[str] = ()) -> None:
        """Persist ``device``; ``exclude_from_indexes`` fields must stay unindexed."""


def _indexed_columns() -> set[str]:
    return {
        column.name
        for index in TrackerRecord.__table__.indexes
        for column in index.columns
    }


class SqlDeviceStore:
    """DeviceStore backed by the ``trackers`` table.

    Devices are returned most recently updated first. Callers must not rely on
    that order for correctness.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def query(self, provider: str, stale_before: int) -> list[Device]:
        stmt = (
            select(TrackerRecord)
            .where(TrackerRecord.device == provider, TrackerRecord.updated < stale_before)
            .order_by(TrackerRecord.updated.desc())
        )
        try:
            with self._session_factory() as session:
                records = session.scalars(stmt).all()
                return [Device.model_validate(record) for record in records]
        except SQLAlchemyError as exc:
            logger.error("Failed to query %s devices: %s", provider, exc)
            raise PersistenceError(f"Unable to query {provider} devices") from exc

    def save(self, device: Device, *, exclude_from_indexes: Sequence[str] = ()) -> None:
        indexed = _indexed_columns().intersection(exclude_from_indexes)
        if indexed:
            raise PersistenceError(
                f"Fields {sorted(indexed)} are indexed by the trackers table"
            )

        values = device.model_dump(exclude={"id"})
        try:
            with self._session_factory() as session:
                record = session.get(TrackerRecord, device.id) if device.id else None
                if record is None:
                    record = TrackerRecord(**values)
                    session.add(record)
                else:
                    for name, value in values.items():
                        setattr(record, name, value)
                session.commit()
                device.id = record.id
        except SQLAlchemyError as exc:
            logger.error("Failed to save device %s: %s", device.id, exc)
            raise PersistenceError(f"Unable to save device {device.id}") from exc


__all__ = ["DeviceStore", "PersistenceError", "SqlDeviceStore"]
