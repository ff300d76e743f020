"""Live tracker providers for SkySync."""

from .features import create_features
from .skylines import MalformedFlightError, RefreshStats, SkylinesRefresher, decode_flight, refresh
from .store import DeviceStore, PersistenceError, SqlDeviceStore

__all__ = [
    "DeviceStore",
    "MalformedFlightError",
    "PersistenceError",
    "RefreshStats",
    "SkylinesRefresher",
    "SqlDeviceStore",
    "create_features",
    "decode_flight",
    "refresh",
]
