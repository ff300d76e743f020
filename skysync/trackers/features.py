"""Renderable GeoJSON built from decoded tracker points."""

from __future__ import annotations

from typing import Any, Sequence

from skysync.models.geo import GeoPoint


def _point_feature(point: GeoPoint, kind: str) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [point.lon, point.lat, point.alt]},
        "properties": {
            "kind": kind,
            "name": point.name,
            "ts": point.ts,
            "alt": point.alt,
            "emergency": point.emergency,
        },
    }


def create_features(points: Sequence[GeoPoint]) -> dict[str, Any]:
    """Build a FeatureCollection from time ordered points.

    The collection holds the flown line (coordinates are
    ``[lon, lat, alt, ts]``), the most recent fix and every emergency fix.
    An empty input yields an empty collection.
    """

    features: list[dict[str, Any]] = []
    if points:
        last = points[-1]
        if len(points) > 1:
            features.append(
                {
                    "type": "Feature",
                    "geometry": {
                        "type": "LineString",
                        "coordinates": [[p.lon, p.lat, p.alt, p.ts] for p in points],
                    },
                    "properties": {
                        "kind": "line",
                        "name": last.name,
                        "first_ts": points[0].ts,
                        "last_ts": last.ts,
                    },
                }
            )
        features.append(_point_feature(last, "last_fix"))
        features.extend(
            _point_feature(point, "emergency") for point in points if point.emergency
        )

    return {"type": "FeatureCollection", "features": features}


__all__ = ["create_features"]
