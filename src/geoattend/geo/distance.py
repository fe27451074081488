"""Great-circle distance on a spherical Earth."""

from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, floor, radians, sin, sqrt

from ..common.validators import require_min, require_range
from ..core.constants import EARTH_RADIUS_METERS


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        require_range(self.latitude, "latitude", -90.0, 90.0)
        require_range(self.longitude, "longitude", -180.0, 180.0)


@dataclass(frozen=True)
class Geofence:
    """Circular region in which a check-in is spatially valid."""

    center: Coordinate
    radius_meters: float

    def __post_init__(self):
        require_min(self.radius_meters, "radius_meters", 0)


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates, in meters."""
    lat1, lon1, lat2, lon2 = map(radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    h = min(1.0, h)
    return EARTH_RADIUS_METERS * 2 * atan2(sqrt(h), sqrt(1 - h))


def whole_meters(meters: float) -> int:
    """Round half up: 100.5 m reads as 101 m, 101.5 m as 102 m."""
    return int(floor(meters + 0.5))


def within_geofence(point: Coordinate, geofence: Geofence) -> bool:
    """Compare at whole-meter resolution, the precision distances are reported in."""
    return whole_meters(distance(point, geofence.center)) <= geofence.radius_meters
