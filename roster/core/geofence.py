"""Great-circle distance and circular geofence checks.

Coordinates are plain floating point degrees.  The evaluator never deals
with acquiring a position: callers resolve the device location first and
report acquisition failures as ``LocationFailure`` values instead.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000


class LocationFailure(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError("latitude must be between -90 and 90")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError("longitude must be between -180 and 180")


def distance(point: Coordinates, center: Coordinates) -> float:
    """Haversine distance between two points, in meters.

    Args:
        point: Position being checked
        center: Reference position

    Returns:
        Non-negative distance in meters
    """
    lat1 = math.radians(point.latitude)
    lat2 = math.radians(center.latitude)
    dlat = math.radians(center.latitude - point.latitude)
    dlon = math.radians(center.longitude - point.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within_fence(point: Coordinates, center: Coordinates, radius_meters: float) -> bool:
    """Inclusive: a point exactly on the boundary is inside."""
    return distance(point, center) <= radius_meters


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
