from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6371000


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


def haversine_m(lat1, lng1, lat2, lng2):
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_meters(a: Position, b: Position) -> float:
    """Great-circle distance in metres. Range checks are the caller's job."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
