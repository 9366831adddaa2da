"""
Distance helpers for dispatch ranking.

Straight-line distances only; routing is out of scope.
"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points in kilometers.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_or_none(lat1, lon1, lat2, lon2) -> Optional[float]:
    """Distance in km, or None when either point lacks coordinates."""
    if None in (lat1, lon1, lat2, lon2):
        return None
    return haversine_distance(lat1, lon1, lat2, lon2)


def nearest_first_key(distance: Optional[float]):
    """Sort key that puts unknown distances last."""
    return (distance is None, distance if distance is not None else 0.0)
