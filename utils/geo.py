"""
Great-circle distance helpers used to label competitors.
"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance between two WGS84 points, in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * 1000.0


def format_distance(meters: float) -> str:
    """850.2 -> '850m', 2340 -> '2.3km'."""
    if meters < 1000:
        return f"{int(math.floor(meters + 0.5))}m"
    return f"{meters / 1000:.1f}km"


def distance_label(
    lat1: float,
    lng1: float,
    lat2: Optional[float],
    lng2: Optional[float],
) -> Optional[str]:
    """Formatted distance, or None when the destination has no coordinates."""
    if lat2 is None or lng2 is None:
        return None
    return format_distance(haversine_meters(lat1, lng1, lat2, lng2))


def offset_point(lat: float, lng: float, north_m: float, east_m: float):
    """Shift a point by metric offsets (small-distance approximation)."""
    d_lat = north_m / (EARTH_RADIUS_KM * 1000.0)
    d_lng = east_m / (EARTH_RADIUS_KM * 1000.0 * math.cos(math.radians(lat)))
    return lat + math.degrees(d_lat), lng + math.degrees(d_lng)
