"""Great-circle distance and the bounding-box pre-filter for candidate queries."""

from __future__ import annotations

import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0
AVERAGE_SPEED_KMH = 40.0


class BoundingBox(NamedTuple):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in km between two points given in degrees."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    # rounding can push a a hair above 1 for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """
    Rectangle around (lat, lng) that covers every point within radius_km.

    111 km per degree is slightly below the true 111.19 km, so the latitude
    band errs on the large side. Far from the equator the flat r / cos(lat)
    estimate is too narrow, so the longitude half-width is the larger of it
    and the exact spherical one, asin(sin(r / R) / cos(lat)). When the circle
    reaches over a pole every longitude is in range. Longitudes are not wrapped
    across the antimeridian. Undefined at the poles themselves (cos(lat) == 0).
    """
    dlat = radius_km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    sin_d = math.sin(radius_km / EARTH_RADIUS_KM)
    if sin_d >= cos_lat:
        return BoundingBox(lat - dlat, lat + dlat, -180.0, 180.0)
    dlng = max(
        radius_km / (KM_PER_DEGREE * cos_lat),
        math.degrees(math.asin(sin_d / cos_lat)),
    )
    return BoundingBox(lat - dlat, lat + dlat, lng - dlng, lng + dlng)


def travel_minutes(lat1: float, lng1: float, lat2: float, lng2: float,
                   speed_kmh: float = AVERAGE_SPEED_KMH) -> int:
    """Straight-line travel time estimate, whole minutes."""
    hours = haversine_km(lat1, lng1, lat2, lng2) / speed_kmh
    return round(hours * 60)
