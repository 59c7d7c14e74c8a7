"""Great-circle distance and bearing between track points.

Consecutive points are close enough together that the great-circle
distance between them can be treated as the straight horizontal "run"
of a right triangle whose height is the elevation "rise".
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gpx_tool.models import TrackPoint

# Mean Earth radius (m) of the spherical model
EARTH_RADIUS_M = 6_371_000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon positions (degrees)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    half_dphi = math.radians(lat2 - lat1) / 2
    half_dlambda = math.radians(lon2 - lon1) / 2

    h = math.sin(half_dphi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlambda) ** 2
    # Rounding can push h just outside [0, 1]
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from the first position towards the second.

    Returns degrees clockwise from north, in [0, 360).
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dlambda = math.radians(lon2 - lon1)

    east = math.sin(dlambda) * math.cos(phi2)
    north = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlambda)

    degrees = math.degrees(math.atan2(east, north)) % 360.0
    # A tiny negative angle wraps to 360.0 after rounding
    return 0.0 if degrees >= 360.0 else degrees


def distance(p1: TrackPoint, p2: TrackPoint) -> float:
    """Horizontal distance in meters between two track points."""
    return haversine_distance(p1.lat, p1.lon, p2.lat, p2.lon)


def bearing(p1: TrackPoint, p2: TrackPoint) -> float:
    """Initial bearing in degrees from p1 towards p2."""
    return calculate_bearing(p1.lat, p1.lon, p2.lat, p2.lon)
