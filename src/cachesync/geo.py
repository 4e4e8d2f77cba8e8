"""Coordinate formatting and great-circle distance."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def format_coords(lat: float, lon: float) -> str:
    """Format decimal degrees as degrees and decimal minutes.

    Returns an empty string for (0, 0), which geocaching.com uses when a
    cache has no corrected coordinates.

    Examples:
        (-27.5, 153.0) -> "S27 30.000 E153 00.000"
        (27.25, -153.5) -> "N27 15.000 W153 30.000"
    """
    if lat == 0 and lon == 0:
        return ""

    lat_dir = "S" if lat < 0 else "N"
    lon_dir = "W" if lon < 0 else "E"
    lat, lon = abs(lat), abs(lon)

    lat_deg = int(lat)
    lat_min = (lat - lat_deg) * 60
    lon_deg = int(lon)
    lon_min = (lon - lon_deg) * 60

    return f"{lat_dir}{lat_deg} {lat_min:06.3f} {lon_dir}{lon_deg} {lon_min:06.3f}"


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
