# utils/geo.py
"""
Great-circle distance helpers used for geofence checks.
"""

from math import radians, sin, cos, sqrt, atan2

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1, lon1, lat2, lon2):
    """
    Distance in metres between two coordinates given in decimal degrees.
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within_geofence(lat, lon, center_lat, center_lon, radius_m):
    """
    Check if a coordinate lies inside a circular geofence (boundary inclusive).

    Returns:
        tuple: (within_fence, distance_m)
    """
    distance = haversine_m(lat, lon, center_lat, center_lon)
    return distance <= float(radius_m), distance
