"""Great-circle distance and coordinate validation shared by clustering and geofence."""

import math

# Earth radius in metres (approximate)
EARTH_RADIUS_M = 6_371_000

# Slack for float error on inclusive distance limits (1 micrometre)
DISTANCE_TOLERANCE_M = 1e-6


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in metres between two (lat, lng) points."""
    a = math.radians(lat2 - lat1)
    b = math.radians(lng2 - lng1)
    x = math.sin(a / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(b / 2) ** 2
    c = 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))
    return EARTH_RADIUS_M * c


def within_distance(distance_m: float, limit_m: float) -> bool:
    """Inclusive limit check: a point exactly limit_m away is inside."""
    return distance_m <= limit_m + DISTANCE_TOLERANCE_M


def validate_point(lat, lng) -> tuple[float, float]:
    """Return (lat, lng) as floats or raise ValueError."""
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise ValueError("location must be numeric lat/lng")
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise ValueError("location must be numeric lat/lng") from None
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise ValueError("location must be finite")
    if not -90.0 <= lat_f <= 90.0:
        raise ValueError(f"latitude out of range: {lat_f}")
    if not -180.0 <= lng_f <= 180.0:
        raise ValueError(f"longitude out of range: {lng_f}")
    return lat_f, lng_f
