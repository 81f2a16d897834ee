"""
Haversine distance and distance presentation helpers for nearby-stop queries.
"""
import math
from dataclasses import dataclass
from enum import Enum

# Earth radius in km (WGS84 approximate)
EARTH_RADIUS_KM = 6371.0

# Bucket thresholds, shared with the nearby distance filter (500m / 1km)
NEAR_THRESHOLD_KM = 0.5
MODERATE_THRESHOLD_KM = 1.0

LAT_MIN, LAT_MAX = -90.0, 90.0
LNG_MIN, LNG_MAX = -180.0, 180.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (LAT_MIN <= self.latitude <= LAT_MAX):
            raise ValueError(f"latitude must be between {LAT_MIN} and {LAT_MAX}")
        if not (LNG_MIN <= self.longitude <= LNG_MAX):
            raise ValueError(f"longitude must be between {LNG_MIN} and {LNG_MAX}")


def is_valid_position(lat: float, lng: float) -> bool:
    """True when both values are finite and inside WGS84 bounds."""
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return LAT_MIN <= lat <= LAT_MAX and LNG_MIN <= lng <= LNG_MAX


class DistanceBucket(str, Enum):
    NEAR = "near"
    MODERATE = "moderate"
    FAR = "far"


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Return great-circle distance between two points in kilometers.
    Arguments in degrees.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in km between two coordinates."""
    return haversine_distance_km(a.latitude, a.longitude, b.latitude, b.longitude)


def format_distance(km: float) -> str:
    """Render as whole meters below 1 km ("350m"), else km with 2 decimals ("1.25km")."""
    if km < 1:
        # Half-up: 0.0625 km is "63m", where round() would give "62m"
        return f"{math.floor(km * 1000 + 0.5)}m"
    return f"{km:.2f}km"


def distance_bucket(km: float) -> DistanceBucket:
    if km <= NEAR_THRESHOLD_KM:
        return DistanceBucket.NEAR
    if km <= MODERATE_THRESHOLD_KM:
        return DistanceBucket.MODERATE
    return DistanceBucket.FAR
