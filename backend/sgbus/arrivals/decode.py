"""
Decode tables for DataMall vehicle codes, and arrival-time arithmetic.
Unknown codes map to defaults; the provider vocabulary may grow.
"""
import math
import re
from datetime import datetime, timezone

from sgbus.arrivals.models import CrowdLevel, DeckerClass

LOAD_CROWD_LEVELS = {
    "SEA": CrowdLevel.LOW,  # seats available
    "SDA": CrowdLevel.MEDIUM,  # standing available
    "LSD": CrowdLevel.HIGH,  # limited standing
}

TYPE_DECKER_CLASSES = {
    "SD": DeckerClass.SINGLE,
    "DD": DeckerClass.DOUBLE,
    "BD": DeckerClass.SINGLE,  # bendy
}

TYPE_DESCRIPTIONS = {
    "SD": "Single Decker",
    "DD": "Double Decker",
    "BD": "Bendy Bus",
}

WHEELCHAIR_FEATURE = "WAB"
FEATURE_DESCRIPTIONS = {WHEELCHAIR_FEATURE: "Wheelchair Accessible"}
DEFAULT_FEATURE_DESCRIPTION = "Standard"
DEFAULT_TYPE_DESCRIPTION = "Unknown"

_LEADING_DIGITS = re.compile(r"^(\d+)(.*)$")


def crowd_level(load_code: str) -> CrowdLevel:
    return LOAD_CROWD_LEVELS.get(load_code, CrowdLevel.LOW)


def decker_class(type_code: str) -> DeckerClass:
    return TYPE_DECKER_CLASSES.get(type_code, DeckerClass.UNKNOWN)


def bus_type_description(type_code: str) -> str:
    return TYPE_DESCRIPTIONS.get(type_code, DEFAULT_TYPE_DESCRIPTION)


def is_wheelchair_accessible(feature_code: str) -> bool:
    return feature_code == WHEELCHAIR_FEATURE


def feature_description(feature_code: str) -> str:
    return FEATURE_DESCRIPTIONS.get(feature_code, DEFAULT_FEATURE_DESCRIPTION)


def minutes_until(estimated_arrival: str, now: datetime) -> int | None:
    """
    Whole minutes from now until an ISO 8601 arrival time, floored and never negative.
    None when the timestamp is empty or unparseable. Naive timestamps are taken as UTC.
    """
    if not estimated_arrival:
        return None
    try:
        eta = datetime.fromisoformat(estimated_arrival.replace("Z", "+00:00"))
    except ValueError:
        return None
    if eta.tzinfo is None:
        eta = eta.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    seconds = (eta - now).total_seconds()
    return max(0, math.floor(seconds / 60))


def service_sort_key(service_number: str) -> tuple:
    """
    Numeric-aware key: "2" < "14" < "14e" < "111" < "NR1".
    Services led by digits compare numerically, then by suffix; others come after, lexicographically.
    """
    m = _LEADING_DIGITS.match(service_number)
    if m:
        return (0, int(m.group(1)), m.group(2))
    return (1, 0, service_number)
