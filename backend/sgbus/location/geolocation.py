"""
Position acquisition with categorized errors and reuse of a recent fix.
"""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sgbus.data.geo import Coordinate

logger = logging.getLogger(__name__)


class LocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


LOCATION_ERROR_MESSAGES = {
    LocationErrorKind.PERMISSION_DENIED: "Location access denied. Please enable location services and try again.",
    LocationErrorKind.UNAVAILABLE: "Location information is unavailable. Please check your GPS settings.",
    LocationErrorKind.TIMEOUT: "Location request timed out. Please try again.",
    LocationErrorKind.UNKNOWN: "An unknown error occurred while retrieving location.",
}


class LocationError(Exception):
    def __init__(self, kind: LocationErrorKind, detail: str = ""):
        super().__init__(detail or LOCATION_ERROR_MESSAGES[kind])
        self.kind = kind
        self.detail = detail

    @property
    def message(self) -> str:
        """User-facing text for this kind of failure."""
        return LOCATION_ERROR_MESSAGES[self.kind]


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 15_000
    max_cached_age_ms: int = 300_000


PositionProvider = Callable[[PositionOptions], Coordinate]


class Locator:
    """
    Wraps a position provider (GPS, browser bridge, fixed point in tests).
    A fix younger than options.max_cached_age_ms is returned without asking again.
    Failures are raised as LocationError and never retried here.
    """

    def __init__(
        self,
        provider: PositionProvider,
        options: PositionOptions = PositionOptions(),
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self._options = options
        self._clock = clock
        self._last: tuple[Coordinate, float] | None = None

    def current_position(self) -> Coordinate:
        if self._last is not None:
            position, acquired_at = self._last
            if (self._clock() - acquired_at) * 1000 <= self._options.max_cached_age_ms:
                return position
        try:
            position = self._provider(self._options)
        except LocationError as e:
            logger.warning("telemetry location_error kind=%s", e.kind.value, extra={"kind": e.kind.value})
            raise
        except TimeoutError as e:
            logger.warning("telemetry location_error kind=timeout")
            raise LocationError(LocationErrorKind.TIMEOUT, str(e)) from e
        except Exception as e:
            logger.warning("telemetry location_error kind=unknown error=%s", str(e))
            raise LocationError(LocationErrorKind.UNKNOWN, str(e)) from e
        self._last = (position, self._clock())
        return position

    def forget(self) -> None:
        """Drop the cached fix so the next call asks the provider."""
        self._last = None
