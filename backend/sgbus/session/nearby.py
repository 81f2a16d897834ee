"""
"Find nearby" flow: locate the rider, rank stops within 2 km once, then filter
to 500m / 1km / 2km locally with live counts.
"""
import logging

from sgbus.data.geo import Coordinate
from sgbus.data.proximity import ProximityResolver, Strategy, bucket_counts
from sgbus.data.stops import RankedStop
from sgbus.location.geolocation import Locator

logger = logging.getLogger(__name__)

NEARBY_SEARCH_RADIUS_KM = 2.0
DISTANCE_FILTERS_KM = (0.5, 1.0, 2.0)


class NearbyStopsView:
    def __init__(
        self,
        locator: Locator,
        resolver: ProximityResolver,
        search_radius_km: float = NEARBY_SEARCH_RADIUS_KM,
        filters_km: tuple[float, ...] = DISTANCE_FILTERS_KM,
        strategy: Strategy | None = None,
    ):
        self._locator = locator
        self._resolver = resolver
        self._search_radius_km = search_radius_km
        self._filters_km = filters_km
        self._strategy = strategy
        self.origin: Coordinate | None = None
        self.stops: list[RankedStop] = []
        self.selected_distance_km = filters_km[0]

    def find(self) -> list[RankedStop]:
        """Locate and rank. LocationError propagates; the caller decides whether to retry."""
        origin = self._locator.current_position()
        self.origin = origin
        self.stops = self._resolver.resolve(origin, self._search_radius_km, strategy=self._strategy)
        logger.info("telemetry nearby_found count=%s", len(self.stops))
        return self.visible

    def select_distance(self, km: float) -> None:
        if km not in self._filters_km:
            raise ValueError(f"distance filter must be one of {self._filters_km}")
        self.selected_distance_km = km

    @property
    def visible(self) -> list[RankedStop]:
        return [r for r in self.stops if r.distance_km <= self.selected_distance_km]

    @property
    def counts(self) -> dict[float, int]:
        return bucket_counts(self.stops, self._filters_km)
