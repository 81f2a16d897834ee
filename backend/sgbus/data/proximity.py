"""
Nearby stop resolution: distance filter and sort, client-side or delegated to a
server that runs the same ranking.
"""
import logging
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Protocol

from sgbus.data.catalog import StopCatalogFetcher
from sgbus.data.geo import Coordinate, distance_between, is_valid_position
from sgbus.data.stops import RankedStop, StopRecord
from sgbus.lta.client import ProviderError

logger = logging.getLogger(__name__)

MAX_RESULTS = 100
DEFAULT_BUCKETS_KM = (0.5, 1.0, 2.0)


class InvalidRadius(ValueError):
    pass


class Strategy(str, Enum):
    FETCH_ALL = "fetch-all"
    SERVER_SIDE = "server-side"


class NearbySource(Protocol):
    """A remote that filters and ranks stops itself, returning them nearest first."""

    def search_nearby(self, origin: Coordinate, radius_km: float, query: str = "") -> list[RankedStop]: ...


def rank_stops(
    origin: Coordinate,
    stops: Iterable[StopRecord],
    radius_km: float,
    limit: int | None = MAX_RESULTS,
) -> list[RankedStop]:
    """
    Stops within radius_km of origin, nearest first.
    Equal distances are ordered by stop_code so results are deterministic.
    """
    if radius_km <= 0:
        raise InvalidRadius(f"radius_km must be positive, got {radius_km}")
    ranked: list[RankedStop] = []
    skipped = 0
    for stop in stops:
        if not is_valid_position(stop.latitude, stop.longitude):
            skipped += 1
            continue
        d = distance_between(origin, stop.location)
        if d <= radius_km:
            ranked.append(RankedStop(stop=stop, distance_km=d))
    if skipped:
        logger.warning("telemetry rank_skipped_bad_position count=%s", skipped, extra={"skipped": skipped})
    ranked.sort(key=lambda r: (r.distance_km, r.stop.stop_code))
    if limit is not None:
        return ranked[:limit]
    return ranked


def bucket_counts(
    ranked: Sequence[RankedStop],
    buckets: Iterable[float] = DEFAULT_BUCKETS_KM,
) -> dict[float, int]:
    """For each threshold, how many ranked stops lie within it."""
    return {threshold: sum(1 for r in ranked if r.distance_km <= threshold) for threshold in buckets}


class ProximityResolver:
    def __init__(self, catalog: StopCatalogFetcher | None = None, nearby_source: NearbySource | None = None):
        if catalog is None and nearby_source is None:
            raise ValueError("ProximityResolver needs a catalog or a nearby source")
        self._catalog = catalog
        self._nearby_source = nearby_source

    def resolve(
        self,
        origin: Coordinate,
        radius_km: float,
        strategy: Strategy | None = None,
        query: str = "",
    ) -> list[RankedStop]:
        """
        Ranked stops within radius_km of origin.

        strategy=None prefers the server-side source when one is configured and
        falls back to fetching the catalog if that source fails.
        """
        if radius_km <= 0:
            raise InvalidRadius(f"radius_km must be positive, got {radius_km}")

        if strategy is Strategy.SERVER_SIDE:
            return self._resolve_server_side(origin, radius_km, query)
        if strategy is Strategy.FETCH_ALL:
            return self._resolve_fetch_all(origin, radius_km, query)

        if self._nearby_source is not None:
            try:
                return self._resolve_server_side(origin, radius_km, query)
            except ProviderError as e:
                if self._catalog is None:
                    raise
                logger.warning(
                    "telemetry nearby_server_side_failed status=%s error=%s",
                    e.status,
                    str(e),
                    extra={"status": e.status, "error": str(e)},
                )
        return self._resolve_fetch_all(origin, radius_km, query)

    def _resolve_fetch_all(self, origin: Coordinate, radius_km: float, query: str) -> list[RankedStop]:
        if self._catalog is None:
            raise ValueError("fetch-all strategy requires a stop catalog")
        stops = self._catalog.fetch_all(query)
        ranked = rank_stops(origin, stops, radius_km)
        logger.info(
            "telemetry nearby_resolved strategy=fetch-all radius_km=%s candidates=%s count=%s",
            radius_km,
            len(stops),
            len(ranked),
        )
        return ranked

    def _resolve_server_side(self, origin: Coordinate, radius_km: float, query: str) -> list[RankedStop]:
        if self._nearby_source is None:
            raise ValueError("server-side strategy requires a nearby source")
        ranked = self._nearby_source.search_nearby(origin, radius_km, query)
        logger.info(
            "telemetry nearby_resolved strategy=server-side radius_km=%s count=%s",
            radius_km,
            len(ranked),
        )
        return ranked
