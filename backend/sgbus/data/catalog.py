"""
Stop catalog fetcher: pages through the provider listing and degrades to the
built-in fallback stops when the provider has nothing to offer.
"""
import logging
from collections.abc import Sequence
from typing import Protocol

from sgbus.data.stops import FALLBACK_STOPS, StopRecord
from sgbus.lta.client import ProviderError

logger = logging.getLogger(__name__)

CATALOG_BATCH_SIZE = 500
# Stop paging once the next skip offset passes this
CATALOG_MAX_SKIP = 10_000


class CatalogUnavailable(RuntimeError):
    """Provider gave no stops and there is no fallback list to use."""


class CatalogSource(Protocol):
    def get_bus_stops_page(self, skip: int) -> list[StopRecord]: ...


def filter_stops(stops: Sequence[StopRecord], query: str) -> list[StopRecord]:
    if not query or not query.strip():
        return list(stops)
    return [s for s in stops if s.matches(query)]


class StopCatalogFetcher:
    """Fetch the full stop catalog for one resolution call. Nothing is cached between calls."""

    def __init__(
        self,
        source: CatalogSource | None,
        fallback: Sequence[StopRecord] = FALLBACK_STOPS,
        batch_size: int = CATALOG_BATCH_SIZE,
        max_skip: int = CATALOG_MAX_SKIP,
    ):
        self._source = source
        self._fallback = tuple(fallback)
        self._batch_size = batch_size
        self._max_skip = max_skip

    def fetch_pages(self) -> list[StopRecord]:
        """
        Page through the provider with skip = 0, batch, 2*batch, ... until an empty page
        or the skip cap. Pages are merged in skip order; repeated stop codes keep the first.
        Raises ProviderError if any page request fails.
        """
        if self._source is None:
            return []
        stops: list[StopRecord] = []
        seen: set[str] = set()
        skip = 0
        while True:
            batch = self._source.get_bus_stops_page(skip)
            if not batch:
                break
            for stop in batch:
                if stop.stop_code in seen:
                    continue
                seen.add(stop.stop_code)
                stops.append(stop)
            skip += self._batch_size
            if skip > self._max_skip:
                logger.warning(
                    "telemetry catalog_skip_cap_reached skip=%s count=%s",
                    skip,
                    len(stops),
                    extra={"skip": skip, "count": len(stops)},
                )
                break
        logger.info("telemetry catalog_fetched count=%s", len(stops), extra={"count": len(stops)})
        return stops

    def fetch_all(self, query: str = "") -> list[StopRecord]:
        """
        All known stops, optionally narrowed by a case-insensitive text query.
        Uses the fallback list when the provider is missing, failing, or empty.
        """
        try:
            stops = self.fetch_pages()
        except ProviderError as e:
            logger.warning(
                "telemetry catalog_provider_error status=%s error=%s",
                e.status,
                str(e),
                extra={"status": e.status, "error": str(e)},
            )
            stops = []
        if not stops:
            if not self._fallback:
                raise CatalogUnavailable("Stop catalog unavailable and no fallback stops configured.")
            logger.warning(
                "telemetry catalog_fallback_used count=%s",
                len(self._fallback),
                extra={"count": len(self._fallback)},
            )
            stops = list(self._fallback)
        return filter_stops(stops, query)
