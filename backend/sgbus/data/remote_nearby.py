"""
HTTP nearby source: asks a deployed instance of this API to rank stops server-side.
"""
import logging
from typing import Any

import httpx

from sgbus.data.geo import Coordinate, is_valid_position
from sgbus.data.stops import RankedStop, StopRecord
from sgbus.lta.client import ProviderError

logger = logging.getLogger(__name__)

NEARBY_REQUEST_TIMEOUT_SECONDS = 20.0


def _parse_ranked(raw: dict[str, Any]) -> RankedStop | None:
    try:
        stop = StopRecord(
            stop_code=str(raw["stop_code"]),
            stop_name=str(raw.get("stop_name") or ""),
            road_name=str(raw.get("road_name") or ""),
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
        )
        distance_km = float(raw["distance_km"])
    except (KeyError, TypeError, ValueError):
        return None
    if not is_valid_position(stop.latitude, stop.longitude):
        return None
    return RankedStop(stop=stop, distance_km=distance_km)


class RemoteNearbySource:
    """Calls GET /stops/search with lat, lng and max_distance_km; keeps the server's order."""

    def __init__(self, base_url: str, api_key: str = ""):
        self._base = base_url.rstrip("/")
        self._api_key = api_key

    def search_nearby(self, origin: Coordinate, radius_km: float, query: str = "") -> list[RankedStop]:
        params: dict[str, Any] = {
            "lat": origin.latitude,
            "lng": origin.longitude,
            "max_distance_km": radius_km,
        }
        if query:
            params["q"] = query
        headers = {"X-API-Key": self._api_key} if self._api_key else {}
        try:
            with httpx.Client(timeout=NEARBY_REQUEST_TIMEOUT_SECONDS) as client:
                resp = client.get(f"{self._base}/stops/search", params=params, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                "Nearby stops service returned an error.",
                status=e.response.status_code,
                details=e.response.text[:500],
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError("Nearby stops service unavailable.", details=str(e)) from e

        raw_list = data.get("bus_stops") if isinstance(data, dict) else None
        if not isinstance(raw_list, list):
            raw_list = []
        ranked = [r for r in (_parse_ranked(s) for s in raw_list if isinstance(s, dict)) if r is not None]
        logger.info("telemetry remote_nearby_fetched count=%s", len(ranked))
        return ranked
