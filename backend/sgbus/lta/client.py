"""
LTA DataMall client: paginated bus stop catalog and live bus arrivals.
Includes timeouts, retry with exponential backoff, and a short TTL cache for arrivals.
"""
import logging
import time
from typing import Any

import httpx

from sgbus.data.geo import is_valid_position
from sgbus.data.stops import StopRecord
from sgbus.monitoring.metrics import record_provider_call

logger = logging.getLogger(__name__)

LTA_BASE = "https://datamall2.mytransport.sg/ltaodataservice"
BUS_STOPS_PATH = "BusStops"
BUS_ARRIVAL_PATH = "v3/BusArrival"
# Under the 30s auto-refresh interval, so each poll still reaches the provider
ARRIVALS_CACHE_TTL_SECONDS = 15
LTA_REQUEST_TIMEOUT_SECONDS = 10.0
LTA_RETRY_ATTEMPTS = 3
LTA_RETRY_BASE_DELAY_SECONDS = 1.0
LTA_RETRY_MAX_DELAY_SECONDS = 8.0
PROBE_STOP_CODE = "03111"


class ProviderError(RuntimeError):
    """Remote provider returned non-success or could not be reached."""

    def __init__(self, message: str, status: int | None = None, details: str = ""):
        super().__init__(message)
        self.status = status
        self.details = details


class _TTLCache:
    """Simple in-memory TTL cache. One TTL per key (from first set)."""

    def __init__(self, ttl_seconds: int = ARRIVALS_CACHE_TTL_SECONDS):
        self._ttl = ttl_seconds
        self._store: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (value, time.monotonic() + self._ttl)


def _normalize_stop(raw: dict[str, Any]) -> StopRecord | None:
    """Rename a DataMall BusStops entry to a StopRecord. None if unusable."""
    code = str(raw.get("BusStopCode") or "").strip()
    if not code:
        return None
    try:
        lat = float(raw.get("Latitude"))
        lng = float(raw.get("Longitude"))
    except (TypeError, ValueError):
        return None
    if not is_valid_position(lat, lng):
        return None
    return StopRecord(
        stop_code=code,
        stop_name=str(raw.get("Description") or ""),
        road_name=str(raw.get("RoadName") or ""),
        latitude=lat,
        longitude=lng,
    )


def _normalize_vehicle(raw: dict[str, Any] | None) -> dict[str, str]:
    raw = raw or {}
    return {
        "estimated_arrival": str(raw.get("EstimatedArrival") or ""),
        "load": str(raw.get("Load") or ""),
        "feature": str(raw.get("Feature") or ""),
        "type": str(raw.get("Type") or ""),
    }


def _normalize_arrival_response(stop_code: str, raw: dict[str, Any]) -> dict[str, Any]:
    """Normalize BusArrival response to { stop_code, services[] }."""
    services: list[dict[str, Any]] = []
    svc_list = raw.get("Services") or []
    if not isinstance(svc_list, list):
        svc_list = []
    for s in svc_list:
        if not isinstance(s, dict) or not s.get("ServiceNo"):
            continue
        services.append({
            "service_number": str(s["ServiceNo"]),
            "operator": str(s.get("Operator") or ""),
            "next": _normalize_vehicle(s.get("NextBus")),
            "next2": _normalize_vehicle(s.get("NextBus2")),
            "next3": _normalize_vehicle(s.get("NextBus3")),
        })
    return {"stop_code": stop_code, "services": services}


class LTAClient:
    """Client for LTA DataMall bus endpoints."""

    def __init__(self, api_key: str, base_url: str = LTA_BASE):
        self._api_key = api_key
        self._base = base_url.rstrip("/")
        self._arrivals_cache = _TTLCache(ttl_seconds=ARRIVALS_CACHE_TTL_SECONDS)

    def _headers(self) -> dict[str, str]:
        return {"AccountKey": self._api_key, "Accept": "application/json"}

    def _get_json(self, path: str, params: dict[str, Any], event: str) -> dict[str, Any]:
        """GET with retries. Raises ProviderError once attempts are exhausted."""
        url = f"{self._base}/{path}"
        last_error: Exception | None = None
        status: int | None = None
        for attempt in range(LTA_RETRY_ATTEMPTS):
            try:
                with httpx.Client(timeout=LTA_REQUEST_TIMEOUT_SECONDS) as client:
                    resp = client.get(url, params=params, headers=self._headers())
                    resp.raise_for_status()
                    data = resp.json()
                if not isinstance(data, dict):
                    raise ValueError("expected a JSON object")
                record_provider_call(event, ok=True)
                return data
            except httpx.TimeoutException as e:
                last_error = e
                status = None
                logger.warning(
                    "telemetry lta_timeout event=%s attempt=%s",
                    event,
                    attempt + 1,
                    extra={"event": event, "attempt": attempt + 1},
                )
            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                logger.warning(
                    "telemetry lta_api_error event=%s attempt=%s status=%s",
                    event,
                    attempt + 1,
                    status,
                    extra={"event": event, "attempt": attempt + 1, "status": status},
                )
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                status = None
                logger.warning(
                    "telemetry lta_api_error event=%s attempt=%s error=%s",
                    event,
                    attempt + 1,
                    str(e),
                    extra={"event": event, "attempt": attempt + 1, "error": str(e)},
                )
            if attempt < LTA_RETRY_ATTEMPTS - 1:
                delay = min(
                    LTA_RETRY_BASE_DELAY_SECONDS * (2**attempt),
                    LTA_RETRY_MAX_DELAY_SECONDS,
                )
                time.sleep(delay)
        record_provider_call(event, ok=False)
        raise ProviderError(
            "LTA DataMall unavailable (timeout or error after retries).",
            status=status,
            details=str(last_error) if last_error else "",
        ) from last_error

    def get_bus_stops_page(self, skip: int) -> list[StopRecord]:
        """One page of the stop catalog starting at `skip` (DataMall serves 500 per page)."""
        data = self._get_json(BUS_STOPS_PATH, {"$skip": skip}, event="bus_stops")
        raw_list = data.get("value") or []
        if not isinstance(raw_list, list):
            raw_list = []
        stops = [s for s in (_normalize_stop(r) for r in raw_list if isinstance(r, dict)) if s is not None]
        logger.info(
            "telemetry lta_bus_stops_fetched skip=%s count=%s",
            skip,
            len(stops),
            extra={"skip": skip, "count": len(stops)},
        )
        return stops

    def get_bus_arrival(self, stop_code: str) -> dict[str, Any]:
        """
        Live arrivals for a stop. Cached for 15 seconds per stop_code.
        Returns { stop_code, services: [{ service_number, operator, next, next2, next3 }] }
        where each vehicle is { estimated_arrival, load, feature, type } (empty strings when absent).
        """
        cached = self._arrivals_cache.get(stop_code)
        if cached is not None:
            logger.info(
                "telemetry arrivals_served cache_hit=true stop_code=%s",
                stop_code,
                extra={"stop_code": stop_code, "cache_hit": True},
            )
            return cached

        data = self._get_json(BUS_ARRIVAL_PATH, {"BusStopCode": stop_code}, event="bus_arrival")
        normalized = _normalize_arrival_response(stop_code, data)
        self._arrivals_cache.set(stop_code, normalized)
        logger.info(
            "telemetry lta_arrivals_fetched stop_code=%s services=%s",
            stop_code,
            len(normalized["services"]),
            extra={"stop_code": stop_code, "count": len(normalized["services"])},
        )
        return normalized

    def probe(self, stop_code: str = PROBE_STOP_CODE) -> dict[str, Any]:
        """Single unretried call to the arrival endpoint, reporting status and a short preview."""
        url = f"{self._base}/{BUS_ARRIVAL_PATH}"
        result: dict[str, Any] = {"endpoint": url, "stop_code": stop_code}
        try:
            with httpx.Client(timeout=LTA_REQUEST_TIMEOUT_SECONDS) as client:
                resp = client.get(url, params={"BusStopCode": stop_code}, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("telemetry lta_probe_error error=%s", str(e))
            result.update({"status": None, "success": False, "error": str(e)})
            return result
        result["status"] = resp.status_code
        result["success"] = resp.is_success
        if not resp.is_success:
            result["error"] = resp.text[:500]
            return result
        try:
            data = resp.json()
        except ValueError as e:
            result.update({"success": False, "error": f"invalid JSON: {e}"})
            return result
        services = (data.get("Services") or []) if isinstance(data, dict) else []
        result["preview"] = {
            "service_count": len(services),
            "sample_service": services[0] if services else None,
        }
        return result
