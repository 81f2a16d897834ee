"""In-memory counters for the /metrics endpoint: requests by status class and route, provider calls."""
import time
from collections import Counter
from threading import Lock

_start_time = time.monotonic()
_status_counts: Counter[str] = Counter()
_route_counts: Counter[str] = Counter()
_provider_counts: Counter[str] = Counter()
_lock = Lock()


def _status_bucket(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "2xx"
    if 400 <= status_code < 500:
        return "4xx"
    if status_code >= 500:
        return "5xx"
    return "other"


def record_request(status_code: int, route: str = "") -> None:
    with _lock:
        _status_counts[_status_bucket(status_code)] += 1
        if route:
            _route_counts[route] += 1


def record_provider_call(event: str, ok: bool) -> None:
    """Count one upstream provider call, e.g. event="bus_arrival"."""
    with _lock:
        _provider_counts[f"{event}_{'ok' if ok else 'error'}"] += 1


def get_metrics() -> dict:
    with _lock:
        statuses = dict(_status_counts)
        routes = dict(_route_counts)
        provider = dict(_provider_counts)
    return {
        "requests_total": sum(statuses.values()),
        "requests_2xx": statuses.get("2xx", 0),
        "requests_4xx": statuses.get("4xx", 0),
        "requests_5xx": statuses.get("5xx", 0),
        "requests_by_route": routes,
        "provider_calls": provider,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }
