"""Request logging middleware: one line per request with timing; feeds /metrics."""
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from sgbus.monitoring.metrics import record_request

logger = logging.getLogger(__name__)

RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def _route_template(request: Request) -> str:
    # "/stops/{stop_code}/arrivals" rather than one metrics key per stop
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        route = _route_template(request)
        record_request(response.status_code, route)
        response.headers[RESPONSE_TIME_HEADER] = f"{duration_ms:.1f}"
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.1f client=%s",
            request.method,
            route,
            response.status_code,
            duration_ms,
            _client_ip(request),
        )
        return response
