import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from settings import get_settings
from sgbus.arrivals.models import ArrivalsResponse
from sgbus.arrivals.service import ArrivalResolver
from sgbus.data.catalog import CatalogUnavailable, StopCatalogFetcher
from sgbus.data.geo import Coordinate
from sgbus.data.models import NearbyStopsResponse, StopInfo, StopSearchResponse
from sgbus.data.proximity import MAX_RESULTS, DEFAULT_BUCKETS_KM, InvalidRadius, ProximityResolver, bucket_counts, rank_stops
from sgbus.data.remote_nearby import RemoteNearbySource
from sgbus.lta.client import LTAClient, ProviderError
from sgbus.middleware import OptionalAPIKeyMiddleware, RequestLoggingMiddleware, get_valid_api_keys
from sgbus.monitoring import get_metrics

settings = get_settings()

# Structured logging: include module and level; handlers can add JSON later
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

# Input validation bounds
RADIUS_KM_MAX = 20.0
DEFAULT_RADIUS_KM = 2.0
STOP_CODE_MAX_LEN = 16
STOP_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")
SERVICE_FILTER_MAX = 20


def _coordinate(lat: float, lng: float) -> Coordinate:
    try:
        return Coordinate(lat, lng)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _validate_radius(radius_km: float, name: str) -> None:
    if not (0 < radius_km <= RADIUS_KM_MAX):
        raise HTTPException(status_code=400, detail=f"{name} must be greater than 0 and at most {RADIUS_KM_MAX}")


def _lta_client() -> LTAClient | None:
    return getattr(app.state, "lta_client", None)


def _catalog() -> StopCatalogFetcher:
    # No key configured: the fetcher serves the fallback stops
    return StopCatalogFetcher(_lta_client())


def _proximity_resolver() -> ProximityResolver:
    return ProximityResolver(catalog=_catalog(), nearby_source=getattr(app.state, "nearby_source", None))


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.lta_client = (
        LTAClient(api_key=settings.lta_api_key, base_url=settings.lta_base_url) if settings.lta_api_key else None
    )
    app.state.nearby_source = (
        RemoteNearbySource(settings.nearby_source_url, api_key=settings.nearby_source_api_key)
        if settings.nearby_source_url
        else None
    )
    if app.state.lta_client is None:
        logger.warning("telemetry lta_key_missing catalog=fallback arrivals=disabled")
    yield
    app.state.lta_client = None
    app.state.nearby_source = None


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Return consistent JSON error for unhandled exceptions (500). Skip validation/HTTP errors."""
    from fastapi.exceptions import RequestValidationError
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc
    logger.exception("telemetry unhandled_exception path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


# Order: last added = innermost. So RequestLogging runs first (outermost), then Auth, then CORS, then rate limiting.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    OptionalAPIKeyMiddleware,
    api_key_required=settings.api_key_required,
    api_keys=get_valid_api_keys(settings.api_keys),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SlowAPIMiddleware)


@app.get("/favicon.ico", include_in_schema=False)
@limiter.exempt
def favicon(request: Request):
    """Return 204 so browser favicon requests don't log 404."""
    return Response(status_code=204)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    logger.info("telemetry route=health")
    return {"status": "ok", "lta_configured": _lta_client() is not None}


@app.get("/metrics")
@limiter.exempt
def metrics(request: Request):
    return get_metrics()


# --- Stops ---


@app.get("/stops/search", response_model=StopSearchResponse)
def search_stops(
    request: Request,
    q: str = "",
    lat: float | None = None,
    lng: float | None = None,
    max_distance_km: float = DEFAULT_RADIUS_KM,
):
    """
    Text search over the full stop catalog (name, code, road). When lat and lng are both
    given, results are also limited to max_distance_km and sorted nearest first.
    At most 100 stops are returned.
    """
    query = (q or "").strip()
    located = lat is not None and lng is not None
    origin = _coordinate(lat, lng) if located else None
    if located:
        _validate_radius(max_distance_km, "max_distance_km")
    logger.info(
        "telemetry route=stops_search q=%s located=%s max_distance_km=%s",
        query[:50],
        located,
        max_distance_km,
    )
    try:
        stops = _catalog().fetch_all(query)
    except CatalogUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if origin is None:
        return StopSearchResponse(bus_stops=[StopInfo.from_stop(s) for s in stops[:MAX_RESULTS]])
    ranked = rank_stops(origin, stops, max_distance_km)
    return StopSearchResponse(bus_stops=[StopInfo.from_ranked(r) for r in ranked])


@app.get("/stops/nearby", response_model=NearbyStopsResponse)
def stops_nearby(request: Request, lat: float, lng: float, radius_km: float = DEFAULT_RADIUS_KM, q: str = ""):
    """Stops within radius_km, nearest first, with counts within 500m / 1km / 2km."""
    origin = _coordinate(lat, lng)
    _validate_radius(radius_km, "radius_km")
    logger.info("telemetry route=stops_nearby radius_km=%s", radius_km)
    try:
        ranked = _proximity_resolver().resolve(origin, radius_km, query=(q or "").strip())
    except InvalidRadius as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except CatalogUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ProviderError as e:
        logger.warning("telemetry nearby_route_error status=%s error=%s", e.status, str(e))
        raise HTTPException(status_code=502, detail=str(e)) from e
    counts = bucket_counts(ranked, DEFAULT_BUCKETS_KM)
    return NearbyStopsResponse(
        stops=[StopInfo.from_ranked(r) for r in ranked],
        counts={str(k): v for k, v in counts.items()},
    )


@app.get("/stops/{stop_code}/arrivals", response_model=ArrivalsResponse)
def get_arrivals(request: Request, stop_code: str, services: str = ""):
    """Live arrivals for a stop, grouped by service. Optional ?services=14,111 filter."""
    if not stop_code or len(stop_code) > STOP_CODE_MAX_LEN or not STOP_CODE_PATTERN.match(stop_code):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid stop_code (alphanumeric only; max {STOP_CODE_MAX_LEN} chars).",
        )
    service_filter = [s.strip() for s in services.split(",") if s.strip()]
    if len(service_filter) > SERVICE_FILTER_MAX:
        raise HTTPException(status_code=400, detail=f"At most {SERVICE_FILTER_MAX} services can be filtered.")
    logger.info("telemetry route=arrivals stop_code=%s services=%s", stop_code, len(service_filter))
    client = _lta_client()
    if not client:
        raise HTTPException(
            status_code=503,
            detail="LTA API key not configured. Set LTA_API_KEY in the environment.",
        )
    try:
        arrivals = ArrivalResolver(client).resolve(stop_code, services=service_filter)
    except ProviderError as e:
        logger.warning("telemetry arrivals_route_error stop_code=%s status=%s error=%s", stop_code, e.status, str(e))
        raise HTTPException(status_code=502, detail="Failed to fetch bus arrival data. Please try again.") from e
    return ArrivalsResponse(stop_code=stop_code, arrivals=arrivals)


@app.get("/debug/lta")
def debug_lta(request: Request):
    """One unretried call to the DataMall arrival endpoint, for checking the key and connectivity."""
    client = _lta_client()
    if not client:
        raise HTTPException(
            status_code=503,
            detail="LTA API key not configured. Set LTA_API_KEY in the environment.",
        )
    return {"message": "LTA BusArrival endpoint test", "result": client.probe()}
