"""
Arrival resolution: provider services -> flat list of predictions grouped by service.
"""
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Protocol

from sgbus.arrivals.decode import (
    bus_type_description,
    crowd_level,
    decker_class,
    feature_description,
    is_wheelchair_accessible,
    minutes_until,
    service_sort_key,
)
from sgbus.arrivals.models import ArrivalPrediction

logger = logging.getLogger(__name__)

VEHICLE_SLOTS = ("next", "next2", "next3")


class ArrivalSource(Protocol):
    def get_bus_arrival(self, stop_code: str) -> dict[str, Any]: ...


def _prediction(service: dict[str, Any], vehicle: dict[str, str], now: datetime) -> ArrivalPrediction | None:
    minutes = minutes_until(vehicle.get("estimated_arrival", ""), now)
    if minutes is None:
        return None
    type_code = vehicle.get("type", "")
    feature_code = vehicle.get("feature", "")
    return ArrivalPrediction(
        service_number=service["service_number"],
        operator=service.get("operator", ""),
        minutes_until_arrival=minutes,
        crowd_level=crowd_level(vehicle.get("load", "")),
        decker_class=decker_class(type_code),
        wheelchair_accessible=is_wheelchair_accessible(feature_code),
        bus_type=bus_type_description(type_code),
        feature=feature_description(feature_code),
    )


def build_predictions(
    services: Iterable[dict[str, Any]],
    now: datetime,
    service_filter: Iterable[str] | None = None,
) -> list[ArrivalPrediction]:
    """
    Up to three predictions per service (next, next2, next3), skipping vehicles without an
    estimated arrival. Services are ordered numeric-aware; a non-empty filter keeps only those services.
    """
    wanted = {s.strip() for s in service_filter if s.strip()} if service_filter else set()
    ordered = sorted(services, key=lambda s: service_sort_key(s["service_number"]))
    predictions: list[ArrivalPrediction] = []
    for service in ordered:
        if wanted and service["service_number"] not in wanted:
            continue
        for slot in VEHICLE_SLOTS:
            p = _prediction(service, service.get(slot) or {}, now)
            if p is not None:
                predictions.append(p)
    return predictions


class ArrivalResolver:
    """Fetch and decode arrivals for one stop. Stateless; ProviderError propagates."""

    def __init__(self, source: ArrivalSource):
        self._source = source

    def resolve(
        self,
        stop_code: str,
        now: datetime | None = None,
        services: Iterable[str] | None = None,
    ) -> list[ArrivalPrediction]:
        data = self._source.get_bus_arrival(stop_code)
        now = now or datetime.now(timezone.utc)
        predictions = build_predictions(data.get("services") or [], now, services)
        logger.info(
            "telemetry arrivals_resolved stop_code=%s count=%s",
            stop_code,
            len(predictions),
            extra={"stop_code": stop_code, "count": len(predictions)},
        )
        return predictions
