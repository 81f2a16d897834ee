"""Pydantic response models for the stop endpoints."""

from pydantic import BaseModel

from sgbus.data.geo import distance_bucket, format_distance
from sgbus.data.stops import RankedStop, StopRecord


class StopInfo(BaseModel):
    stop_code: str
    stop_name: str
    road_name: str
    latitude: float
    longitude: float
    distance_km: float | None = None
    distance_label: str | None = None
    distance_bucket: str | None = None

    @classmethod
    def from_stop(cls, stop: StopRecord) -> "StopInfo":
        return cls(**stop._asdict())

    @classmethod
    def from_ranked(cls, ranked: RankedStop) -> "StopInfo":
        return cls(
            **ranked.stop._asdict(),
            distance_km=ranked.distance_km,
            distance_label=format_distance(ranked.distance_km),
            distance_bucket=distance_bucket(ranked.distance_km).value,
        )


class StopSearchResponse(BaseModel):
    bus_stops: list[StopInfo]


class NearbyStopsResponse(BaseModel):
    stops: list[StopInfo]
    # Keyed by radius in km as a string, e.g. {"0.5": 3, "1.0": 7, "2.0": 15}
    counts: dict[str, int]
