"""Pydantic models for bus arrivals."""
from enum import Enum

from pydantic import BaseModel, Field


class CrowdLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DeckerClass(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"
    UNKNOWN = "unknown"


class ArrivalPrediction(BaseModel):
    service_number: str
    operator: str = ""
    minutes_until_arrival: int = Field(ge=0)
    crowd_level: CrowdLevel
    decker_class: DeckerClass
    wheelchair_accessible: bool
    bus_type: str
    feature: str


class ArrivalsResponse(BaseModel):
    stop_code: str
    arrivals: list[ArrivalPrediction]
