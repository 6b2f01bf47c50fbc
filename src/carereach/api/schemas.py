from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class NearestFacilitiesRequest(BaseModel):
    location: list[float] = Field(min_length=2, max_length=2, description="[longitude, latitude]")
    limit: int = Field(default=10, gt=0, le=100)
    max_distance: float = Field(default=10000.0, ge=0.0, alias="maxDistance")
    type: str | None = None
    services: list[str] | None = None

    model_config = {"populate_by_name": True}


class DirectionsRequest(BaseModel):
    from_: list[float] = Field(min_length=2, max_length=2, alias="from")
    to: list[float] = Field(min_length=2, max_length=2)
    mode: str = "walking"

    model_config = {"populate_by_name": True}


class FacilityOut(BaseModel):
    id: str
    kind: str
    name: str
    type: str
    location: dict[str, Any]
    address: str
    upazila: str
    district: str
    division: str
    services: list[str] = Field(default_factory=list)
    contact: dict[str, Any] = Field(default_factory=dict)
    operatingHours: str
    accessibility: dict[str, Any] = Field(default_factory=dict)
    verified: bool = False
    source: str
    lastUpdated: str


class RankedFacilityOut(FacilityOut):
    distance: float = Field(ge=0.0)
    accessibilityScore: int = Field(ge=0, le=100)
    combinedScore: float
    explain: dict[str, Any] | None = None


class WorkerOut(BaseModel):
    id: str
    kind: str
    name: str
    type: str
    location: dict[str, Any]
    serviceArea: dict[str, Any] | None = None
    contact: dict[str, Any] = Field(default_factory=dict)
    skills: list[str] = Field(default_factory=list)
    availability: str
    organization: str | None = None
    languages: list[str] = Field(default_factory=list)
    upazila: str
    district: str
    division: str
    verified: bool = False
    source: str
    lastUpdated: str
    distance: float | None = None


class DirectionOut(BaseModel):
    distance: float
    bearingDegrees: float
    bearing: str
    mode: str
    instructions: list[str]
