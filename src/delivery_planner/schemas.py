from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LongitudeLatitude = tuple[float, float]


class AddStopRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: str = Field(min_length=1, max_length=300)
    coordinates: LongitudeLatitude | None = None


class GeocodeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=2, max_length=300)


class LocationReportRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    accuracy: float | None = Field(default=None, ge=0.0)
    error: Literal["permission_denied", "timeout", "unavailable", "unsupported"] | None = None


class UsageEventRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)


class StopSchema(BaseModel):
    id: str
    address: str
    coordinates: LongitudeLatitude
    completed: bool = False
    postponed: bool = False
    order: int = 0
    estimated_time: float | None = None
    distance_from_previous: float | None = None


class NavigationStepSchema(BaseModel):
    instruction: str
    distance: float = Field(ge=0.0)
    duration: float = Field(ge=0.0)
    type: str
    coordinates: LongitudeLatitude | None = None


class SavedItineraryDocument(BaseModel):
    version: int
    stops: list[StopSchema] = Field(default_factory=list)


class GeocodeResponse(BaseModel):
    coordinates: LongitudeLatitude
    provider: str


class ItineraryResponse(BaseModel):
    state: Literal["idle", "planning", "navigating"]
    is_navigating: bool
    current_stop_index: int
    current_location: LongitudeLatitude | None = None
    stops: list[StopSchema]
    total_distance: float
    total_duration: float
    navigation_steps: list[NavigationStepSchema]
    route_geometry: list[LongitudeLatitude]
    route_status: Literal["complete", "partial", "fallback"] | None = None
    route_error: str | None = None
