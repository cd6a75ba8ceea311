from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, TypeVar

import httpx
from django.conf import settings
from django.core.cache import cache
from pydantic import BaseModel, Field, ValidationError

from delivery_planner.exceptions import ExternalServiceError, MalformedResponseError
from delivery_planner.services.types import Coordinates

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class DirectionsStepPayload(BaseModel):
    distance: float = 0.0
    duration: float = 0.0
    instruction: str = ""
    type: int | None = None
    way_points: list[int] = Field(default_factory=list)


class DirectionsSegmentPayload(BaseModel):
    distance: float = 0.0
    duration: float = 0.0
    steps: list[DirectionsStepPayload] = Field(default_factory=list)


class DirectionsSummaryPayload(BaseModel):
    distance: float = 0.0
    duration: float = 0.0


class DirectionsPropertiesPayload(BaseModel):
    summary: DirectionsSummaryPayload | None = None
    segments: list[DirectionsSegmentPayload] = Field(default_factory=list)


class LineStringPayload(BaseModel):
    type: str = "LineString"
    coordinates: list[tuple[float, float]] = Field(default_factory=list)


class DirectionsFeaturePayload(BaseModel):
    geometry: LineStringPayload
    properties: DirectionsPropertiesPayload = Field(default_factory=DirectionsPropertiesPayload)


class DirectionsPayload(BaseModel):
    features: list[DirectionsFeaturePayload] = Field(default_factory=list)


class MatrixPayload(BaseModel):
    durations: list[list[float | None]]
    distances: list[list[float | None]] | None = None


class OptimizationStepPayload(BaseModel):
    type: str | None = None
    job: int | None = None


class OptimizationRoutePayload(BaseModel):
    vehicle: int | None = None
    steps: list[OptimizationStepPayload] = Field(default_factory=list)


class OptimizationPayload(BaseModel):
    routes: list[OptimizationRoutePayload] = Field(default_factory=list)
    unassigned: list[dict[str, Any]] = Field(default_factory=list)


class OpenRouteServiceClient:
    """Thin async client for the openrouteservice directions, matrix and optimization APIs."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = settings.ORS_BASE_URL.rstrip("/")
        self.api_key = settings.ORS_API_KEY
        self.profile = settings.ORS_PROFILE
        self.timeout = settings.ORS_TIMEOUT_SECONDS
        self.transport = transport

    async def directions(
        self, coordinates: list[Coordinates], *, language: str
    ) -> DirectionsPayload:
        body = {
            "coordinates": [list(coord) for coord in coordinates],
            "instructions": True,
            "language": language,
            "geometry": True,
            "geometry_simplify": False,
        }
        return await self._post(
            f"/v2/directions/{self.profile}/geojson", body, DirectionsPayload, cache_prefix="route"
        )

    async def matrix(self, locations: list[Coordinates]) -> MatrixPayload:
        body = {
            "locations": [list(coord) for coord in locations],
            "metrics": ["duration", "distance"],
        }
        return await self._post(
            f"/v2/matrix/{self.profile}", body, MatrixPayload, cache_prefix="matrix"
        )

    async def optimization(
        self, origin: Coordinates, jobs: list[Coordinates], *, round_trip: bool
    ) -> OptimizationPayload:
        vehicle: dict[str, Any] = {"id": 1, "profile": self.profile, "start": list(origin)}
        if round_trip:
            vehicle["end"] = list(origin)
        body = {
            "jobs": [
                {"id": index, "location": list(location)}
                for index, location in enumerate(jobs, start=1)
            ],
            "vehicles": [vehicle],
        }
        return await self._post("/optimization", body, OptimizationPayload, cache_prefix=None)

    async def _post(
        self,
        path: str,
        body: dict[str, Any],
        model: type[PayloadT],
        *,
        cache_prefix: str | None,
    ) -> PayloadT:
        cache_key = self._cache_key(cache_prefix, body) if cache_prefix else None
        if cache_key:
            cached = await cache.aget(cache_key)
            if cached:
                return model.model_validate(cached)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}{path}",
                    json=body,
                    headers={
                        "Accept": "application/json, application/geo+json",
                        "Authorization": self.api_key,
                    },
                )
                response.raise_for_status()
                raw = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "openrouteservice %s answered %s", path, exc.response.status_code
            )
            raise ExternalServiceError(
                f"openrouteservice request failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("openrouteservice %s request failed: %s", path, exc)
            raise ExternalServiceError("openrouteservice request failed") from exc
        except ValueError as exc:
            raise MalformedResponseError("openrouteservice returned invalid JSON") from exc

        try:
            payload = model.model_validate(raw)
        except ValidationError as exc:
            raise MalformedResponseError(f"Unexpected openrouteservice payload for {path}") from exc

        if cache_key:
            await cache.aset(cache_key, raw, timeout=settings.ROUTE_CACHE_TTL_SECONDS)
        return payload

    def _cache_key(self, prefix: str, body: dict[str, Any]) -> str:
        encoded = json.dumps({"profile": self.profile, **body}, sort_keys=True).encode()
        digest = hashlib.sha256(encoded).hexdigest()
        return f"{prefix}:{digest}"
