from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any

import httpx
from django.conf import settings
from django.core.cache import cache

from delivery_planner.exceptions import InvalidAddressError
from delivery_planner.services.geo import is_valid_coordinates
from delivery_planner.services.types import Coordinates, GeocodeResult

logger = logging.getLogger(__name__)

PHOTON = "photon"
NOMINATIM = "nominatim"


class Geocoder:
    """Resolves free-text addresses with Photon first and Nominatim as fallback.

    A retry swaps the provider order before giving up.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.photon_url = settings.PHOTON_BASE_URL.rstrip("/")
        self.nominatim_url = settings.GEOCODING_BASE_URL.rstrip("/")
        self.timeout = settings.GEOCODING_TIMEOUT_SECONDS
        self.retry_count = settings.GEOCODING_RETRY_COUNT
        self.retry_delay_seconds = settings.GEOCODING_RETRY_DELAY_SECONDS
        self.user_agent = settings.GEOCODING_USER_AGENT
        self.country_codes = settings.GEOCODING_COUNTRY_CODES
        self.transport = transport

    async def geocode(self, query: str) -> GeocodeResult:
        query = query.strip()
        if not query:
            raise InvalidAddressError("Address must not be empty")

        cache_key = self._cache_key(query)
        cached = await cache.aget(cache_key)
        if cached:
            return GeocodeResult(
                coordinates=(cached["longitude"], cached["latitude"]),
                provider=cached["provider"],
            )

        providers = [PHOTON, NOMINATIM]
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(self.retry_count + 1):
                for provider in providers:
                    coordinates = await self._lookup(client, provider, query)
                    if coordinates is None:
                        continue

                    result = GeocodeResult(coordinates=coordinates, provider=provider)
                    await cache.aset(
                        cache_key,
                        {
                            "longitude": coordinates[0],
                            "latitude": coordinates[1],
                            "provider": provider,
                        },
                        timeout=settings.GEOCODE_CACHE_TTL_SECONDS,
                    )
                    return result

                if attempt < self.retry_count:
                    providers.reverse()
                    await asyncio.sleep(self.retry_delay_seconds)

        raise InvalidAddressError(f"Address could not be resolved: {query}")

    async def _lookup(
        self, client: httpx.AsyncClient, provider: str, query: str
    ) -> Coordinates | None:
        try:
            if provider == PHOTON:
                response = await client.get(
                    f"{self.photon_url}/api/",
                    params={"q": query, "limit": 1, "lang": "en"},
                )
            else:
                params: dict[str, Any] = {"q": query, "format": "json", "limit": 1}
                if self.country_codes:
                    params["countrycodes"] = self.country_codes
                response = await client.get(
                    f"{self.nominatim_url}/search",
                    params=params,
                    headers={"Accept": "application/json", "User-Agent": self.user_agent},
                )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s geocoding failed for %r: %s", provider, query, exc)
            return None

        if provider == PHOTON:
            return self._parse_photon(payload)
        return self._parse_nominatim(payload)

    @staticmethod
    def _parse_photon(payload: Any) -> Coordinates | None:
        try:
            longitude, latitude = payload["features"][0]["geometry"]["coordinates"][:2]
        except (KeyError, IndexError, TypeError, ValueError):
            return None
        if not is_valid_coordinates((longitude, latitude)):
            return None
        return float(longitude), float(latitude)

    @staticmethod
    def _parse_nominatim(payload: Any) -> Coordinates | None:
        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        try:
            longitude = float(first["lon"])
            latitude = float(first["lat"])
        except (KeyError, TypeError, ValueError):
            return None
        if not is_valid_coordinates((longitude, latitude)):
            return None
        return longitude, latitude

    @staticmethod
    def _cache_key(query: str) -> str:
        digest = hashlib.sha256(query.lower().encode()).hexdigest()
        return f"geocode:{digest}"
