from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from django.conf import settings

from delivery_planner.exceptions import InvalidCoordinatesError, LocationUnavailableError
from delivery_planner.services.geo import is_valid_coordinates
from delivery_planner.services.tasks import cancel_task
from delivery_planner.services.types import Coordinates

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    async def get_current_location(self) -> Coordinates: ...


class ReportedLocationProvider:
    """Holds the last position pushed by the courier's device.

    Positions older than ``max_age_seconds`` are treated as a timeout.
    """

    def __init__(
        self,
        max_age_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age_seconds = (
            settings.LOCATION_MAX_AGE_SECONDS if max_age_seconds is None else max_age_seconds
        )
        self.clock = clock
        self.accuracy: float | None = None
        self._location: Coordinates | None = None
        self._reported_at: float | None = None
        self._error_reason: str | None = None

    def report(self, coordinates: Coordinates, accuracy: float | None = None) -> None:
        if not is_valid_coordinates(coordinates):
            raise InvalidCoordinatesError("Reported location is not a valid coordinate pair")
        self._location = (float(coordinates[0]), float(coordinates[1]))
        self._reported_at = self.clock()
        self.accuracy = accuracy
        self._error_reason = None

    def report_error(self, reason: str) -> None:
        self._error_reason = reason

    async def get_current_location(self) -> Coordinates:
        if self._error_reason is not None:
            raise LocationUnavailableError(
                f"Device could not provide a location ({self._error_reason})",
                reason=self._error_reason,
            )
        if self._location is None or self._reported_at is None:
            raise LocationUnavailableError(
                "No location has been reported yet", reason=LocationUnavailableError.UNAVAILABLE
            )
        if self.max_age_seconds and self.clock() - self._reported_at > self.max_age_seconds:
            raise LocationUnavailableError(
                "Last reported location is too old", reason=LocationUnavailableError.TIMEOUT
            )
        return self._location


class LocationTracker:
    """Polls a location provider on a fixed interval while navigation is active."""

    def __init__(
        self,
        provider: LocationProvider,
        on_update: Callable[[Coordinates], None],
        interval_seconds: float,
    ) -> None:
        self.provider = provider
        self.on_update = on_update
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self.interval_seconds <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            cancel_task(self._task)
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                location = await self.provider.get_current_location()
            except LocationUnavailableError as exc:
                logger.warning("Location update failed (%s): %s", exc.reason, exc)
                continue
            self.on_update(location)
