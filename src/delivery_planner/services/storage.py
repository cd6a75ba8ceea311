from __future__ import annotations

import logging
from dataclasses import asdict

from pydantic import ValidationError

from delivery_planner.models import SavedItinerary
from delivery_planner.schemas import SavedItineraryDocument
from delivery_planner.services.types import DeliveryStop

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class ItineraryStore:
    """Persists a courier's stop list as a versioned JSON document."""

    def load(self, client_id: str) -> list[DeliveryStop]:
        saved = SavedItinerary.objects.filter(client_id=client_id).first()
        if saved is None:
            return []

        try:
            document = SavedItineraryDocument.model_validate(saved.document)
        except ValidationError:
            logger.warning("Discarding unreadable itinerary for client %s", client_id)
            return []

        if document.version != SCHEMA_VERSION:
            logger.warning(
                "Ignoring itinerary for client %s with unsupported version %s",
                client_id,
                document.version,
            )
            return []

        return [
            DeliveryStop(
                id=stop.id,
                address=stop.address,
                coordinates=stop.coordinates,
                completed=stop.completed,
                postponed=stop.postponed,
                order=index,
                estimated_time=stop.estimated_time,
                distance_from_previous=stop.distance_from_previous,
            )
            for index, stop in enumerate(document.stops)
        ]

    def save(self, client_id: str, stops: list[DeliveryStop]) -> SavedItinerary:
        document = SavedItineraryDocument(
            version=SCHEMA_VERSION,
            stops=[asdict(stop) for stop in stops],
        )
        saved, _ = SavedItinerary.objects.update_or_create(
            client_id=client_id,
            defaults={
                "schema_version": SCHEMA_VERSION,
                "document": document.model_dump(mode="json"),
            },
        )
        return saved
