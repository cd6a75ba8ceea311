from __future__ import annotations

from django.db import models


class SavedItinerary(models.Model):
    objects = models.Manager["SavedItinerary"]()

    client_id = models.CharField(max_length=64, unique=True)
    schema_version = models.PositiveSmallIntegerField(default=1)
    # {"version": <int>, "stops": [<DeliveryStop>, ...]}
    document = models.JSONField(default=dict)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-updated_at",)

    @property
    def stop_count(self) -> int:
        return len(self.document.get("stops", []))

    def __str__(self) -> str:
        return f"Itinerary for {self.client_id} ({self.stop_count} stops)"


class UsageEvent(models.Model):
    objects = models.Manager["UsageEvent"]()

    client_id = models.CharField(max_length=64, blank=True)
    event_type = models.CharField(max_length=100)
    event_data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = (
            models.Index(fields=["event_type"], name="usage_event_type_idx"),
            models.Index(fields=["client_id"], name="usage_event_client_idx"),
        )

    def __str__(self) -> str:
        return f"{self.event_type} ({self.client_id or 'anonymous'})"
