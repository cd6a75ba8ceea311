from django.contrib import admin

from delivery_planner.models import SavedItinerary, UsageEvent


@admin.register(SavedItinerary)
class SavedItineraryAdmin(admin.ModelAdmin):
    list_display = ("client_id", "schema_version", "stop_count", "updated_at")
    search_fields = ("client_id",)
    ordering = ("-updated_at",)


@admin.register(UsageEvent)
class UsageEventAdmin(admin.ModelAdmin):
    list_display = ("event_type", "client_id", "created_at")
    list_filter = ("event_type",)
    search_fields = ("event_type", "client_id")
    ordering = ("-created_at",)
