from django.urls import path

from delivery_planner import views

urlpatterns = [
    path("api/v1/health", views.health_view, name="health"),
    path("api/v1/geocode", views.geocode_view, name="geocode"),
    path("api/v1/events", views.events_view, name="events"),
    path("api/v1/itinerary", views.itinerary_view, name="itinerary"),
    path("api/v1/itinerary/stops", views.add_stop_view, name="itinerary-stops"),
    path("api/v1/itinerary/stops/<str:stop_id>", views.stop_detail_view, name="itinerary-stop"),
    path(
        "api/v1/itinerary/stops/<str:stop_id>/complete",
        views.complete_stop_view,
        name="itinerary-stop-complete",
    ),
    path(
        "api/v1/itinerary/stops/<str:stop_id>/postpone",
        views.postpone_stop_view,
        name="itinerary-stop-postpone",
    ),
    path(
        "api/v1/itinerary/navigation/start",
        views.start_navigation_view,
        name="navigation-start",
    ),
    path(
        "api/v1/itinerary/navigation/stop",
        views.stop_navigation_view,
        name="navigation-stop",
    ),
    path("api/v1/itinerary/location", views.location_view, name="itinerary-location"),
]
