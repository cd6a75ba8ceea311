from __future__ import annotations

import pytest
from django.core.cache import cache
from django.test import Client

from delivery_planner import views


@pytest.fixture(autouse=True)
def isolated_planner(settings):
    settings.ORS_API_KEY = "test-key"
    settings.ROUTE_RETRY_DELAY_SECONDS = 0
    settings.GEOCODING_RETRY_DELAY_SECONDS = 0
    settings.LOCATION_POLL_SECONDS = 0
    cache.clear()
    views._sessions = None
    views._geocoder = None
    yield
    cache.clear()


@pytest.fixture
def api_client() -> Client:
    return Client()
