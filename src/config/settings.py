"""Django settings for the delivery planner project."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = BASE_DIR.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me-in-production")
DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "delivery_planner",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": PROJECT_ROOT / "db.sqlite3",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "delivery-planner-cache",
    }
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "loggers": {
        "delivery_planner": {
            "handlers": ["console"],
            "level": os.getenv("DELIVERY_PLANNER_LOG_LEVEL", "DEBUG" if DEBUG else "INFO"),
            "propagate": True,
        },
    },
}

# openrouteservice: directions, matrix and optimization
ORS_BASE_URL = os.getenv("ORS_BASE_URL", "https://api.openrouteservice.org")
ORS_API_KEY = os.getenv("ORS_API_KEY", "")
ORS_PROFILE = os.getenv("ORS_PROFILE", "driving-car")
ORS_TIMEOUT_SECONDS = float(os.getenv("ORS_TIMEOUT_SECONDS", "12"))
ROUTE_LANGUAGE = os.getenv("ROUTE_LANGUAGE", "en")

PHOTON_BASE_URL = os.getenv("PHOTON_BASE_URL", "https://photon.komoot.io")
GEOCODING_BASE_URL = os.getenv("GEOCODING_BASE_URL", "https://nominatim.openstreetmap.org")
GEOCODING_USER_AGENT = os.getenv("GEOCODING_USER_AGENT", "delivery-route-planner/1.0")
GEOCODING_COUNTRY_CODES = os.getenv("GEOCODING_COUNTRY_CODES", "")
GEOCODING_TIMEOUT_SECONDS = float(os.getenv("GEOCODING_TIMEOUT_SECONDS", "10"))
GEOCODING_RETRY_COUNT = int(os.getenv("GEOCODING_RETRY_COUNT", "1"))
GEOCODING_RETRY_DELAY_SECONDS = float(os.getenv("GEOCODING_RETRY_DELAY_SECONDS", "0.7"))

ROUTE_RETRY_COUNT = int(os.getenv("ROUTE_RETRY_COUNT", "2"))
ROUTE_RETRY_DELAY_SECONDS = float(os.getenv("ROUTE_RETRY_DELAY_SECONDS", "2"))
ROUTE_FALLBACK_ENABLED = os.getenv("ROUTE_FALLBACK_ENABLED", "1") == "1"
ROUTE_ROUND_TRIP = os.getenv("ROUTE_ROUND_TRIP", "1") == "1"
# "nearest_neighbor" or "ortools"
ROUTE_LOCAL_SOLVER = os.getenv("ROUTE_LOCAL_SOLVER", "nearest_neighbor")
ROUTE_SOLVER_TIME_LIMIT_SECONDS = int(os.getenv("ROUTE_SOLVER_TIME_LIMIT_SECONDS", "2"))

FALLBACK_AVERAGE_SPEED_KMH = float(os.getenv("FALLBACK_AVERAGE_SPEED_KMH", "50"))
FALLBACK_STEP_SECONDS = float(os.getenv("FALLBACK_STEP_SECONDS", "300"))

LOCATION_POLL_SECONDS = float(os.getenv("LOCATION_POLL_SECONDS", "15"))
LOCATION_MAX_AGE_SECONDS = float(os.getenv("LOCATION_MAX_AGE_SECONDS", "20"))

ROUTE_CACHE_TTL_SECONDS = int(os.getenv("ROUTE_CACHE_TTL_SECONDS", "600"))
GEOCODE_CACHE_TTL_SECONDS = int(os.getenv("GEOCODE_CACHE_TTL_SECONDS", "86400"))
