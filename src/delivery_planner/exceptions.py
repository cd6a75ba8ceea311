class DeliveryPlannerError(Exception):
    """Base exception for delivery planning errors."""


class ExternalServiceError(DeliveryPlannerError):
    """Raised when an upstream API call fails."""


class MalformedResponseError(ExternalServiceError):
    """Raised when an upstream API answers with a payload we cannot use."""


class InvalidAddressError(DeliveryPlannerError):
    """Raised when no geocoding provider can resolve an address."""


class InvalidCoordinatesError(DeliveryPlannerError):
    """Raised when a stop is given non-finite or out of range coordinates."""


class InsufficientWaypointsError(DeliveryPlannerError):
    """Raised when fewer than two waypoints are passed to routing."""


class RouteComputationError(DeliveryPlannerError):
    """Raised when a route cannot be loaded after all retries."""


class NoStopsError(DeliveryPlannerError):
    """Raised when navigation is requested for an empty itinerary."""


class StopNotFoundError(DeliveryPlannerError):
    """Raised when a stop id does not exist in the itinerary."""


class LocationUnavailableError(DeliveryPlannerError):
    """Raised when the courier position cannot be obtained."""

    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNSUPPORTED = "unsupported"

    def __init__(self, message: str, reason: str = UNAVAILABLE) -> None:
        super().__init__(message)
        self.reason = reason
