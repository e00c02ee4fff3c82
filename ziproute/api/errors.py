# ziproute/api/errors.py
"""Error taxonomy for one optimize run and the surfaces around it."""

from typing import Optional


class ZipRouteError(Exception):
    """Base class for errors surfaced to the user as a single notification."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RouteInputError(ZipRouteError):
    status_code = 400


class GeocodeNotFound(ZipRouteError):
    """The geocoding provider returned zero features for a query."""

    status_code = 422

    def __init__(self, query: str):
        super().__init__(f"No geocoding result for '{query}'")
        self.query = query


class GeocodeFailure(ZipRouteError):
    """A named input field could not be resolved to coordinates."""

    status_code = 422

    def __init__(self, address: str, field: str = "start", index: Optional[int] = None):
        if field == "start":
            message = f"Could not geocode start location: {address}"
        else:
            message = f"Could not geocode destination {index}: {address}"
        super().__init__(message)
        self.address = address
        self.field = field
        self.index = index


class ReverseGeocodeFailure(ZipRouteError):
    status_code = 502


class NoRouteFound(ZipRouteError):
    status_code = 422

    def __init__(self, message: str = "No route found. Try different locations."):
        super().__init__(message)


class ProviderRequestFailure(ZipRouteError):
    status_code = 502


class UsageLimitExceeded(ZipRouteError):
    status_code = 429

    def __init__(self, message: str, reason: str = "", cooldown_until: Optional[float] = None):
        super().__init__(message)
        self.reason = reason
        self.cooldown_until = cooldown_until


class FeatureNotAvailable(ZipRouteError):
    status_code = 403


class SupersededRequest(ZipRouteError):
    """A newer optimize run was issued before this one finished."""

    status_code = 409


class AddressExtractionError(ZipRouteError):
    status_code = 502
