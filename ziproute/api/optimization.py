# ziproute/api/optimization.py
"""Request building and transport for the Mapbox Optimization API (v1)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple
from urllib.parse import urlencode

import requests

from ziproute.api.errors import NoRouteFound, ProviderRequestFailure
from ziproute.api.models import GeocodeResult, Leg, LngLat, Trip, Waypoint

logger = logging.getLogger(__name__)

LIVE_PROFILE = "mapbox/driving-traffic"
TYPICAL_PROFILE = "mapbox/driving"
LIVE_ANNOTATIONS = "congestion,distance,duration"

# Optimization v1 accepts at most this many coordinates per request
MAX_COORDINATES = 12

# Provider codes that mean "valid request, but nothing connects these points"
NO_ROUTE_CODES = ("NoTrips", "NoRoute", "NoSegment")


@dataclass(frozen=True)
class TripRequests:
    live_url: str
    typical_url: str

    @property
    def single(self) -> bool:
        return self.live_url == self.typical_url


def stabilize(start: GeocodeResult,
              destinations: Sequence[GeocodeResult],
              start_label: str,
              destination_labels: Sequence[str],
              enabled: bool = True) -> Tuple[List[LngLat], List[str]]:
    """Return request coordinates and the labels paired with them.

    When enabled, destinations are sorted by (longitude, latitude) so the
    same address set always yields the same request regardless of entry
    order. The start stays at position 0 either way.
    """
    if len(destinations) != len(destination_labels):
        raise ValueError("Each destination needs exactly one label")

    pairs = list(zip(destinations, destination_labels))
    if enabled:
        pairs.sort(key=lambda pair: (pair[0].lng, pair[0].lat))

    coords = [start.coordinate] + [result.coordinate for result, _ in pairs]
    labels = [start_label] + [label for _, label in pairs]
    return coords, labels


def format_coordinates(coords: Sequence[LngLat]) -> str:
    """Convert (lng, lat) pairs to the provider path 'lng,lat;lng,lat;...'."""
    return ";".join(f"{lng},{lat}" for lng, lat in coords)


def build_requests(coords: Sequence[LngLat],
                   traffic_enabled: bool,
                   token: str = "",
                   api_base: str = "https://api.mapbox.com") -> TripRequests:
    """Build the live and typical optimization URLs for one run.

    The first coordinate is the fixed source and the last the fixed
    destination; every interior stop may be reordered. Without traffic
    accounting a single annotated traffic-aware request serves as both
    trips, so its congestion labels can still colour the route.
    """
    if len(coords) < 2:
        raise ValueError("At least two coordinates are required to optimize a route.")

    path = format_coordinates(coords)
    base_params = {
        "source": "first",
        "destination": "last",
        "roundtrip": "false",
        "geometries": "geojson",
        "overview": "full",
    }

    def url_for(profile: str, extra: dict) -> str:
        params = dict(base_params, **extra)
        if token:
            params["access_token"] = token
        return f"{api_base.rstrip('/')}/optimized-trips/v1/{profile}/{path}?{urlencode(params, safe=',')}"

    live_url = url_for(LIVE_PROFILE, {"annotations": LIVE_ANNOTATIONS})
    if not traffic_enabled:
        return TripRequests(live_url=live_url, typical_url=live_url)

    return TripRequests(live_url=live_url, typical_url=url_for(TYPICAL_PROFILE, {}))


def _redact(url: str) -> str:
    return url.split("?", 1)[0]


def parse_trip(payload: dict) -> Trip:
    legs = []
    for leg in payload.get("legs") or []:
        annotation = leg.get("annotation") or {}
        legs.append(Leg(
            distance=float(leg.get("distance") or 0.0),
            duration=float(leg.get("duration") or 0.0),
            congestion=list(annotation.get("congestion") or []),
        ))

    distance = payload.get("distance")
    duration = payload.get("duration")
    return Trip(
        legs=legs,
        geometry=payload.get("geometry") or {"type": "LineString", "coordinates": []},
        distance=float(distance) if distance is not None else None,
        duration=float(duration) if duration is not None else None,
    )


def parse_waypoints(items: list) -> List[Waypoint]:
    return [
        Waypoint(
            location=(float(item["location"][0]), float(item["location"][1])),
            waypoint_index=int(item["waypoint_index"]),
            name=item.get("name") or "",
        )
        for item in items
    ]


class OptimizationClient:
    """Talks to the optimization provider and normalises its responses."""

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    def fetch_trip(self, url: str) -> Tuple[Trip, List[Waypoint]]:
        """GET one optimization URL and return its first trip and waypoints.

        Raises:
            ProviderRequestFailure: On network errors, non-2xx answers or a non-object body
            NoRouteFound: If the provider returns zero trips
        """
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Optimization request to {_redact(url)} failed: {e}")
            raise ProviderRequestFailure("Optimization request failed") from e

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.error(f"Optimization request to {_redact(url)} returned a malformed body ({response.status_code})")
            raise ProviderRequestFailure("Optimization request failed")

        if data.get("code") in NO_ROUTE_CODES:
            raise NoRouteFound()

        if not response.ok:
            logger.error(
                f"Optimization request to {_redact(url)} returned {response.status_code}: "
                f"{data.get('message', 'Unknown error')}"
            )
            raise ProviderRequestFailure("Optimization request failed")

        trips = data.get("trips") or []
        if not trips:
            raise NoRouteFound()

        return parse_trip(trips[0]), parse_waypoints(data.get("waypoints") or [])

    def fetch_trips(self, trip_requests: TripRequests) -> Tuple[Trip, Trip, List[Waypoint]]:
        """Fetch the live trip and its typical-traffic baseline.

        With a single request both trips are the same object.
        """
        live, waypoints = self.fetch_trip(trip_requests.live_url)
        if trip_requests.single:
            return live, live, waypoints

        typical, _ = self.fetch_trip(trip_requests.typical_url)
        return live, typical, waypoints


__all__ = [
    "MAX_COORDINATES",
    "OptimizationClient",
    "TripRequests",
    "build_requests",
    "format_coordinates",
    "parse_trip",
    "parse_waypoints",
    "stabilize",
]
