import pytest
import requests

from ziproute.api.errors import ReverseGeocodeFailure
from ziproute.api.geocoding import GeocodingProvider
from ziproute.api.models import GeocodeResult, Leg, Trip, Waypoint
from ziproute.api.services.planner_service import RoutePlanner


class FakeGeocoder(GeocodingProvider):
    """Geocoder backed by a dict of query -> (lng, lat)."""

    def __init__(self, places=None, reverse_labels=None, reverse_fails=False):
        self.places = places or {}
        self.reverse_labels = reverse_labels or {}
        self.reverse_fails = reverse_fails
        self.forward_calls = []
        self.reverse_calls = []

    def forward(self, query, countries, limit=1):
        self.forward_calls.append((query, tuple(countries), limit))
        coord = self.places.get(query.strip())
        if coord is None:
            return []
        return [GeocodeResult(display_label=f"{query.strip()}, Springfield", coordinate=coord)]

    def reverse(self, lng, lat):
        self.reverse_calls.append((lng, lat))
        if self.reverse_fails:
            raise ReverseGeocodeFailure("reverse lookup down")
        return self.reverse_labels.get((round(lng, 5), round(lat, 5)))


class FakeOptimizer:
    """Stands in for OptimizationClient; returns a canned trip."""

    def __init__(self, live=None, typical=None, waypoints=None, error=None, hook=None):
        self.live = live
        self.typical = typical
        self.waypoints = waypoints
        self.error = error
        self.hook = hook
        self.requests = []

    def fetch_trips(self, trip_requests):
        self.requests.append(trip_requests)
        if self.hook is not None:
            hook, self.hook = self.hook, None
            hook()
        if self.error is not None:
            raise self.error
        typical = self.typical if self.typical is not None else self.live
        return self.live, typical, self.waypoints


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload if payload is not None else {}
        self.status_code = status_code

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self.payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


def make_trip(durations, distances=None, congestion=None, totals=True):
    distances = distances or [1000.0 * (i + 1) for i in range(len(durations))]
    congestion = congestion or [[] for _ in durations]
    legs = [Leg(distance=d, duration=t, congestion=list(c))
            for d, t, c in zip(distances, durations, congestion)]
    return Trip(
        legs=legs,
        geometry={"type": "LineString", "coordinates": [[-122.4, 37.7], [-122.3, 37.8]]},
        distance=sum(distances) if totals else None,
        duration=sum(durations) if totals else None,
    )


def make_waypoints(coords, order):
    """Waypoints in request order; order[i] is the tour position of request i."""
    return [Waypoint(location=coord, waypoint_index=idx) for coord, idx in zip(coords, order)]


PLACES = {
    "1 Main St": (-122.40, 37.70),
    "2 Oak Ave": (-122.30, 37.80),
    "3 Pine Rd": (-122.35, 37.75),
}


@pytest.fixture
def planner_config():
    return {
        "countries": ["us"],
        "traffic_enabled": True,
        "stabilize": True,
        "max_per_leg": 11,
        "timeout": 5,
        "session_ttl_seconds": 3600,
    }


@pytest.fixture
def geocoder():
    return FakeGeocoder(places=dict(PLACES))


@pytest.fixture
def scenario_optimizer():
    # Stabilized request order: start, 3 Pine Rd (lng -122.35), 2 Oak Ave (lng -122.30).
    # The provider visits Oak before Pine.
    coords = [PLACES["1 Main St"], PLACES["3 Pine Rd"], PLACES["2 Oak Ave"]]
    return FakeOptimizer(
        live=make_trip([600.0, 900.0]),
        typical=make_trip([500.0, 800.0]),
        waypoints=make_waypoints(coords, [0, 2, 1]),
    )


@pytest.fixture
def planner(geocoder, scenario_optimizer, planner_config):
    return RoutePlanner(geocoder=geocoder, optimizer=scenario_optimizer, config=planner_config)
