import itertools
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from ziproute.api.errors import NoRouteFound, ProviderRequestFailure
from ziproute.api.models import GeocodeResult
from ziproute.api.optimization import (
    OptimizationClient,
    TripRequests,
    build_requests,
    format_coordinates,
    stabilize,
)

from conftest import FakeResponse

START = GeocodeResult("start", (-122.5, 37.6))
DESTINATIONS = [
    GeocodeResult("a", (-122.30, 37.80)),
    GeocodeResult("b", (-122.35, 37.75)),
    GeocodeResult("c", (-122.30, 37.70)),
    GeocodeResult("d", (-122.45, 37.90)),
]


def test_stabilize_is_independent_of_entry_order():
    outputs = set()
    for perm in itertools.permutations(range(len(DESTINATIONS))):
        dests = [DESTINATIONS[i] for i in perm]
        labels = [f"typed {DESTINATIONS[i].display_label}" for i in perm]
        coords, out_labels = stabilize(START, dests, "home", labels)
        outputs.add((tuple(coords), tuple(out_labels)))

    assert len(outputs) == 1
    coords, labels = outputs.pop()
    assert coords == (
        (-122.5, 37.6),
        (-122.45, 37.90),
        (-122.35, 37.75),
        (-122.30, 37.70),
        (-122.30, 37.80),
    )
    assert labels == ("home", "typed d", "typed b", "typed c", "typed a")


def test_stabilize_disabled_keeps_entry_order():
    coords, labels = stabilize(START, DESTINATIONS, "home", ["a", "b", "c", "d"], enabled=False)
    assert coords == [START.coordinate] + [d.coordinate for d in DESTINATIONS]
    assert labels == ["home", "a", "b", "c", "d"]


def test_stabilize_requires_one_label_per_destination():
    with pytest.raises(ValueError):
        stabilize(START, DESTINATIONS, "home", ["a"])


def test_format_coordinates_is_lng_lat():
    assert format_coordinates([(-122.4, 37.7), (-122.3, 37.8)]) == "-122.4,37.7;-122.3,37.8"


def test_build_requests_with_traffic_issues_live_and_typical():
    reqs = build_requests([(-122.4, 37.7), (-122.3, 37.8)], traffic_enabled=True, token="pk.test")

    live = urlsplit(reqs.live_url)
    typical = urlsplit(reqs.typical_url)
    assert not reqs.single
    assert live.path == "/optimized-trips/v1/mapbox/driving-traffic/-122.4,37.7;-122.3,37.8"
    assert typical.path == "/optimized-trips/v1/mapbox/driving/-122.4,37.7;-122.3,37.8"

    live_q = parse_qs(live.query)
    assert live_q["annotations"] == ["congestion,distance,duration"]
    assert live_q["source"] == ["first"]
    assert live_q["destination"] == ["last"]
    assert live_q["roundtrip"] == ["false"]
    assert live_q["geometries"] == ["geojson"]
    assert live_q["overview"] == ["full"]
    assert live_q["access_token"] == ["pk.test"]
    assert "annotations" not in parse_qs(typical.query)


def test_build_requests_without_traffic_is_a_single_request():
    reqs = build_requests([(-122.4, 37.7), (-122.3, 37.8)], traffic_enabled=False)
    assert reqs.single
    assert "/mapbox/driving-traffic/" in reqs.live_url
    assert parse_qs(urlsplit(reqs.live_url).query)["annotations"] == ["congestion,distance,duration"]
    assert "access_token" not in reqs.live_url


def test_build_requests_needs_two_coordinates():
    with pytest.raises(ValueError):
        build_requests([(-122.4, 37.7)], traffic_enabled=True)


OPTIMIZED = {
    "code": "Ok",
    "trips": [{
        "geometry": {"type": "LineString", "coordinates": [[-122.4, 37.7], [-122.3, 37.8]]},
        "legs": [{"distance": 1200.0, "duration": 300.0,
                  "annotation": {"congestion": ["low", "heavy"]}}],
        "distance": 1200.0,
        "duration": 300.0,
    }],
    "waypoints": [
        {"location": [-122.4, 37.7], "waypoint_index": 0, "name": "Main St"},
        {"location": [-122.3, 37.8], "waypoint_index": 1, "name": ""},
    ],
}


def test_fetch_trip_normalizes_response(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda url, timeout=None: FakeResponse(OPTIMIZED))

    trip, waypoints = OptimizationClient().fetch_trip("https://example.test/x")

    assert trip.distance == 1200.0
    assert trip.legs[0].congestion == ["low", "heavy"]
    assert trip.geometry["type"] == "LineString"
    assert [w.waypoint_index for w in waypoints] == [0, 1]
    assert waypoints[0].location == (-122.4, 37.7)


@pytest.mark.parametrize("payload, status", [
    ({"code": "Ok", "trips": [], "waypoints": []}, 200),
    ({"code": "NoTrips", "message": "No trips found"}, 200),
    ({"code": "NoRoute"}, 422),
])
def test_fetch_trip_without_trips_raises_no_route(monkeypatch, payload, status):
    monkeypatch.setattr(requests, "get", lambda url, timeout=None: FakeResponse(payload, status))
    with pytest.raises(NoRouteFound):
        OptimizationClient().fetch_trip("https://example.test/x")


def test_fetch_trip_non_2xx_is_provider_failure(monkeypatch):
    monkeypatch.setattr(requests, "get",
                        lambda url, timeout=None: FakeResponse({"message": "Not Authorized"}, 401))
    with pytest.raises(ProviderRequestFailure):
        OptimizationClient().fetch_trip("https://example.test/x")


@pytest.mark.parametrize("payload", [[], "Service Unavailable"])
def test_fetch_trip_malformed_body_is_provider_failure(monkeypatch, payload):
    monkeypatch.setattr(requests, "get", lambda url, timeout=None: FakeResponse(payload, 200))
    with pytest.raises(ProviderRequestFailure):
        OptimizationClient().fetch_trip("https://example.test/x")


def test_fetch_trip_network_error_is_provider_failure(monkeypatch):
    def fake_get(url, timeout=None):
        raise requests.exceptions.Timeout("slow")

    monkeypatch.setattr(requests, "get", fake_get)
    with pytest.raises(ProviderRequestFailure):
        OptimizationClient().fetch_trip("https://example.test/x")


def test_fetch_trips_single_request_shares_result(monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return FakeResponse(OPTIMIZED)

    monkeypatch.setattr(requests, "get", fake_get)
    live, typical, _ = OptimizationClient().fetch_trips(TripRequests("https://x/1", "https://x/1"))

    assert calls == ["https://x/1"]
    assert live is typical


def test_fetch_trips_two_requests_when_traffic_enabled(monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return FakeResponse(OPTIMIZED)

    monkeypatch.setattr(requests, "get", fake_get)
    OptimizationClient().fetch_trips(TripRequests("https://x/live", "https://x/typical"))

    assert calls == ["https://x/live", "https://x/typical"]
