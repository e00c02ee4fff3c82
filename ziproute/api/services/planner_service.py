# ziproute/api/services/planner_service.py
"""Service layer for route optimization runs and planning sessions."""

import logging
import secrets
import threading
import time
from typing import Callable, Dict, List, Optional

from ziproute.api.config import get_mapbox_config, get_planner_config
from ziproute.api.errors import (
    GeocodeFailure,
    GeocodeNotFound,
    ProviderRequestFailure,
    RouteInputError,
    SupersededRequest,
)
from ziproute.api.export import build_export_links
from ziproute.api.geocoding import GeocodeCache, GeocodingProvider, ReverseGeocodeCache, create_geocoder
from ziproute.api.models import RouteResult
from ziproute.api.optimization import MAX_COORDINATES, OptimizationClient, build_requests, stabilize
from ziproute.api.reconcile import reconcile, trip_totals
from ziproute.api.traffic import line_gradient, map_to_paint

logger = logging.getLogger(__name__)

SaveRouteCallback = Callable[[str, List[dict]], object]


class RoutePlanner:
    """One user's planning session: caches, current route, run sequencing."""

    def __init__(self,
                 geocoder: GeocodingProvider,
                 optimizer: Optional[OptimizationClient] = None,
                 config: Optional[dict] = None,
                 token: str = "",
                 api_base: str = "https://api.mapbox.com"):
        self.config = config or get_planner_config()
        self.geocode_cache = GeocodeCache(geocoder, self.config.get("countries"))
        self.reverse_cache = ReverseGeocodeCache(geocoder)
        self.optimizer = optimizer or OptimizationClient(timeout=self.config.get("timeout", 10))
        self.token = token
        self.api_base = api_base

        self.current_route: Optional[RouteResult] = None
        self.last_activity = time.time()

        self.lock = threading.Lock()
        self._issued = 0

    def _issue_request_id(self) -> int:
        with self.lock:
            self._issued += 1
            self.last_activity = time.time()
            return self._issued

    @staticmethod
    def _validate(start: str, destinations: List[str], max_destinations: Optional[int]) -> List[str]:
        if start is not None and not isinstance(start, str):
            raise RouteInputError("The starting point must be text.")
        if not start or not start.strip():
            raise RouteInputError("Please enter a starting point.")

        if destinations is None:
            destinations = []
        if not isinstance(destinations, list) or not all(isinstance(d, str) for d in destinations):
            raise RouteInputError("Destinations must be a list of addresses.")

        filtered = [d.strip() for d in destinations if d.strip()]
        if not filtered:
            raise RouteInputError("Add at least 1 destination.")
        if max_destinations is not None and len(filtered) > max_destinations:
            raise RouteInputError(f"Too many destinations: your plan allows up to {max_destinations}.")
        if len(filtered) + 1 > MAX_COORDINATES:
            raise RouteInputError(
                f"Too many destinations: routes are optimized with at most {MAX_COORDINATES - 1} at a time."
            )
        return filtered

    def optimize(self,
                 start: str,
                 destinations: List[str],
                 stabilize_destinations: Optional[bool] = None,
                 max_destinations: Optional[int] = None) -> RouteResult:
        """Run the full pipeline and commit the result as the current route.

        Nothing is committed unless every step succeeds and no newer run
        was issued in the meantime.

        Raises:
            RouteInputError: If the input is incomplete or over the stop limit
            GeocodeFailure: If the start or a destination cannot be resolved
            NoRouteFound: If the provider finds no trip
            ProviderRequestFailure: On provider transport errors
            SupersededRequest: If a newer run was issued while this one ran
        """
        filtered = self._validate(start, destinations, max_destinations)
        request_id = self._issue_request_id()
        started = time.time()

        # One address at a time so a failure can name its field
        try:
            start_result = self.geocode_cache.resolve(start)
        except GeocodeNotFound as e:
            raise GeocodeFailure(start.strip(), field="start") from e

        dest_results = []
        for index, address in enumerate(filtered, 1):
            try:
                dest_results.append(self.geocode_cache.resolve(address))
            except GeocodeNotFound as e:
                raise GeocodeFailure(address, field="destination", index=index) from e
        logger.info(f"Geocoded {len(filtered) + 1} places in {time.time() - started:.2f}s")

        if stabilize_destinations is None:
            stabilize_destinations = self.config.get("stabilize", True)
        coords, labels = stabilize(start_result, dest_results, start.strip(), filtered,
                                   enabled=stabilize_destinations)

        traffic_enabled = self.config.get("traffic_enabled", True)
        trip_requests = build_requests(coords, traffic_enabled, token=self.token, api_base=self.api_base)
        live, typical, waypoints = self.optimizer.fetch_trips(trip_requests)

        if len(waypoints) != len(coords):
            logger.error(f"Provider returned {len(waypoints)} waypoints for {len(coords)} coordinates")
            raise ProviderRequestFailure("Optimization response was incomplete")

        stops = reconcile(waypoints, live.legs, labels, self.reverse_cache)
        distance, duration = trip_totals(live)
        paint = map_to_paint(live, typical if traffic_enabled else None)

        result = RouteResult(
            request_id=request_id,
            stops=stops,
            distance=distance,
            duration=duration,
            geometry=live.geometry,
            paint=paint,
            line_gradient=line_gradient(paint),
        )

        with self.lock:
            if request_id != self._issued:
                logger.warning(f"Discarding route {request_id}; run {self._issued} is newer")
                raise SupersededRequest("A newer route request replaced this one.")
            self.current_route = result

        logger.info(
            f"Route {request_id} committed: {len(stops)} stops, "
            f"{distance / 1000:.1f} km in {time.time() - started:.2f}s"
        )
        return result

    def export_links(self, max_per_leg: Optional[int] = None) -> List[str]:
        stops = self.current_route.stops if self.current_route else []
        return build_export_links(stops, max_per_leg or self.config.get("max_per_leg", 11))

    def save_current(self, name: str, save_route: SaveRouteCallback):
        """Hand the current route to the persistence collaborator."""
        if not name or not name.strip():
            raise RouteInputError("Please give the route a name.")
        if self.current_route is None:
            raise RouteInputError("Optimize a route before saving it.")

        stops = [stop.to_dict() for stop in self.current_route.stops]
        logger.info(f"Saving route '{name.strip()}' with {len(stops)} stops")
        return save_route(name.strip(), stops)

    def reset(self) -> None:
        """Start a new route; the geocode caches are kept."""
        with self.lock:
            self._issued += 1
            self.current_route = None


def create_route_planner() -> RoutePlanner:
    """Build a planner wired to the configured providers."""
    mapbox = get_mapbox_config()
    return RoutePlanner(
        geocoder=create_geocoder(),
        config=get_planner_config(),
        token=mapbox["token"],
        api_base=mapbox["api_base"],
    )


class PlannerSessionManager:
    """Holds one RoutePlanner per browser session."""

    def __init__(self, factory: Callable[[], RoutePlanner] = create_route_planner,
                 ttl_seconds: Optional[int] = None):
        self.factory = factory
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_planner_config()["session_ttl_seconds"]
        self.planners: Dict[str, RoutePlanner] = {}
        self.lock = threading.Lock()

    @staticmethod
    def new_session_id() -> str:
        return f"rps_{secrets.token_urlsafe(16)}"

    def get(self, session_id: str) -> RoutePlanner:
        """Return the planner for a session, creating it on first use."""
        with self.lock:
            self._prune()
            planner = self.planners.get(session_id)
            if planner is None:
                planner = self.factory()
                self.planners[session_id] = planner
                logger.info(f"Created planning session {session_id}")
            planner.last_activity = time.time()
            return planner

    def peek(self, session_id: Optional[str]) -> Optional[RoutePlanner]:
        with self.lock:
            return self.planners.get(session_id) if session_id else None

    def _prune(self) -> None:
        cutoff = time.time() - self.ttl_seconds
        expired = [sid for sid, p in self.planners.items() if p.last_activity < cutoff]
        for sid in expired:
            del self.planners[sid]
        if expired:
            logger.info(f"Pruned {len(expired)} idle planning sessions")


__all__ = ["PlannerSessionManager", "RoutePlanner", "create_route_planner"]
