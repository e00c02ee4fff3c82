# ziproute/api/geocoding.py
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import googlemaps
import requests

from ziproute.api.config import get_google_maps_config, get_mapbox_config, get_planner_config
from ziproute.api.errors import GeocodeNotFound, ProviderRequestFailure, ReverseGeocodeFailure
from ziproute.api.models import GeocodeResult

logger = logging.getLogger(__name__)

COORDINATE_PAIR = re.compile(r"^(-?\d{1,2}\.\d+),\s*(-?\d{1,3}\.\d+)$")


def parse_coordinate_pair(text: str) -> Tuple[float, float] | None:
    """Return (lat, lng) when text is a literal 'lat, lng' pair, else None."""
    if not text:
        return None
    match = COORDINATE_PAIR.match(text.strip())
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def is_coordinate_pair(text: str) -> bool:
    return parse_coordinate_pair(text) is not None


def normalize_query(query: str) -> str:
    """Lowercase, collapse internal whitespace and trim."""
    return " ".join(query.lower().split())


def format_coordinate_label(lat: float, lng: float) -> str:
    return f"{lat:.5f}, {lng:.5f}"


# ────────────────────────────────────────────────────────────────────────────────
# Providers
# ────────────────────────────────────────────────────────────────────────────────
class GeocodingProvider:
    """Forward and reverse lookups against one external geocoder."""

    def forward(self, query: str, countries: List[str], limit: int = 1) -> List[GeocodeResult]:
        raise NotImplementedError

    def reverse(self, lng: float, lat: float) -> Optional[str]:
        raise NotImplementedError


class MapboxGeocoder(GeocodingProvider):
    """Mapbox Geocoding API v5 (mapbox.places)."""

    PLACES_PATH = "/geocoding/v5/mapbox.places/{query}.json"

    def __init__(self, token: str, api_base: str = "https://api.mapbox.com", timeout: float = 10):
        if not token:
            raise ValueError("Mapbox token not set. Please set MAPBOX_TOKEN in the .env file.")
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _get(self, path_query: str, params: dict) -> dict:
        url = self.api_base + self.PLACES_PATH.format(query=quote(path_query, safe=","))
        params = dict(params, access_token=self.token)
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Mapbox geocoding request failed for '{path_query}': {e}")
            raise ProviderRequestFailure("Geocoding request failed") from e
        except ValueError as e:
            logger.error(f"Mapbox geocoding returned invalid JSON for '{path_query}': {e}")
            raise ProviderRequestFailure("Geocoding request failed") from e

    def forward(self, query: str, countries: List[str], limit: int = 1) -> List[GeocodeResult]:
        params = {"limit": limit}
        if countries:
            params["country"] = ",".join(countries)
        data = self._get(query.strip(), params)

        results = []
        for feature in (data.get("features") or [])[:limit]:
            lng, lat = feature["center"]
            results.append(GeocodeResult(display_label=feature.get("place_name", ""), coordinate=(lng, lat)))
        return results

    def reverse(self, lng: float, lat: float) -> Optional[str]:
        try:
            data = self._get(f"{lng},{lat}", {})
        except ProviderRequestFailure as e:
            raise ReverseGeocodeFailure(f"Reverse geocoding failed for {lat},{lng}") from e
        features = data.get("features") or []
        if not features:
            return None
        return features[0].get("place_name") or None


class GoogleGeocoder(GeocodingProvider):
    """Google Geocoding API through the googlemaps client."""

    def __init__(self, api_key: str, timeout: float = 10):
        if not api_key:
            raise ValueError("No Google Maps API key found in config")
        self.api_key = api_key
        self.timeout = timeout
        self._client: googlemaps.Client | None = None

    def _get_client(self) -> googlemaps.Client:
        """Return a cached googlemaps.Client instance."""
        if self._client is None:
            logger.info(f"Initializing Google Maps client with key: {self.api_key[:6]}...")
            self._client = googlemaps.Client(key=self.api_key, timeout=self.timeout)
        return self._client

    def forward(self, query: str, countries: List[str], limit: int = 1) -> List[GeocodeResult]:
        components = {"country": [c.upper() for c in countries]} if countries else None
        try:
            results = self._get_client().geocode(query.strip(), components=components, language="en")
        except (googlemaps.exceptions.ApiError,
                googlemaps.exceptions.TransportError,
                googlemaps.exceptions.Timeout) as e:
            logger.error(f"Google geocoding error for '{query}': {e}")
            raise ProviderRequestFailure("Geocoding request failed") from e

        normalized = []
        for result in (results or [])[:limit]:
            loc = result["geometry"]["location"]
            normalized.append(GeocodeResult(
                display_label=result.get("formatted_address", ""),
                coordinate=(loc["lng"], loc["lat"]),
            ))
        return normalized

    def reverse(self, lng: float, lat: float) -> Optional[str]:
        try:
            results = self._get_client().reverse_geocode((lat, lng), language="en")
        except (googlemaps.exceptions.ApiError,
                googlemaps.exceptions.TransportError,
                googlemaps.exceptions.Timeout) as e:
            logger.error(f"Google reverse geocoding error for {lat},{lng}: {e}")
            raise ReverseGeocodeFailure(f"Reverse geocoding failed for {lat},{lng}") from e
        if not results:
            return None
        return results[0].get("formatted_address") or None


def create_geocoder(backend: str | None = None) -> GeocodingProvider:
    """Build the configured geocoding provider."""
    planner_cfg = get_planner_config()
    backend = (backend or planner_cfg["geocoder_backend"]).lower()

    if backend == "google":
        return GoogleGeocoder(get_google_maps_config()["api_key"], timeout=planner_cfg["timeout"])
    if backend == "mapbox":
        cfg = get_mapbox_config()
        return MapboxGeocoder(cfg["token"], api_base=cfg["api_base"], timeout=planner_cfg["timeout"])
    raise ValueError(f"Unknown geocoder backend: {backend}")


# ────────────────────────────────────────────────────────────────────────────────
# Session-scoped caches
# ────────────────────────────────────────────────────────────────────────────────
class GeocodeCache:
    """Memoizes address lookups for one planning session."""

    def __init__(self, provider: GeocodingProvider, countries: List[str] | None = None):
        self.provider = provider
        self.countries = list(countries or [])
        self._entries: Dict[str, GeocodeResult] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, query: str) -> GeocodeResult:
        """Resolve free text or a 'lat, lng' pair to a single result.

        Raises:
            ValueError: If the query is blank
            GeocodeNotFound: If the provider has no match
            ProviderRequestFailure: If the provider call itself fails
        """
        if not query or not query.strip():
            raise ValueError("Geocoding query must not be empty")

        pair = parse_coordinate_pair(query)
        if pair is not None:
            lat, lng = pair
            return GeocodeResult(display_label=f"{lat}, {lng}", coordinate=(lng, lat))

        key = normalize_query(query)
        cached = self._entries.get(key)
        if cached is not None:
            logger.debug(f"Geocode cache hit: {key}")
            return cached

        results = self.provider.forward(query, self.countries, limit=1)
        if not results:
            logger.warning(f"No results found for place: {query}")
            raise GeocodeNotFound(query)

        result = results[0]
        self._entries[key] = result
        logger.debug(f"Geocoded {query} to {result.lat}, {result.lng}")
        return result


class ReverseGeocodeCache:
    """Coordinate → place label lookups; failures are tolerated."""

    def __init__(self, provider: GeocodingProvider):
        self.provider = provider
        self._entries: Dict[str, str] = {}

    @staticmethod
    def key(lat: float, lng: float) -> str:
        return f"{lng:.5f},{lat:.5f}"

    def lookup(self, lat: float, lng: float) -> Optional[str]:
        key = self.key(lat, lng)
        if key in self._entries:
            return self._entries[key]

        try:
            label = self.provider.reverse(lng, lat)
        except ReverseGeocodeFailure as e:
            logger.warning(f"Reverse geocoding failed for {key}: {e}")
            return None

        if label:
            self._entries[key] = label
        return label


__all__ = [
    "COORDINATE_PAIR",
    "GeocodeCache",
    "GeocodingProvider",
    "GoogleGeocoder",
    "MapboxGeocoder",
    "ReverseGeocodeCache",
    "create_geocoder",
    "format_coordinate_label",
    "is_coordinate_pair",
    "normalize_query",
    "parse_coordinate_pair",
]
