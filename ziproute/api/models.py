"""Shared data structures for route planning.

Provider payloads are normalised into these dataclasses as soon as they
arrive, so the stabilizer, reconciler, paint mapper and export splitter
only ever see one shape regardless of which geocoder produced the input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Provider wire order: (longitude, latitude)
LngLat = Tuple[float, float]

START_ROLE = "Start"
STOP_ROLE = "Stop"


@dataclass(frozen=True)
class GeocodeResult:
    """First/best match for one geocoding query."""

    display_label: str
    coordinate: LngLat

    @property
    def lng(self) -> float:
        return self.coordinate[0]

    @property
    def lat(self) -> float:
        return self.coordinate[1]


@dataclass
class LegSummary:
    distance: float  # metres
    duration: float  # seconds

    def to_dict(self) -> dict:
        return {"distanceMeters": self.distance, "durationSeconds": self.duration}


@dataclass
class Leg:
    """Travel segment between two consecutive stops in final order."""

    distance: float
    duration: float
    congestion: List[str] = field(default_factory=list)

    def summary(self) -> LegSummary:
        return LegSummary(distance=self.distance, duration=self.duration)


@dataclass
class Trip:
    """One provider-computed route: ordered legs plus overview geometry."""

    legs: List[Leg]
    geometry: Dict[str, Any]
    distance: Optional[float] = None
    duration: Optional[float] = None


@dataclass
class Waypoint:
    location: LngLat
    waypoint_index: int
    name: str = ""


@dataclass
class OrderedStop:
    """A stop in its final visiting position."""

    order: int
    role: str
    label: str
    lat: float
    lng: float
    to_next: Optional[LegSummary] = None
    input_label: str = ""

    def to_dict(self) -> dict:
        data = {
            "order": self.order,
            "role": self.role,
            "label": self.label,
            "lat": self.lat,
            "lng": self.lng,
            "inputLabel": self.input_label,
        }
        if self.to_next is not None:
            data["toNext"] = self.to_next.to_dict()
        return data


@dataclass
class RouteResult:
    """Output of one successful optimize run."""

    request_id: int
    stops: List[OrderedStop]
    distance: float
    duration: float
    geometry: Dict[str, Any]
    paint: Optional[List[Tuple[float, str]]]
    line_gradient: List[Any]

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "stops": [stop.to_dict() for stop in self.stops],
            "distanceMeters": self.distance,
            "durationSeconds": self.duration,
            "geometry": self.geometry,
            "lineGradient": self.line_gradient,
            "trafficOverride": self.paint is not None,
        }


@dataclass
class ExtractedAddress:
    """One address pulled out of free text by the extraction model."""

    address: str
    label: str = ""
    is_start: bool = False

    def to_dict(self) -> dict:
        return {"address": self.address, "label": self.label, "isStart": self.is_start}


@dataclass(frozen=True)
class Identity:
    """Who is asking: enough to gate features and meter usage."""

    user_id: Optional[str] = None
    plan: str = "free"
    is_logged_in: bool = False
