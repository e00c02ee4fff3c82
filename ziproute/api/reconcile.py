# ziproute/api/reconcile.py
"""Map the provider's optimized waypoint order back to what the user typed."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from ziproute.api.geocoding import ReverseGeocodeCache, format_coordinate_label, is_coordinate_pair
from ziproute.api.models import START_ROLE, STOP_ROLE, Leg, OrderedStop, Trip, Waypoint

logger = logging.getLogger(__name__)


def _display_label(label: str, lat: float, lng: float,
                   reverse_cache: Optional[ReverseGeocodeCache]) -> str:
    if label and not is_coordinate_pair(label):
        return label

    if reverse_cache is not None:
        resolved = reverse_cache.lookup(lat, lng)
        if resolved:
            return resolved

    logger.debug(f"Using coordinate label for {lat}, {lng}")
    return format_coordinate_label(lat, lng)


def reconcile(waypoints: Sequence[Waypoint],
              legs: Sequence[Leg],
              labels: Sequence[str],
              reverse_cache: Optional[ReverseGeocodeCache] = None) -> List[OrderedStop]:
    """Build the ordered stop list for one optimization run.

    Args:
        waypoints: Provider waypoints in request (stable) order
        legs: Trip legs in visiting order
        labels: Typed labels indexed by stable position; index 0 is the start
        reverse_cache: Used when a label is empty or a raw coordinate

    Returns:
        Stops sorted by waypoint_index with order/role/to_next assigned
    """
    tagged = sorted(enumerate(waypoints), key=lambda item: item[1].waypoint_index)

    stops = []
    for order, (stable_index, waypoint) in enumerate(tagged):
        lng, lat = waypoint.location
        typed = labels[stable_index] if stable_index < len(labels) else ""
        typed = (typed or "").strip()

        stops.append(OrderedStop(
            order=order,
            role=START_ROLE if order == 0 else STOP_ROLE,
            label=_display_label(typed, lat, lng, reverse_cache),
            lat=lat,
            lng=lng,
            to_next=legs[order].summary() if order < len(legs) else None,
            input_label=typed,
        ))

    return stops


def trip_totals(trip: Trip) -> Tuple[float, float]:
    """Whole-trip (distance, duration), falling back to the leg sums."""
    distance = trip.distance
    duration = trip.duration
    if distance is None:
        distance = sum(leg.distance for leg in trip.legs)
    if duration is None:
        duration = sum(leg.duration for leg in trip.legs)
    return distance, duration


__all__ = ["reconcile", "trip_totals"]
