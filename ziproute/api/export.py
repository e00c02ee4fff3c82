# ziproute/api/export.py
"""Google Maps deep links for an ordered stop list."""

from __future__ import annotations

from typing import List, Sequence
from urllib.parse import quote, urlencode

from ziproute.api.geocoding import is_coordinate_pair
from ziproute.api.models import OrderedStop

MAPS_DIR_URL = "https://www.google.com/maps/dir/"
DEFAULT_MAX_PER_LEG = 11  # origin + destination + 9 waypoints


def export_text(stop: OrderedStop) -> str:
    label = (stop.input_label or "").strip()
    if label and not is_coordinate_pair(label):
        return label
    return f"{stop.lat},{stop.lng}"


def build_link(chunk: Sequence[OrderedStop]) -> str:
    params = {
        "api": "1",
        "origin": export_text(chunk[0]),
        "destination": export_text(chunk[-1]),
        "travelmode": "driving",
    }
    interior = [export_text(stop) for stop in chunk[1:-1]]
    if interior:
        params["waypoints"] = "|".join(interior)
    return MAPS_DIR_URL + "?" + urlencode(params, quote_via=quote, safe=",|")


def split_stops(stops: Sequence[OrderedStop], max_per_leg: int) -> List[Sequence[OrderedStop]]:
    """Overlapping windows where each window ends where the next begins."""
    if len(stops) <= max_per_leg:
        return [stops]

    step = max_per_leg - 1
    return [stops[i:i + max_per_leg] for i in range(0, len(stops) - 1, step)]


def build_export_links(stops: Sequence[OrderedStop], max_per_leg: int = DEFAULT_MAX_PER_LEG) -> List[str]:
    """One maps URL per window of at most max_per_leg stops.

    An empty stop list yields a single empty placeholder.
    """
    if max_per_leg < 2:
        raise ValueError("max_per_leg must be at least 2")
    if not stops:
        return [""]

    return [build_link(chunk) for chunk in split_stops(list(stops), max_per_leg)]


__all__ = ["build_export_links", "export_text", "split_stops"]
