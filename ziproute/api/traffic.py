# ziproute/api/traffic.py
"""Traffic colouring for the rendered route line."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from ziproute.api.models import Trip

FAST = "#22c55e"
MODERATE = "#eab308"
SLOW = "#f97316"
HEAVY = "#dc2626"

# (upper bound on live/typical ratio, colour)
RATIO_BUCKETS = (
    (1.1, FAST),
    (1.3, MODERATE),
    (1.6, SLOW),
)

CONGESTION_COLORS = {
    "low": FAST,
    "moderate": MODERATE,
    "heavy": SLOW,
    "severe": HEAVY,
}

DEFAULT_GRADIENT = ["interpolate", ["linear"], ["line-progress"], 0, "#7c3aed", 1, "#06b6d4"]

ColorRamp = List[Tuple[float, str]]


def ratio_color(ratio: float) -> str:
    for upper, color in RATIO_BUCKETS:
        if ratio <= upper:
            return color
    return HEAVY


def congestion_color(label: str) -> str:
    # "unknown" and anything unrecognised is drawn as free-flowing
    return CONGESTION_COLORS.get((label or "").lower(), FAST)


def _progress(i: int, n: int) -> float:
    return i / (n - 1) if n > 1 else 0.0


def map_to_paint(live: Optional[Trip], typical: Optional[Trip] = None) -> Optional[ColorRamp]:
    """Colour ramp along the route, or None to keep the default gradient.

    With a typical-traffic baseline each leg is coloured by how much slower
    it is live; without one, the live trip's congestion annotations are
    used directly.
    """
    if live is None:
        return None

    if typical is not None and live.legs and typical.legs:
        n = min(len(live.legs), len(typical.legs))
        ramp = []
        for i in range(n):
            baseline = typical.legs[i].duration
            ratio = live.legs[i].duration / baseline if baseline else 1.0
            ramp.append((_progress(i, n), ratio_color(ratio)))
        return ramp

    congestion = [label for leg in live.legs for label in leg.congestion]
    if congestion:
        n = len(congestion)
        return [(_progress(i, n), congestion_color(label)) for i, label in enumerate(congestion)]

    return None


def line_gradient(ramp: Optional[ColorRamp]) -> List[Any]:
    """Render a colour ramp as a line-progress interpolate expression."""
    if not ramp:
        return list(DEFAULT_GRADIENT)
    if len(ramp) == 1:
        color = ramp[0][1]
        return ["interpolate", ["linear"], ["line-progress"], 0, color, 1, color]

    expression: List[Any] = ["interpolate", ["linear"], ["line-progress"]]
    for progress, color in ramp:
        expression.extend([progress, color])
    return expression


__all__ = [
    "DEFAULT_GRADIENT",
    "congestion_color",
    "line_gradient",
    "map_to_paint",
    "ratio_color",
]
