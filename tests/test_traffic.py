import pytest

from ziproute.api.traffic import (
    DEFAULT_GRADIENT,
    FAST,
    HEAVY,
    MODERATE,
    SLOW,
    congestion_color,
    line_gradient,
    map_to_paint,
    ratio_color,
)

from conftest import make_trip


@pytest.mark.parametrize("ratio, color", [
    (1.05, FAST),
    (1.1, FAST),
    (1.2, MODERATE),
    (1.5, SLOW),
    (2.0, HEAVY),
])
def test_ratio_buckets(ratio, color):
    assert ratio_color(ratio) == color


def test_live_vs_typical_ratio_ramp():
    live = make_trip([105.0, 120.0, 150.0, 200.0])
    typical = make_trip([100.0, 100.0, 100.0, 100.0])

    ramp = map_to_paint(live, typical)

    assert [c for _, c in ramp] == [FAST, MODERATE, SLOW, HEAVY]
    assert [p for p, _ in ramp] == pytest.approx([0.0, 1 / 3, 2 / 3, 1.0])


def test_single_leg_sits_at_progress_zero():
    ramp = map_to_paint(make_trip([300.0]), make_trip([100.0]))
    assert ramp == [(0.0, HEAVY)]


def test_zero_typical_duration_counts_as_free_flow():
    ramp = map_to_paint(make_trip([50.0, 60.0]), make_trip([0.0, 60.0]))
    assert ramp == [(0.0, FAST), (1.0, FAST)]


def test_congestion_annotations_without_baseline():
    live = make_trip([100.0, 100.0], congestion=[["low", "moderate"], ["heavy", "severe", "unknown"]])

    ramp = map_to_paint(live)

    assert [c for _, c in ramp] == [FAST, MODERATE, SLOW, HEAVY, FAST]
    assert ramp[0][0] == 0.0 and ramp[-1][0] == 1.0


def test_no_override_without_data():
    assert map_to_paint(make_trip([100.0])) is None
    assert map_to_paint(None) is None


def test_paint_is_deterministic():
    live = make_trip([120.0, 90.0])
    typical = make_trip([100.0, 100.0])
    assert map_to_paint(live, typical) == map_to_paint(live, typical)


def test_congestion_color_is_case_insensitive():
    assert congestion_color("SEVERE") == HEAVY


def test_line_gradient_defaults_and_single_colour():
    assert line_gradient(None) == DEFAULT_GRADIENT
    assert line_gradient([(0.0, SLOW)]) == ["interpolate", ["linear"], ["line-progress"], 0, SLOW, 1, SLOW]


def test_line_gradient_flattens_ramp():
    expr = line_gradient([(0.0, FAST), (1.0, HEAVY)])
    assert expr == ["interpolate", ["linear"], ["line-progress"], 0.0, FAST, 1.0, HEAVY]
