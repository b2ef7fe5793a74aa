"""Tests for the geometry and overlap primitives."""

import math

import pytest

from overlap_free_layout.geometry import (
    bounding_area,
    center_distance,
    clamp_to_canvas,
    count_polyline_crossings,
    deterministic_jitter,
    find_overlapping_pairs,
    gap_between,
    in_canvas,
    overlap_area,
    overlaps,
    penetration,
    segments_intersect,
)
from overlap_free_layout.models import Box, Point


class TestOverlaps:
    def test_disjoint(self) -> None:
        a = Box("a", 0, 0, 100, 50)
        b = Box("b", 300, 0, 100, 50)
        assert not overlaps(a, b, 20)
        assert overlap_area(a, b, 20) == 0.0

    def test_gap_equal_to_margin_is_clear(self) -> None:
        a = Box("a", 0, 0, 100, 50)
        b = Box("b", 120, 0, 100, 50)
        assert not overlaps(a, b, 20)
        assert overlaps(a, b, 20.5)

    def test_needs_both_axes(self) -> None:
        """Overlapping x-range alone is not a collision."""
        a = Box("a", 0, 0, 100, 50)
        b = Box("b", 50, 200, 100, 50)
        assert not overlaps(a, b, 0)

    def test_overlap_area(self) -> None:
        a = Box("a", 0, 0, 100, 100)
        b = Box("b", 50, 50, 100, 100)
        assert overlap_area(a, b) == 2500
        # margin widens the collision on both axes
        assert overlap_area(a, b, 10) == 60 * 60

    def test_overlaps_agrees_with_penetration(self) -> None:
        a = Box("a", 0, 0, 100, 50)
        for x, y in [(90, 0), (130, 0), (0, 60), (0, 80), (110, 65)]:
            b = Box("b", x, y, 100, 50)
            overlap_x, overlap_y = penetration(a, b, 20)
            assert overlaps(a, b, 20) == (overlap_x > 0 and overlap_y > 0)

    def test_symmetric(self) -> None:
        a = Box("a", 0, 0, 100, 50)
        b = Box("b", 60, 30, 80, 80)
        assert penetration(a, b, 5) == penetration(b, a, 5)


def test_gap_between() -> None:
    a = Box("a", 0, 0, 100, 50)
    assert gap_between(a, Box("b", 130, 0, 100, 50)) == 30
    assert gap_between(a, Box("b", 0, 90, 100, 50)) == 40
    assert gap_between(a, Box("b", 50, 0, 100, 50)) < 0


def test_find_overlapping_pairs() -> None:
    boxes = [
        Box("a", 0, 0, 100, 50),
        Box("b", 50, 10, 100, 50),
        Box("c", 500, 500, 100, 50),
        Box("d", 60, 20, 10, 10),
    ]
    assert find_overlapping_pairs(boxes) == [(0, 1), (0, 3), (1, 3)]
    assert find_overlapping_pairs([]) == []


def test_center_distance() -> None:
    assert center_distance(Box("a", 0, 0, 10, 10), Box("b", 30, 40, 10, 10)) == 50


class TestCanvas:
    def test_clamp(self) -> None:
        b = Box("a", -50, 2000, 120, 60)
        clamp_to_canvas(b, 1920, 1080)
        assert (b.x, b.y) == (0, 1020)
        assert in_canvas(b, 1920, 1080)

    def test_clamp_keeps_inside_box(self) -> None:
        b = Box("a", 100, 100, 120, 60)
        clamp_to_canvas(b, 1920, 1080)
        assert (b.x, b.y) == (100, 100)

    def test_in_canvas_rejects_overflow(self) -> None:
        assert not in_canvas(Box("a", 1850, 0, 120, 60), 1920, 1080)


class TestJitter:
    def test_unit_length(self) -> None:
        jx, jy = deterministic_jitter("a|b", 0)
        assert math.hypot(jx, jy) == pytest.approx(1.0)

    def test_reproducible(self) -> None:
        assert deterministic_jitter("a|b", 7) == deterministic_jitter("a|b", 7)

    def test_seed_and_key_change_direction(self) -> None:
        assert deterministic_jitter("a|b", 0) != deterministic_jitter("a|b", 1)
        assert deterministic_jitter("a|b", 0) != deterministic_jitter("a|c", 0)


class TestSegments:
    def test_crossing(self) -> None:
        assert segments_intersect(Point(0, 0), Point(10, 10), Point(0, 10), Point(10, 0))

    def test_parallel(self) -> None:
        assert not segments_intersect(Point(0, 0), Point(10, 0), Point(0, 5), Point(10, 5))

    def test_shared_endpoint_is_not_a_crossing(self) -> None:
        assert not segments_intersect(Point(0, 0), Point(10, 0), Point(10, 0), Point(10, 10))

    def test_collinear_overlap_is_not_a_crossing(self) -> None:
        assert not segments_intersect(Point(0, 0), Point(10, 0), Point(5, 0), Point(15, 0))

    def test_polyline_crossings(self) -> None:
        zigzag = [Point(0, 0), Point(10, 10), Point(20, 0)]
        bar = [Point(0, 5), Point(20, 5)]
        assert count_polyline_crossings(zigzag, bar) == 2


def test_bounding_area() -> None:
    boxes = [Box("a", 0, 0, 10, 10), Box("b", 90, 40, 10, 10)]
    assert bounding_area(boxes) == 100 * 50
    assert bounding_area([]) == 0.0
