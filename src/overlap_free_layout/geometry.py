"""
Geometry and overlap primitives.

Pure functions over ``Box`` instances: margin-aware overlap tests, overlap
depth/area, canvas clamping, segment intersection for edge-crossing counts
and the seeded jitter used to break exact ties.
"""

from __future__ import annotations

import hashlib
import math
from typing import Iterable, Sequence

from overlap_free_layout.models import Box, Point


# ---------------------------------------------------------------------------
# Box overlap
# ---------------------------------------------------------------------------

def penetration(a: Box, b: Box, margin: float = 0) -> tuple[float, float]:
    """Compute overlap between two boxes. Returns (overlap_x, overlap_y).

    Positive values on both axes mean the margin-expanded boxes collide.
    """
    a_right = a.x + a.width + margin
    b_right = b.x + b.width + margin
    a_bottom = a.y + a.height + margin
    b_bottom = b.y + b.height + margin

    overlap_x = min(a_right, b_right) - max(a.x, b.x)
    overlap_y = min(a_bottom, b_bottom) - max(a.y, b.y)
    return overlap_x, overlap_y


def overlaps(a: Box, b: Box, margin: float = 0) -> bool:
    """True iff the margin-expanded boxes intersect on both axes."""
    return a.intersects(b, margin)


def overlap_area(a: Box, b: Box, margin: float = 0) -> float:
    """Area of the margin-expanded intersection, 0 when the boxes are clear."""
    overlap_x, overlap_y = penetration(a, b, margin)
    if overlap_x <= 0 or overlap_y <= 0:
        return 0.0
    return overlap_x * overlap_y


def gap_between(a: Box, b: Box) -> float:
    """Clearance between two boxes (negative when they intersect)."""
    gap_x = max(b.x - a.right, a.x - b.right)
    gap_y = max(b.y - a.bottom, a.y - b.bottom)
    return max(gap_x, gap_y)


def find_overlapping_pairs(boxes: Sequence[Box], margin: float = 0) -> list[tuple[int, int]]:
    """Find all pairs of overlapping boxes by brute force.

    Returns:
        Sorted list of (i, j) index pairs with i < j.
    """
    pairs: list[tuple[int, int]] = []
    for i in range(len(boxes)):
        for j in range(i + 1, len(boxes)):
            if overlaps(boxes[i], boxes[j], margin):
                pairs.append((i, j))
    return pairs


def center_distance(a: Box, b: Box) -> float:
    return math.hypot(b.cx - a.cx, b.cy - a.cy)


# ---------------------------------------------------------------------------
# Canvas bounds
# ---------------------------------------------------------------------------

def clamp_to_canvas(box: Box, canvas_width: float, canvas_height: float) -> None:
    """Clamp *box* into ``[0, W - w] x [0, H - h]``."""
    box.x = min(max(box.x, 0.0), max(canvas_width - box.width, 0.0))
    box.y = min(max(box.y, 0.0), max(canvas_height - box.height, 0.0))


def in_canvas(box: Box, canvas_width: float, canvas_height: float, tolerance: float = 1e-6) -> bool:
    return (
        -tolerance <= box.x <= canvas_width - box.width + tolerance
        and -tolerance <= box.y <= canvas_height - box.height + tolerance
    )


# ---------------------------------------------------------------------------
# Deterministic jitter
# ---------------------------------------------------------------------------

def deterministic_jitter(key: str, seed: int = 0) -> tuple[float, float]:
    """Unit vector derived from a hash of *key* and *seed*.

    Used wherever two nodes sit exactly on top of each other, so repeated
    runs with the same seed break the tie the same way.
    """
    digest = hashlib.md5(f"{seed}:{key}".encode("utf-8")).hexdigest()
    angle = (int(digest[:8], 16) / 0xFFFFFFFF) * 2 * math.pi
    return math.cos(angle), math.sin(angle)


# ---------------------------------------------------------------------------
# Segment intersection
# ---------------------------------------------------------------------------

def _ccw(a: Point, b: Point, c: Point) -> float:
    return (b.x - a.x) * (c.y - a.y) - (b.y - a.y) * (c.x - a.x)


def segments_intersect(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    """Proper intersection test for segments p1-p2 and p3-p4.

    Touching endpoints and collinear overlaps do not count as a crossing.
    """
    d1 = _ccw(p3, p4, p1)
    d2 = _ccw(p3, p4, p2)
    d3 = _ccw(p1, p2, p3)
    d4 = _ccw(p1, p2, p4)
    return ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4))


def count_polyline_crossings(a: Sequence[Point], b: Sequence[Point]) -> int:
    """Number of segment pairs of two polylines that properly intersect."""
    crossings = 0
    for i in range(len(a) - 1):
        for j in range(len(b) - 1):
            if segments_intersect(a[i], a[i + 1], b[j], b[j + 1]):
                crossings += 1
    return crossings


def bounding_area(boxes: Iterable[Box]) -> float:
    """Area of the bounding box enclosing *boxes* (0 when empty)."""
    boxes = list(boxes)
    if not boxes:
        return 0.0
    width = max(b.right for b in boxes) - min(b.x for b in boxes)
    height = max(b.bottom for b in boxes) - min(b.y for b in boxes)
    return width * height
