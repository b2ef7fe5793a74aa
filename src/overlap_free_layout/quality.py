"""
Layout quality assessment.

Scores a finished arena plus its routed edges.  The composite score drives
acceptance of enhancement passes and is what the adaptation history learns
from, so every component is normalised to 0-100.
"""

from __future__ import annotations

import math
from typing import Sequence

from overlap_free_layout.geometry import (
    bounding_area,
    count_polyline_crossings,
    gap_between,
    overlap_area,
)
from overlap_free_layout.models import LayoutConfig, LayoutState, QualityMetrics, RoutedEdge
from overlap_free_layout.spatial_index import detect_overlaps


def _utilization_score(utilization: float, target: tuple[float, float]) -> float:
    low, high = target
    if utilization < low:
        return utilization / low * 100 if low > 0 else 100.0
    if utilization > high:
        return max(0.0, 100 - (utilization - high) / max(1e-9, 1 - high) * 100)
    return 100.0


def _balance_score(state: LayoutState, config: LayoutConfig) -> float:
    """100 when the node centroid sits on the canvas centre, 0 at a corner."""
    n = len(state.boxes)
    cx = sum(b.cx for b in state.boxes) / n
    cy = sum(b.cy for b in state.boxes) / n
    deviation = math.hypot(cx - config.canvas_width / 2, cy - config.canvas_height / 2)
    max_deviation = math.hypot(config.canvas_width / 2, config.canvas_height / 2)
    return max(0.0, 100 - deviation / max_deviation * 100)


def count_edge_crossings(routes: Sequence[RoutedEdge]) -> int:
    """Pairwise crossings of routed edges, skipping pairs that share an endpoint."""
    crossings = 0
    for i in range(len(routes)):
        a = routes[i]
        for j in range(i + 1, len(routes)):
            b = routes[j]
            if {a.source, a.target} & {b.source, b.target}:
                continue
            crossings += count_polyline_crossings(a.points, b.points)
    return crossings


def min_spacing(state: LayoutState) -> float:
    """Smallest clearance between any two boxes (inf for fewer than two)."""
    boxes = state.boxes
    best = math.inf
    for i in range(len(boxes)):
        for j in range(i + 1, len(boxes)):
            best = min(best, gap_between(boxes[i], boxes[j]))
    return best


def assess(
    state: LayoutState,
    routes: Sequence[RoutedEdge],
    config: LayoutConfig,
) -> QualityMetrics:
    """Compute the quality metrics of a layout.

    Args:
        state: Arena with final positions.
        routes: Routed edges for the same positions.
        config: Canvas, margin, weights and acceptance threshold.

    Returns:
        Frozen ``QualityMetrics``.
    """
    n = len(state.boxes)
    if n == 0:
        return QualityMetrics(
            overlap_count=0,
            overlap_area=0.0,
            canvas_utilization=0.0,
            edge_crossings=0,
            symmetry_score=100.0,
            readability_score=100.0,
            utilization_score=100.0,
            overlap_free_score=100.0,
            composite_score=100.0,
            min_spacing=0.0,
            meets_threshold=True,
        )

    margin = config.min_separation
    pairs = detect_overlaps(
        state.boxes, margin, use_index=n > config.spatial_index_threshold,
    )
    area = sum(overlap_area(state.boxes[i], state.boxes[j], margin) for i, j in pairs)
    total_pairs = n * (n - 1) // 2
    overlap_free = 100.0 if not pairs else (total_pairs - len(pairs)) / total_pairs * 100

    utilization = bounding_area(state.boxes) / (config.canvas_width * config.canvas_height)
    utilization_score = _utilization_score(utilization, config.utilization_target)
    balance = _balance_score(state, config)

    crossings = count_edge_crossings(routes)
    crossing_density = crossings / max(1, len(routes))
    gap = min_spacing(state)
    if n < 2 or margin <= 0:
        spacing_score = 1.0
    else:
        spacing_score = min(1.0, max(0.0, gap) / (2 * margin))
    readability = 100 * (0.5 / (1 + crossing_density) + 0.5 * spacing_score)

    w_overlap, w_util, w_balance, w_read = config.quality_weights
    composite = (
        w_overlap * overlap_free
        + w_util * utilization_score
        + w_balance * balance
        + w_read * readability
    )

    improvements: list[str] = []
    if pairs:
        improvements.append("Eliminate remaining overlaps")
    if utilization_score < 70:
        improvements.append("Improve space utilization")
    if balance < 80:
        improvements.append("Better visual distribution")
    if readability < 85:
        improvements.append("Increase node separation")

    return QualityMetrics(
        overlap_count=len(pairs),
        overlap_area=area,
        canvas_utilization=utilization,
        edge_crossings=crossings,
        symmetry_score=balance,
        readability_score=readability,
        utilization_score=utilization_score,
        overlap_free_score=overlap_free,
        composite_score=composite,
        min_spacing=gap if math.isfinite(gap) else 0.0,
        meets_threshold=not pairs and composite >= config.quality_threshold,
        improvements=tuple(improvements),
    )
