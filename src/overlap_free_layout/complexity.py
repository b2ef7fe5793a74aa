"""
Structural complexity classification.

Scores a graph on five factors (each 0-100), combines them with the
configured weights and maps the total onto a category.  The category picks
the resolution mode and how much effort the resolver spends.
"""

from __future__ import annotations

import math
from typing import Optional

from overlap_free_layout.geometry import bounding_area
from overlap_free_layout.models import (
    ComplexityCategory,
    ComplexityScore,
    LayoutConfig,
    LayoutState,
    ResolutionMode,
)


_CATEGORIES = (
    ComplexityCategory.SIMPLE,
    ComplexityCategory.MODERATE,
    ComplexityCategory.COMPLEX,
    ComplexityCategory.VERY_COMPLEX,
)

# Cheapest first; used when history says a mode keeps failing
_ESCALATION = (
    ResolutionMode.GRID_SNAP,
    ResolutionMode.FORCE_DIRECTED,
    ResolutionMode.SPIRAL_PLACEMENT,
    ResolutionMode.ADAPTIVE,
)


def estimate_overlaps(state: LayoutState, config: LayoutConfig) -> float:
    """Expected overlap count before any position exists.

    Proportional to how much of the canvas the margin-expanded nodes demand.
    """
    canvas = config.canvas_width * config.canvas_height
    m = config.min_separation
    demand = sum((b.width + m) * (b.height + m) for b in state.boxes)
    return len(state.boxes) * min(1.0, demand / canvas)


def _size_variance(state: LayoutState) -> float:
    if len(state.boxes) < 2:
        return 0.0
    areas = [b.width * b.height for b in state.boxes]
    mean = sum(areas) / len(areas)
    if mean <= 0:
        return 0.0
    std = math.sqrt(sum((a - mean) ** 2 for a in areas) / len(areas))
    return min(100.0, std / mean * 100)


def categorize(score: float, thresholds: tuple[float, float, float]) -> ComplexityCategory:
    for limit, category in zip(thresholds, _CATEGORIES):
        if score < limit:
            return category
    return ComplexityCategory.VERY_COMPLEX


def classify(
    state: LayoutState,
    config: LayoutConfig,
    overlap_count: Optional[int] = None,
) -> ComplexityScore:
    """Score the structural complexity of the arena.

    Args:
        state: Arena to score.
        config: Supplies the weights, thresholds and "large graph" size.
        overlap_count: Current overlap count.  ``None`` means positions are
            not assigned yet; severity and spread are then estimated from
            the area the nodes need.
    """
    n = len(state.boxes)
    canvas = config.canvas_width * config.canvas_height

    node_factor = min(100.0, n / max(1, config.large_graph_nodes) * 100)
    edge_factor = min(100.0, len(state.links) / max(1, n - 1) * 100) if n else 0.0

    if overlap_count is None:
        overlaps_now = estimate_overlaps(state, config)
        m = config.min_separation
        spread = sum((b.width + m) * (b.height + m) for b in state.boxes) / canvas
    else:
        overlaps_now = float(overlap_count)
        spread = bounding_area(state.boxes) / canvas
    severity = min(100.0, overlaps_now / max(1, n) * 100)
    spread_factor = min(100.0, spread * 100)
    variance = _size_variance(state)

    factors = (node_factor, edge_factor, severity, spread_factor, variance)
    score = sum(w * f for w, f in zip(config.complexity_weights, factors))
    score = min(100.0, max(0.0, score))

    return ComplexityScore(
        node_count_factor=node_factor,
        edge_density_factor=edge_factor,
        overlap_severity_factor=severity,
        spatial_spread_factor=spread_factor,
        size_variance_factor=variance,
        score=score,
        category=categorize(score, config.complexity_thresholds),
        use_spatial_index=n > config.spatial_index_threshold,
    )


def select_mode(
    complexity: ComplexityScore,
    overlap_count: int,
    config: LayoutConfig,
) -> ResolutionMode:
    """Resolution mode for a category.

    A simple graph with only a handful of overlaps gets the lightweight
    grid-snap nudge; harder categories get progressively heavier modes.
    """
    category = complexity.category
    if category is ComplexityCategory.SIMPLE:
        if overlap_count <= config.simple_overlap_limit:
            return ResolutionMode.GRID_SNAP
        return ResolutionMode.FORCE_DIRECTED
    if category is ComplexityCategory.MODERATE:
        return ResolutionMode.FORCE_DIRECTED
    if category is ComplexityCategory.COMPLEX:
        return ResolutionMode.SPIRAL_PLACEMENT
    return ResolutionMode.ADAPTIVE


def escalate(mode: ResolutionMode) -> ResolutionMode:
    """Next heavier mode (ADAPTIVE stays ADAPTIVE)."""
    idx = _ESCALATION.index(mode)
    return _ESCALATION[min(idx + 1, len(_ESCALATION) - 1)]
