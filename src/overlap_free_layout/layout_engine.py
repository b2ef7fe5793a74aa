"""
Adaptive zero-overlap layout engine.

Composes the pipeline behind ``generate_layout``:
- Validate the graph and config
- Classify complexity and pick a placement strategy
- Place nodes, then resolve overlaps (three force phases for simulations,
  the generic loop otherwise), with one deterministic fallback retry
- Route edges and assess quality
- Apply style-neutral final nudges that are kept only when they keep the
  layout overlap-free and in bounds

The result either has no overlapping pair or says so explicitly through
``zero_overlap_guarantee=False`` and a warning.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from overlap_free_layout.complexity import classify, select_mode
from overlap_free_layout.geometry import in_canvas
from overlap_free_layout.history import AdaptationHistory, HistoryEntry, NullAdaptationHistory
from overlap_free_layout.layout import build_state, place, select_placement
from overlap_free_layout.models import (
    ComplexityScore,
    DiagramType,
    Graph,
    LayoutConfig,
    LayoutDiagnostics,
    LayoutResult,
    LayoutState,
    PlacementStrategy,
    PositionedNode,
    QualityMetrics,
    ResolutionMode,
    RoutedEdge,
)
from overlap_free_layout.quality import assess
from overlap_free_layout.resolver import OverlapResolver
from overlap_free_layout.routing import route_edges
from overlap_free_layout.spatial_index import detect_overlaps
from overlap_free_layout.validation import validate_config, validate_diagram_type, validate_graph

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def generate_layout(
    graph: Graph,
    diagram_type: DiagramType | str | None = None,
    config: Optional[LayoutConfig] = None,
    history: Optional[AdaptationHistory] = None,
) -> LayoutResult:
    """Lay out *graph* without overlaps.

    Args:
        graph: Nodes and edges to lay out.  Never mutated.
        diagram_type: Overrides ``graph.diagram_type`` when given.
        config: Layout configuration, defaults to ``LayoutConfig()``.
        history: Shared adaptation history; receives one entry per call.

    Raises:
        ValidationError: If the graph or config is invalid.
    """
    return LayoutEngine(config, history).generate_layout(graph, diagram_type)


def classify_graph(
    graph: Graph,
    diagram_type: DiagramType | str | None = None,
    config: Optional[LayoutConfig] = None,
) -> tuple[PlacementStrategy, ComplexityScore, ResolutionMode]:
    """Placement strategy, complexity and resolution mode *graph* would get."""
    cfg = validate_config(config or LayoutConfig())
    dtype = validate_diagram_type(diagram_type if diagram_type is not None else graph.diagram_type)
    validate_graph(graph, cfg)
    state = build_state(graph, cfg)
    strategy = select_placement(dtype, len(state), len(state.links), cfg)
    place(strategy, state, cfg)
    pairs = detect_overlaps(state.boxes, cfg.min_separation)
    complexity = classify(state, cfg, len(pairs))
    return strategy, complexity, select_mode(complexity, len(pairs), cfg)


def assess_positions(
    graph: Graph,
    config: Optional[LayoutConfig] = None,
) -> tuple[QualityMetrics, list[tuple[str, str]]]:
    """Score caller-supplied node positions.

    Returns:
        (metrics, overlapping id pairs)
    """
    cfg = validate_config(config or LayoutConfig())
    validate_graph(graph, cfg)
    state = build_state(graph, cfg, keep_positions=True)
    routes = route_edges(state, cfg.edge_routing, clearance=cfg.min_separation)
    pairs = detect_overlaps(
        state.boxes, cfg.min_separation, use_index=len(state) > cfg.spatial_index_threshold,
    )
    ids = [(state.boxes[i].id, state.boxes[j].id) for i, j in pairs]
    return assess(state, routes, cfg), ids


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LayoutEngine:
    """Binds a config and an adaptation history for repeated layout calls.

    The engine keeps no per-graph state between calls; only the injected
    history is shared, and it does its own locking.
    """

    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        history: Optional[AdaptationHistory] = None,
    ) -> None:
        self.config = validate_config(config or LayoutConfig())
        self.history = history if history is not None else NullAdaptationHistory()

    def generate_layout(
        self,
        graph: Graph,
        diagram_type: DiagramType | str | None = None,
    ) -> LayoutResult:
        started = time.perf_counter()
        cfg = self.config
        dtype = validate_diagram_type(diagram_type if diagram_type is not None else graph.diagram_type)
        validate_graph(graph, cfg)
        state = build_state(graph, cfg)

        if not state.boxes:
            return self._empty_result(state, dtype, started)

        # Strategy selection needs only structure; mode selection needs positions
        estimate = classify(state, cfg)
        strategy = select_placement(dtype, len(state), len(state.links), cfg)
        place(strategy, state, cfg)

        initial = detect_overlaps(
            state.boxes, cfg.min_separation, use_index=estimate.use_spatial_index,
        )
        complexity = classify(state, cfg, len(initial))
        mode = self.history.recommended_mode(
            complexity.category, select_mode(complexity, len(initial), cfg),
        )
        logger.debug(
            "layout %s: %d nodes, %d edges, %s/%s, complexity %.1f (%s), %d initial overlap(s)",
            dtype.value, len(state), len(state.links), strategy.value, mode.value,
            complexity.score, complexity.category.value, len(initial),
        )

        resolver = OverlapResolver(state, cfg, use_spatial_index=complexity.use_spatial_index)
        if strategy is PlacementStrategy.SIMULATION:
            outcome = resolver.run_simulation(mode, complexity.category)
        else:
            outcome = resolver.resolve(mode)

        iterations = outcome.iterations
        warnings = list(outcome.warnings)
        final_phase = outcome.phase
        algorithm = [strategy.value]
        if strategy is PlacementStrategy.SIMULATION:
            algorithm.append("three_phase")
        algorithm.append(mode.value)

        fallback_used = False
        if not outcome.converged:
            fallback = (
                ResolutionMode.SPIRAL_PLACEMENT if mode is ResolutionMode.GRID_SNAP
                else ResolutionMode.GRID_SNAP
            )
            logger.info("retrying overlap resolution with %s", fallback.value)
            retry = OverlapResolver(state, cfg, use_spatial_index=complexity.use_spatial_index)
            retry_outcome = retry.resolve(fallback)
            fallback_used = True
            iterations += retry_outcome.iterations
            final_phase = retry_outcome.phase
            warnings.extend(w for w in retry_outcome.warnings if w not in warnings)
            algorithm.append(f"fallback_{fallback.value}")

        routes = route_edges(state, cfg.edge_routing, strategy, cfg.min_separation)
        metrics = assess(state, routes, cfg)

        enhanced = False
        if cfg.final_enhancement and metrics.overlap_count == 0:
            enhanced, routes, metrics = self._enhance(state, strategy, routes, metrics)

        zero_overlap = metrics.overlap_count == 0
        if not zero_overlap:
            warnings.append(f"{metrics.overlap_count} overlaps detected (target: 0)")
        if metrics.canvas_utilization > 0.9:
            warnings.append("High canvas utilization may affect readability")
        if metrics.readability_score < 70:
            warnings.append("Some text may be difficult to read")

        self.history.record(HistoryEntry(
            diagram_type=dtype,
            category=complexity.category,
            mode=mode,
            metrics=metrics,
            zero_overlap=zero_overlap,
            iterations=iterations,
        ))

        diagnostics = LayoutDiagnostics(
            algorithm_used="+".join(algorithm),
            iterations_used=iterations,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            placement_strategy=strategy,
            resolution_mode=mode,
            final_phase=final_phase,
            phases_run=tuple(outcome.phases_run),
            fallback_used=fallback_used,
            spatial_index_used=outcome.used_spatial_index,
            enhancement_applied=enhanced,
            complexity=complexity,
        )
        return _compile_result(state, routes, metrics, zero_overlap, diagnostics, warnings)

    # -----------------------------------------------------------------
    # Final enhancement
    # -----------------------------------------------------------------

    def _enhance(
        self,
        state: LayoutState,
        strategy: PlacementStrategy,
        routes: list[RoutedEdge],
        metrics: QualityMetrics,
    ) -> tuple[bool, list[RoutedEdge], QualityMetrics]:
        """Try the suggested nudges one at a time, keeping only safe improvements."""
        cfg = self.config
        nudges: list[Callable[[], None]] = []
        if "Better visual distribution" in metrics.improvements:
            nudges.append(lambda: shift_towards_center(state, cfg, 0.3))
        if "Increase node separation" in metrics.improvements:
            nudges.append(lambda: spread_from_centroid(state, 1.1))

        applied = False
        for nudge in nudges:
            before = state.positions()
            nudge()
            inside = all(
                in_canvas(b, cfg.canvas_width, cfg.canvas_height, tolerance=0.0) for b in state.boxes
            )
            if inside:
                new_routes = route_edges(state, cfg.edge_routing, strategy, cfg.min_separation)
                new_metrics = assess(state, new_routes, cfg)
                if (
                    new_metrics.overlap_count == 0
                    and new_metrics.composite_score >= metrics.composite_score
                ):
                    routes, metrics = new_routes, new_metrics
                    applied = True
                    continue
            state.restore(before)
        return applied, routes, metrics

    def _empty_result(self, state: LayoutState, dtype: DiagramType, started: float) -> LayoutResult:
        cfg = self.config
        complexity = classify(state, cfg, 0)
        metrics = assess(state, [], cfg)
        self.history.record(HistoryEntry(
            diagram_type=dtype,
            category=complexity.category,
            mode=ResolutionMode.GRID_SNAP,
            metrics=metrics,
            zero_overlap=True,
            iterations=0,
        ))
        diagnostics = LayoutDiagnostics(
            algorithm_used="none",
            iterations_used=0,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            complexity=complexity,
        )
        return _compile_result(state, [], metrics, True, diagnostics, [])


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------

def shift_towards_center(state: LayoutState, config: LayoutConfig, fraction: float) -> None:
    """Translate the whole layout *fraction* of the way to the canvas centre.

    The shift is limited so the bounding box stays on the canvas; a pure
    translation never changes pairwise gaps.
    """
    bbox = state.bounding_box()
    if bbox is None:
        return
    min_x, min_y, max_x, max_y = bbox
    dx = (config.canvas_width / 2 - (min_x + max_x) / 2) * fraction
    dy = (config.canvas_height / 2 - (min_y + max_y) / 2) * fraction
    dx = min(max(dx, -min_x), config.canvas_width - max_x)
    dy = min(max(dy, -min_y), config.canvas_height - max_y)
    for box in state.boxes:
        box.x += dx
        box.y += dy


def spread_from_centroid(state: LayoutState, factor: float) -> None:
    """Scale node centres away from their centroid.

    With *factor* > 1 every gap can only grow, so no overlap is created;
    canvas bounds are checked by the caller.
    """
    if len(state.boxes) < 2:
        return
    cx = sum(b.cx for b in state.boxes) / len(state.boxes)
    cy = sum(b.cy for b in state.boxes) / len(state.boxes)
    for box in state.boxes:
        box.move_center_to(cx + (box.cx - cx) * factor, cy + (box.cy - cy) * factor)


def _compile_result(
    state: LayoutState,
    routes: list[RoutedEdge],
    metrics: QualityMetrics,
    zero_overlap: bool,
    diagnostics: LayoutDiagnostics,
    warnings: list[str],
) -> LayoutResult:
    nodes = tuple(
        PositionedNode(b.id, b.label, b.x, b.y, b.width, b.height) for b in state.boxes
    )
    return LayoutResult(
        nodes=nodes,
        edges=tuple(routes),
        metrics=metrics,
        zero_overlap_guarantee=zero_overlap,
        diagnostics=diagnostics,
        warnings=tuple(warnings),
    )


def result_summary(result: LayoutResult) -> dict[str, Any]:
    """Short human-oriented digest of a result, for logs and tool output."""
    return {
        "nodes": len(result.nodes),
        "edges": len(result.edges),
        "zero_overlap": result.zero_overlap_guarantee,
        "composite_score": round(result.metrics.composite_score, 1),
        "algorithm": result.diagnostics.algorithm_used,
        "iterations": result.diagnostics.iterations_used,
        "warnings": list(result.warnings),
    }
