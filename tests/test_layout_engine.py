"""Tests for the layout orchestrator."""

import dataclasses
import json

import pytest

from overlap_free_layout.geometry import find_overlapping_pairs
from overlap_free_layout.history import AdaptationHistory
from overlap_free_layout.layout_engine import (
    LayoutEngine,
    assess_positions,
    classify_graph,
    generate_layout,
    result_summary,
    shift_towards_center,
    spread_from_centroid,
)
from overlap_free_layout.models import (
    Box,
    ComplexityCategory,
    DiagramType,
    Edge,
    Graph,
    LayoutConfig,
    LayoutResult,
    LayoutState,
    Node,
    PlacementStrategy,
    ResolverPhase,
)
from overlap_free_layout.quality import assess
from overlap_free_layout.validation import ValidationError


def _graph(n: int, edges: list[tuple[int, int]] = (), dtype: DiagramType = DiagramType.NETWORK) -> Graph:
    return Graph(
        nodes=[Node(f"n{i}", f"Node {i}") for i in range(n)],
        edges=[Edge(f"n{s}", f"n{t}") for s, t in edges],
        diagram_type=dtype,
    )


def _boxes(result: LayoutResult) -> list[Box]:
    return [Box(n.id, n.x, n.y, n.width, n.height) for n in result.nodes]


def _assert_in_bounds(result: LayoutResult, cfg: LayoutConfig) -> None:
    for node in result.nodes:
        assert -1e-6 <= node.x <= cfg.canvas_width - node.width + 1e-6
        assert -1e-6 <= node.y <= cfg.canvas_height - node.height + 1e-6


def _assert_zero_overlap_or_warning(result: LayoutResult, cfg: LayoutConfig) -> None:
    pairs = find_overlapping_pairs(_boxes(result), cfg.min_separation)
    if result.zero_overlap_guarantee:
        assert pairs == []
    else:
        assert result.warnings


_CHAIN_4 = [(0, 1), (1, 2), (2, 3), (3, 4)]
_TREE_EDGES = [(0, 1), (0, 2), (1, 3), (1, 4), (2, 5), (2, 6)]
_RING_WITH_SPOKES = [(0, 1), (1, 2), (2, 3), (3, 4), (4, 0), (0, 5), (1, 6), (2, 7), (3, 8), (4, 9)]


# ===================================================================
# Reference scenarios
# ===================================================================

class TestScenarios:
    def test_flow_chain_is_a_single_column(self) -> None:
        cfg = LayoutConfig()
        result = generate_layout(_graph(5, _CHAIN_4, DiagramType.FLOW), config=cfg)

        assert result.zero_overlap_guarantee
        assert result.warnings == ()
        assert result.diagnostics.placement_strategy is PlacementStrategy.COLUMN
        assert result.diagnostics.algorithm_used == "column+grid_snap"
        assert result.diagnostics.iterations_used == 0
        assert {n.x for n in result.nodes} == {900}
        ys = [n.y for n in result.nodes]
        assert ys == [270, 390, 510, 630, 750]
        for edge in result.edges:
            start, end = edge.points[0], edge.points[-1]
            assert len(edge.points) == 2
            assert start.x == end.x
            assert start.y < end.y

    def test_tree_has_three_levels(self) -> None:
        cfg = LayoutConfig()
        result = generate_layout(_graph(7, _TREE_EDGES, DiagramType.TREE), config=cfg)

        assert result.zero_overlap_guarantee
        assert result.diagnostics.placement_strategy is PlacementStrategy.HIERARCHICAL
        assert len({n.y for n in result.nodes}) == 3
        centres = [n.x + n.width / 2 for n in result.nodes]
        for parent, kids in ((0, (1, 2)), (1, (3, 4)), (2, (5, 6))):
            assert sum(centres[k] for k in kids) / 2 == pytest.approx(centres[parent])
        # siblings are evenly spread
        leaves = sorted(centres[3:])
        gaps = {round(b - a, 6) for a, b in zip(leaves, leaves[1:])}
        assert len(gaps) == 1
        assert find_overlapping_pairs(_boxes(result), cfg.min_separation) == []

    def test_network_uses_three_phase_simulation(self) -> None:
        cfg = LayoutConfig()
        result = generate_layout(_graph(10, _RING_WITH_SPOKES), config=cfg)
        diag = result.diagnostics

        assert diag.placement_strategy is PlacementStrategy.SIMULATION
        assert diag.complexity is not None
        assert diag.complexity.category.level >= ComplexityCategory.MODERATE.level
        assert diag.algorithm_used.startswith("simulation+three_phase")
        assert list(diag.phases_run) == [
            ResolverPhase.SEPARATION,
            ResolverPhase.STRUCTURE_FORMATION,
            ResolverPhase.FINE_ADJUSTMENT,
        ]
        assert result.zero_overlap_guarantee
        assert diag.iterations_used <= cfg.max_iterations
        assert find_overlapping_pairs(_boxes(result), cfg.min_separation) == []
        _assert_in_bounds(result, cfg)

    def test_network_positions_follow_the_edges(self) -> None:
        ring = generate_layout(_graph(10, _RING_WITH_SPOKES))
        star = generate_layout(_graph(10, [(0, i) for i in range(1, 10)] + [(5, 6)]))
        assert [(n.x, n.y) for n in ring.nodes] != [(n.x, n.y) for n in star.nodes]


# ===================================================================
# Degenerate sizes
# ===================================================================

def test_empty_graph_succeeds() -> None:
    history = AdaptationHistory()
    result = generate_layout(Graph(), history=history)
    assert result.nodes == ()
    assert result.edges == ()
    assert result.zero_overlap_guarantee
    assert result.warnings == ()
    assert result.diagnostics.algorithm_used == "none"
    assert result.diagnostics.iterations_used == 0
    assert len(history) == 1


@pytest.mark.parametrize("dtype", list(DiagramType))
def test_single_node_is_trivially_clear(dtype: DiagramType) -> None:
    cfg = LayoutConfig()
    result = generate_layout(_graph(1, dtype=dtype), config=cfg)
    assert result.zero_overlap_guarantee
    assert len(result.nodes) == 1
    _assert_in_bounds(result, cfg)


def test_single_self_loop() -> None:
    result = generate_layout(_graph(1, [(0, 0)]))
    assert result.zero_overlap_guarantee
    assert len(result.edges[0].points) == 5


# ===================================================================
# Invalid input
# ===================================================================

class TestInvalidInput:
    def test_edges_without_nodes(self) -> None:
        graph = Graph(edges=[Edge("a", "b")])
        with pytest.raises(ValidationError) as exc:
            generate_layout(graph)
        assert exc.value.code == "edges_without_nodes"

    def test_unknown_endpoint(self) -> None:
        graph = Graph(nodes=[Node("a")], edges=[Edge("a", "ghost")])
        with pytest.raises(ValidationError) as exc:
            generate_layout(graph)
        assert exc.value.code == "unknown_edge_endpoint"
        assert "ghost" in exc.value.message

    def test_non_positive_node_size(self) -> None:
        graph = Graph(nodes=[Node("a", width=0, height=40)])
        with pytest.raises(ValidationError) as exc:
            generate_layout(graph)
        assert exc.value.code == "invalid_node_size"

    def test_non_positive_canvas(self) -> None:
        with pytest.raises(ValidationError) as exc:
            generate_layout(_graph(2), config=LayoutConfig(canvas_width=0))
        assert exc.value.code == "invalid_canvas"

    def test_unknown_diagram_type(self) -> None:
        with pytest.raises(ValidationError) as exc:
            generate_layout(_graph(2), diagram_type="pie")
        assert exc.value.code == "unknown_diagram_type"

    def test_failed_validation_records_nothing(self) -> None:
        history = AdaptationHistory()
        with pytest.raises(ValidationError):
            generate_layout(Graph(edges=[Edge("a", "b")]), history=history)
        assert len(history) == 0


# ===================================================================
# Budget exhaustion
# ===================================================================

def test_exhausted_budget_reports_warning() -> None:
    """A crowded timeline with no iterations left cannot be untangled."""
    cfg = LayoutConfig(max_iterations=0)
    result = generate_layout(_graph(30, dtype=DiagramType.TIMELINE), config=cfg)

    assert not result.zero_overlap_guarantee
    assert result.metrics.overlap_count > 0
    assert result.diagnostics.fallback_used
    assert result.diagnostics.final_phase is ResolverPhase.BUDGET_EXHAUSTED
    assert any("overlaps detected (target: 0)" in w for w in result.warnings)
    assert any("exhausted" in w for w in result.warnings)
    assert not result.diagnostics.enhancement_applied


def test_fallback_run_has_its_own_budget() -> None:
    cfg = LayoutConfig(max_iterations=5)
    result = generate_layout(_graph(30, dtype=DiagramType.TIMELINE), config=cfg)
    assert result.diagnostics.iterations_used <= 2 * cfg.max_iterations
    _assert_zero_overlap_or_warning(result, cfg)


def test_crowded_timeline_resolves_with_budget() -> None:
    cfg = LayoutConfig()
    result = generate_layout(_graph(30, dtype=DiagramType.TIMELINE), config=cfg)
    _assert_zero_overlap_or_warning(result, cfg)
    _assert_in_bounds(result, cfg)
    assert result.zero_overlap_guarantee


# ===================================================================
# Properties over many inputs
# ===================================================================

@pytest.mark.parametrize("dtype", list(DiagramType))
@pytest.mark.parametrize("n", [2, 7, 15, 26])
def test_layout_properties(dtype: DiagramType, n: int) -> None:
    cfg = LayoutConfig()
    edges = [(i, i + 1) for i in range(n - 1)] + [(i, (i * 5 + 2) % n) for i in range(0, n, 3)]
    graph = _graph(n, edges, dtype)
    result = generate_layout(graph, config=cfg)

    _assert_zero_overlap_or_warning(result, cfg)
    _assert_in_bounds(result, cfg)
    ids = {node.id for node in graph.nodes}
    assert [node.id for node in result.nodes] == [node.id for node in graph.nodes]
    for edge in result.edges:
        assert edge.source in ids
        assert edge.target in ids
    assert len(result.edges) == len(graph.edges)


@pytest.mark.parametrize("dtype", list(DiagramType))
def test_layout_is_deterministic(dtype: DiagramType) -> None:
    graph = _graph(12, [(0, 1), (1, 2), (2, 0), (3, 4), (5, 6), (6, 7)], dtype)
    first = generate_layout(graph)
    second = generate_layout(graph)
    assert [(n.x, n.y) for n in first.nodes] == [(n.x, n.y) for n in second.nodes]
    assert first.edges == second.edges


def test_input_graph_is_not_mutated() -> None:
    graph = _graph(4, [(0, 1)])
    generate_layout(graph)
    assert all(node.x is None and node.y is None for node in graph.nodes)


def test_large_network_uses_spatial_index() -> None:
    cfg = LayoutConfig()
    edges = [(i, (i + 1) % 25) for i in range(25)] + [(i, (i + 7) % 25) for i in range(0, 25, 2)]
    result = generate_layout(_graph(25, edges), config=cfg)
    assert result.diagnostics.spatial_index_used
    _assert_zero_overlap_or_warning(result, cfg)


# ===================================================================
# Engine, history and helpers
# ===================================================================

class TestLayoutEngine:
    def test_records_one_entry_per_call(self) -> None:
        history = AdaptationHistory()
        engine = LayoutEngine(history=history)
        engine.generate_layout(_graph(5, _CHAIN_4, DiagramType.FLOW))
        engine.generate_layout(_graph(3))
        entries = history.snapshot()
        assert len(entries) == 2
        assert entries[0].diagram_type is DiagramType.FLOW
        assert entries[0].zero_overlap

    def test_diagram_type_override(self) -> None:
        result = generate_layout(_graph(4, dtype=DiagramType.NETWORK), diagram_type="flowchart")
        assert result.diagnostics.placement_strategy is PlacementStrategy.COLUMN

    def test_invalid_config_rejected_at_construction(self) -> None:
        with pytest.raises(ValidationError):
            LayoutEngine(LayoutConfig(canvas_height=-5))

    def test_enhancement_can_be_disabled(self) -> None:
        cfg = LayoutConfig(final_enhancement=False)
        result = generate_layout(_graph(6, [(0, 1)], DiagramType.CONCEPT_GRID), config=cfg)
        assert not result.diagnostics.enhancement_applied

    def test_result_is_json_serialisable(self) -> None:
        result = generate_layout(_graph(4, [(0, 1), (1, 2)], DiagramType.TREE))
        data = json.loads(json.dumps(result.to_dict()))
        assert data["diagnostics"]["placement_strategy"] == "hierarchical"
        assert len(data["nodes"]) == 4

    def test_result_summary(self) -> None:
        result = generate_layout(_graph(5, _CHAIN_4, DiagramType.FLOW))
        summary = result_summary(result)
        assert summary["nodes"] == 5
        assert summary["zero_overlap"] is True
        assert summary["algorithm"] == "column+grid_snap"


def test_classify_graph() -> None:
    strategy, complexity, mode = classify_graph(_graph(10, _RING_WITH_SPOKES))
    assert strategy is PlacementStrategy.SIMULATION
    assert complexity.category.level >= ComplexityCategory.MODERATE.level
    assert mode is not None


def test_assess_positions_reports_overlapping_ids() -> None:
    graph = Graph(nodes=[
        Node("a", x=100, y=100),
        Node("b", x=150, y=110),
        Node("c", x=900, y=500),
    ])
    metrics, pairs = assess_positions(graph)
    assert metrics.overlap_count == 1
    assert pairs == [("a", "b")]
    assert not metrics.meets_threshold


class TestNudges:
    def test_shift_towards_center(self) -> None:
        state = LayoutState(boxes=[Box("a", 0, 0, 120, 60)])
        shift_towards_center(state, LayoutConfig(), 0.3)
        assert (state.boxes[0].x, state.boxes[0].y) == pytest.approx((270, 153))

    def test_shift_keeps_gaps(self) -> None:
        state = LayoutState(boxes=[Box("a", 0, 0, 100, 50), Box("b", 300, 0, 100, 50)])
        shift_towards_center(state, LayoutConfig(), 0.5)
        assert state.boxes[1].x - state.boxes[0].x == pytest.approx(300)

    def test_spread_from_centroid(self) -> None:
        state = LayoutState(boxes=[Box("a", 50, 0, 100, 50), Box("b", 250, 0, 100, 50)])
        spread_from_centroid(state, 1.1)
        assert [b.cx for b in state.boxes] == pytest.approx([90, 310])

    def test_spread_single_node_is_noop(self) -> None:
        state = LayoutState(boxes=[Box("a", 50, 0, 100, 50)])
        spread_from_centroid(state, 1.1)
        assert state.boxes[0].x == 50

    def test_nudge_leaving_the_canvas_is_discarded(self) -> None:
        cfg = LayoutConfig()
        # spreading pushes "a" a fraction of a micron past the left edge
        state = LayoutState(boxes=[Box("a", 0, 100, 100, 50), Box("b", 1e-5, 600, 100, 50)])
        metrics = dataclasses.replace(
            assess(state, [], cfg), improvements=("Increase node separation",),
        )
        applied, routes, kept = LayoutEngine(cfg)._enhance(
            state, PlacementStrategy.GRID, [], metrics,
        )
        assert not applied
        assert routes == []
        assert kept is metrics
        assert (state.boxes[0].x, state.boxes[0].y) == (0, 100)
