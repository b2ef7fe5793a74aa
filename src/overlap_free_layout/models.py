"""
Core data model for the overlap-free layout engine.

Provides the typed building blocks shared by every stage of a layout run:
the input graph, the per-call position arena, the immutable configuration
and the result handed to the rendering side.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DiagramType(Enum):
    """Kind of diagram the graph was extracted as."""
    FLOW = "flow"
    TREE = "tree"
    TIMELINE = "timeline"
    NETWORK = "network"
    COMPARISON = "comparison"
    CONCEPT_GRID = "concept_grid"


class PlacementStrategy(Enum):
    """Initial placement algorithms (closed set)."""
    COLUMN = "column"              # flow
    ROW = "row"                    # timeline
    TWO_COLUMN = "two_column"      # comparison
    GRID = "grid"                  # concept grid
    HIERARCHICAL = "hierarchical"  # tree
    SIMULATION = "simulation"      # network / dense graphs


class ComplexityCategory(Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    VERY_COMPLEX = "very_complex"

    @property
    def level(self) -> int:
        """Ordinal position, 0 for SIMPLE up to 3 for VERY_COMPLEX."""
        return list(ComplexityCategory).index(self)


class ResolutionMode(Enum):
    GRID_SNAP = "grid_snap"
    FORCE_DIRECTED = "force_directed"
    SPIRAL_PLACEMENT = "spiral_placement"
    ADAPTIVE = "adaptive"


class ResolverPhase(Enum):
    """States of the overlap resolver."""
    SEPARATION = "separation"
    STRUCTURE_FORMATION = "structure_formation"
    FINE_ADJUSTMENT = "fine_adjustment"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"


class EdgeRouting(Enum):
    AUTO = "auto"              # straight for simulations, orthogonal otherwise
    ORTHOGONAL = "orthogonal"
    STRAIGHT = "straight"


# ---------------------------------------------------------------------------
# Input graph
# ---------------------------------------------------------------------------

@dataclass
class Point:
    """A 2-D coordinate."""
    x: float
    y: float


@dataclass
class Node:
    """A graph node. Size falls back to the config defaults when omitted.

    ``x``/``y`` are only read when scoring or inspecting an existing layout;
    ``generate_layout`` always computes fresh positions.
    """
    id: str
    label: str = ""
    width: Optional[float] = None
    height: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass
class Edge:
    """Directed relation between two node ids."""
    source: str
    target: str
    label: str = ""


@dataclass
class Graph:
    """Nodes plus edges, tagged with the diagram type they were extracted as."""
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    diagram_type: DiagramType = DiagramType.NETWORK


# ---------------------------------------------------------------------------
# Per-call position arena
# ---------------------------------------------------------------------------

@dataclass
class Box:
    """Mutable axis-aligned bounding box of one node during a layout run."""
    id: str
    x: float
    y: float
    width: float
    height: float
    label: str = ""

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def intersects(self, other: "Box", margin: float = 0) -> bool:
        """Whether the gap to *other* is below *margin* on both axes.

        Boxes exactly *margin* apart are clear.
        """
        clear_x = self.right + margin <= other.x or other.right + margin <= self.x
        clear_y = self.bottom + margin <= other.y or other.bottom + margin <= self.y
        return not (clear_x or clear_y)

    def move_center_to(self, cx: float, cy: float) -> None:
        self.x = cx - self.width / 2
        self.y = cy - self.height / 2

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


@dataclass
class LayoutState:
    """Indexed array of node boxes owned by one ``generate_layout`` call.

    Placement, resolution and enhancement all mutate ``boxes`` in place.
    ``links`` holds the edges as ``(source_index, target_index)`` pairs in
    input order.
    """
    boxes: list[Box] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    links: list[tuple[int, int]] = field(default_factory=list)
    index: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.boxes)

    def positions(self) -> list[tuple[float, float]]:
        return [(b.x, b.y) for b in self.boxes]

    def restore(self, positions: list[tuple[float, float]]) -> None:
        for box, (x, y) in zip(self.boxes, positions):
            box.x = x
            box.y = y

    def degrees(self) -> list[int]:
        deg = [0] * len(self.boxes)
        for s, t in self.links:
            deg[s] += 1
            if t != s:
                deg[t] += 1
        return deg

    def bounding_box(self) -> Optional[tuple[float, float, float, float]]:
        """Return (min_x, min_y, max_x, max_y) over all boxes, or None."""
        if not self.boxes:
            return None
        return (
            min(b.x for b in self.boxes),
            min(b.y for b in self.boxes),
            max(b.right for b in self.boxes),
            max(b.bottom for b in self.boxes),
        )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LayoutConfig:
    """Configuration for one layout call. Never mutated during the call.

    ``max_iterations`` bounds each resolver run.  A call that exhausts it
    gets one fallback run with its own budget, so ``iterations_used`` is
    at most ``2 * max_iterations``.
    """
    # Canvas
    canvas_width: float = 1920
    canvas_height: float = 1080

    # Dimensions
    default_node_width: float = 120
    default_node_height: float = 60
    auto_size_labels: bool = False   # Grow nodes to fit long labels

    # Separation / budget
    min_separation: float = 20       # Required gap between node boxes
    max_iterations: int = 500        # Iteration budget per resolver run
    convergence_epsilon: float = 0.5  # Total displacement that counts as settled
    quality_threshold: float = 70.0  # Composite score needed for acceptance

    # Spacing used by the deterministic placements
    rank_spacing: float = 60         # Vertical gap between levels / column items
    node_spacing: float = 40         # Horizontal gap between siblings
    canvas_padding: float = 20       # Keep-out band along the canvas border

    # Complexity classification
    large_graph_nodes: int = 20
    dense_edge_ratio: float = 1.5    # Edges per node that turns a grid into a simulation
    complexity_weights: tuple[float, float, float, float, float] = (0.25, 0.20, 0.30, 0.15, 0.10)
    complexity_thresholds: tuple[float, float, float] = (30, 60, 85)
    simple_overlap_limit: int = 5

    # Resolver tuning
    spatial_index_threshold: int = 20
    convergence_check_interval: int = 10
    jitter_seed: int = 0
    phase_schedule: tuple[tuple[int, float], ...] = ((20, 2.0), (30, 1.0), (25, 0.5))
    damping: float = 0.5
    push_slack: float = 1.0
    grid_snap_step: float = 20
    spiral_step: float = 30

    # Quality
    quality_weights: tuple[float, float, float, float] = (0.5, 0.2, 0.15, 0.15)
    utilization_target: tuple[float, float] = (0.70, 0.80)

    # Post-processing
    final_enhancement: bool = True
    edge_routing: EdgeRouting = EdgeRouting.AUTO

    def optimal_spacing(self, node_count: int) -> float:
        """Preferred gap between nodes in a simulation of *node_count* nodes."""
        base = max(self.min_separation * 2, 1.0)
        return max(base, base * math.sqrt(node_count / 10))

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]


# ---------------------------------------------------------------------------
# Derived values and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplexityScore:
    node_count_factor: float
    edge_density_factor: float
    overlap_severity_factor: float
    spatial_spread_factor: float
    size_variance_factor: float
    score: float
    category: ComplexityCategory
    use_spatial_index: bool = False


@dataclass(frozen=True)
class QualityMetrics:
    overlap_count: int
    overlap_area: float
    canvas_utilization: float
    edge_crossings: int
    symmetry_score: float
    readability_score: float
    utilization_score: float
    overlap_free_score: float
    composite_score: float
    min_spacing: float
    meets_threshold: bool
    improvements: tuple[str, ...] = ()


@dataclass(frozen=True)
class PositionedNode:
    id: str
    label: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class RoutedEdge:
    source: str
    target: str
    points: tuple[Point, ...]
    label: str = ""


@dataclass(frozen=True)
class LayoutDiagnostics:
    algorithm_used: str
    iterations_used: int
    processing_time_ms: float
    placement_strategy: Optional[PlacementStrategy] = None
    resolution_mode: Optional[ResolutionMode] = None
    final_phase: Optional[ResolverPhase] = None
    phases_run: tuple[ResolverPhase, ...] = ()
    fallback_used: bool = False
    spatial_index_used: bool = False
    enhancement_applied: bool = False
    complexity: Optional[ComplexityScore] = None


@dataclass(frozen=True)
class LayoutResult:
    """Final layout handed to the renderer. Immutable."""
    nodes: tuple[PositionedNode, ...]
    edges: tuple[RoutedEdge, ...]
    metrics: QualityMetrics
    zero_overlap_guarantee: bool
    diagnostics: LayoutDiagnostics
    warnings: tuple[str, ...] = ()

    def node(self, node_id: str) -> PositionedNode:
        for n in self.nodes:
            if n.id == node_id:
                return n
        raise KeyError(node_id)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation (enums become their values)."""
        return _to_plain(self)


def _to_plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "__dataclass_fields__"):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value
