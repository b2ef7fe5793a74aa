"""
Initial placement strategies.

Every strategy writes positions straight into the ``LayoutState`` arena:
- Column / row / two-column / grid placements are closed-form and
  deterministic (flow, timeline, comparison, concept grid)
- Hierarchical placement builds a rooted forest by BFS and gives every
  subtree a horizontal slot proportional to its leaf count (tree)
- Simulation seeding spreads nodes over a near-square grid with seeded
  jitter; the overlap resolver then runs the force phases (network)
"""

from __future__ import annotations

import logging
import math
import re
from collections import deque
from typing import Callable

from overlap_free_layout.geometry import clamp_to_canvas, deterministic_jitter
from overlap_free_layout.models import (
    Box,
    DiagramType,
    Graph,
    LayoutConfig,
    LayoutState,
    PlacementStrategy,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Arena construction
# ---------------------------------------------------------------------------

def estimate_node_size(label: str, default_w: float, default_h: float) -> tuple[float, float]:
    """Grow a node so its label fits, never shrinking below the defaults."""
    text = re.sub(r"<br\s*/?>", "\n", label, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    lines = [l.strip() for l in text.split("\n") if l.strip()]
    if not lines:
        return float(default_w), float(default_h)
    max_chars = max(len(l) for l in lines)
    w = max(default_w, min(280, max_chars * 8 + 20))
    h = max(default_h, min(200, len(lines) * 22 + 16))
    return float(w), float(h)


def build_state(graph: Graph, config: LayoutConfig, *, keep_positions: bool = False) -> LayoutState:
    """Create the per-call arena for *graph*.

    Assumes the graph already passed ``validate_graph``.  With
    *keep_positions* the caller-supplied node coordinates are used (for
    scoring existing layouts); otherwise every box starts at the origin.
    """
    state = LayoutState(edges=list(graph.edges))
    for i, node in enumerate(graph.nodes):
        if node.width is not None and node.height is not None:
            w, h = float(node.width), float(node.height)
        elif config.auto_size_labels:
            w, h = estimate_node_size(
                node.label, config.default_node_width, config.default_node_height,
            )
            w = node.width if node.width is not None else min(w, config.canvas_width)
            h = node.height if node.height is not None else min(h, config.canvas_height)
        else:
            w = node.width if node.width is not None else config.default_node_width
            h = node.height if node.height is not None else config.default_node_height
        x = float(node.x) if keep_positions and node.x is not None else 0.0
        y = float(node.y) if keep_positions and node.y is not None else 0.0
        state.boxes.append(Box(node.id, x, y, float(w), float(h), node.label))
        state.index[node.id] = i
    state.links = [(state.index[e.source], state.index[e.target]) for e in graph.edges]
    return state


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------

_TYPE_STRATEGIES: dict[DiagramType, PlacementStrategy] = {
    DiagramType.FLOW: PlacementStrategy.COLUMN,
    DiagramType.TIMELINE: PlacementStrategy.ROW,
    DiagramType.COMPARISON: PlacementStrategy.TWO_COLUMN,
    DiagramType.CONCEPT_GRID: PlacementStrategy.GRID,
    DiagramType.TREE: PlacementStrategy.HIERARCHICAL,
    DiagramType.NETWORK: PlacementStrategy.SIMULATION,
}


def select_placement(
    diagram_type: DiagramType,
    node_count: int,
    edge_count: int,
    config: LayoutConfig,
) -> PlacementStrategy:
    """Pick the placement strategy for a diagram type.

    A concept grid whose edges-per-node ratio reaches ``dense_edge_ratio``
    is laid out by simulation instead, since a uniform grid ignores edges.
    """
    strategy = _TYPE_STRATEGIES[diagram_type]
    if (
        strategy is PlacementStrategy.GRID
        and node_count > 1
        and edge_count / node_count >= config.dense_edge_ratio
    ):
        return PlacementStrategy.SIMULATION
    return strategy


def place(strategy: PlacementStrategy, state: LayoutState, config: LayoutConfig) -> None:
    """Run *strategy* over the arena, then clamp every box into the canvas."""
    if not state.boxes:
        return
    _PLACERS[strategy](state, config)
    for box in state.boxes:
        clamp_to_canvas(box, config.canvas_width, config.canvas_height)
    logger.debug("placed %d nodes with %s", len(state), strategy.value)


# ---------------------------------------------------------------------------
# Grid / row strategies
# ---------------------------------------------------------------------------

def _fit_spacing(sizes: list[float], spacing: float, available: float) -> float:
    """Shrink *spacing* so the stacked *sizes* fit into *available* if possible."""
    if len(sizes) < 2:
        return spacing
    total = sum(sizes) + spacing * (len(sizes) - 1)
    if total <= available:
        return spacing
    return max(0.0, (available - sum(sizes)) / (len(sizes) - 1))


def place_column(state: LayoutState, config: LayoutConfig) -> None:
    """Single centred column in input order (flow)."""
    boxes = state.boxes
    heights = [b.height for b in boxes]
    spacing = _fit_spacing(
        heights, config.rank_spacing, config.canvas_height - 2 * config.canvas_padding,
    )
    total = sum(heights) + spacing * (len(boxes) - 1)
    y = max(0.0, (config.canvas_height - total) / 2)
    for box in boxes:
        box.x = (config.canvas_width - box.width) / 2
        box.y = y
        y += box.height + spacing


def place_row(state: LayoutState, config: LayoutConfig) -> None:
    """Single row spread evenly across the canvas width (timeline)."""
    spacing = config.canvas_width / (len(state.boxes) + 1)
    for i, box in enumerate(state.boxes):
        box.move_center_to(spacing * (i + 1), config.canvas_height / 2)


def place_two_column(state: LayoutState, config: LayoutConfig) -> None:
    """Left/right columns at 25% / 75% of the width (comparison).

    The first half of the nodes (rounded up) forms the left column; each
    column distributes its nodes vertically on its own.
    """
    split = math.ceil(len(state.boxes) / 2)
    columns = (
        (state.boxes[:split], config.canvas_width * 0.25),
        (state.boxes[split:], config.canvas_width * 0.75),
    )
    for column, cx in columns:
        step = config.canvas_height / (len(column) + 1)
        for i, box in enumerate(column):
            box.move_center_to(cx, step * (i + 1))


def place_grid(state: LayoutState, config: LayoutConfig) -> None:
    """Near-square grid with uniform cells (concept grid)."""
    n = len(state.boxes)
    cols = math.ceil(math.sqrt(n))
    rows = math.ceil(n / cols)
    cell_w = config.canvas_width / cols
    cell_h = config.canvas_height / rows
    for i, box in enumerate(state.boxes):
        row, col = divmod(i, cols)
        box.move_center_to(col * cell_w + cell_w / 2, row * cell_h + cell_h / 2)


# ---------------------------------------------------------------------------
# Hierarchical strategy
# ---------------------------------------------------------------------------

def _adjacency(state: LayoutState) -> list[list[int]]:
    adj: list[list[int]] = [[] for _ in state.boxes]
    for s, t in state.links:
        if t not in adj[s]:
            adj[s].append(t)
    return adj


def find_roots(state: LayoutState) -> list[int]:
    """Zero in-degree nodes in input order.

    When every node has an incoming edge (a cycle with no entry point) the
    highest-degree node becomes a synthetic root; ties go to the earlier node.
    """
    if not state.boxes:
        return []
    in_degree = [0] * len(state.boxes)
    for s, t in state.links:
        if s != t:
            in_degree[t] += 1
    roots = [i for i, d in enumerate(in_degree) if d == 0]
    if roots:
        return roots
    degrees = state.degrees()
    return [max(range(len(degrees)), key=lambda i: (degrees[i], -i))]


def build_forest(state: LayoutState) -> tuple[list[int], list[int], list[list[int]]]:
    """BFS from the roots into a spanning forest.

    A node already reached terminates that branch, so cycles never loop.
    Nodes unreachable from the roots (e.g. a cycle hanging off nowhere) get
    their own synthetic root, again chosen by highest degree.

    Returns:
        (roots, levels, children) where ``levels[i]`` is the depth of node
        ``i`` and ``children[i]`` its tree children in discovery order.
    """
    n = len(state.boxes)
    adj = _adjacency(state)
    degrees = state.degrees()
    levels = [-1] * n
    children: list[list[int]] = [[] for _ in range(n)]
    roots: list[int] = []

    def _grow(root: int) -> None:
        roots.append(root)
        levels[root] = 0
        queue = deque([root])
        while queue:
            node = queue.popleft()
            for child in adj[node]:
                if levels[child] == -1:
                    levels[child] = levels[node] + 1
                    children[node].append(child)
                    queue.append(child)

    for root in find_roots(state):
        if levels[root] == -1:
            _grow(root)
    while True:
        remaining = [i for i in range(n) if levels[i] == -1]
        if not remaining:
            break
        _grow(max(remaining, key=lambda i: (degrees[i], -i)))

    return roots, levels, children


def place_hierarchy(state: LayoutState, config: LayoutConfig) -> None:
    """Top-to-bottom tree layout.

    Each subtree owns a horizontal slot whose width is proportional to its
    leaf count; a node is centred in its slot and its children split the
    slot in order.  Levels are stacked with ``rank_spacing`` between them.
    """
    roots, levels, children = build_forest(state)

    # Leaf counts, children before parents
    order: list[int] = []
    queue = deque(roots)
    while queue:
        node = queue.popleft()
        order.append(node)
        queue.extend(children[node])
    leaves = [1] * len(state.boxes)
    for node in reversed(order):
        if children[node]:
            leaves[node] = sum(leaves[c] for c in children[node])

    # Horizontal slots
    left = config.canvas_padding
    unit = (config.canvas_width - 2 * left) / sum(leaves[r] for r in roots)
    slot_start = [0.0] * len(state.boxes)
    cursor = left
    for root in roots:
        slot_start[root] = cursor
        cursor += leaves[root] * unit
    for node in order:
        child_start = slot_start[node]
        for child in children[node]:
            slot_start[child] = child_start
            child_start += leaves[child] * unit

    # Vertical levels
    depth = max(levels) + 1
    level_heights = [0.0] * depth
    for i, box in enumerate(state.boxes):
        level_heights[levels[i]] = max(level_heights[levels[i]], box.height)
    spacing = _fit_spacing(
        level_heights, config.rank_spacing, config.canvas_height - 2 * config.canvas_padding,
    )
    total = sum(level_heights) + spacing * (depth - 1)
    level_top = [max(0.0, (config.canvas_height - total) / 2)]
    for lvl in range(1, depth):
        level_top.append(level_top[-1] + level_heights[lvl - 1] + spacing)

    for i, box in enumerate(state.boxes):
        lvl = levels[i]
        box.x = slot_start[i] + leaves[i] * unit / 2 - box.width / 2
        box.y = level_top[lvl] + (level_heights[lvl] - box.height) / 2


# ---------------------------------------------------------------------------
# Simulation seeding
# ---------------------------------------------------------------------------

def place_simulation_seed(state: LayoutState, config: LayoutConfig) -> None:
    """Near-square grid of cells with seeded jitter of up to half the spacing."""
    n = len(state.boxes)
    grid = math.ceil(math.sqrt(n))
    cell_w = config.canvas_width / grid
    cell_h = config.canvas_height / grid
    spread = config.optimal_spacing(n) / 2
    for i, box in enumerate(state.boxes):
        row, col = divmod(i, grid)
        jx, jy = deterministic_jitter(f"seed:{box.id}", config.jitter_seed)
        box.move_center_to(
            col * cell_w + cell_w / 2 + jx * spread,
            row * cell_h + cell_h / 2 + jy * spread,
        )


def grid_cell_position(index: int, count: int, box: Box, config: LayoutConfig) -> tuple[float, float]:
    """Deterministic fallback spot for node *index*: the centre of its grid cell."""
    cols = max(1, math.ceil(math.sqrt(count)))
    rows = max(1, math.ceil(count / cols))
    row, col = divmod(index, cols)
    cell_w = config.canvas_width / cols
    cell_h = config.canvas_height / rows
    x = col * cell_w + (cell_w - box.width) / 2
    y = row * cell_h + (cell_h - box.height) / 2
    return (
        min(max(x, 0.0), max(config.canvas_width - box.width, 0.0)),
        min(max(y, 0.0), max(config.canvas_height - box.height, 0.0)),
    )


_PLACERS: dict[PlacementStrategy, Callable[[LayoutState, LayoutConfig], None]] = {
    PlacementStrategy.COLUMN: place_column,
    PlacementStrategy.ROW: place_row,
    PlacementStrategy.TWO_COLUMN: place_two_column,
    PlacementStrategy.GRID: place_grid,
    PlacementStrategy.HIERARCHICAL: place_hierarchy,
    PlacementStrategy.SIMULATION: place_simulation_seed,
}
