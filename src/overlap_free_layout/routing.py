"""
Edge routing from final node positions.

Picks exit/entry sides from the relative position of the two boxes and
produces either a straight segment between the ports or an orthogonal
polyline with one elbow pair through the midpoint of the gap.
"""

from __future__ import annotations

from overlap_free_layout.models import (
    Box,
    EdgeRouting,
    LayoutState,
    PlacementStrategy,
    Point,
    RoutedEdge,
)


def determine_sides(src: Box, tgt: Box, prefer_vertical: bool = False) -> tuple[str, str]:
    """Determine which side of each box the edge should connect to.

    With *prefer_vertical* any vertical offset wins (layered layouts).

    Returns (exit_side, entry_side), each one of "top", "bottom", "left", "right".
    """
    dx = tgt.cx - src.cx
    dy = tgt.cy - src.cy

    if prefer_vertical and abs(dy) > 1e-9:
        return ("bottom", "top") if dy > 0 else ("top", "bottom")
    if abs(dx) > abs(dy) * 1.2:
        # Predominantly horizontal
        if dx >= 0:
            return "right", "left"
        return "left", "right"
    # Vertical or diagonal, prefer a vertical connection
    if dy >= 0:
        return "bottom", "top"
    return "top", "bottom"


def port_point(box: Box, side: str) -> Point:
    """Centre of the given side of *box*."""
    return {
        "top": Point(box.cx, box.y),
        "bottom": Point(box.cx, box.bottom),
        "left": Point(box.x, box.cy),
        "right": Point(box.right, box.cy),
    }[side]


def _self_loop(box: Box, clearance: float) -> list[Point]:
    return [
        Point(box.right, box.cy),
        Point(box.right + clearance, box.cy),
        Point(box.right + clearance, box.y - clearance),
        Point(box.cx, box.y - clearance),
        Point(box.cx, box.y),
    ]


def route_edge(
    src: Box,
    tgt: Box,
    *,
    orthogonal: bool = True,
    prefer_vertical: bool = False,
    clearance: float = 20,
) -> list[Point]:
    """Route one edge between two boxes."""
    if src is tgt:
        return _self_loop(src, clearance)

    exit_side, entry_side = determine_sides(src, tgt, prefer_vertical)
    start = port_point(src, exit_side)
    end = port_point(tgt, entry_side)
    if not orthogonal:
        return [start, end]

    if exit_side in ("top", "bottom"):
        if abs(start.x - end.x) < 1e-9:
            return [start, end]
        mid_y = (start.y + end.y) / 2
        return [start, Point(start.x, mid_y), Point(end.x, mid_y), end]
    if abs(start.y - end.y) < 1e-9:
        return [start, end]
    mid_x = (start.x + end.x) / 2
    return [start, Point(mid_x, start.y), Point(mid_x, end.y), end]


def route_edges(
    state: LayoutState,
    routing: EdgeRouting = EdgeRouting.AUTO,
    strategy: PlacementStrategy | None = None,
    clearance: float = 20,
) -> list[RoutedEdge]:
    """Route every edge of the arena in input order.

    ``EdgeRouting.AUTO`` draws straight lines for simulation layouts and
    orthogonal polylines for everything else.  Column and tree layouts
    always connect bottom to top.
    """
    if routing is EdgeRouting.AUTO:
        orthogonal = strategy is not PlacementStrategy.SIMULATION
    else:
        orthogonal = routing is EdgeRouting.ORTHOGONAL
    layered = strategy in (PlacementStrategy.COLUMN, PlacementStrategy.HIERARCHICAL)

    routed: list[RoutedEdge] = []
    for edge, (s, t) in zip(state.edges, state.links):
        points = route_edge(
            state.boxes[s], state.boxes[t],
            orthogonal=orthogonal, prefer_vertical=layered, clearance=clearance,
        )
        routed.append(RoutedEdge(edge.source, edge.target, tuple(points), edge.label))
    return routed
