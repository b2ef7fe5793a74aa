"""
Overlap-Free Layout MCP Server: compute zero-overlap diagram layouts via
Model Context Protocol.

Exposes 2 tools that let an agent turn extracted nodes/edges into
positioned, non-overlapping layouts ready for rendering.

Tools:
  1. layout   - compute: generate a layout, classify a graph, assess positions
  2. inspect  - read-only: overlap check, adaptation history, diagram types,
                default configuration
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from overlap_free_layout.history import AdaptationHistory
from overlap_free_layout.layout_engine import (
    assess_positions,
    classify_graph,
    generate_layout,
    result_summary,
)
from overlap_free_layout.models import DiagramType, LayoutConfig, _to_plain
from overlap_free_layout.validation import (
    ValidationError,
    config_from_dict,
    graph_from_dict,
    validate_action,
    validate_non_negative_number,
    _DIAGRAM_ALIASES,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging: keep routine FastMCP INFO messages off stderr
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("overlap-free-layout")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "overlap-free-layout",
    instructions=(
        "MCP server computing 2-D diagram layouts with no overlapping nodes.\n\n"
        "=== ONLY 2 TOOLS - use the 'action' parameter to pick the operation ===\n\n"
        "1. layout(action, ...) - generate, classify, assess.\n"
        "2. inspect(action, ...) - overlaps, history, diagram_types, defaults.\n\n"
        "=== INPUT ===\n"
        "- nodes: list of {id, label?, width?, height?} (x/y only for assess/overlaps).\n"
        "- edges: list of {source, target, label?}; every endpoint must be a node id.\n"
        "- diagram_type: flow, tree, timeline, network, comparison, concept_grid.\n"
        "- config: optional overrides, e.g. {\"min_separation\": 30}.\n\n"
        "=== OUTPUT ===\n"
        "- generate returns nodes (x, y, width, height), edges (points),\n"
        "  metrics, zero_overlap_guarantee, diagnostics and warnings.\n"
        "- If zero_overlap_guarantee is false, read the warnings.\n"
    ),
)

# Adaptation history shared by every call in this process.
# AdaptationHistory does its own locking.
_history = AdaptationHistory()


def _config(
    config: dict[str, Any] | None,
    canvas_width: float | None,
    canvas_height: float | None,
    min_separation: float | None,
) -> LayoutConfig:
    overrides: dict[str, Any] = {}
    if canvas_width is not None:
        overrides["canvas_width"] = canvas_width
    if canvas_height is not None:
        overrides["canvas_height"] = canvas_height
    if min_separation is not None:
        overrides["min_separation"] = min_separation
    return config_from_dict(config, **overrides)


# ===================================================================
# TOOL 1: layout
# ===================================================================

@mcp.tool()
def layout(
    action: str,
    nodes: list[dict[str, Any]] | None = None,
    edges: list[dict[str, Any]] | None = None,
    diagram_type: str = "network",
    canvas_width: float | None = None,
    canvas_height: float | None = None,
    min_separation: float | None = None,
    config: dict[str, Any] | None = None,
) -> str:
    """Layout computation.

    Actions:
      generate  - Compute a zero-overlap layout. Params: nodes, edges,
                  diagram_type, canvas_width, canvas_height, min_separation,
                  config (any LayoutConfig field).
      classify  - Report the placement strategy, complexity score and
                  resolution mode the graph would get. Same params.
      assess    - Score the x/y positions given on the nodes. Same params.

    Returns:
        JSON results or an "Error: ..." message.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        cfg = _config(config, canvas_width, canvas_height, min_separation)
        graph = graph_from_dict(nodes, edges, diagram_type)

        if action == "generate":
            result = generate_layout(graph, config=cfg, history=_history)
            summary = result_summary(result)
            logger.info(
                "generated %s layout: %d nodes, zero_overlap=%s",
                graph.diagram_type.value, summary["nodes"], summary["zero_overlap"],
            )
            payload = result.to_dict()
            payload["summary"] = summary
            return json.dumps(payload, indent=2)

        if action == "classify":
            strategy, complexity, mode = classify_graph(graph, config=cfg)
            return json.dumps({
                "placement_strategy": strategy.value,
                "resolution_mode": mode.value,
                "complexity": _to_plain(complexity),
            }, indent=2)

        # assess
        metrics, overlapping = assess_positions(graph, cfg)
        return json.dumps({
            "metrics": _to_plain(metrics),
            "overlapping_pairs": [list(p) for p in overlapping],
        }, indent=2)
    except ValidationError as exc:
        return f"Error: {exc.message}"


# ===================================================================
# TOOL 2: inspect
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    nodes: list[dict[str, Any]] | None = None,
    margin: float = 0,
) -> str:
    """Read-only inspection.

    Actions:
      overlaps       - List overlapping node pairs for the given x/y positions.
                       Params: nodes, margin.
      history        - Summary of recent layout runs in this process.
      diagram_types  - Supported diagram types and accepted aliases.
      defaults       - The default layout configuration.

    Returns:
        JSON data or an "Error: ..." message.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)

        if action == "history":
            return json.dumps(_history.summary(), indent=2)

        if action == "diagram_types":
            return json.dumps({
                "types": [t.value for t in DiagramType],
                "aliases": {k: v.value for k, v in sorted(_DIAGRAM_ALIASES.items())},
            }, indent=2)

        if action == "defaults":
            return json.dumps(_to_plain(LayoutConfig()), indent=2)

        # overlaps
        margin = validate_non_negative_number(margin, "margin")
        graph = graph_from_dict(nodes, [])
        _, overlapping = assess_positions(graph, config_from_dict(min_separation=margin))
        if not overlapping:
            return "No overlaps found."
        lines = [f"  {a} <-> {b}" for a, b in overlapping]
        return f"Found {len(overlapping)} overlapping pair(s):\n" + "\n".join(lines)
    except ValidationError as exc:
        return f"Error: {exc.message}"


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
