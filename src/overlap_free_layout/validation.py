"""
Input validation for the layout engine and its MCP tools.

Every check runs before any placement work.  Failures raise
``ValidationError`` with a readable message and a machine-readable code;
a partial layout is never produced for invalid input.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

from overlap_free_layout.models import (
    DiagramType,
    Edge,
    EdgeRouting,
    Graph,
    LayoutConfig,
    Node,
)


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str, code: str = "invalid_input") -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
    code: str = "invalid_input",
) -> float:
    """Validate a finite numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}.", code
        )
    val = float(value)
    if not math.isfinite(val):
        raise ValidationError(f"'{field_name}' must be finite, got {val}.", code)
    if min_val is not None and val < min_val:
        raise ValidationError(f"'{field_name}' must be >= {min_val}, got {val}.", code)
    if max_val is not None and val > max_val:
        raise ValidationError(f"'{field_name}' must be <= {max_val}, got {val}.", code)
    return val


def validate_positive_number(value: Any, field_name: str, code: str = "invalid_input") -> float:
    """Validate that a number is finite and > 0."""
    val = validate_number(value, field_name, code=code)
    if val <= 0:
        raise ValidationError(f"'{field_name}' must be > 0, got {val}.", code)
    return val


def validate_non_negative_number(value: Any, field_name: str) -> float:
    """Validate that a number is >= 0."""
    return validate_number(value, field_name, min_val=0)


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    """Validate an integer value and optional range."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be an integer, got {type(value).__name__}."
        )
    if min_val is not None and value < min_val:
        raise ValidationError(f"'{field_name}' must be >= {min_val}, got {value}.")
    if max_val is not None and value > max_val:
        raise ValidationError(f"'{field_name}' must be <= {max_val}, got {value}.")
    return value


def validate_bool(value: Any, field_name: str) -> bool:
    """Ensure *value* is a boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


def validate_enum(value: Any, field_name: str, allowed: set[str]) -> str:
    """Validate that a string value is one of the allowed choices (case-insensitive)."""
    if not isinstance(value, str):
        raise ValidationError(
            f"'{field_name}' must be a string, got {type(value).__name__}."
        )
    normalized = value.strip().upper()
    if normalized not in {a.upper() for a in allowed}:
        choices = ", ".join(sorted(allowed))
        raise ValidationError(
            f"'{field_name}' must be one of [{choices}], got '{value}'."
        )
    return normalized


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


# ---------------------------------------------------------------------------
# Tool actions
# ---------------------------------------------------------------------------

_LAYOUT_ACTIONS = {"GENERATE", "CLASSIFY", "ASSESS"}
_INSPECT_ACTIONS = {"OVERLAPS", "HISTORY", "DIAGRAM_TYPES", "DEFAULTS"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Diagram type
# ---------------------------------------------------------------------------

# Names the upstream extractor is known to emit
_DIAGRAM_ALIASES: dict[str, DiagramType] = {
    "flowchart": DiagramType.FLOW,
    "process": DiagramType.FLOW,
    "hierarchy": DiagramType.TREE,
    "mindmap": DiagramType.TREE,
    "concept": DiagramType.CONCEPT_GRID,
    "concept_map": DiagramType.CONCEPT_GRID,
    "grid": DiagramType.CONCEPT_GRID,
}


def validate_diagram_type(value: Any) -> DiagramType:
    """Accept a ``DiagramType`` or its name/value/alias (case-insensitive)."""
    if isinstance(value, DiagramType):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            "'diagram_type' must be a non-empty string.", "unknown_diagram_type"
        )
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    for member in DiagramType:
        if key == member.value:
            return member
    if key in _DIAGRAM_ALIASES:
        return _DIAGRAM_ALIASES[key]
    choices = ", ".join(sorted([m.value for m in DiagramType] + list(_DIAGRAM_ALIASES)))
    raise ValidationError(
        f"'diagram_type' must be one of [{choices}], got '{value}'.", "unknown_diagram_type"
    )


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def validate_config(config: LayoutConfig) -> LayoutConfig:
    """Check a ``LayoutConfig`` for values the engine cannot work with."""
    validate_positive_number(config.canvas_width, "canvas_width", "invalid_canvas")
    validate_positive_number(config.canvas_height, "canvas_height", "invalid_canvas")
    validate_positive_number(config.default_node_width, "default_node_width", "invalid_node_size")
    validate_positive_number(config.default_node_height, "default_node_height", "invalid_node_size")
    if config.default_node_width > config.canvas_width or config.default_node_height > config.canvas_height:
        raise ValidationError(
            "Default node size must fit inside the canvas.", "node_exceeds_canvas"
        )
    validate_non_negative_number(config.min_separation, "min_separation")
    validate_int(config.max_iterations, "max_iterations", min_val=0)
    validate_non_negative_number(config.convergence_epsilon, "convergence_epsilon")
    validate_number(config.quality_threshold, "quality_threshold", min_val=0, max_val=100)
    validate_non_negative_number(config.rank_spacing, "rank_spacing")
    validate_non_negative_number(config.node_spacing, "node_spacing")
    validate_non_negative_number(config.canvas_padding, "canvas_padding")
    validate_int(config.large_graph_nodes, "large_graph_nodes", min_val=1)
    validate_positive_number(config.dense_edge_ratio, "dense_edge_ratio")
    validate_int(config.spatial_index_threshold, "spatial_index_threshold", min_val=0)
    validate_int(config.convergence_check_interval, "convergence_check_interval", min_val=1)
    validate_int(config.jitter_seed, "jitter_seed")
    validate_int(config.simple_overlap_limit, "simple_overlap_limit", min_val=0)
    validate_positive_number(config.damping, "damping")
    validate_non_negative_number(config.push_slack, "push_slack")
    validate_positive_number(config.grid_snap_step, "grid_snap_step")
    validate_positive_number(config.spiral_step, "spiral_step")
    validate_bool(config.auto_size_labels, "auto_size_labels")
    validate_bool(config.final_enhancement, "final_enhancement")

    _validate_weights(config.complexity_weights, "complexity_weights", 5)
    _validate_weights(config.quality_weights, "quality_weights", 4)
    thresholds = [
        validate_number(t, f"complexity_thresholds[{i}]")
        for i, t in enumerate(_validate_sequence(config.complexity_thresholds, "complexity_thresholds", 3))
    ]
    if thresholds != sorted(thresholds):
        raise ValidationError(
            "'complexity_thresholds' must be three ascending numbers."
        )
    low, high = [
        validate_number(v, f"utilization_target[{i}]")
        for i, v in enumerate(_validate_sequence(config.utilization_target, "utilization_target", 2))
    ]
    if not 0 < low <= high <= 1:
        raise ValidationError(
            "'utilization_target' must satisfy 0 < low <= high <= 1."
        )
    for i, phase in enumerate(_validate_sequence(config.phase_schedule, "phase_schedule")):
        if not isinstance(phase, (tuple, list)) or len(phase) != 2:
            raise ValidationError(f"'phase_schedule[{i}]' must be (iterations, strength).")
        validate_int(phase[0], f"phase_schedule[{i}].iterations", min_val=0)
        validate_non_negative_number(phase[1], f"phase_schedule[{i}].strength")
    if not isinstance(config.edge_routing, EdgeRouting):
        raise ValidationError("'edge_routing' must be an EdgeRouting value.")
    return config


def _validate_sequence(value: Any, field_name: str, count: Optional[int] = None) -> Sequence[Any]:
    """Ensure *value* is a tuple or list, of exactly *count* items when given."""
    if not isinstance(value, (tuple, list)):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if count is not None and len(value) != count:
        raise ValidationError(f"'{field_name}' must have {count} entries, got {len(value)}.")
    return value


def _validate_weights(weights: Any, field_name: str, count: int) -> None:
    for i, w in enumerate(_validate_sequence(weights, field_name, count)):
        validate_non_negative_number(w, f"{field_name}[{i}]")


def config_from_dict(data: Optional[dict[str, Any]] = None, **overrides: Any) -> LayoutConfig:
    """Build and validate a ``LayoutConfig`` from plain data.

    Unknown keys are rejected; lists are accepted where tuples are expected.
    """
    merged = dict(validate_dict(data, "config") if data is not None else {})
    merged.update(overrides)
    known = set(LayoutConfig.field_names())
    unknown = sorted(set(merged) - known)
    if unknown:
        raise ValidationError(f"Unknown config key(s): {', '.join(unknown)}.")

    values: dict[str, Any] = {}
    for key, value in merged.items():
        if key == "edge_routing":
            value = EdgeRouting(validate_enum(value, key, {m.value for m in EdgeRouting}).lower())
        elif key == "phase_schedule":
            value = tuple(tuple(p) if isinstance(p, list) else p for p in validate_list(value, key))
        elif isinstance(value, list):
            value = tuple(value)
        values[key] = value
    return validate_config(LayoutConfig(**values))


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

def _validate_size(value: Any, field_name: str, limit: float) -> None:
    size = validate_positive_number(value, field_name, "invalid_node_size")
    if size > limit:
        raise ValidationError(
            f"'{field_name}' of {size} exceeds the canvas ({limit}).", "node_exceeds_canvas"
        )


def validate_graph(graph: Graph, config: LayoutConfig) -> Graph:
    """Check node ids, sizes and edge endpoints of *graph*.

    Raises:
        ValidationError: On the first problem found.
    """
    if not graph.nodes and graph.edges:
        raise ValidationError(
            f"Graph has {len(graph.edges)} edge(s) but no nodes.", "edges_without_nodes"
        )

    seen: set[str] = set()
    for i, node in enumerate(graph.nodes):
        if not isinstance(node.id, str) or not node.id.strip():
            raise ValidationError(
                f"Node at index {i} must have a non-empty string id.", "invalid_node_id"
            )
        if node.id in seen:
            raise ValidationError(f"Duplicate node id '{node.id}'.", "duplicate_node_id")
        seen.add(node.id)
        if node.width is not None:
            _validate_size(node.width, f"nodes[{i}].width", config.canvas_width)
        if node.height is not None:
            _validate_size(node.height, f"nodes[{i}].height", config.canvas_height)
        if node.x is not None:
            validate_number(node.x, f"nodes[{i}].x")
        if node.y is not None:
            validate_number(node.y, f"nodes[{i}].y")

    for i, edge in enumerate(graph.edges):
        for end in ("source", "target"):
            ref = getattr(edge, end)
            if not isinstance(ref, str):
                raise ValidationError(
                    f"Edge at index {i} {end} must be a node id string, "
                    f"got {type(ref).__name__}.",
                    "unknown_edge_endpoint",
                )
            if ref not in seen:
                raise ValidationError(
                    f"Edge at index {i} references unknown {end} node '{ref}'.",
                    "unknown_edge_endpoint",
                )
    return graph


def graph_from_dict(
    nodes: Optional[list[Any]],
    edges: Optional[list[Any]] = None,
    diagram_type: Any = DiagramType.NETWORK,
) -> Graph:
    """Build a ``Graph`` from plain dicts, validating their shape.

    Nodes need an ``id`` and may carry ``label``, ``width``, ``height``,
    ``x`` and ``y``; edges need ``source`` and ``target``.  Referential
    checks are left to ``validate_graph``.
    """
    graph = Graph(diagram_type=validate_diagram_type(diagram_type))
    for i, raw in enumerate(validate_list(nodes if nodes is not None else [], "nodes")):
        if not isinstance(raw, dict):
            raise ValidationError(f"Node at index {i} must be a dict/object.")
        if "id" not in raw:
            raise ValidationError(f"Node at index {i} missing required key 'id'.", "invalid_node_id")
        node_id = raw["id"]
        if isinstance(node_id, int) and not isinstance(node_id, bool):
            node_id = str(node_id)
        label = raw.get("label", node_id if isinstance(node_id, str) else "")
        graph.nodes.append(Node(
            id=node_id,
            label=validate_string(label, f"nodes[{i}].label"),
            width=raw.get("width"),
            height=raw.get("height"),
            x=raw.get("x"),
            y=raw.get("y"),
        ))
    for i, raw in enumerate(validate_list(edges if edges is not None else [], "edges")):
        if not isinstance(raw, dict):
            raise ValidationError(f"Edge at index {i} must be a dict/object.")
        for key in ("source", "target"):
            if key not in raw:
                raise ValidationError(f"Edge at index {i} missing required key '{key}'.")
        source, target = raw["source"], raw["target"]
        graph.edges.append(Edge(
            source=str(source) if isinstance(source, int) else source,
            target=str(target) if isinstance(target, int) else target,
            label=validate_string(raw.get("label", ""), f"edges[{i}].label"),
        ))
    return graph
