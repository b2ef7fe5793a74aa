"""
Overlap resolver.

Moves boxes of a ``LayoutState`` until no margin-expanded pair intersects
or the iteration budget runs out.  Two entry points:

- ``run_simulation``: the three force phases used for simulation layouts
  (separation, structure formation, fine adjustment), followed by the
  generic loop for whatever overlaps the forces left behind
- ``resolve``: the generic loop alone, used after deterministic placements

The generic loop works in one of four modes (grid-snap, force-directed,
spiral-placement, adaptive).  All randomness comes from the seeded
``deterministic_jitter``, so identical input gives identical output.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from overlap_free_layout.geometry import (
    clamp_to_canvas,
    deterministic_jitter,
    overlaps,
    penetration,
)
from overlap_free_layout.layout import grid_cell_position
from overlap_free_layout.models import (
    Box,
    ComplexityCategory,
    LayoutConfig,
    LayoutState,
    ResolutionMode,
    ResolverPhase,
)
from overlap_free_layout.spatial_index import detect_overlaps

logger = logging.getLogger(__name__)

_SIMULATION_PHASES = (
    ResolverPhase.SEPARATION,
    ResolverPhase.STRUCTURE_FORMATION,
    ResolverPhase.FINE_ADJUSTMENT,
)

# Adaptive mode escalates after this many sweeps without fewer overlaps
_ADAPTIVE_PATIENCE = 3


@dataclass
class ResolutionOutcome:
    """What a resolver run ended with."""
    phase: ResolverPhase
    mode: ResolutionMode
    iterations: int
    remaining_overlaps: list[tuple[int, int]]
    phases_run: list[ResolverPhase] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    used_spatial_index: bool = False

    @property
    def converged(self) -> bool:
        return self.phase is ResolverPhase.CONVERGED


class OverlapResolver:
    """Iterative displacement engine bound to one arena.

    Args:
        state: Arena whose boxes are moved in place.
        config: Layout configuration (margin, budget, tuning constants).
        use_spatial_index: Force the grid index on or off.  Defaults to on
            above ``config.spatial_index_threshold`` nodes.
        budget: Iteration budget, defaults to ``config.max_iterations``.
    """

    def __init__(
        self,
        state: LayoutState,
        config: LayoutConfig,
        *,
        use_spatial_index: Optional[bool] = None,
        budget: Optional[int] = None,
    ) -> None:
        self.state = state
        self.config = config
        self.margin = config.min_separation
        if use_spatial_index is None:
            use_spatial_index = len(state) > config.spatial_index_threshold
        self.use_spatial_index = use_spatial_index
        self.budget = config.max_iterations if budget is None else budget
        self.iterations = 0
        self.phase: Optional[ResolverPhase] = None
        self.phases_run: list[ResolverPhase] = []
        self.warnings: list[str] = []
        self._best: Optional[tuple[int, list[tuple[float, float]]]] = None

    # -----------------------------------------------------------------
    # Detection
    # -----------------------------------------------------------------

    def detect_overlaps(self) -> list[tuple[int, int]]:
        return detect_overlaps(self.state.boxes, self.margin, use_index=self.use_spatial_index)

    def _is_free(self, index: int, x: float, y: float) -> bool:
        """Whether box *index* placed at (x, y) clears every other box."""
        box = self.state.boxes[index]
        candidate = Box(box.id, x, y, box.width, box.height)
        for j, other in enumerate(self.state.boxes):
            if j != index and overlaps(candidate, other, self.margin):
                return False
        return True

    def _collides(self, index: int) -> bool:
        box = self.state.boxes[index]
        return not self._is_free(index, box.x, box.y)

    # -----------------------------------------------------------------
    # State machine
    # -----------------------------------------------------------------

    def _enter(self, phase: ResolverPhase) -> None:
        self.phase = phase
        if phase in _SIMULATION_PHASES:
            self.phases_run.append(phase)
        logger.debug("resolver -> %s after %d iteration(s)", phase.value, self.iterations)

    def _remember(self, overlap_count: int) -> None:
        if self._best is None or overlap_count < self._best[0]:
            self._best = (overlap_count, self.state.positions())

    def _finish(
        self, phase: ResolverPhase, mode: ResolutionMode, remaining: list[tuple[int, int]],
    ) -> ResolutionOutcome:
        self._enter(phase)
        return ResolutionOutcome(
            phase=phase,
            mode=mode,
            iterations=self.iterations,
            remaining_overlaps=remaining,
            phases_run=list(self.phases_run),
            warnings=list(self.warnings),
            used_spatial_index=self.use_spatial_index,
        )

    def _phase_plan(self, category: ComplexityCategory) -> list[tuple[ResolverPhase, int, float]]:
        """Phase schedule scaled by complexity: harder graphs run longer and stronger."""
        effort = 1.0 + 0.5 * category.level
        return [
            (phase, int(round(iterations * effort)), strength * (1.0 + 0.25 * category.level))
            for phase, (iterations, strength) in zip(_SIMULATION_PHASES, self.config.phase_schedule)
        ]

    def run_simulation(
        self,
        mode: ResolutionMode,
        category: ComplexityCategory = ComplexityCategory.MODERATE,
    ) -> ResolutionOutcome:
        """Three force phases, then the generic loop for leftovers.

        Every phase runs while budget remains; a phase that settles early
        only hands over to the next one.  Convergence is decided by
        ``resolve`` once the phases are done.
        """
        n = len(self.state)
        spacing = self.config.optimal_spacing(n)
        interval = max(1, self.config.convergence_check_interval)
        self._recover_non_finite()

        for phase, iterations, strength in self._phase_plan(category):
            if self.iterations >= self.budget:
                break
            self._enter(phase)
            attract = phase is not ResolverPhase.SEPARATION
            moved = 0.0
            for step in range(iterations):
                if self.iterations >= self.budget:
                    break
                self.iterations += 1
                moved += self._force_step(strength, spacing, attract)
                self._recover_non_finite()
                if (step + 1) % interval == 0:
                    if moved < self.config.convergence_epsilon:
                        # settled: move on to the next phase
                        break
                    moved = 0.0

        return self.resolve(mode)

    def resolve(self, mode: ResolutionMode) -> ResolutionOutcome:
        """Generic resolution loop over the current overlap set."""
        sweeps: dict[ResolutionMode, Callable[[list[tuple[int, int]]], None]] = {
            ResolutionMode.GRID_SNAP: self._grid_snap_sweep,
            ResolutionMode.FORCE_DIRECTED: self._push_apart_sweep,
            ResolutionMode.SPIRAL_PLACEMENT: self._spiral_sweep,
        }
        adaptive_order = (
            ResolutionMode.FORCE_DIRECTED,
            ResolutionMode.SPIRAL_PLACEMENT,
            ResolutionMode.GRID_SNAP,
        )
        stalled = 0
        previous: Optional[int] = None
        self._recover_non_finite()

        while True:
            pairs = self.detect_overlaps()
            self._remember(len(pairs))
            if not pairs:
                return self._finish(ResolverPhase.CONVERGED, mode, [])
            if self.iterations >= self.budget:
                break
            self.iterations += 1

            active = mode
            if mode is ResolutionMode.ADAPTIVE:
                if previous is not None and len(pairs) >= previous:
                    stalled += 1
                level = min(len(adaptive_order) - 1, stalled // _ADAPTIVE_PATIENCE)
                active = adaptive_order[level]
            previous = len(pairs)

            sweeps[active](pairs)
            self._recover_non_finite()

        # Budget exhausted: fall back to the best positions seen
        if self._best is not None:
            self.state.restore(self._best[1])
        remaining = self.detect_overlaps()
        message = (
            f"Iteration budget of {self.budget} exhausted with "
            f"{len(remaining)} overlap(s) remaining"
        )
        logger.warning(message)
        self.warnings.append(message)
        return self._finish(ResolverPhase.BUDGET_EXHAUSTED, mode, remaining)

    # -----------------------------------------------------------------
    # Force simulation
    # -----------------------------------------------------------------

    def _tie_break(self, a: Box, b: Box) -> tuple[float, float]:
        return deterministic_jitter(f"{a.id}|{b.id}", self.config.jitter_seed)

    def _force_step(self, strength: float, spacing: float, attract: bool) -> float:
        """One simulation iteration. Returns the total displacement."""
        boxes = self.state.boxes
        fx = [0.0] * len(boxes)
        fy = [0.0] * len(boxes)

        # Repulsion between boxes closer than the detection range
        near = detect_overlaps(boxes, spacing * 2, use_index=self.use_spatial_index)
        for i, j in near:
            a, b = boxes[i], boxes[j]
            dx, dy = b.cx - a.cx, b.cy - a.cy
            d = math.hypot(dx, dy)
            if d < 1e-9:
                ux, uy = self._tie_break(a, b)
                d = 0.0
            else:
                ux, uy = dx / d, dy / d
            ideal = spacing + (abs(ux) * (a.width + b.width) + abs(uy) * (a.height + b.height)) / 2
            if d < ideal:
                force = strength * (ideal - d) * 0.5
            elif d < 2 * ideal:
                force = strength * 0.5 * (ideal / d) ** 2
            else:
                continue
            fx[i] -= force * ux
            fy[i] -= force * uy
            fx[j] += force * ux
            fy[j] += force * uy

        # Attraction along edges towards the target edge length
        if attract:
            for s, t in self.state.links:
                if s == t:
                    continue
                a, b = boxes[s], boxes[t]
                dx, dy = b.cx - a.cx, b.cy - a.cy
                d = math.hypot(dx, dy)
                if d < 1e-9:
                    continue
                ux, uy = dx / d, dy / d
                extent = (abs(ux) * (a.width + b.width) + abs(uy) * (a.height + b.height)) / 2
                force = strength * (d - (2 * spacing + extent)) * 0.1
                fx[s] += force * ux
                fy[s] += force * uy
                fx[t] -= force * ux
                fy[t] -= force * uy

        max_step = spacing / 2
        moved = 0.0
        for i, box in enumerate(boxes):
            mx = fx[i] * self.config.damping
            my = fy[i] * self.config.damping
            mag = math.hypot(mx, my)
            if mag > max_step:
                mx *= max_step / mag
                my *= max_step / mag
            old_x, old_y = box.x, box.y
            box.x += mx
            box.y += my
            clamp_to_canvas(box, self.config.canvas_width, self.config.canvas_height)
            moved += math.hypot(box.x - old_x, box.y - old_y)
        return moved

    def _recover_non_finite(self) -> None:
        """Reset boxes whose coordinates went NaN/inf to their grid cell."""
        boxes = self.state.boxes
        for i, box in enumerate(boxes):
            if box.is_finite():
                continue
            box.x, box.y = grid_cell_position(i, len(boxes), box, self.config)
            message = f"Node '{box.id}' reset to a grid cell after a non-finite position"
            logger.warning(message)
            self.warnings.append(message)

    # -----------------------------------------------------------------
    # Generic sweeps
    # -----------------------------------------------------------------

    def _push_apart_sweep(self, pairs: list[tuple[int, int]]) -> None:
        """Push each overlapping pair apart along the axis of least penetration."""
        boxes = self.state.boxes
        slack = self.config.push_slack
        for i, j in pairs:
            a, b = boxes[i], boxes[j]
            overlap_x, overlap_y = penetration(a, b, self.margin)
            if overlap_x <= 0 or overlap_y <= 0:
                continue
            jx, jy = self._tie_break(a, b)
            if overlap_x < overlap_y:
                sign = _direction(b.cx - a.cx, jx)
                push = overlap_x / 2 + slack
                a.x -= sign * push
                b.x += sign * push
            else:
                sign = _direction(b.cy - a.cy, jy)
                push = overlap_y / 2 + slack
                a.y -= sign * push
                b.y += sign * push
            clamp_to_canvas(a, self.config.canvas_width, self.config.canvas_height)
            clamp_to_canvas(b, self.config.canvas_width, self.config.canvas_height)

    def _relocate_sweep(
        self,
        pairs: list[tuple[int, int]],
        candidates: Callable[[int], Iterator[tuple[float, float]]],
    ) -> None:
        """Move every still-colliding node to the first free candidate spot."""
        involved = sorted({i for pair in pairs for i in pair})
        for index in involved:
            if not self._collides(index):
                continue
            for x, y in candidates(index):
                if self._is_free(index, x, y):
                    box = self.state.boxes[index]
                    box.x, box.y = x, y
                    break

    def _grid_snap_sweep(self, pairs: list[tuple[int, int]]) -> None:
        self._relocate_sweep(pairs, self._lattice_candidates)

    def _spiral_sweep(self, pairs: list[tuple[int, int]]) -> None:
        self._relocate_sweep(pairs, self._spiral_candidates)

    def _lattice_candidates(self, index: int) -> Iterator[tuple[float, float]]:
        """Lattice positions ring by ring around the box, nearest first per ring."""
        box = self.state.boxes[index]
        step = self.config.grid_snap_step
        max_i = int(math.floor(max(self.config.canvas_width - box.width, 0.0) / step))
        max_j = int(math.floor(max(self.config.canvas_height - box.height, 0.0) / step))
        ci = min(max(int(round(box.x / step)), 0), max_i)
        cj = min(max(int(round(box.y / step)), 0), max_j)

        for r in range(max(max_i, max_j) + 1):
            ring = _ring(ci, cj, r)
            cells = [(gi, gj) for gi, gj in ring if 0 <= gi <= max_i and 0 <= gj <= max_j]
            cells.sort(key=lambda c: ((c[0] * step - box.x) ** 2 + (c[1] * step - box.y) ** 2, c[1], c[0]))
            for gi, gj in cells:
                yield gi * step, gj * step

    def _spiral_candidates(self, index: int) -> Iterator[tuple[float, float]]:
        """Points on an outward spiral (16 angles per ring) around the box centre."""
        box = self.state.boxes[index]
        step = self.config.spiral_step
        max_x = max(self.config.canvas_width - box.width, 0.0)
        max_y = max(self.config.canvas_height - box.height, 0.0)
        max_radius = math.hypot(self.config.canvas_width, self.config.canvas_height)
        rings = int(max_radius / step) + 1
        for k in range(1, rings + 1):
            radius = k * step
            for a in range(16):
                theta = a * math.pi / 8
                x = box.cx + radius * math.cos(theta) - box.width / 2
                y = box.cy + radius * math.sin(theta) - box.height / 2
                yield min(max(x, 0.0), max_x), min(max(y, 0.0), max_y)


def _direction(delta: float, fallback: float) -> float:
    if abs(delta) > 1e-9:
        return 1.0 if delta > 0 else -1.0
    return 1.0 if fallback >= 0 else -1.0


def _ring(ci: int, cj: int, r: int) -> list[tuple[int, int]]:
    """Cells at Chebyshev distance *r* from (ci, cj)."""
    if r == 0:
        return [(ci, cj)]
    cells = []
    for d in range(-r, r + 1):
        cells.append((ci + d, cj - r))
        cells.append((ci + d, cj + r))
    for d in range(-r + 1, r):
        cells.append((ci - r, cj + d))
        cells.append((ci + r, cj + d))
    return cells
