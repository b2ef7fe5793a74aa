"""
Uniform-grid spatial index for overlap candidate search.

Instead of checking all N*(N-1)/2 node pairs, every box is binned into the
grid cells it spans and only boxes sharing a cell with the (margin-expanded)
query box are tested.  The final test is the same ``overlaps`` predicate the
brute-force path uses, so both return identical pair sets.
"""

from __future__ import annotations

import math
from typing import Sequence

from overlap_free_layout.geometry import find_overlapping_pairs, overlaps
from overlap_free_layout.models import Box


class SpatialIndex:
    """Grid partition of the canvas keyed by integer cell coordinates."""

    def __init__(self, cell_size: float):
        if not cell_size > 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self._cells: dict[tuple[int, int], set[int]] = {}
        self._members: dict[int, list[tuple[int, int]]] = {}
        self._boxes: dict[int, Box] = {}

    @classmethod
    def from_boxes(cls, boxes: Sequence[Box], margin: float = 0) -> 'SpatialIndex':
        """Build an index sized from the largest node dimension plus margin."""
        largest = max((max(b.width, b.height) for b in boxes), default=1.0)
        index = cls(largest + margin)
        for i, box in enumerate(boxes):
            index.insert(i, box)
        return index

    def __len__(self) -> int:
        return len(self._boxes)

    def _cell_key(self, x: float, y: float) -> tuple[int, int]:
        """Convert canvas coordinates to a cell key."""
        return (int(math.floor(x / self.cell_size)),
                int(math.floor(y / self.cell_size)))

    def _cells_spanned(self, box: Box, margin: float = 0) -> list[tuple[int, int]]:
        x0, y0 = self._cell_key(box.x - margin, box.y - margin)
        x1, y1 = self._cell_key(box.right + margin, box.bottom + margin)
        return [(cx, cy) for cx in range(x0, x1 + 1) for cy in range(y0, y1 + 1)]

    def clear(self) -> None:
        self._cells.clear()
        self._members.clear()
        self._boxes.clear()

    def insert(self, key: int, box: Box) -> None:
        """Insert a box under *key*, replacing any previous entry."""
        if key in self._boxes:
            self.remove(key)
        cells = self._cells_spanned(box)
        for cell in cells:
            self._cells.setdefault(cell, set()).add(key)
        self._members[key] = cells
        self._boxes[key] = box

    def remove(self, key: int) -> None:
        for cell in self._members.pop(key, []):
            bucket = self._cells.get(cell)
            if bucket is None:
                continue
            bucket.discard(key)
            if not bucket:
                del self._cells[cell]
        self._boxes.pop(key, None)

    def update(self, key: int) -> None:
        """Re-bin *key* after its box moved."""
        box = self._boxes.get(key)
        if box is not None:
            self.insert(key, box)

    def query_near(self, key: int, margin: float = 0) -> set[int]:
        """Keys of boxes sharing a cell with the margin-expanded box of *key*."""
        box = self._boxes.get(key)
        if box is None:
            return set()
        found: set[int] = set()
        for cell in self._cells_spanned(box, margin):
            found.update(self._cells.get(cell, ()))
        found.discard(key)
        return found

    def overlapping_pairs(self, margin: float = 0) -> list[tuple[int, int]]:
        """All (i, j) with i < j whose margin-expanded boxes intersect."""
        pairs: list[tuple[int, int]] = []
        for key in sorted(self._boxes):
            box = self._boxes[key]
            for other in self.query_near(key, margin):
                if other > key and overlaps(box, self._boxes[other], margin):
                    pairs.append((key, other))
        pairs.sort()
        return pairs


def detect_overlaps(
    boxes: Sequence[Box],
    margin: float,
    *,
    use_index: bool = False,
) -> list[tuple[int, int]]:
    """Overlapping index pairs, via the grid index or brute force."""
    if use_index and len(boxes) > 1:
        return SpatialIndex.from_boxes(boxes, margin).overlapping_pairs(margin)
    return find_overlapping_pairs(boxes, margin)
