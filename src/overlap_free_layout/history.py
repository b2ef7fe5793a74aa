"""
Bounded adaptation history shared across layout calls.

A capped ring buffer of past run outcomes.  The orchestrator reads it only to
bias resolution-mode selection; dropping it (``NullAdaptationHistory``) never
changes whether a layout is overlap-free.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from overlap_free_layout.complexity import escalate
from overlap_free_layout.models import (
    ComplexityCategory,
    DiagramType,
    QualityMetrics,
    ResolutionMode,
)


@dataclass(frozen=True)
class HistoryEntry:
    diagram_type: DiagramType
    category: ComplexityCategory
    mode: ResolutionMode
    metrics: QualityMetrics
    zero_overlap: bool
    iterations: int


class AdaptationHistory:
    """Thread-safe ring buffer of the last *capacity* layout outcomes."""

    # Runs needed before the success rate is trusted
    min_samples = 3

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def success_rate(
        self,
        category: Optional[ComplexityCategory] = None,
        mode: Optional[ResolutionMode] = None,
    ) -> Optional[float]:
        """Share of zero-overlap runs, or None without enough samples."""
        entries = [
            e for e in self.snapshot()
            if (category is None or e.category is category)
            and (mode is None or e.mode is mode)
        ]
        if len(entries) < self.min_samples:
            return None
        return sum(1 for e in entries if e.zero_overlap) / len(entries)

    def recommended_mode(
        self,
        category: ComplexityCategory,
        default: ResolutionMode,
    ) -> ResolutionMode:
        """Escalate *default* one step when it keeps failing for *category*."""
        rate = self.success_rate(category, default)
        if rate is not None and rate < 0.5:
            return escalate(default)
        return default

    def summary(self) -> dict[str, Any]:
        entries = self.snapshot()
        if not entries:
            return {
                "total_optimizations": 0,
                "average_iterations": 0.0,
                "success_rate": 0.0,
                "last_quality_score": None,
            }
        return {
            "total_optimizations": len(entries),
            "average_iterations": sum(e.iterations for e in entries) / len(entries),
            "success_rate": sum(1 for e in entries if e.zero_overlap) / len(entries),
            "last_quality_score": entries[-1].metrics.composite_score,
        }


class NullAdaptationHistory(AdaptationHistory):
    """History that remembers nothing."""

    def __init__(self) -> None:
        super().__init__(capacity=1)

    def record(self, entry: HistoryEntry) -> None:
        return None
