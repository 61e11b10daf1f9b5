"""Per-invocation layout diagnostics.

A LayoutLogger is created by the pipeline for one layout run and passed to
every stage explicitly. It records step durations and how many nodes each
step moved; nothing is shared between runs or diagrams.
"""

import logging
import time
from typing import Dict, List, Optional

from ..config.settings import is_enabled
from ..models.layout_graph import LayoutGraph, PositionSnapshot
from ..models.layout_result import StepRecord

logger = logging.getLogger(__name__)


class LayoutLogger:
    """Step timer and moved-count recorder for one layout run."""

    def __init__(self, diagram_id: str):
        self.diagram_id = diagram_id
        self.steps: List[StepRecord] = []
        self.notes: List[str] = []
        self._started: Dict[str, float] = {}
        self._before: Dict[str, PositionSnapshot] = {}
        self._level = logging.INFO if is_enabled("layout_debug") else logging.DEBUG

    def begin_step(self, name: str, graph: Optional[LayoutGraph] = None) -> None:
        """Start timing a step; with a graph, also snapshot positions."""
        self._started[name] = time.perf_counter()
        if graph is not None:
            self._before[name] = PositionSnapshot.take(graph)
        logger.log(self._level, f"[{self.diagram_id}] {name}: start")

    def end_step(
        self,
        name: str,
        graph: Optional[LayoutGraph] = None,
        note: Optional[str] = None,
    ) -> StepRecord:
        """Finish a step and record its duration and moved count."""
        started = self._started.pop(name, time.perf_counter())
        duration_ms = (time.perf_counter() - started) * 1000
        moved = None
        before = self._before.pop(name, None)
        if before is not None and graph is not None:
            moved = before.moved_count(PositionSnapshot.take(graph))
        record = StepRecord(name=name, duration_ms=round(duration_ms, 3), moved_count=moved, note=note)
        self.steps.append(record)
        details = f", moved {moved}" if moved is not None else ""
        details += f" ({note})" if note else ""
        logger.log(self._level, f"[{self.diagram_id}] {name}: {duration_ms:.1f}ms{details}")
        return record

    def note(self, message: str) -> None:
        """Record a soft failure or noteworthy decision."""
        self.notes.append(message)
        logger.log(self._level, f"[{self.diagram_id}] {message}")

    def summary(self) -> str:
        total = sum(step.duration_ms for step in self.steps)
        parts = ", ".join(f"{s.name}={s.duration_ms:.1f}ms" for s in self.steps)
        return f"layout {self.diagram_id}: {total:.1f}ms total ({parts})"
