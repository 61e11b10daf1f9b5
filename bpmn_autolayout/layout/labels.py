"""Label Declutter.

External labels are first re-anchored to their owner's final geometry
(element labels below the shape, flow labels above the route midpoint),
then decluttered in two passes: element labels, then flow labels. A label
overlapping a shape or another label is moved to the first free candidate
position around its anchor. When every candidate is taken the label stays
where it is; this never raises.
"""

import logging
from typing import List, Optional, Tuple

from ..models.layout_graph import LayoutGraph, LayoutLabel, LayoutNode, NodeKind
from .constants import ELEMENT_LABEL_BOTTOM_EXTRA, ELEMENT_LABEL_DISTANCE, FLOW_LABEL_INDENT
from .geometry import Point, Rect, polyline_midpoint, rects_overlap
from .logger import LayoutLogger

logger = logging.getLogger(__name__)


def _element_gap(node: LayoutNode) -> float:
    if node.kind == NodeKind.BOUNDARY_EVENT:
        return ELEMENT_LABEL_DISTANCE + ELEMENT_LABEL_BOTTOM_EXTRA
    return ELEMENT_LABEL_DISTANCE


def anchor_labels(graph: LayoutGraph) -> None:
    """Put every label at its default spot relative to its owner."""
    for label in graph.labels.values():
        if label.kind == "element":
            node = graph.nodes[label.owner_id]
            label.x = node.cx - label.width / 2
            label.y = node.bottom + _element_gap(node)
        else:
            points = graph.edges[label.owner_id].waypoints
            if not points:
                continue
            mx, my = polyline_midpoint(points)
            label.x = mx - label.width / 2
            label.y = my - FLOW_LABEL_INDENT - label.height


def element_candidates(node: LayoutNode, label: LayoutLabel) -> List[Point]:
    """Candidate top-left corners around a shape, in preference order."""
    w, h = label.width, label.height
    gap = _element_gap(node)
    below = (node.cx - w / 2, node.bottom + gap)
    above = (node.cx - w / 2, node.y - gap - h)
    left = (node.x - gap - w, node.cy - h / 2)
    right = (node.right + gap, node.cy - h / 2)
    diagonals = [
        (node.right + gap, node.bottom + gap),
        (node.x - gap - w, node.bottom + gap),
        (node.right + gap, node.y - gap - h),
        (node.x - gap - w, node.y - gap - h),
    ]
    first = [below, above] if node.kind.is_event else [above, below]
    return first + [left, right] + diagonals


def flow_candidates(midpoint: Point, label: LayoutLabel) -> List[Point]:
    """Candidate top-left corners around a route midpoint, in preference order."""
    mx, my = midpoint
    w, h = label.width, label.height
    far = 3 * FLOW_LABEL_INDENT
    return [
        (mx - w / 2, my - FLOW_LABEL_INDENT - h),
        (mx - w / 2, my + FLOW_LABEL_INDENT),
        (mx + FLOW_LABEL_INDENT, my - h / 2),
        (mx - FLOW_LABEL_INDENT - w, my - h / 2),
        (mx - w / 2, my - far - h),
        (mx - w / 2, my + far),
    ]


class LabelDeclutterer:
    """Moves overlapping labels to free candidate positions."""

    def __init__(self, graph: LayoutGraph, layout_logger: Optional[LayoutLogger] = None):
        self.graph = graph
        self.layout_logger = layout_logger
        self._shapes: List[Rect] = [
            n.rect for n in graph.nodes.values()
            if n.kind not in (NodeKind.PARTICIPANT, NodeKind.LANE, NodeKind.GROUP)
            and not (n.kind == NodeKind.SUB_PROCESS and n.expanded)
        ]

    def is_free(self, label: LayoutLabel, rect: Rect) -> bool:
        if any(rects_overlap(rect, shape) for shape in self._shapes):
            return False
        return not any(
            rects_overlap(rect, other.rect)
            for other in self.graph.labels.values()
            if other is not label
        )

    def _relocate(self, label: LayoutLabel, candidates: List[Point]) -> bool:
        for x, y in candidates:
            if (x, y) == (label.x, label.y):
                continue
            if self.is_free(label, (x, y, label.width, label.height)):
                label.x, label.y = x, y
                return True
        message = f"no free position for label of {label.owner_id}"
        logger.warning(message)
        if self.layout_logger:
            self.layout_logger.note(message)
        return False

    def run(self) -> int:
        """Declutter element labels, then flow labels.

        Returns:
            Number of labels moved
        """
        moved = 0
        for kind in ("element", "flow"):
            for label in [lbl for lbl in self.graph.labels.values() if lbl.kind == kind]:
                if self.is_free(label, label.rect):
                    continue
                if kind == "element":
                    candidates = element_candidates(self.graph.nodes[label.owner_id], label)
                else:
                    points = self.graph.edges[label.owner_id].waypoints
                    if not points:
                        continue
                    candidates = flow_candidates(polyline_midpoint(points), label)
                if self._relocate(label, candidates):
                    moved += 1
        return moved


def declutter_labels(graph: LayoutGraph, layout_logger: Optional[LayoutLogger] = None) -> int:
    """Convenience wrapper around LabelDeclutterer."""
    return LabelDeclutterer(graph, layout_logger).run()


def overlapping_labels(graph: LayoutGraph) -> List[Tuple[str, str]]:
    """Pairs of label owners whose labels overlap each other."""
    labels = list(graph.labels.values())
    return [
        (a.owner_id, b.owner_id)
        for i, a in enumerate(labels)
        for b in labels[i + 1:]
        if rects_overlap(a.rect, b.rect)
    ]
