"""Pool/Lane Geometry Resolver.

Sizes lanes to their content, pools to their lanes, stacks pools and grows
expanded subprocesses around their children.

Lane banding:
    Lanes of a pool are laid out top to bottom in declaration order. The
    content of each lane (its first-wins members) is measured with a
    per-element half-height of at least LANE_ELEMENT_HEIGHT / 2, so
    multi-row content uses its real Y-span. The content is shifted to sit
    LANE_VERTICAL_MARGIN below the lane top and the lane height becomes
    max(LANE_MIN_HEIGHT, span + 2 * LANE_VERTICAL_MARGIN). Lanes without
    members keep their height.

Pools:
    A pool's height is the sum of its lanes (or its own content plus the
    vertical margin); its width grows to enclose content plus
    POOL_SIDE_MARGIN. Expanded pools are stacked in declaration order,
    collapsed pools below them, all left-aligned at a common width.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..models.layout_graph import LayoutGraph, LayoutNode, NodeKind
from ..models.layout_result import ContainerSizingIssue
from .constants import (
    CONTAINER_PADDING,
    LANE_ELEMENT_HEIGHT,
    LANE_HEADER_WIDTH,
    LANE_MIN_HEIGHT,
    LANE_VERTICAL_MARGIN,
    POOL_GAP,
    POOL_HEADER_WIDTH,
    POOL_SIDE_MARGIN,
)
from .logger import LayoutLogger

logger = logging.getLogger(__name__)


def _sized_members(graph: LayoutGraph, container_id: str) -> List[LayoutNode]:
    """Members that take vertical room (boundary events ride on their host)."""
    return [n for n in graph.container_members(container_id) if n.kind != NodeKind.BOUNDARY_EVENT]


def lane_min_height(element_count: int) -> float:
    """Minimum lane height for a given number of assigned elements."""
    return max(LANE_MIN_HEIGHT, element_count * LANE_ELEMENT_HEIGHT + 2 * LANE_VERTICAL_MARGIN)


def detect_container_sizing_issues(graph: LayoutGraph) -> List[ContainerSizingIssue]:
    """Report lanes too small for the number of elements assigned to them.

    Each assigned flow element gets LANE_ELEMENT_HEIGHT pixels
    of height plus a top and bottom margin. Lanes with no members after
    first-wins deduplication are skipped.

    Returns:
        One issue per lane whose current height is below its minimum
    """
    issues: List[ContainerSizingIssue] = []
    for lane in graph.nodes_of_kind(NodeKind.LANE):
        count = len([n for n in _sized_members(graph, lane.id) if n.kind.is_flow_node])
        if count == 0:
            continue
        min_height = lane_min_height(count)
        if lane.height < min_height:
            issues.append(
                ContainerSizingIssue(
                    container_id=lane.id,
                    participant_id=graph.participant_of(lane.id),
                    element_count=count,
                    current_height=lane.height,
                    min_height=min_height,
                )
            )
            logger.debug(f"Lane {lane.id} holds {count} elements in {lane.height}px, needs {min_height}px")
    return issues


def _vertical_span(nodes: List[LayoutNode]) -> Tuple[float, float]:
    half_height = LANE_ELEMENT_HEIGHT / 2
    top = min(n.cy - max(n.height / 2, half_height) for n in nodes)
    bottom = max(n.cy + max(n.height / 2, half_height) for n in nodes)
    return top, bottom


class PoolGeometryResolver:
    """Applies lane banding, pool sizing and pool stacking."""

    def __init__(self, graph: LayoutGraph, layout_logger: Optional[LayoutLogger] = None):
        self.graph = graph
        self.layout_logger = layout_logger

    def run(self) -> bool:
        """Resolve geometry for every participant.

        Returns:
            True if any participant was processed
        """
        participants = self.graph.participants()
        if not participants:
            return False
        if self.layout_logger:
            for element_id, owner, rejected in self.graph.lane_conflicts:
                self.layout_logger.note(f"lane dedup: {element_id} sized in {owner}, not {rejected}")
        for participant in participants:
            if participant.expanded:
                self.band_lanes(participant)
                self.fit_width(participant)
        self.stack_pools(participants)
        return True

    def band_lanes(self, participant: LayoutNode) -> None:
        graph = self.graph
        lanes = graph.lanes_of(participant.id)
        if not lanes:
            self._fit_unlaned(participant)
            return

        cur_y = participant.y
        for lane in lanes:
            members = _sized_members(graph, lane.id)
            if members:
                top, bottom = _vertical_span(members)
                dy = cur_y + LANE_VERTICAL_MARGIN - top
                for member in members:
                    graph.move_node(member.id, 0, dy)
                height = max(LANE_MIN_HEIGHT, bottom - top + 2 * LANE_VERTICAL_MARGIN)
            else:
                height = lane.height if lane.height > 0 else LANE_MIN_HEIGHT
            lane.y = cur_y
            lane.height = height
            cur_y += height
        participant.height = cur_y - participant.y
        logger.debug(f"Banded {len(lanes)} lanes of {participant.id}, pool height {participant.height}")

    def _fit_unlaned(self, participant: LayoutNode) -> None:
        graph = self.graph
        members = _sized_members(graph, participant.id)
        if not members:
            return
        top, bottom = _vertical_span(members)
        if top < participant.y + LANE_VERTICAL_MARGIN:
            dy = participant.y + LANE_VERTICAL_MARGIN - top
            for member in members:
                graph.move_node(member.id, 0, dy)
            bottom += dy
        participant.height = max(participant.height, bottom + LANE_VERTICAL_MARGIN - participant.y)

    def fit_width(self, participant: LayoutNode) -> None:
        """Grow the pool horizontally around its content."""
        graph = self.graph
        content = [
            n for n in (graph.nodes[d] for d in graph.tree.descendants(participant.id))
            if n.kind != NodeKind.LANE
        ]
        bounds = graph.content_bounds(n.id for n in content)
        if bounds is None:
            return
        min_x, _, max_x, _ = bounds
        lane_header = LANE_HEADER_WIDTH if graph.lanes_of(participant.id) else 0
        left_limit = min_x - POOL_SIDE_MARGIN - lane_header - POOL_HEADER_WIDTH
        if left_limit < participant.x:
            participant.width += participant.x - left_limit
            participant.x = left_limit
        participant.width = max(participant.width, max_x + POOL_SIDE_MARGIN - participant.x)

    def stack_pools(self, participants: List[LayoutNode]) -> None:
        """Stack pools top to bottom, expanded first, at a common width."""
        graph = self.graph
        ordered = [p for p in participants if p.expanded] + [p for p in participants if not p.expanded]
        left = min(p.x for p in ordered)
        width = max(p.width for p in ordered)
        y = min(p.y for p in ordered)
        for participant in ordered:
            graph.move_node(participant.id, left - participant.x, y - participant.y)
            participant.width = width
            for lane in graph.lanes_of(participant.id):
                lane.x = participant.x + POOL_HEADER_WIDTH
                lane.width = participant.width - POOL_HEADER_WIDTH
            y = participant.bottom + POOL_GAP


def resolve_pool_lane_geometry(graph: LayoutGraph, layout_logger: Optional[LayoutLogger] = None) -> bool:
    """Convenience wrapper around PoolGeometryResolver."""
    return PoolGeometryResolver(graph, layout_logger).run()


def fit_subprocesses(graph: LayoutGraph) -> int:
    """Grow expanded subprocesses to enclose their children, innermost first.

    Subprocesses are never shrunk. Boundary events on a grown subprocess
    follow its bottom border.

    Returns:
        Number of subprocesses that were grown
    """
    top, left, bottom, right = CONTAINER_PADDING
    grown = 0
    for node_id in graph.tree.post_order():
        node = graph.nodes[node_id]
        if node.kind != NodeKind.SUB_PROCESS or not node.expanded:
            continue
        bounds = graph.content_bounds(graph.tree.children_of(node_id))
        if bounds is None:
            continue
        min_x, min_y, max_x, max_y = bounds
        new_x = min(node.x, min_x - left)
        new_y = min(node.y, min_y - top)
        new_right = max(node.right, max_x + right)
        new_bottom = max(node.bottom, max_y + bottom)
        if (new_x, new_y, new_right, new_bottom) == (node.x, node.y, node.right, node.bottom):
            continue

        bottom_shift = new_bottom - node.bottom
        node.x, node.y = new_x, new_y
        node.width, node.height = new_right - new_x, new_bottom - new_y
        for event in graph.boundary_events_of(node_id):
            event.y += bottom_shift
        grown += 1
        logger.debug(f"Grew subprocess {node_id} to {node.width}x{node.height}")
    return grown


def container_violations(graph: LayoutGraph, tolerance: float = 1.0) -> Dict[str, List[str]]:
    """Container ID -> IDs of children sticking out of it.

    Boundary events are excluded since they straddle their host's border.
    """
    violations: Dict[str, List[str]] = {}
    for container in graph.nodes_of_kind(NodeKind.PARTICIPANT, NodeKind.LANE, NodeKind.SUB_PROCESS):
        if not container.expanded:
            continue
        for child_id in graph.tree.children_of(container.id):
            child = graph.nodes[child_id]
            if child.kind == NodeKind.BOUNDARY_EVENT:
                continue
            if (
                child.x < container.x - tolerance
                or child.y < container.y - tolerance
                or child.right > container.right + tolerance
                or child.bottom > container.bottom + tolerance
            ):
                violations.setdefault(container.id, []).append(child_id)
    return violations
