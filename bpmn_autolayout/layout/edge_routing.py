"""Edge Router & Lane Clamp.

Replaces the solver's provisional waypoints with BPMN-specific orthogonal
routes once every node has its final position.

Routing rules by edge kind:
    - association: 2 points, the straight centre line clipped to both shapes
    - message flow: vertical between pools, straight when the shapes share
      an x-range, otherwise a Z through the gap between the pools
    - sequence flow:
        * self loop: around the node's right and bottom sides
        * from a boundary event: down from the event, then across
        * backward (target entirely left of the source): below the
          content between the two nodes; cross-lane loop-backs pass
          below the pool
        * off-path from a split gateway: L-bend out of the gateway's bottom
          (U-turn below when the target shares the gateway's row)
        * into a merge gateway from another row: across, then into the
          gateway's bottom or top corner
        * same row: 2 points, detouring below nodes in the way
        * otherwise: Z through the horizontal midpoint

Intra-lane sequence flows have every waypoint clamped to the lane band
(plus LANE_CLAMP_TOLERANCE); cross-lane flows are left alone.
"""

import logging
from typing import List, Optional, Tuple

from ..models.layout_graph import (
    BranchClassification,
    EdgeKind,
    LayoutEdge,
    LayoutGraph,
    LayoutNode,
    NodeKind,
)
from ..models.layout_result import LaneCrossingMetrics
from .constants import (
    DETOUR_MARGIN,
    LANE_CLAMP_TOLERANCE,
    LOOPBACK_BELOW_MARGIN,
    SAME_ROW_TOLERANCE,
    SELF_LOOP_MARGIN,
)
from .geometry import (
    Point,
    clip_to_boundary,
    rect_centre,
    segment_intersects_rect,
    simplify_polyline,
    snap,
)

logger = logging.getLogger(__name__)


def same_row(a: LayoutNode, b: LayoutNode) -> bool:
    return abs(a.cy - b.cy) <= SAME_ROW_TOLERANCE


class EdgeRouter:
    """Computes final waypoints for every edge of a positioned layout graph."""

    def __init__(self, graph: LayoutGraph, classification: Optional[BranchClassification] = None):
        self.graph = graph
        self.classification = classification or BranchClassification()
        self._off_path = self.classification.off_path_edge_ids

    def route_all(self) -> int:
        """Route every edge in place.

        Returns:
            Number of edges routed
        """
        for edge in self.graph.edges.values():
            edge.waypoints = self.route(edge)
        return len(self.graph.edges)

    def route(self, edge: LayoutEdge) -> List[Point]:
        source = self.graph.nodes[edge.source_id]
        target = self.graph.nodes[edge.target_id]
        if edge.kind == EdgeKind.ASSOCIATION:
            return self.route_association(source, target)
        if edge.kind == EdgeKind.MESSAGE_FLOW:
            points = self.route_message_flow(source, target)
        else:
            points = self.route_sequence_flow(edge, source, target)
        simplified = simplify_polyline(points)
        if len(simplified) < 2:
            return [points[0], points[-1]]
        return simplified

    # ------------------------------------------------------------------
    # Associations and message flows
    # ------------------------------------------------------------------

    def route_association(self, source: LayoutNode, target: LayoutNode) -> List[Point]:
        start = clip_to_boundary(source.rect, rect_centre(target.rect))
        end = clip_to_boundary(target.rect, rect_centre(source.rect))
        return [start, end]

    def _pool_rect(self, node: LayoutNode) -> LayoutNode:
        if node.kind == NodeKind.PARTICIPANT:
            return node
        participant_id = self.graph.participant_of(node.id)
        return self.graph.nodes[participant_id] if participant_id else node

    def route_message_flow(self, source: LayoutNode, target: LayoutNode) -> List[Point]:
        if source.bottom <= target.y:
            start_y, end_y = source.bottom, target.y
            gap = (self._pool_rect(source).bottom + self._pool_rect(target).y) / 2
        elif target.bottom <= source.y:
            start_y, end_y = source.y, target.bottom
            gap = (self._pool_rect(target).bottom + self._pool_rect(source).y) / 2
        else:
            # Side by side: horizontal Z
            if source.cx <= target.cx:
                start_x, end_x = source.right, target.x
            else:
                start_x, end_x = source.x, target.right
            mid_x = (start_x + end_x) / 2
            return [(start_x, source.cy), (mid_x, source.cy), (mid_x, target.cy), (end_x, target.cy)]

        overlap_left = max(source.x, target.x)
        overlap_right = min(source.right, target.right)
        if overlap_right - overlap_left > 0:
            x = (overlap_left + overlap_right) / 2
            return [(x, start_y), (x, end_y)]
        lo, hi = sorted((start_y, end_y))
        if not lo < gap < hi:
            gap = (start_y + end_y) / 2
        return [(source.cx, start_y), (source.cx, gap), (target.cx, gap), (target.cx, end_y)]

    # ------------------------------------------------------------------
    # Sequence flows
    # ------------------------------------------------------------------

    def route_sequence_flow(self, edge: LayoutEdge, source: LayoutNode, target: LayoutNode) -> List[Point]:
        if source.id == target.id:
            return self.route_self_loop(source)
        if source.kind == NodeKind.BOUNDARY_EVENT:
            return self.route_from_boundary(source, target)
        if target.right <= source.x:
            return self.route_backward(source, target)
        if edge.id in self._off_path and source.kind.is_gateway:
            return self.route_off_path(source, target)
        if target.kind.is_gateway and not same_row(source, target) and len(self.graph.incoming(target.id)) > 1:
            if source.right < target.cx:
                return self.route_into_merge(source, target)
        if same_row(source, target) and target.x > source.right:
            return self.route_same_row(source, target)
        return self.route_forward(source, target)

    def route_self_loop(self, node: LayoutNode) -> List[Point]:
        out_x = node.right + SELF_LOOP_MARGIN
        below_y = node.bottom + SELF_LOOP_MARGIN
        return [
            (node.right, node.cy),
            (out_x, node.cy),
            (out_x, below_y),
            (node.cx, below_y),
            (node.cx, node.bottom),
        ]

    def route_from_boundary(self, event: LayoutNode, target: LayoutNode) -> List[Point]:
        start = (event.cx, event.bottom)
        if target.y > event.bottom and target.x <= event.cx <= target.right:
            return [start, (event.cx, target.y)]
        if target.cy > event.bottom:
            end_x = target.x if target.x > event.cx else target.right
            return [start, (event.cx, target.cy), (end_x, target.cy)]
        turn_y = event.bottom + SELF_LOOP_MARGIN
        return [start, (event.cx, turn_y), (target.cx, turn_y), (target.cx, target.bottom)]

    def route_off_path(self, gateway: LayoutNode, target: LayoutNode) -> List[Point]:
        if same_row(gateway, target):
            below_y = max(gateway.bottom, target.bottom) + DETOUR_MARGIN
            return [
                (gateway.cx, gateway.bottom),
                (gateway.cx, below_y),
                (target.cx, below_y),
                (target.cx, target.bottom),
            ]
        below = target.cy > gateway.cy
        start = (gateway.cx, gateway.bottom if below else gateway.y)
        if target.x > gateway.cx:
            return [start, (gateway.cx, target.cy), (target.x, target.cy)]
        # Target straddles the gateway's column: enter it vertically
        end_y = target.y if below else target.bottom
        mid_y = (start[1] + end_y) / 2
        return [start, (gateway.cx, mid_y), (target.cx, mid_y), (target.cx, end_y)]

    def route_into_merge(self, source: LayoutNode, gateway: LayoutNode) -> List[Point]:
        end_y = gateway.bottom if source.cy > gateway.cy else gateway.y
        return [(source.right, source.cy), (gateway.cx, source.cy), (gateway.cx, end_y)]

    def _obstructions(self, points: List[Point], *exclude: str) -> List[LayoutNode]:
        skip = set(exclude)
        for node_id in exclude:
            skip.update(self.graph.tree.ancestors(node_id))
        hits = []
        for node in self.graph.nodes.values():
            if node.id in skip or not node.kind.is_flow_node or node.kind == NodeKind.BOUNDARY_EVENT:
                continue
            if node.kind == NodeKind.SUB_PROCESS and node.expanded:
                continue
            if any(segment_intersects_rect(a, b, node.rect) for a, b in zip(points, points[1:])):
                hits.append(node)
        return hits

    def route_same_row(self, source: LayoutNode, target: LayoutNode) -> List[Point]:
        straight = [(source.right, source.cy), (target.x, source.cy)]
        blocking = self._obstructions(straight, source.id, target.id)
        if not blocking:
            return straight
        below_y = max([n.bottom for n in blocking] + [source.bottom, target.bottom]) + DETOUR_MARGIN
        return [
            (source.cx, source.bottom),
            (source.cx, below_y),
            (target.cx, below_y),
            (target.cx, target.bottom),
        ]

    def route_forward(self, source: LayoutNode, target: LayoutNode) -> List[Point]:
        if target.x > source.right:
            mid_x = (source.right + target.x) / 2
            return [(source.right, source.cy), (mid_x, source.cy), (mid_x, target.cy), (target.x, target.cy)]
        # Overlapping columns: leave vertically
        if target.y >= source.bottom:
            start, end = (source.cx, source.bottom), (target.cx, target.y)
        elif target.bottom <= source.y:
            start, end = (source.cx, source.y), (target.cx, target.bottom)
        else:
            return [(source.right, source.cy), (target.x, target.cy)]
        mid_y = (start[1] + end[1]) / 2
        return [start, (start[0], mid_y), (end[0], mid_y), end]

    def route_backward(self, source: LayoutNode, target: LayoutNode) -> List[Point]:
        graph = self.graph
        source_lane = graph.lane_of(source.id)
        target_lane = graph.lane_of(target.id)
        participant_id = graph.participant_of(source.id)

        if source_lane and target_lane and source_lane != target_lane and participant_id:
            below_y = graph.nodes[participant_id].bottom + LOOPBACK_BELOW_MARGIN
        else:
            container = graph.flow_container(source.id)
            left, right = target.x, source.right
            bottoms = [source.bottom, target.bottom]
            for node in graph.container_members(container):
                if not node.kind.is_flow_node or node.kind == NodeKind.BOUNDARY_EVENT:
                    continue
                if node.right > left and node.x < right:
                    bottoms.append(node.bottom)
            below_y = max(bottoms) + LOOPBACK_BELOW_MARGIN

        return [
            (source.cx, source.bottom),
            (source.cx, below_y),
            (target.cx, below_y),
            (target.cx, target.bottom),
        ]


def route_edges(graph: LayoutGraph, classification: Optional[BranchClassification] = None) -> int:
    """Route every edge of the graph; returns the number of edges routed."""
    return EdgeRouter(graph, classification).route_all()


def edge_lane(graph: LayoutGraph, edge: LayoutEdge) -> Optional[str]:
    """Lane holding both ends of a sequence flow, or None for cross-lane flows."""
    if edge.kind != EdgeKind.SEQUENCE_FLOW:
        return None
    source_lane = graph.lane_of(edge.source_id)
    if source_lane is None or source_lane != graph.lane_of(edge.target_id):
        return None
    return source_lane


def clamp_to_lanes(graph: LayoutGraph) -> int:
    """Clamp intra-lane sequence flows to their lane band.

    Returns:
        Number of edges whose waypoints changed
    """
    clamped = 0
    for edge in graph.edges.values():
        lane_id = edge_lane(graph, edge)
        if lane_id is None:
            continue
        lane = graph.nodes[lane_id]
        low = lane.y - LANE_CLAMP_TOLERANCE
        high = lane.bottom + LANE_CLAMP_TOLERANCE
        points = [(x, min(max(y, low), high)) for x, y in edge.waypoints]
        if points != edge.waypoints:
            edge.waypoints = points
            clamped += 1
    if clamped:
        logger.debug(f"Clamped {clamped} intra-lane flows to their lanes")
    return clamped


def snap_waypoints(graph: LayoutGraph, grid: float) -> None:
    """Round bend points to the grid, keeping docking points and orthogonality.

    A bend coordinate shared with an adjacent docking point stays put so
    the segment to that docking point remains straight.
    """
    for edge in graph.edges.values():
        points = edge.waypoints
        if len(points) < 3:
            continue
        last = len(points) - 1
        snapped = [points[0]]
        for i in range(1, last):
            x, y = points[i]
            docking = [points[j] for j in (i - 1, i + 1) if j in (0, last)]
            new_x = x if any(abs(p[0] - x) < 1e-9 for p in docking) else snap(x, grid)
            new_y = y if any(abs(p[1] - y) < 1e-9 for p in docking) else snap(y, grid)
            snapped.append((new_x, new_y))
        snapped.append(points[-1])
        edge.waypoints = snapped


def lane_crossing_metrics(graph: LayoutGraph) -> Optional[LaneCrossingMetrics]:
    """Share of lane-assigned sequence flows that stay in one lane.

    Returns:
        Metrics, or None when the diagram has no lanes
    """
    if not graph.nodes_of_kind(NodeKind.LANE):
        return None
    total = 0
    crossing: List[str] = []
    for edge in graph.edges_of_kind(EdgeKind.SEQUENCE_FLOW):
        source_lane = graph.lane_of(edge.source_id)
        target_lane = graph.lane_of(edge.target_id)
        if source_lane is None or target_lane is None:
            continue
        total += 1
        if source_lane != target_lane:
            crossing.append(edge.id)
    score = 100.0 if total == 0 else round(100.0 * (total - len(crossing)) / total, 1)
    return LaneCrossingMetrics(
        total_lane_flows=total,
        crossing_lane_flows=len(crossing),
        crossing_flow_ids=crossing,
        lane_coherence_score=score,
    )


def waypoints_on_boundary(
    points: List[Point],
    source: LayoutNode,
    target: LayoutNode,
    tolerance: float = 1.0,
) -> Tuple[bool, bool]:
    """Whether the first/last waypoint lies on the source/target outline."""

    def on_outline(point: Point, node: LayoutNode) -> bool:
        x, y = point
        inside_x = node.x - tolerance <= x <= node.right + tolerance
        inside_y = node.y - tolerance <= y <= node.bottom + tolerance
        on_vertical = min(abs(x - node.x), abs(x - node.right)) <= tolerance and inside_y
        on_horizontal = min(abs(y - node.y), abs(y - node.bottom)) <= tolerance and inside_x
        return on_vertical or on_horizontal

    return on_outline(points[0], source), on_outline(points[-1], target)
