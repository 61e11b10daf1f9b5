"""Tests for edge routing, lane clamping and waypoint snapping."""

import pytest

from bpmn_autolayout.layout.constants import LANE_CLAMP_TOLERANCE, LOOPBACK_BELOW_MARGIN
from bpmn_autolayout.layout.edge_routing import (
    EdgeRouter,
    clamp_to_lanes,
    edge_lane,
    lane_crossing_metrics,
    route_edges,
    snap_waypoints,
    waypoints_on_boundary,
)
from bpmn_autolayout.layout.graph_builder import build_layout_graph
from bpmn_autolayout.layout.happy_path import classify_branches
from bpmn_autolayout.layout.pipeline import layout_diagram
from bpmn_autolayout.models.bpmn import BpmnDiagram
from bpmn_autolayout.models.layout_graph import EdgeKind, LayoutEdge
from tests.fixtures.diagrams import (
    artifact_diagram,
    collaboration_diagram,
    gateway_diagram,
    lane_loop_diagram,
    lanes_diagram,
)


def _tasks(*placements):
    """Diagram with one task per (id, x, y) placement."""
    diagram = BpmnDiagram("placed")
    for task_id, x, y in placements:
        diagram.add_shape("bpmn:Task", task_id, bounds=(x, y, 100, 80))
    return diagram


def _route(diagram, edge_id):
    graph = build_layout_graph(diagram)
    router = EdgeRouter(graph, classify_branches(graph))
    return router.route(graph.edges[edge_id])


def _orthogonal(points):
    return all(a[0] == b[0] or a[1] == b[1] for a, b in zip(points, points[1:]))


def _edge(edge_id, source, target):
    return LayoutEdge(id=edge_id, kind=EdgeKind.SEQUENCE_FLOW, source_id=source, target_id=target)


# ============================================================================
# Sequence flows
# ============================================================================

class TestSequenceFlowRouting:
    """Test sequence flow routing rules."""

    def test_same_row_straight(self):
        """Same-row neighbours are joined by a straight line."""
        diagram = _tasks(("A", 0, 0), ("B", 200, 0))
        diagram.connect("A", "B", "F")
        assert _route(diagram, "F") == [(100, 40), (200, 40)]

    def test_same_row_detour(self):
        """A node in the way forces a detour below it."""
        diagram = _tasks(("A", 0, 0), ("B", 150, 0), ("C", 300, 0))
        diagram.connect("A", "C", "F")
        assert _route(diagram, "F") == [(50, 80), (50, 100), (350, 100), (350, 80)]

    def test_forward_z(self):
        """Forward flows between rows bend at the horizontal midpoint."""
        diagram = _tasks(("A", 0, 0), ("B", 200, 200))
        diagram.connect("A", "B", "F")
        assert _route(diagram, "F") == [(100, 40), (150, 40), (150, 240), (200, 240)]

    def test_backward_loops_below(self):
        """Backward flows go below the nodes they span."""
        diagram = _tasks(("A", 300, 0), ("B", 0, 0), ("Low", 150, 50))
        diagram.connect("A", "B", "F")
        points = _route(diagram, "F")

        below = 50 + 80 + LOOPBACK_BELOW_MARGIN
        assert points == [(350, 80), (350, below), (50, below), (50, 80)]

    def test_self_loop(self):
        """A flow to its own source loops around the right and bottom."""
        diagram = _tasks(("A", 0, 0))
        diagram.connect("A", "A", "F")
        points = _route(diagram, "F")

        assert len(points) == 5
        assert points[0] == (100, 40)
        assert points[-1] == (50, 80)
        assert _orthogonal(points)

    def test_off_path_l_bend(self):
        """Off-path flows leave the gateway's bottom and turn into the target."""
        diagram = BpmnDiagram("off_path")
        diagram.add_shape("bpmn:ExclusiveGateway", "G", bounds=(0, 15, 50, 50))
        diagram.add_shape("bpmn:Task", "On", bounds=(150, 0, 100, 80))
        diagram.add_shape("bpmn:Task", "Off", bounds=(150, 130, 100, 80))
        diagram.connect("G", "On", "F_on", condition="${ok}")
        diagram.connect("G", "Off", "F_off")

        assert _route(diagram, "F_off") == [(25, 65), (25, 170), (150, 170)]
        assert _route(diagram, "F_on") == [(50, 40), (150, 40)]

    def test_into_merge_from_below(self):
        """A flow from a lower row enters the merge gateway's bottom corner."""
        diagram = BpmnDiagram("merge")
        diagram.add_shape("bpmn:Task", "Top", bounds=(0, 0, 100, 80))
        diagram.add_shape("bpmn:Task", "Bottom", bounds=(0, 130, 100, 80))
        diagram.add_shape("bpmn:ExclusiveGateway", "M", bounds=(200, 15, 50, 50))
        diagram.connect("Top", "M", "F_top")
        diagram.connect("Bottom", "M", "F_bottom")

        assert _route(diagram, "F_bottom") == [(100, 170), (225, 170), (225, 65)]

    def test_from_boundary_straight_down(self):
        """A boundary flow to a node right below it is a vertical line."""
        diagram = _tasks(("Host", 0, 0), ("Handler", 0, 160))
        diagram.add_boundary_event("B", "Host")
        diagram.connect("B", "Handler", "F")
        graph = build_layout_graph(diagram)
        graph.nodes["B"].x, graph.nodes["B"].y = 32, 62
        points = EdgeRouter(graph).route(graph.edges["F"])

        assert points == [(50, 98), (50, 160)]


# ============================================================================
# Other edge kinds
# ============================================================================

class TestOtherEdgeKinds:
    """Test associations and message flows."""

    @pytest.mark.asyncio
    async def test_associations_have_two_points(self):
        """Associations are straight, clipped to both shapes."""
        diagram = artifact_diagram()
        await layout_diagram(diagram)

        for flow_id in ("Assoc_note", "Assoc_report"):
            points = diagram.get(flow_id).waypoints
            assert len(points) == 2

        graph = build_layout_graph(diagram)
        note = diagram.get("Assoc_note").waypoints
        start_ok, end_ok = waypoints_on_boundary(note, graph.nodes["Write"], graph.nodes["Note"])
        assert start_ok and end_ok

    @pytest.mark.asyncio
    async def test_message_flows_are_vertical_between_pools(self):
        """Message flows run vertically through the gap between pools."""
        diagram = collaboration_diagram()
        await layout_diagram(diagram)

        order = diagram.get("Msg_order").waypoints
        customer = diagram.get("Customer").bounds
        supplier = diagram.get("Supplier").bounds
        sender = diagram.get("C_Order").bounds

        assert _orthogonal(order)
        assert order[0][1] == pytest.approx(sender.y + sender.height)
        assert order[-1][1] == pytest.approx(diagram.get("S_Start").bounds.y)
        horizontal = [a for a, b in zip(order, order[1:]) if a[1] == b[1]]
        for x, y in horizontal:
            assert customer.y + customer.height < y < supplier.y

    def test_message_flow_straight_when_aligned(self):
        """Shapes sharing an x-range get a single vertical segment."""
        diagram = _tasks(("A", 0, 0), ("B", 20, 300))
        diagram.connect("A", "B", "M", element_type="bpmn:MessageFlow")
        assert _route(diagram, "M") == [(60, 80), (60, 300)]


# ============================================================================
# Lanes
# ============================================================================

class TestLaneClamp:
    """Test intra-lane clamping and lane metrics."""

    def _lane_graph(self):
        diagram = BpmnDiagram("clamp")
        diagram.add_participant("P", bounds=(0, 0, 600, 300))
        diagram.add_lane("L1", "P", ["A", "B"], bounds=(30, 0, 570, 150))
        diagram.add_lane("L2", "P", ["C"], bounds=(30, 150, 570, 150))
        diagram.add_shape("bpmn:Task", "A", parent="P", bounds=(100, 35, 100, 80))
        diagram.add_shape("bpmn:Task", "B", parent="P", bounds=(300, 35, 100, 80))
        diagram.add_shape("bpmn:Task", "C", parent="P", bounds=(300, 185, 100, 80))
        diagram.connect("A", "B", "F_in")
        diagram.connect("A", "C", "F_cross")
        return build_layout_graph(diagram)

    def test_edge_lane(self):
        """Only flows with both ends in one lane have a lane."""
        graph = self._lane_graph()
        assert edge_lane(graph, graph.edges["F_in"]) == "L1"
        assert edge_lane(graph, graph.edges["F_cross"]) is None

    def test_clamp_intra_lane_only(self):
        """Intra-lane waypoints are clamped; cross-lane ones are left alone."""
        graph = self._lane_graph()
        graph.edges["F_in"].waypoints = [(200, 75), (250, 400), (300, 75)]
        graph.edges["F_cross"].waypoints = [(150, 115), (150, 400), (300, 225)]

        assert clamp_to_lanes(graph) == 1
        assert graph.edges["F_in"].waypoints[1] == (250, 150 + LANE_CLAMP_TOLERANCE)
        assert graph.edges["F_cross"].waypoints[1] == (150, 400)

    def test_lane_crossing_metrics(self):
        """The coherence score is the share of flows staying in one lane."""
        graph = self._lane_graph()
        metrics = lane_crossing_metrics(graph)

        assert metrics.total_lane_flows == 2
        assert metrics.crossing_lane_flows == 1
        assert metrics.crossing_flow_ids == ["F_cross"]
        assert metrics.lane_coherence_score == 50.0

    def test_no_lanes_no_metrics(self):
        """Diagrams without lanes report no metrics."""
        assert lane_crossing_metrics(build_layout_graph(gateway_diagram())) is None

    @pytest.mark.asyncio
    async def test_cross_lane_loop_back_below_pool(self):
        """A loop-back between lanes passes below the whole pool."""
        diagram = lane_loop_diagram()
        await layout_diagram(diagram)

        pool = diagram.get("Pool").bounds
        points = diagram.get("Flow_rework").waypoints
        assert max(y for _, y in points) == pytest.approx(pool.y + pool.height + LOOPBACK_BELOW_MARGIN)
        assert _orthogonal(points)

    @pytest.mark.asyncio
    async def test_intra_lane_flows_stay_in_lane(self):
        """After layout, intra-lane flows stay inside their lane band."""
        diagram = lanes_diagram()
        await layout_diagram(diagram)
        graph = build_layout_graph(diagram)

        for edge in graph.edges.values():
            lane_id = edge_lane(graph, edge)
            if lane_id is None:
                continue
            lane = graph.nodes[lane_id]
            for _, y in edge.waypoints:
                assert lane.y - LANE_CLAMP_TOLERANCE <= y <= lane.bottom + LANE_CLAMP_TOLERANCE


# ============================================================================
# Whole-graph routing
# ============================================================================

class TestRouteEdges:
    """Test routing every edge of a graph."""

    def test_route_edges_docks_on_shapes(self):
        """Every sequence flow starts and ends on its shapes' outlines."""
        graph = build_layout_graph(_tasks(("A", 0, 0), ("B", 200, 0), ("C", 400, 200)))
        graph.add_edge(_edge("F1", "A", "B"))
        graph.add_edge(_edge("F2", "B", "C"))
        graph.add_edge(_edge("F3", "C", "A"))

        assert route_edges(graph) == 3
        for edge in graph.edges.values():
            source, target = graph.nodes[edge.source_id], graph.nodes[edge.target_id]
            assert waypoints_on_boundary(edge.waypoints, source, target) == (True, True)
            assert _orthogonal(edge.waypoints)

    def test_snap_keeps_docking_alignment(self):
        """Snapping moves bends to the grid but keeps docking segments straight."""
        graph = build_layout_graph(_tasks(("A", 0, 3), ("B", 207, 203)))
        graph.add_edge(_edge("F", "A", "B"))
        route_edges(graph)
        snap_waypoints(graph, 10)

        points = graph.edges["F"].waypoints
        assert points[0] == (100, 43)
        assert points[-1] == (207, 243)
        assert points[1] == (150, 43)
        assert points[2] == (150, 243)
        assert _orthogonal(points)
