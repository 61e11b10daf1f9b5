"""Tests for building the layout graph from a diagram."""

import pytest

from bpmn_autolayout.layout.errors import GraphBuildError
from bpmn_autolayout.layout.graph_builder import build_layout_graph, default_size
from bpmn_autolayout.models.bpmn import BpmnDiagram
from bpmn_autolayout.models.layout_graph import EdgeKind, NodeKind, PositionSnapshot
from tests.fixtures.diagrams import (
    artifact_diagram,
    boundary_diagram,
    collaboration_diagram,
    gateway_diagram,
    lanes_diagram,
    subprocess_diagram,
)


class TestNodeKinds:
    """Test type name resolution."""

    @pytest.mark.parametrize("type_name,kind", [
        ("bpmn:Task", NodeKind.TASK),
        ("bpmn:UserTask", NodeKind.TASK),
        ("bpmn:CallActivity", NodeKind.TASK),
        ("bpmn:SubProcess", NodeKind.SUB_PROCESS),
        ("bpmn:Transaction", NodeKind.SUB_PROCESS),
        ("bpmn:StartEvent", NodeKind.START_EVENT),
        ("bpmn:IntermediateCatchEvent", NodeKind.INTERMEDIATE_EVENT),
        ("bpmn:BoundaryEvent", NodeKind.BOUNDARY_EVENT),
        ("bpmn:ParallelGateway", NodeKind.PARALLEL_GATEWAY),
        ("bpmn:Participant", NodeKind.PARTICIPANT),
        ("bpmn:DataObjectReference", NodeKind.DATA_OBJECT),
    ])
    def test_from_bpmn_type(self, type_name, kind):
        """bpmn-moddle names map to node kinds."""
        assert NodeKind.from_bpmn_type(type_name) == kind

    def test_non_shapes_have_no_kind(self):
        """Processes and connections are not layout nodes."""
        assert NodeKind.from_bpmn_type("bpmn:Process") is None
        assert NodeKind.from_bpmn_type("bpmn:SequenceFlow") is None

    def test_default_sizes(self):
        """Shapes without DI get kind-keyed default sizes."""
        assert default_size(NodeKind.TASK) == (100, 80)
        assert default_size(NodeKind.START_EVENT) == (36, 36)
        assert default_size(NodeKind.PARALLEL_GATEWAY) == (50, 50)
        assert default_size(NodeKind.SUB_PROCESS, expanded=False) == (100, 80)


class TestGraphBuilder:
    """Test GraphBuilder output."""

    def test_nodes_and_edges(self):
        """Every shape becomes a node, every connection an edge."""
        graph = build_layout_graph(gateway_diagram())

        assert list(graph.nodes) == ["Start", "Gateway", "TaskA", "TaskB", "Merge", "End"]
        assert len(graph.edges) == 6
        assert graph.nodes["Gateway"].kind == NodeKind.EXCLUSIVE_GATEWAY
        assert graph.nodes["TaskA"].width == 100

    def test_default_and_condition_flags(self):
        """Default flows and conditions are carried onto edges."""
        graph = build_layout_graph(gateway_diagram())
        assert graph.edges["Flow_default"].is_default
        assert not graph.edges["Flow_default"].has_condition
        assert graph.edges["Flow_valid"].has_condition
        assert not graph.edges["Flow_valid"].is_default

    def test_existing_bounds_are_kept(self):
        """DI bounds on the input are the node's starting geometry."""
        diagram = BpmnDiagram("sized")
        diagram.add_shape("bpmn:Task", "T", bounds=(5, 6, 120, 90))
        node = build_layout_graph(diagram).nodes["T"]
        assert (node.x, node.y, node.width, node.height) == (5, 6, 120, 90)

    def test_lane_containment(self):
        """Lane members are children of their lane, lanes of the pool."""
        graph = build_layout_graph(lanes_diagram())

        assert graph.tree.parent_of("Lane1") == "Pool"
        assert graph.tree.parent_of("T3") == "Lane1"
        assert graph.tree.parent_of("Ship") == "Lane2"
        assert graph.lane_of("T3") == "Lane1"
        assert graph.participant_of("Ship") == "Pool"
        assert graph.flow_container("T3") == "Pool"

    def test_lane_membership_first_wins(self):
        """An element claimed by two lanes stays in the first one."""
        diagram = BpmnDiagram("dedup")
        diagram.add_participant("P")
        diagram.add_lane("L1", "P", ["T"])
        diagram.add_lane("L2", "P", ["T"])
        diagram.add_shape("bpmn:Task", "T", parent="P")
        graph = build_layout_graph(diagram)

        assert graph.lane_of("T") == "L1"
        assert graph.lane_conflicts == [("T", "L1", "L2")]

    def test_boundary_event_attachment(self):
        """Boundary events reference their host, not contained by it."""
        graph = build_layout_graph(boundary_diagram())
        event = graph.nodes["Timer1"]

        assert event.host_id == "Host1"
        assert graph.tree.parent_of("Timer1") is None
        assert [e.id for e in graph.boundary_events_of("Host1")] == ["Timer1"]

    def test_subprocess_containment(self):
        """Expanded subprocesses contain their flow nodes."""
        graph = build_layout_graph(subprocess_diagram())

        assert graph.nodes["Sub"].expanded
        assert graph.tree.children_of("Sub") == ["Sub_Start", "Sub_Task", "Sub_End"]
        assert graph.flow_container("Sub_Task") == "Sub"

    def test_collapsed_participant(self):
        """A participant without children is collapsed."""
        graph = build_layout_graph(collaboration_diagram())

        assert not graph.nodes["Bank"].expanded
        assert graph.nodes["Bank"].height == 60
        assert graph.nodes["Customer"].expanded
        assert graph.edges["Msg_order"].kind == EdgeKind.MESSAGE_FLOW

    def test_artifact_anchor(self):
        """Artifacts remember the flow node they are associated with."""
        graph = build_layout_graph(artifact_diagram())

        assert graph.artifact_anchors == {"Note": "Write", "Report": "Write"}
        assert graph.edges["Assoc_report"].kind == EdgeKind.ASSOCIATION

    def test_external_labels(self):
        """Named events, gateways and flows get external labels; tasks do not."""
        graph = build_layout_graph(gateway_diagram())

        assert set(graph.labels) == {"Start", "Gateway", "End", "Flow_default", "Flow_valid"}
        assert graph.labels["Flow_valid"].kind == "flow"
        assert graph.labels["Start"].kind == "element"

    def test_dangling_connection_raises(self):
        """A connection naming an unknown element is fatal."""
        diagram = gateway_diagram()
        diagram.connect("TaskA", "Ghost", "Flow_ghost")

        with pytest.raises(GraphBuildError) as exc_info:
            build_layout_graph(diagram)
        assert exc_info.value.element_id == "Flow_ghost"
        assert exc_info.value.missing_id == "Ghost"

    def test_unknown_host_raises(self):
        """A boundary event attached to nothing is fatal."""
        diagram = BpmnDiagram("orphan")
        diagram.add_boundary_event("Timer", "Nowhere")

        with pytest.raises(GraphBuildError, match="unknown host"):
            build_layout_graph(diagram)


class TestLayoutGraph:
    """Test LayoutGraph queries and mutation."""

    def test_move_node_carries_subtree_and_boundary_events(self):
        """Moving a host moves its boundary events; moving a pool moves its content."""
        graph = build_layout_graph(boundary_diagram())
        before = graph.nodes["Timer1"].x
        graph.move_node("Host1", 10, 5)
        assert graph.nodes["Timer1"].x == before + 10

        graph = build_layout_graph(lanes_diagram())
        graph.move_node("Pool", 0, 100)
        assert graph.nodes["Lane1"].y == 100
        assert graph.nodes["T1"].y == 100

    def test_reach_is_bounded(self):
        """reach reports truncation at the depth cap."""
        graph = build_layout_graph(gateway_diagram())
        reached, truncated = graph.reach(["Start"], max_depth=1)
        assert reached == {"Start", "Gateway"}
        assert truncated

        reached, truncated = graph.reach(["Start"], max_depth=25, blocked={"Merge"})
        assert reached == {"Start", "Gateway", "TaskA", "TaskB"}
        assert not truncated

    def test_position_snapshot_moved_count(self):
        """Snapshots count nodes moved beyond the threshold."""
        graph = build_layout_graph(gateway_diagram())
        before = PositionSnapshot.take(graph)
        graph.move_node("TaskA", 0.5, 0)
        graph.move_node("TaskB", 0, 20)
        after = PositionSnapshot.take(graph)

        assert before.moved_count(after) == 1
        with pytest.raises(TypeError):
            before.positions["TaskA"] = (0, 0)

    def test_containment_cycle_rejected(self):
        """The containment tree refuses cycles."""
        graph = build_layout_graph(subprocess_diagram())
        with pytest.raises(ValueError):
            graph.tree.add("Sub", "Sub_Task")
