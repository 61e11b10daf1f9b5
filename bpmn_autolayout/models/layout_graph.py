"""Layout graph built from a BPMN element tree.

The layout graph is created fresh for every layout invocation, mutated in
place stage by stage, and discarded after positions and waypoints have been
written back to the diagram.

Architecture Decision:
    - Node kinds are a closed enum resolved once by the graph builder;
      downstream stages switch on NodeKind instead of probing type strings
    - Containment (pool -> lane -> subprocess -> flow node) is a tree kept
      separately from the flow graph, which may be cyclic
    - Boundary events reference their host via host_id (attachment), never
      via containment
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import networkx as nx

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


class NodeKind(str, Enum):
    """Closed set of node variants the layout stages distinguish."""

    TASK = "task"
    SUB_PROCESS = "subProcess"
    START_EVENT = "startEvent"
    END_EVENT = "endEvent"
    INTERMEDIATE_EVENT = "intermediateEvent"
    BOUNDARY_EVENT = "boundaryEvent"
    EXCLUSIVE_GATEWAY = "exclusiveGateway"
    INCLUSIVE_GATEWAY = "inclusiveGateway"
    PARALLEL_GATEWAY = "parallelGateway"
    EVENT_BASED_GATEWAY = "eventBasedGateway"
    COMPLEX_GATEWAY = "complexGateway"
    PARTICIPANT = "participant"
    LANE = "lane"
    TEXT_ANNOTATION = "textAnnotation"
    DATA_OBJECT = "dataObject"
    DATA_STORE = "dataStore"
    GROUP = "group"

    @classmethod
    def from_bpmn_type(cls, type_name: str) -> Optional["NodeKind"]:
        """Resolve a bpmn-moddle type name to a node kind.

        Returns None for types that never become layout nodes (processes,
        collaborations, connections).
        """
        local = type_name.split(":", 1)[-1]
        if local in _EXACT_KINDS:
            return _EXACT_KINDS[local]
        if local.endswith("Task") or local == "CallActivity":
            return cls.TASK
        if local.endswith("SubProcess") or local == "Transaction":
            return cls.SUB_PROCESS
        if local.endswith("Gateway"):
            return cls.EXCLUSIVE_GATEWAY
        if local.endswith("Event"):
            return cls.INTERMEDIATE_EVENT
        return None

    @property
    def is_gateway(self) -> bool:
        return self in _GATEWAYS

    @property
    def is_event(self) -> bool:
        return self in _EVENTS

    @property
    def is_artifact(self) -> bool:
        return self in _ARTIFACTS

    @property
    def is_flow_node(self) -> bool:
        """Nodes that take part in sequence flow."""
        return not (self.is_artifact or self in (NodeKind.PARTICIPANT, NodeKind.LANE))

    @property
    def has_external_label(self) -> bool:
        """Whether the element's name is rendered as a free-floating label."""
        return self.is_event or self.is_gateway or self in (NodeKind.DATA_OBJECT, NodeKind.DATA_STORE)


_EXACT_KINDS = {
    "Task": NodeKind.TASK,
    "CallActivity": NodeKind.TASK,
    "SubProcess": NodeKind.SUB_PROCESS,
    "AdHocSubProcess": NodeKind.SUB_PROCESS,
    "Transaction": NodeKind.SUB_PROCESS,
    "StartEvent": NodeKind.START_EVENT,
    "EndEvent": NodeKind.END_EVENT,
    "IntermediateCatchEvent": NodeKind.INTERMEDIATE_EVENT,
    "IntermediateThrowEvent": NodeKind.INTERMEDIATE_EVENT,
    "BoundaryEvent": NodeKind.BOUNDARY_EVENT,
    "ExclusiveGateway": NodeKind.EXCLUSIVE_GATEWAY,
    "InclusiveGateway": NodeKind.INCLUSIVE_GATEWAY,
    "ParallelGateway": NodeKind.PARALLEL_GATEWAY,
    "EventBasedGateway": NodeKind.EVENT_BASED_GATEWAY,
    "ComplexGateway": NodeKind.COMPLEX_GATEWAY,
    "Participant": NodeKind.PARTICIPANT,
    "Lane": NodeKind.LANE,
    "TextAnnotation": NodeKind.TEXT_ANNOTATION,
    "DataObjectReference": NodeKind.DATA_OBJECT,
    "DataObject": NodeKind.DATA_OBJECT,
    "DataStoreReference": NodeKind.DATA_STORE,
    "Group": NodeKind.GROUP,
}

_GATEWAYS = {
    NodeKind.EXCLUSIVE_GATEWAY,
    NodeKind.INCLUSIVE_GATEWAY,
    NodeKind.PARALLEL_GATEWAY,
    NodeKind.EVENT_BASED_GATEWAY,
    NodeKind.COMPLEX_GATEWAY,
}

_EVENTS = {
    NodeKind.START_EVENT,
    NodeKind.END_EVENT,
    NodeKind.INTERMEDIATE_EVENT,
    NodeKind.BOUNDARY_EVENT,
}

_ARTIFACTS = {
    NodeKind.TEXT_ANNOTATION,
    NodeKind.DATA_OBJECT,
    NodeKind.DATA_STORE,
    NodeKind.GROUP,
}


class EdgeKind(str, Enum):
    SEQUENCE_FLOW = "sequenceFlow"
    MESSAGE_FLOW = "messageFlow"
    ASSOCIATION = "association"

    @classmethod
    def from_bpmn_type(cls, type_name: str) -> Optional["EdgeKind"]:
        local = type_name.split(":", 1)[-1]
        if local == "SequenceFlow":
            return cls.SEQUENCE_FLOW
        if local == "MessageFlow":
            return cls.MESSAGE_FLOW
        if local in ("Association", "DataInputAssociation", "DataOutputAssociation"):
            return cls.ASSOCIATION
        return None


@dataclass
class LayoutNode:
    """A positioned shape (top-left origin)."""

    id: str
    kind: NodeKind
    x: float
    y: float
    width: float
    height: float
    parent_id: Optional[str] = None
    host_id: Optional[str] = None
    name: Optional[str] = None
    expanded: bool = True

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def rect(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass
class LayoutEdge:
    """A connection between two layout nodes."""

    id: str
    kind: EdgeKind
    source_id: str
    target_id: str
    is_default: bool = False
    has_condition: bool = False
    name: Optional[str] = None
    waypoints: List[Point] = field(default_factory=list)


@dataclass
class LayoutLabel:
    """External label of a shape ('element') or a connection ('flow')."""

    owner_id: str
    kind: str
    x: float
    y: float
    width: float
    height: float

    @property
    def rect(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass
class GatewayBranches:
    """On/off-path split of one gateway's outgoing sequence flows.

    For parallel gateways every branch is on-path; on_path_edge_id is the
    first outgoing flow (kept on the row) and the others are listed in
    off_path_edge_ids only so that they stack below it.
    """

    gateway_id: str
    on_path_edge_id: Optional[str]
    off_path_edge_ids: List[str] = field(default_factory=list)
    unknown_edge_ids: List[str] = field(default_factory=list)
    parallel: bool = False


@dataclass
class BranchClassification:
    """gatewayId -> GatewayBranches, computed once per layout run."""

    gateways: Dict[str, GatewayBranches] = field(default_factory=dict)

    def __contains__(self, gateway_id: str) -> bool:
        return gateway_id in self.gateways

    def get(self, gateway_id: str) -> Optional[GatewayBranches]:
        return self.gateways.get(gateway_id)

    @property
    def on_path_edge_ids(self) -> Set[str]:
        return {b.on_path_edge_id for b in self.gateways.values() if b.on_path_edge_id}

    @property
    def off_path_edge_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for branches in self.gateways.values():
            ids.update(branches.off_path_edge_ids)
        return ids

    def is_off_path(self, edge_id: str) -> bool:
        return edge_id in self.off_path_edge_ids


@dataclass(frozen=True)
class PositionSnapshot:
    """Immutable nodeId -> (x, y) map taken before or after a stage."""

    positions: Mapping[str, Point]

    @classmethod
    def take(cls, graph: "LayoutGraph") -> "PositionSnapshot":
        return cls(MappingProxyType({n.id: (n.x, n.y) for n in graph.nodes.values()}))

    def moved_count(self, other: "PositionSnapshot", threshold: float = 1.0) -> int:
        """Number of nodes whose x or y differs by more than threshold."""
        moved = 0
        for node_id, (x, y) in self.positions.items():
            after = other.positions.get(node_id)
            if after is None:
                continue
            if abs(after[0] - x) > threshold or abs(after[1] - y) > threshold:
                moved += 1
        return moved


class ContainmentTree:
    """Ordered forest mirroring pools -> lanes -> subprocesses -> flow nodes.

    Children keep insertion (declaration) order. The root of the forest is
    represented by the None key.
    """

    def __init__(self):
        self._parent: Dict[str, Optional[str]] = {}
        self._children: Dict[Optional[str], List[str]] = {None: []}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._parent

    def add(self, node_id: str, parent_id: Optional[str]) -> None:
        """Attach node_id under parent_id (None = root).

        Raises:
            ValueError: If node_id is already in the tree or the link
                would create a cycle
        """
        if node_id in self._parent:
            raise ValueError(f"Node {node_id} already in containment tree")
        if parent_id is not None and (parent_id == node_id or node_id in self.ancestors(parent_id)):
            raise ValueError(f"Containment cycle through {node_id}")
        self._parent[node_id] = parent_id
        self._children.setdefault(parent_id, []).append(node_id)
        self._children.setdefault(node_id, [])

    def parent_of(self, node_id: str) -> Optional[str]:
        return self._parent.get(node_id)

    def children_of(self, node_id: Optional[str]) -> List[str]:
        return list(self._children.get(node_id, []))

    def roots(self) -> List[str]:
        return list(self._children[None])

    def ancestors(self, node_id: str) -> List[str]:
        """Ancestors from nearest to farthest."""
        result = []
        current = self._parent.get(node_id)
        while current is not None:
            result.append(current)
            current = self._parent.get(current)
        return result

    def descendants(self, node_id: str) -> List[str]:
        """All descendants in depth-first pre-order."""
        result: List[str] = []
        stack = list(reversed(self._children.get(node_id, [])))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return result

    def post_order(self) -> List[str]:
        """Every node, children before their parent."""
        order: List[str] = []
        for root in self.roots():
            subtree = [root] + self.descendants(root)
            order.extend(sorted(subtree, key=lambda n: -len(self.ancestors(n))))
        return order


class LayoutGraph:
    """Typed nodes, typed edges, labels and containment for one layout run."""

    def __init__(self):
        self.nodes: Dict[str, LayoutNode] = {}
        self.edges: Dict[str, LayoutEdge] = {}
        self.labels: Dict[str, LayoutLabel] = {}
        self.tree = ContainmentTree()
        self.lane_conflicts: List[Tuple[str, str, str]] = []
        self.artifact_anchors: Dict[str, str] = {}
        self._flow_graph: Optional[nx.MultiDiGraph] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: LayoutNode) -> None:
        self.nodes[node.id] = node
        self.tree.add(node.id, node.parent_id)
        self._flow_graph = None

    def add_edge(self, edge: LayoutEdge) -> None:
        self.edges[edge.id] = edge
        self._flow_graph = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def nodes_of_kind(self, *kinds: NodeKind) -> List[LayoutNode]:
        return [n for n in self.nodes.values() if n.kind in kinds]

    def edges_of_kind(self, kind: EdgeKind) -> List[LayoutEdge]:
        return [e for e in self.edges.values() if e.kind == kind]

    def outgoing(self, node_id: str, kind: EdgeKind = EdgeKind.SEQUENCE_FLOW) -> List[LayoutEdge]:
        return [e for e in self.edges.values() if e.source_id == node_id and e.kind == kind]

    def incoming(self, node_id: str, kind: EdgeKind = EdgeKind.SEQUENCE_FLOW) -> List[LayoutEdge]:
        return [e for e in self.edges.values() if e.target_id == node_id and e.kind == kind]

    def participants(self) -> List[LayoutNode]:
        return self.nodes_of_kind(NodeKind.PARTICIPANT)

    def lanes_of(self, participant_id: str) -> List[LayoutNode]:
        return [
            self.nodes[c]
            for c in self.tree.children_of(participant_id)
            if self.nodes[c].kind == NodeKind.LANE
        ]

    def boundary_events_of(self, host_id: str) -> List[LayoutNode]:
        return [n for n in self.nodes.values() if n.kind == NodeKind.BOUNDARY_EVENT and n.host_id == host_id]

    def lane_of(self, node_id: str) -> Optional[str]:
        """Owning lane of a node (first-wins), if any."""
        for ancestor in self.tree.ancestors(node_id):
            if self.nodes[ancestor].kind == NodeKind.LANE:
                return ancestor
        return None

    def flow_container(self, node_id: str) -> Optional[str]:
        """Nearest ancestor that lays out flow nodes (participant or subprocess)."""
        for ancestor in self.tree.ancestors(node_id):
            if self.nodes[ancestor].kind != NodeKind.LANE:
                return ancestor
        return None

    def participant_of(self, node_id: str) -> Optional[str]:
        for ancestor in self.tree.ancestors(node_id):
            if self.nodes[ancestor].kind == NodeKind.PARTICIPANT:
                return ancestor
        return None

    def container_members(self, container_id: Optional[str]) -> List[LayoutNode]:
        """Flow-level members of a container, looking through lanes."""
        members = []
        for child_id in self.tree.children_of(container_id):
            child = self.nodes[child_id]
            if child.kind == NodeKind.LANE:
                members.extend(self.container_members(child_id))
            else:
                members.append(child)
        return members

    def has_layout_children(self, node_id: str) -> bool:
        return any(
            self.nodes[c].kind not in (NodeKind.LANE, NodeKind.BOUNDARY_EVENT) or self.tree.children_of(c)
            for c in self.tree.children_of(node_id)
        )

    def flow_graph(self) -> nx.MultiDiGraph:
        """Sequence-flow graph (may be cyclic), nodes in declaration order."""
        if self._flow_graph is None:
            g = nx.MultiDiGraph()
            g.add_nodes_from(n.id for n in self.nodes.values() if n.kind.is_flow_node)
            for edge in self.edges_of_kind(EdgeKind.SEQUENCE_FLOW):
                g.add_edge(edge.source_id, edge.target_id, key=edge.id)
            self._flow_graph = g
        return self._flow_graph

    def reach(
        self,
        sources: Iterable[str],
        max_depth: int,
        blocked: Optional[Set[str]] = None,
    ) -> Tuple[Set[str], bool]:
        """Bounded breadth-first reach over sequence flows.

        Args:
            sources: Start node IDs (included in the result)
            max_depth: Maximum number of hops from any source
            blocked: Nodes that are neither entered nor expanded

        Returns:
            (reached node IDs, True if the depth cap cut the traversal short)
        """
        g = self.flow_graph()
        blocked = blocked or set()
        seen: Set[str] = set()
        queue = deque()
        for source in sources:
            if source not in seen and source not in blocked:
                seen.add(source)
                queue.append((source, 0))
        truncated = False
        while queue:
            current, depth = queue.popleft()
            if current not in g:
                continue
            for succ in g.successors(current):
                if succ in seen or succ in blocked:
                    continue
                if depth >= max_depth:
                    truncated = True
                    continue
                seen.add(succ)
                queue.append((succ, depth + 1))
        return seen, truncated

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def move_node(self, node_id: str, dx: float, dy: float) -> None:
        """Translate a node with its containment subtree and attached boundary events."""
        if not dx and not dy:
            return
        moved = [node_id] + self.tree.descendants(node_id)
        moved_set = set(moved)
        for boundary in self.nodes_of_kind(NodeKind.BOUNDARY_EVENT):
            if boundary.host_id in moved_set and boundary.id not in moved_set:
                moved.append(boundary.id)
                moved_set.add(boundary.id)
        for moved_id in moved:
            node = self.nodes[moved_id]
            node.x += dx
            node.y += dy

    def set_centre(self, node_id: str, cx: Optional[float] = None, cy: Optional[float] = None) -> None:
        node = self.nodes[node_id]
        dx = 0.0 if cx is None else cx - node.cx
        dy = 0.0 if cy is None else cy - node.cy
        self.move_node(node_id, dx, dy)

    def content_bounds(self, node_ids: Iterable[str]) -> Optional[Tuple[float, float, float, float]]:
        """(min_x, min_y, max_x, max_y) over the given nodes, or None."""
        nodes = [self.nodes[n] for n in node_ids if n in self.nodes]
        if not nodes:
            return None
        return (
            min(n.x for n in nodes),
            min(n.y for n in nodes),
            max(n.right for n in nodes),
            max(n.bottom for n in nodes),
        )
