"""Graph Model Builder: BPMN element tree -> LayoutGraph.

Flattens the diagram into typed nodes, typed edges, external labels and a
containment tree (pool -> lane -> subprocess -> flow node).

Rules:
    - Boundary events are attached to their host through host_id and
      contained by the host's container, never by the host itself
    - Lane membership is first-wins: the lane declared first owns an element
      referenced by several lanes; later claims are recorded as conflicts
    - Shapes without DI get a default size keyed by kind
    - A connection naming an unknown element raises GraphBuildError
"""

import logging
from typing import Dict, List, Optional

from ..models.bpmn import BpmnElement, DiagramModel
from ..models.layout_graph import (
    EdgeKind,
    LayoutEdge,
    LayoutGraph,
    LayoutLabel,
    LayoutNode,
    NodeKind,
)
from .constants import DEFAULT_LABEL_SIZE, ELEMENT_SIZES
from .errors import GraphBuildError

logger = logging.getLogger(__name__)


def default_size(kind: NodeKind, expanded: bool = True) -> tuple:
    """Default (width, height) for a node kind."""
    if kind.is_gateway:
        return ELEMENT_SIZES["gateway"]
    if kind == NodeKind.SUB_PROCESS and not expanded:
        return ELEMENT_SIZES["collapsedSubProcess"]
    if kind == NodeKind.PARTICIPANT and not expanded:
        return ELEMENT_SIZES["collapsedParticipant"]
    return ELEMENT_SIZES.get(kind.value, ELEMENT_SIZES["task"])


class GraphBuilder:
    """Builds a LayoutGraph from a DiagramModel.

    Example:
        >>> graph = GraphBuilder(diagram).build()
        >>> graph.nodes["Task_1"].kind
        <NodeKind.TASK: 'task'>
    """

    def __init__(self, diagram: DiagramModel):
        self.diagram = diagram
        self._elements: Dict[str, BpmnElement] = {e.id: e for e in diagram.elements()}
        self._kinds: Dict[str, NodeKind] = {}
        self._lane_owner: Dict[str, str] = {}
        self._artifact_anchor: Dict[str, str] = {}

    def build(self) -> LayoutGraph:
        """Build the layout graph.

        Returns:
            LayoutGraph with nodes, edges, labels and containment

        Raises:
            GraphBuildError: On dangling references or containment cycles
        """
        graph = LayoutGraph()

        for element in self._elements.values():
            if element.is_connection:
                continue
            kind = NodeKind.from_bpmn_type(element.type)
            if kind is None:
                logger.debug(f"Skipping non-shape element {element.id} ({element.type})")
                continue
            self._kinds[element.id] = kind

        self._anchor_artifacts(graph)
        self._assign_lanes(graph)
        self._add_nodes(graph)
        self._add_edges(graph)
        self._add_labels(graph)

        logger.debug(
            f"Built layout graph for {self.diagram.diagram_id}: "
            f"{len(graph.nodes)} nodes, {len(graph.edges)} edges, {len(graph.labels)} labels"
        )
        return graph

    # ------------------------------------------------------------------
    # Nodes and containment
    # ------------------------------------------------------------------

    def _anchor_artifacts(self, graph: LayoutGraph) -> None:
        """First flow node associated with each artifact."""
        for element in self._elements.values():
            if EdgeKind.from_bpmn_type(element.type) != EdgeKind.ASSOCIATION:
                continue
            ends = (element.source_id, element.target_id)
            for artifact_id, other_id in (ends, tuple(reversed(ends))):
                artifact_kind = self._kinds.get(artifact_id)
                other_kind = self._kinds.get(other_id)
                if artifact_kind is None or other_kind is None:
                    continue
                if artifact_kind.is_artifact and other_kind.is_flow_node:
                    self._artifact_anchor.setdefault(artifact_id, other_id)
        graph.artifact_anchors = dict(self._artifact_anchor)

    def _assign_lanes(self, graph: LayoutGraph) -> None:
        for lane_id, kind in self._kinds.items():
            if kind != NodeKind.LANE:
                continue
            for ref in self._elements[lane_id].flow_node_refs:
                if ref not in self._kinds:
                    logger.warning(f"Lane {lane_id} references unknown element {ref}, ignored")
                    continue
                owner = self._lane_owner.get(ref)
                if owner is None:
                    self._lane_owner[ref] = lane_id
                elif owner != lane_id:
                    graph.lane_conflicts.append((ref, owner, lane_id))
                    logger.warning(f"Element {ref} claimed by lanes {owner} and {lane_id}; {owner} keeps it")

    def _semantic_parent(self, element: BpmnElement) -> Optional[str]:
        """Nearest ancestor that is itself a layout node (skips processes)."""
        parent_id = element.parent_id
        seen = set()
        while parent_id is not None and parent_id not in self._kinds:
            if parent_id in seen:
                break
            seen.add(parent_id)
            parent = self._elements.get(parent_id)
            parent_id = parent.parent_id if parent is not None else None
        return parent_id

    def _tree_parent(self, element_id: str) -> Optional[str]:
        element = self._elements[element_id]
        kind = self._kinds[element_id]

        if kind == NodeKind.BOUNDARY_EVENT:
            host_id = element.attached_to
            if host_id is None or host_id not in self._kinds:
                raise GraphBuildError(element_id, host_id, reason=f"is attached to unknown host '{host_id}'")
            return self._semantic_parent(self._elements[host_id])

        parent_id = self._semantic_parent(element)
        lane_id = self._lane_owner.get(element_id)
        if lane_id is None and kind.is_artifact:
            lane_id = self._lane_owner.get(self._artifact_anchor.get(element_id))
        if kind != NodeKind.LANE and lane_id is not None:
            lane_pool = self._semantic_parent(self._elements[lane_id])
            if parent_id is None or parent_id == lane_pool:
                return lane_id
        return parent_id

    def _add_nodes(self, graph: LayoutGraph) -> None:
        parents = {element_id: self._tree_parent(element_id) for element_id in self._kinds}
        has_children = {p for p in parents.values() if p is not None}

        depths: Dict[str, int] = {}
        for element_id in self._kinds:
            chain: List[str] = []
            current: Optional[str] = element_id
            while current is not None and current not in depths:
                if current in chain:
                    raise GraphBuildError(current, reason="is part of a containment cycle")
                chain.append(current)
                current = parents[current]
            base = -1 if current is None else depths[current]
            for offset, chained_id in enumerate(reversed(chain), start=1):
                depths[chained_id] = base + offset

        # Parents first; siblings keep declaration order
        order = {element_id: index for index, element_id in enumerate(self._kinds)}
        for element_id in sorted(self._kinds, key=lambda e: (depths[e], order[e])):
            graph.add_node(self._make_node(element_id, parents[element_id], element_id in has_children))

        # Restore declaration order after parent-first insertion
        graph.nodes = {element_id: graph.nodes[element_id] for element_id in self._kinds}

    def _make_node(self, element_id: str, parent_id: Optional[str], has_children: bool) -> LayoutNode:
        element = self._elements[element_id]
        kind = self._kinds[element_id]

        expanded = True
        if kind == NodeKind.SUB_PROCESS:
            expanded = element.is_expanded and has_children
        elif kind == NodeKind.PARTICIPANT:
            expanded = has_children

        if element.bounds is not None:
            x, y = element.bounds.x, element.bounds.y
            width, height = element.bounds.width, element.bounds.height
        else:
            x, y = 0.0, 0.0
            width, height = default_size(kind, expanded)

        return LayoutNode(
            id=element_id,
            kind=kind,
            x=x,
            y=y,
            width=width,
            height=height,
            parent_id=parent_id,
            host_id=element.attached_to if kind == NodeKind.BOUNDARY_EVENT else None,
            name=element.name,
            expanded=expanded,
        )

    # ------------------------------------------------------------------
    # Edges and labels
    # ------------------------------------------------------------------

    def _add_edges(self, graph: LayoutGraph) -> None:
        for element in self._elements.values():
            if not element.is_connection:
                continue
            kind = EdgeKind.from_bpmn_type(element.type)
            if kind is None:
                continue

            skip = False
            for ref in (element.source_id, element.target_id):
                if ref in graph.nodes:
                    continue
                referenced = self._elements.get(ref) if ref is not None else None
                if kind == EdgeKind.ASSOCIATION and referenced is not None and referenced.is_connection:
                    # Annotation attached to a connection; nothing to lay out
                    logger.debug(f"Skipping association {element.id} to connection {ref}")
                    skip = True
                    break
                raise GraphBuildError(element.id, ref)
            if skip:
                continue

            source = self._elements[element.source_id]
            graph.add_edge(
                LayoutEdge(
                    id=element.id,
                    kind=kind,
                    source_id=element.source_id,
                    target_id=element.target_id,
                    is_default=kind == EdgeKind.SEQUENCE_FLOW and source.default_flow_id == element.id,
                    has_condition=bool(element.condition_expression),
                    name=element.name,
                    waypoints=list(element.waypoints),
                )
            )

    def _add_labels(self, graph: LayoutGraph) -> None:
        default_w, default_h = DEFAULT_LABEL_SIZE
        for node in graph.nodes.values():
            if not node.name or not node.kind.has_external_label:
                continue
            graph.labels[node.id] = self._make_label(node.id, "element", default_w, default_h)
        for edge in graph.edges.values():
            if edge.name and edge.kind == EdgeKind.SEQUENCE_FLOW:
                graph.labels[edge.id] = self._make_label(edge.id, "flow", default_w, default_h)

    def _make_label(self, owner_id: str, kind: str, default_w: float, default_h: float) -> LayoutLabel:
        di = self._elements[owner_id].label
        if di is not None and di.width > 0 and di.height > 0:
            return LayoutLabel(owner_id, kind, di.x, di.y, di.width, di.height)
        return LayoutLabel(owner_id, kind, 0.0, 0.0, default_w, default_h)


def build_layout_graph(diagram: DiagramModel) -> LayoutGraph:
    """Convenience wrapper around GraphBuilder."""
    return GraphBuilder(diagram).build()
