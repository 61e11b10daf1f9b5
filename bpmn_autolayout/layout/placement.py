"""Layered Placement Adapter.

Translates the layout graph into the solver's ELK JSON input, runs the
configured engine and imports the result back.

Input conventions:
    - Root layout direction RIGHT (left-to-right layering)
    - Participants and expanded subprocesses are compound nodes; lanes are
      looked through (their members become members of the participant)
    - Boundary events, artifacts and exception-chain members are not given
      to the solver; a boundary flow that rejoins the main flow becomes a
      proxy edge from the host
    - Happy-path flows get the highest straightness/direction priority,
      DFS back edges the lowest
    - Each edge lives in the deepest compound containing both endpoints

Any engine failure surfaces as LayoutSolverError before the graph is
touched.
"""

import logging
from typing import Any, Dict, List, Optional, Set

import networkx as nx
from pydantic import ValidationError

from ..models.layout_graph import EdgeKind, LayoutGraph, LayoutNode, NodeKind
from ..models.layout_metadata import EdgeRoute, EdgeSection, NodePosition, SolverLayout
from ..models.layout_options import LayoutOptions
from .artifacts import place_artifacts
from .constants import (
    BACK_EDGE_PRIORITY,
    CONTAINER_PADDING,
    HAPPY_PATH_PRIORITY,
    ORIGIN_OFFSET_X,
    ORIGIN_OFFSET_Y,
    PARTICIPANT_PADDING,
    PARTICIPANT_WITH_LANES_PADDING,
    POOL_HEADER_WIDTH,
)
from .engines.base import LayoutEngine
from .engines.layered import find_back_edges
from .errors import LayoutSolverError

logger = logging.getLogger(__name__)

ROOT_ID = "__root__"
PROXY_PREFIX = "__boundary_proxy__"


def _padding(values) -> str:
    top, left, bottom, right = values
    return f"[top={top},left={left},bottom={bottom},right={right}]"


class PlacementAdapter:
    """Builds solver input, runs the engine and imports positions.

    Example:
        >>> adapter = PlacementAdapter(graph, happy_edges, excluded, options, engine)
        >>> layout = await adapter.run()
        >>> apply_solver_layout(graph, layout, anchors)
    """

    def __init__(
        self,
        graph: LayoutGraph,
        happy_edge_ids: Set[str],
        excluded_ids: Set[str],
        options: LayoutOptions,
        engine: LayoutEngine,
    ):
        self.graph = graph
        self.happy_edge_ids = happy_edge_ids
        self.excluded_ids = excluded_ids
        self.options = options
        self.engine = engine
        self._solver_ids: Set[str] = set()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def is_solver_node(self, node: LayoutNode) -> bool:
        if node.kind in (NodeKind.LANE, NodeKind.BOUNDARY_EVENT) or node.kind.is_artifact:
            return False
        if node.id in self.excluded_ids:
            return False
        for ancestor_id in self.graph.tree.ancestors(node.id):
            ancestor = self.graph.nodes[ancestor_id]
            if ancestor_id in self.excluded_ids or (ancestor.kind == NodeKind.SUB_PROCESS and not ancestor.expanded):
                return False
        return True

    def _solver_parent(self, node_id: str) -> str:
        return self.graph.flow_container(node_id) or ROOT_ID

    def build_solver_graph(self) -> Dict[str, Any]:
        """ELK JSON graph for the current layout graph."""
        graph = self.graph
        self._solver_ids = {n.id for n in graph.nodes.values() if self.is_solver_node(n)}

        elk_nodes: Dict[str, Dict[str, Any]] = {
            ROOT_ID: {
                "id": ROOT_ID,
                "layoutOptions": {
                    "elk.direction": "RIGHT",
                    "elk.padding": _padding((0, 0, 0, 0)),
                    "elk.spacing.nodeNode": self.options.node_spacing,
                    "elk.layered.spacing.nodeNodeBetweenLayers": self.options.layer_spacing,
                },
                "children": [],
                "edges": [],
            }
        }
        for node in graph.nodes.values():
            if node.id not in self._solver_ids:
                continue
            elk_node: Dict[str, Any] = {"id": node.id, "width": node.width, "height": node.height}
            if self._is_compound(node):
                elk_node["children"] = []
                elk_node["edges"] = []
                elk_node["layoutOptions"] = {"elk.padding": _padding(self._compound_padding(node))}
            elk_nodes[node.id] = elk_node

        for node in graph.nodes.values():
            if node.id in self._solver_ids:
                parent = elk_nodes.get(self._solver_parent(node.id), elk_nodes[ROOT_ID])
                parent.setdefault("children", []).append(elk_nodes[node.id])

        for edge in self._solver_edges():
            container = self._edge_container(edge["sources"][0], edge["targets"][0])
            elk_nodes.get(container, elk_nodes[ROOT_ID]).setdefault("edges", []).append(edge)

        # Compounds that ended up empty are plain leaves
        for node_id, elk_node in elk_nodes.items():
            if node_id != ROOT_ID and "children" in elk_node and not elk_node["children"]:
                del elk_node["children"]
                elk_node.pop("edges", None)
                elk_node.pop("layoutOptions", None)

        return elk_nodes[ROOT_ID]

    def _is_compound(self, node: LayoutNode) -> bool:
        return node.kind in (NodeKind.PARTICIPANT, NodeKind.SUB_PROCESS) and node.expanded

    def _compound_padding(self, node: LayoutNode):
        if node.kind == NodeKind.PARTICIPANT:
            if self.graph.lanes_of(node.id):
                return PARTICIPANT_WITH_LANES_PADDING
            return PARTICIPANT_PADDING
        return CONTAINER_PADDING

    def _solver_edges(self) -> List[Dict[str, Any]]:
        graph = self.graph
        edges: List[Dict[str, Any]] = []
        flow = nx.MultiDiGraph()
        flow.add_nodes_from(n for n in graph.nodes if n in self._solver_ids)

        for edge in graph.edges_of_kind(EdgeKind.SEQUENCE_FLOW):
            source, target = edge.source_id, edge.target_id
            edge_id = edge.id
            source_node = graph.nodes[source]
            if source_node.kind == NodeKind.BOUNDARY_EVENT and target in self._solver_ids:
                source = source_node.host_id
                edge_id = f"{PROXY_PREFIX}{edge.id}"
            if source not in self._solver_ids or target not in self._solver_ids or source == target:
                continue
            flow.add_edge(source, target, key=edge_id, order=len(edges))
            edges.append({"id": edge_id, "sources": [source], "targets": [target]})

        back = {key for _, _, key in find_back_edges(flow, list(flow.nodes))}
        for edge in edges:
            if edge["id"] in self.happy_edge_ids and self.options.preserve_happy_path:
                edge["layoutOptions"] = {
                    "elk.priority.straightness": HAPPY_PATH_PRIORITY,
                    "elk.priority.direction": HAPPY_PATH_PRIORITY,
                }
            elif edge["id"] in back:
                edge["layoutOptions"] = {
                    "elk.priority.straightness": BACK_EDGE_PRIORITY,
                    "elk.priority.direction": BACK_EDGE_PRIORITY,
                }
        return edges

    def _edge_container(self, source_id: str, target_id: str) -> str:
        source_chain = [self._solver_parent(source_id)]
        while source_chain[-1] != ROOT_ID:
            source_chain.append(self._solver_parent(source_chain[-1]))
        current = self._solver_parent(target_id)
        while current != ROOT_ID and current not in source_chain:
            current = self._solver_parent(current)
        return current

    # ------------------------------------------------------------------
    # Run and import
    # ------------------------------------------------------------------

    async def run(self) -> SolverLayout:
        """Invoke the engine and import its result.

        Raises:
            LayoutSolverError: On any engine failure or unusable result
        """
        elk_graph = self.build_solver_graph()
        engine_name = self.engine.name
        logger.debug(f"Running solver '{engine_name}' on {len(self._solver_ids)} nodes")
        try:
            result = await self.engine.layout(elk_graph)
        except Exception as e:
            raise LayoutSolverError(engine_name, str(e), cause=e) from e

        try:
            layout = self.import_result(result, elk_graph.get("layoutOptions", {}))
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            raise LayoutSolverError(engine_name, f"unusable result: {e}", cause=e) from e

        missing = sorted(self._solver_ids - set(layout.positions))
        if missing:
            raise LayoutSolverError(engine_name, f"no position returned for {', '.join(missing[:5])}")

        bbox = layout.get_bounding_box()
        if bbox is not None:
            logger.debug(
                f"Solver '{engine_name}' placed {len(layout.positions)} nodes "
                f"in {bbox.width:.0f}x{bbox.height:.0f}"
            )
        return layout

    def import_result(self, elk_result: Dict[str, Any], layout_options: Dict[str, Any]) -> SolverLayout:
        """Convert the laid-out ELK graph to absolute positions.

        Child coordinates are relative to their parent; edge sections are
        relative to the compound that declares the edge.
        """
        positions: Dict[str, NodePosition] = {}
        sizes: Dict[str, tuple] = {}
        edges: Dict[str, EdgeRoute] = {}

        stack = [(elk_result, 0.0, 0.0)]
        while stack:
            elk_node, offset_x, offset_y = stack.pop()
            for child in elk_node.get("children", []):
                x = offset_x + float(child.get("x", 0))
                y = offset_y + float(child.get("y", 0))
                positions[child["id"]] = NodePosition(x=x, y=y)
                sizes[child["id"]] = (float(child["width"]), float(child["height"]))
                stack.append((child, x, y))
            for edge in elk_node.get("edges", []):
                if edge["id"].startswith(PROXY_PREFIX):
                    continue
                sections = [
                    EdgeSection(
                        id=section.get("id"),
                        startPoint=(section["startPoint"]["x"], section["startPoint"]["y"]),
                        endPoint=(section["endPoint"]["x"], section["endPoint"]["y"]),
                        bendPoints=[(bp["x"], bp["y"]) for bp in section.get("bendPoints", [])],
                    ).translated(offset_x, offset_y)
                    for section in edge.get("sections", [])
                ]
                edges[edge["id"]] = EdgeRoute(sections=sections)

        return SolverLayout(
            algorithm=self.engine.name,
            layout_options=layout_options,
            positions=positions,
            sizes=sizes,
            edges=edges,
        )


def apply_solver_layout(
    graph: LayoutGraph,
    layout: SolverLayout,
    chain_anchors: Optional[Dict[str, str]] = None,
) -> None:
    """Write solver positions into the layout graph.

    Also gives nodes the solver never saw a provisional place: lanes tile
    their participant, boundary events sit on their host's bottom border,
    exception-chain members start on their host, artifacts next to the flow
    node they are associated with.

    Args:
        graph: Layout graph to update
        layout: Imported solver result
        chain_anchors: Exception-chain node ID -> host ID
    """
    for node_id, position in layout.positions.items():
        node = graph.nodes.get(node_id)
        if node is None:
            continue
        node.x = position.x + ORIGIN_OFFSET_X
        node.y = position.y + ORIGIN_OFFSET_Y
        if node.kind in (NodeKind.PARTICIPANT, NodeKind.SUB_PROCESS) and node.expanded:
            node.width, node.height = layout.sizes[node_id]

    for edge_id, route in layout.edges.items():
        edge = graph.edges.get(edge_id)
        if edge is not None:
            edge.waypoints = [(x + ORIGIN_OFFSET_X, y + ORIGIN_OFFSET_Y) for x, y in route.get_all_points()]

    for participant in graph.participants():
        tile_lanes(graph, participant)

    for node_id, host_id in (chain_anchors or {}).items():
        host = graph.nodes[host_id]
        graph.set_centre(node_id, host.cx, host.cy)

    place_boundary_events(graph)
    place_artifacts(graph)


def tile_lanes(graph: LayoutGraph, participant: LayoutNode) -> None:
    """Stack a participant's lanes inside it, keeping their relative heights."""
    lanes = graph.lanes_of(participant.id)
    if not lanes:
        return
    total = sum(lane.height for lane in lanes) or len(lanes)
    y = participant.y
    for lane in lanes:
        share = lane.height / total if total else 1 / len(lanes)
        lane.x = participant.x + POOL_HEADER_WIDTH
        lane.y = y
        lane.width = participant.width - POOL_HEADER_WIDTH
        lane.height = participant.height * share
        y += lane.height


def place_boundary_events(graph: LayoutGraph) -> None:
    """Spread each host's boundary events evenly along its bottom border."""
    hosts: Dict[str, List[LayoutNode]] = {}
    for node in graph.nodes_of_kind(NodeKind.BOUNDARY_EVENT):
        hosts.setdefault(node.host_id, []).append(node)
    for host_id, events in hosts.items():
        host = graph.nodes[host_id]
        for i, event in enumerate(events):
            cx = host.x + host.width * (i + 1) / (len(events) + 1)
            event.x = cx - event.width / 2
            event.y = host.bottom - event.height / 2
