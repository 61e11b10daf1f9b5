"""Happy-Path Classifier.

Labels each split gateway's outgoing sequence flows as on-path or
off-path, and walks the resulting happy-path chains from start nodes.

On-path selection:
    - Default flow set: the first other outgoing flow carrying a condition,
      else the first non-default flow
    - No default: the first conditioned flow in declaration order, else the
      first outgoing flow
    - Parallel gateways: every branch is on-path; the first outgoing flow
      keeps the row, the rest stack below it

A flow whose branch leads back to its own gateway (a loop) is classified as
unknown and is never chosen as on-path while another candidate exists.
Traversals are bounded by a visited set and MAX_TRAVERSAL_DEPTH.
"""

import logging
from typing import List, Optional, Set

from ..models.layout_graph import (
    BranchClassification,
    EdgeKind,
    GatewayBranches,
    LayoutEdge,
    LayoutGraph,
    NodeKind,
)
from .constants import MAX_TRAVERSAL_DEPTH

logger = logging.getLogger(__name__)


def _loops_back(graph: LayoutGraph, gateway_id: str, edge: LayoutEdge) -> bool:
    if edge.target_id == gateway_id:
        return True
    reached, _ = graph.reach([edge.target_id], MAX_TRAVERSAL_DEPTH)
    return gateway_id in reached


def _choose_on_path(candidates: List[LayoutEdge]) -> Optional[LayoutEdge]:
    if not candidates:
        return None
    defaults = [e for e in candidates if e.is_default]
    if defaults:
        conditioned = [e for e in candidates if not e.is_default and e.has_condition]
        if conditioned:
            return conditioned[0]
        others = [e for e in candidates if not e.is_default]
        return others[0] if others else candidates[0]
    conditioned = [e for e in candidates if e.has_condition]
    return conditioned[0] if conditioned else candidates[0]


def classify_gateway(graph: LayoutGraph, gateway_id: str) -> Optional[GatewayBranches]:
    """Classify one gateway's outgoing flows; None if it does not split."""
    gateway = graph.nodes[gateway_id]
    outgoing = graph.outgoing(gateway_id)
    if len(outgoing) < 2:
        return None

    if gateway.kind == NodeKind.PARALLEL_GATEWAY:
        return GatewayBranches(
            gateway_id=gateway_id,
            on_path_edge_id=outgoing[0].id,
            off_path_edge_ids=[e.id for e in outgoing[1:]],
            parallel=True,
        )

    unknown = [e for e in outgoing if _loops_back(graph, gateway_id, e)]
    unknown_ids = {e.id for e in unknown}
    forward = [e for e in outgoing if e.id not in unknown_ids]
    on_path = _choose_on_path(forward) or _choose_on_path(outgoing)

    return GatewayBranches(
        gateway_id=gateway_id,
        on_path_edge_id=on_path.id if on_path else None,
        off_path_edge_ids=[e.id for e in outgoing if on_path is None or e.id != on_path.id],
        unknown_edge_ids=[e.id for e in unknown],
    )


def classify_branches(graph: LayoutGraph) -> BranchClassification:
    """Classify every split gateway in the graph.

    Returns:
        BranchClassification keyed by gateway ID
    """
    classification = BranchClassification()
    for node in graph.nodes.values():
        if not node.kind.is_gateway:
            continue
        branches = classify_gateway(graph, node.id)
        if branches is not None:
            classification.gateways[node.id] = branches
            if branches.unknown_edge_ids:
                logger.debug(f"Gateway {node.id}: loop-back flows {branches.unknown_edge_ids}")
    logger.debug(f"Classified {len(classification.gateways)} split gateways")
    return classification


def entry_nodes(graph: LayoutGraph) -> List[str]:
    """Start nodes of every flow container, in declaration order.

    Start events without incoming flows; containers without a start event
    fall back to flow nodes that have no incoming sequence flow.
    """
    entries: List[str] = []
    containers = {}
    for node in graph.nodes.values():
        if not node.kind.is_flow_node or node.kind == NodeKind.BOUNDARY_EVENT:
            continue
        containers.setdefault(graph.flow_container(node.id), []).append(node)

    for members in containers.values():
        sources = [n for n in members if not graph.incoming(n.id)]
        starts = [n for n in sources if n.kind == NodeKind.START_EVENT]
        entries.extend(n.id for n in (starts or sources))
    return entries


def next_on_path(graph: LayoutGraph, classification: BranchClassification, node_id: str) -> Optional[LayoutEdge]:
    """Flow the happy path follows when leaving node_id."""
    branches = classification.get(node_id)
    if branches is not None and branches.on_path_edge_id:
        return graph.edges[branches.on_path_edge_id]
    outgoing = graph.outgoing(node_id)
    return outgoing[0] if outgoing else None


def happy_path_chains(graph: LayoutGraph, classification: BranchClassification) -> List[List[str]]:
    """Walk on-path flows from every entry node.

    Chains never share nodes: a walk stops when it reaches a node already
    claimed by an earlier chain.
    """
    visited: Set[str] = set()
    chains: List[List[str]] = []
    for entry in entry_nodes(graph):
        if entry in visited:
            continue
        chain: List[str] = []
        current: Optional[str] = entry
        while current is not None and current not in visited:
            visited.add(current)
            chain.append(current)
            edge = next_on_path(graph, classification, current)
            current = edge.target_id if edge is not None else None
        chains.append(chain)
    return chains


def happy_path_edge_ids(graph: LayoutGraph, chains: List[List[str]]) -> Set[str]:
    """Sequence flows linking consecutive nodes of the happy-path chains."""
    ids: Set[str] = set()
    for chain in chains:
        for source, target in zip(chain, chain[1:]):
            for edge in graph.outgoing(source, EdgeKind.SEQUENCE_FLOW):
                if edge.target_id == target:
                    ids.add(edge.id)
                    break
    return ids
