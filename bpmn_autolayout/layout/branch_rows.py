"""Branch Row Ordering.

Establishes, for every split gateway, that the on-path branch sits on the
gateway's row and each off-path branch sits strictly below it, and that every
happy-path chain shares one row.

Algorithm:
    1. Pin each happy-path chain to the centre Y of its first node
    2. Visit split gateways downstream-first (reverse BFS discovery order)
       so nested splits are arranged before the branch containing them moves
    3. A branch is the bounded reach of one outgoing flow, minus the
       gateway, minus nodes reachable from a sibling flow (shared merge
       points), minus happy-path chain nodes
    4. Off-path branch k (1-based, declaration order, empty branches
       skipped) targets centre Y = gateway row + k * BRANCH_ROW_STEP and is
       pushed further down when it would reach above the previous branch
       (or the on-path region) plus BRANCH_GAP; the whole branch moves by
       one delta
    5. Repeat until no branch moves (bounded by MAX_ROW_PASSES)
    6. Resolve remaining overlaps by pushing non-chain nodes down
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from ..models.layout_graph import BranchClassification, LayoutGraph, LayoutNode, NodeKind
from .constants import (
    BRANCH_GAP,
    BRANCH_ROW_STEP,
    MAX_OVERLAP_PASSES,
    MAX_ROW_PASSES,
    MAX_TRAVERSAL_DEPTH,
    MIN_MOVE_THRESHOLD,
)
from .geometry import rects_overlap
from .happy_path import entry_nodes
from .logger import LayoutLogger

logger = logging.getLogger(__name__)

OVERLAP_GAP = 10


class BranchRowOrderer:
    """Applies the row invariants to a positioned layout graph."""

    def __init__(
        self,
        graph: LayoutGraph,
        classification: BranchClassification,
        chains: List[List[str]],
        skip_ids: Optional[Set[str]] = None,
        layout_logger: Optional[LayoutLogger] = None,
    ):
        self.graph = graph
        self.classification = classification
        self.chains = chains
        self.chain_nodes: Set[str] = {n for chain in chains for n in chain}
        self.skip_ids = set(skip_ids or ())
        self.layout_logger = layout_logger

    def run(self) -> int:
        """Apply row ordering.

        Returns:
            Number of passes until the fixed point was reached
        """
        self.pin_chains()
        order = self.gateway_order()
        passes = 0
        for passes in range(1, MAX_ROW_PASSES + 1):
            if not self._order_pass(order):
                break
        else:
            if self.layout_logger:
                self.layout_logger.note(f"branch rows: no fixed point after {MAX_ROW_PASSES} passes")
        self.resolve_overlaps()
        return passes

    # ------------------------------------------------------------------
    # Chains
    # ------------------------------------------------------------------

    def pin_chains(self) -> None:
        """Move every chain node onto the row of the chain's first node."""
        for chain in self.chains:
            if not chain:
                continue
            row_cy = self.graph.nodes[chain[0]].cy
            for node_id in chain[1:]:
                self.graph.set_centre(node_id, cy=row_cy)

    # ------------------------------------------------------------------
    # Gateways
    # ------------------------------------------------------------------

    def gateway_order(self) -> List[str]:
        """Split gateways, downstream first."""
        g = self.graph.flow_graph()
        discovered: List[str] = []
        seen: Set[str] = set()

        def visit(node_id: str) -> None:
            if node_id in self.classification and node_id not in seen:
                seen.add(node_id)
                discovered.append(node_id)

        for entry in entry_nodes(self.graph):
            if entry not in g:
                continue
            visit(entry)
            for _, target in nx.bfs_edges(g, entry):
                visit(target)
        for gateway_id in self.classification.gateways:
            visit(gateway_id)
        return [gw for gw in reversed(discovered) if gw not in self.skip_ids]

    def branch_nodes(self, gateway_id: str) -> Dict[str, Set[str]]:
        """Edge ID -> nodes belonging exclusively to that branch."""
        graph = self.graph
        branches = self.classification.get(gateway_id)
        container = graph.flow_container(gateway_id)
        edge_ids = [branches.on_path_edge_id] if branches.on_path_edge_id else []
        edge_ids += [e for e in branches.off_path_edge_ids if e not in branches.unknown_edge_ids]

        reach: Dict[str, Set[str]] = {}
        for edge_id in edge_ids:
            target = graph.edges[edge_id].target_id
            reached, truncated = graph.reach([target], MAX_TRAVERSAL_DEPTH, blocked={gateway_id})
            if truncated:
                logger.debug(f"Branch {edge_id} of {gateway_id} truncated at depth {MAX_TRAVERSAL_DEPTH}")
            reach[edge_id] = reached

        result: Dict[str, Set[str]] = {}
        for edge_id, reached in reach.items():
            shared: Set[str] = set()
            for other_id, other in reach.items():
                if other_id != edge_id:
                    shared |= other
            result[edge_id] = {
                n for n in reached - shared
                if n not in self.chain_nodes
                and n not in self.skip_ids
                and graph.nodes[n].kind != NodeKind.BOUNDARY_EVENT
                and graph.flow_container(n) == container
            }
        return result

    def _move_all(self, node_ids: Iterable[str], dy: float) -> None:
        for node_id in node_ids:
            self.graph.move_node(node_id, 0, dy)

    def _order_pass(self, order: List[str]) -> bool:
        graph = self.graph
        changed = False
        for gateway_id in order:
            gateway = graph.nodes[gateway_id]
            branches = self.classification.get(gateway_id)
            sets = self.branch_nodes(gateway_id)
            on_nodes = sets.get(branches.on_path_edge_id, set()) if branches.on_path_edge_id else set()

            # Gateways off the happy path still keep their on-path branch on their row
            if branches.on_path_edge_id:
                on_target = graph.nodes[graph.edges[branches.on_path_edge_id].target_id]
                if on_target.id in on_nodes:
                    dy = gateway.cy - on_target.cy
                    if abs(dy) > MIN_MOVE_THRESHOLD:
                        self._move_all(on_nodes, dy)
                        changed = True

            lower = max([gateway.bottom] + [graph.nodes[n].bottom for n in on_nodes]) + BRANCH_GAP
            slot = 0
            for edge_id in branches.off_path_edge_ids:
                nodes = sets.get(edge_id)
                if not nodes:
                    continue
                slot += 1
                edge = graph.edges[edge_id]
                entry = graph.nodes[edge.target_id] if edge.target_id in nodes else self._topmost(nodes)
                top = min(graph.nodes[n].y for n in nodes)

                dy = gateway.cy + slot * BRANCH_ROW_STEP - entry.cy
                if top + dy < lower:
                    dy = lower - top
                if abs(dy) > MIN_MOVE_THRESHOLD:
                    self._move_all(nodes, dy)
                    changed = True
                lower = max(graph.nodes[n].bottom for n in nodes) + BRANCH_GAP
        return changed

    def _topmost(self, node_ids: Set[str]) -> LayoutNode:
        return min((self.graph.nodes[n] for n in node_ids), key=lambda n: (n.y, n.x))

    # ------------------------------------------------------------------
    # Overlaps
    # ------------------------------------------------------------------

    def resolve_overlaps(self) -> int:
        """Push overlapping non-chain nodes down within each flow container.

        Returns:
            Number of moves made
        """
        graph = self.graph
        containers: Dict[Optional[str], List[LayoutNode]] = {}
        for node in graph.nodes.values():
            if not node.kind.is_flow_node or node.kind == NodeKind.BOUNDARY_EVENT or node.id in self.skip_ids:
                continue
            containers.setdefault(graph.flow_container(node.id), []).append(node)

        order = {node_id: i for i, node_id in enumerate(graph.nodes)}
        moves = 0
        for members in containers.values():
            for _ in range(MAX_OVERLAP_PASSES):
                moved = False
                ranked = sorted(members, key=lambda n: (n.y, n.x))
                for i, a in enumerate(ranked):
                    for b in ranked[i + 1:]:
                        if not rects_overlap(a.rect, b.rect):
                            continue
                        mover, fixed = self._pick_mover(a, b, order)
                        if mover is None:
                            continue
                        graph.move_node(mover.id, 0, fixed.bottom + OVERLAP_GAP - mover.y)
                        moves += 1
                        moved = True
                if not moved:
                    break
        if moves:
            logger.debug(f"Resolved {moves} overlaps after branch ordering")
        return moves

    def _pick_mover(self, a: LayoutNode, b: LayoutNode, order: Dict[str, int]):
        a_pinned = a.id in self.chain_nodes
        b_pinned = b.id in self.chain_nodes
        if a_pinned and b_pinned:
            return None, None
        if a_pinned:
            return b, a
        if b_pinned:
            return a, b
        if (a.cy, order[a.id]) > (b.cy, order[b.id]):
            return a, b
        return b, a


def order_branch_rows(
    graph: LayoutGraph,
    classification: BranchClassification,
    chains: List[List[str]],
    skip_ids: Optional[Set[str]] = None,
    layout_logger: Optional[LayoutLogger] = None,
) -> int:
    """Convenience wrapper around BranchRowOrderer."""
    return BranchRowOrderer(graph, classification, chains, skip_ids, layout_logger).run()
