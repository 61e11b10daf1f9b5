"""Boundary Exception-Chain Positioner.

An exception chain is the run of nodes reachable only through a boundary
event's outgoing flows, up to the point where it rejoins the main flow or
ends. Chains are kept away from the solver and placed here, directly below
their own host and inside the host's column.

Placement rules:
    - Chain i of a host starts at host.x on the row
      host.bottom + BOUNDARY_TARGET_Y_OFFSET + i * BOUNDARY_CHAIN_STACK_OFFSET
    - Chain nodes run left to right with BOUNDARY_CHAIN_GAP between them
    - A chain never extends past the next chain-carrying host's column
      (its x minus BOUNDARY_COLUMN_GAP); it wraps onto another row instead
    - A chain overlapping already placed nodes shifts down a row at a
      time, at most MAX_CHAIN_SHIFT_ATTEMPTS times; remaining overlap is a
      soft failure
"""

import logging
from collections import deque
from typing import Dict, List, Optional, Set

from ..models.layout_graph import LayoutGraph, LayoutNode, NodeKind
from .constants import (
    BOUNDARY_CHAIN_GAP,
    BOUNDARY_CHAIN_STACK_OFFSET,
    BOUNDARY_COLUMN_GAP,
    BOUNDARY_TARGET_Y_OFFSET,
    MAX_CHAIN_SHIFT_ATTEMPTS,
    MAX_TRAVERSAL_DEPTH,
)
from .geometry import rects_overlap
from .happy_path import entry_nodes
from .logger import LayoutLogger

logger = logging.getLogger(__name__)


def find_exception_chains(graph: LayoutGraph) -> Dict[str, List[str]]:
    """Boundary event ID -> ordered chain node IDs.

    The main flow is everything reachable from the entry nodes without
    passing through a boundary event. A chain is what a boundary event
    reaches outside the main flow, so loops inside a chain stay in it and
    a flow rejoining the main flow ends the chain. Each node is assigned
    to the first boundary event (declaration order) that reaches it.
    """
    boundary_events = graph.nodes_of_kind(NodeKind.BOUNDARY_EVENT)
    if not boundary_events:
        return {}

    boundary_ids = {n.id for n in boundary_events}
    main_flow, _ = graph.reach(entry_nodes(graph), len(graph.nodes), blocked=boundary_ids)

    chains: Dict[str, List[str]] = {}
    assigned: Set[str] = set()
    for boundary_id in (n.id for n in boundary_events):
        chain: List[str] = []
        queue = deque((e.target_id, 0) for e in graph.outgoing(boundary_id))
        while queue:
            node_id, depth = queue.popleft()
            if node_id in main_flow or node_id in assigned or node_id in boundary_ids:
                continue
            assigned.add(node_id)
            chain.append(node_id)
            if depth >= MAX_TRAVERSAL_DEPTH:
                logger.debug(f"Exception chain of {boundary_id} cut at depth {MAX_TRAVERSAL_DEPTH}")
                continue
            for edge in graph.outgoing(node_id):
                queue.append((edge.target_id, depth + 1))
        if chain:
            chains[boundary_id] = chain
    logger.debug(f"Found {len(chains)} exception chains ({len(assigned)} nodes)")
    return chains


def chain_anchors(graph: LayoutGraph, chains: Dict[str, List[str]]) -> Dict[str, str]:
    """Chain node ID -> host ID of the boundary event that owns the chain."""
    anchors: Dict[str, str] = {}
    for boundary_id, chain in chains.items():
        host_id = graph.nodes[boundary_id].host_id
        for node_id in chain:
            anchors[node_id] = host_id
    return anchors


class ExceptionChainPositioner:
    """Places every exception chain below its host."""

    def __init__(
        self,
        graph: LayoutGraph,
        chains: Dict[str, List[str]],
        layout_logger: Optional[LayoutLogger] = None,
    ):
        self.graph = graph
        self.chains = chains
        self.layout_logger = layout_logger
        self._pending: Set[str] = {n for chain in chains.values() for n in chain}

    def run(self) -> int:
        """Position all chains.

        Returns:
            Number of chains that still overlap other nodes
        """
        graph = self.graph
        by_host: Dict[str, List[List[str]]] = {}
        for boundary_id, chain in self.chains.items():
            by_host.setdefault(graph.nodes[boundary_id].host_id, []).append(chain)

        failures = 0
        for host_id, host_chains in by_host.items():
            host = graph.nodes[host_id]
            limit_x = self.column_limit(host, by_host)
            row = 0
            for chain in host_chains:
                row = self._place_chain(host, chain, row, limit_x)
                if not self._settle(chain):
                    failures += 1
                    message = f"exception chain below {host_id} still overlaps after {MAX_CHAIN_SHIFT_ATTEMPTS} shifts"
                    logger.warning(message)
                    if self.layout_logger:
                        self.layout_logger.note(message)
                row = self._row_after(host, chain)
                self._pending.difference_update(chain)
        return failures

    def column_limit(self, host: LayoutNode, by_host: Dict[str, List[List[str]]]) -> float:
        """Right limit of a host's column: the next chain-carrying host to its right."""
        container = self.graph.flow_container(host.id)
        limit = float("inf")
        for other_id in by_host:
            other = self.graph.nodes[other_id]
            if other_id == host.id or self.graph.flow_container(other_id) != container:
                continue
            if other.x > host.x:
                limit = min(limit, other.x - BOUNDARY_COLUMN_GAP)
        return limit

    def _row_y(self, host: LayoutNode, row: int) -> float:
        return host.bottom + BOUNDARY_TARGET_Y_OFFSET + row * BOUNDARY_CHAIN_STACK_OFFSET

    def _place_chain(self, host: LayoutNode, chain: List[str], row: int, limit_x: float) -> int:
        graph = self.graph
        x = host.x
        for node_id in chain:
            node = graph.nodes[node_id]
            if x > host.x and x + node.width > limit_x:
                row += 1
                x = host.x
            graph.move_node(node_id, x - node.x, self._row_y(host, row) - node.cy)
            x += node.width + BOUNDARY_CHAIN_GAP
        return row

    def _row_after(self, host: LayoutNode, chain: List[str]) -> int:
        """First free row index below a placed chain."""
        lowest = max(self.graph.nodes[n].cy for n in chain)
        return int(round((lowest - self._row_y(host, 0)) / BOUNDARY_CHAIN_STACK_OFFSET)) + 1

    def _obstacles(self, chain: List[str]) -> List[LayoutNode]:
        graph = self.graph
        skip = set(chain) | self._pending
        for node_id in chain:
            skip.update(graph.tree.descendants(node_id))
        return [
            n for n in graph.nodes.values()
            if n.id not in skip
            and n.kind.is_flow_node
            and not (n.kind == NodeKind.SUB_PROCESS and n.expanded)
        ]

    def _settle(self, chain: List[str]) -> bool:
        """Shift a chain down until it overlaps nothing; False if it never does."""
        graph = self.graph
        obstacles = self._obstacles(chain)
        for attempt in range(MAX_CHAIN_SHIFT_ATTEMPTS + 1):
            hit = any(
                rects_overlap(graph.nodes[n].rect, other.rect)
                for n in chain
                for other in obstacles
            )
            if not hit:
                return True
            if attempt == MAX_CHAIN_SHIFT_ATTEMPTS:
                break
            for node_id in chain:
                graph.move_node(node_id, 0, BOUNDARY_CHAIN_STACK_OFFSET)
        return False


def position_exception_chains(
    graph: LayoutGraph,
    chains: Dict[str, List[str]],
    layout_logger: Optional[LayoutLogger] = None,
) -> int:
    """Convenience wrapper around ExceptionChainPositioner."""
    return ExceptionChainPositioner(graph, chains, layout_logger).run()
