"""Crossing Detector.

Pairwise segment test over every routed edge. A pair of edges is counted
once when any of their segments properly cross, or when collinear segments
share a stretch of positive length and the two edges have no endpoint
node in common (flows fanning out of or into the same node overlap by
construction). Touching at a single point is not a crossing.
"""

import logging
from itertools import combinations
from typing import List, Tuple

from ..models.layout_graph import LayoutEdge, LayoutGraph
from .geometry import collinear_overlap, segments_cross

logger = logging.getLogger(__name__)


def _share_node(a: LayoutEdge, b: LayoutEdge) -> bool:
    return bool({a.source_id, a.target_id} & {b.source_id, b.target_id})


def edges_cross(a: LayoutEdge, b: LayoutEdge) -> bool:
    """Whether two routed edges cross or overlap."""
    allow_overlap = not _share_node(a, b)
    for a1, a2 in zip(a.waypoints, a.waypoints[1:]):
        for b1, b2 in zip(b.waypoints, b.waypoints[1:]):
            if segments_cross(a1, a2, b1, b2):
                return True
            if allow_overlap and collinear_overlap(a1, a2, b1, b2):
                return True
    return False


def detect_crossings(graph: LayoutGraph) -> Tuple[int, List[Tuple[str, str]]]:
    """Count crossing edge pairs.

    Returns:
        (number of crossing pairs, list of (edgeIdA, edgeIdB) in edge
        declaration order)
    """
    routed = [e for e in graph.edges.values() if len(e.waypoints) >= 2]
    pairs: List[Tuple[str, str]] = []
    for a, b in combinations(routed, 2):
        if edges_cross(a, b):
            pairs.append((a.id, b.id))
    logger.debug(f"Detected {len(pairs)} crossing pairs among {len(routed)} edges")
    return len(pairs), pairs
