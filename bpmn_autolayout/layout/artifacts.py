"""Artifact placement.

Text annotations and data objects/stores are not laid out by the solver.
Each one is placed next to the first flow node it is associated with:
annotations above and to the right, data objects and stores below. Several
artifacts on the same anchor are spread horizontally. Artifacts without an
association and groups keep their current position.
"""

import logging
from typing import Dict

from ..models.layout_graph import LayoutGraph, NodeKind
from .constants import ARTIFACT_ABOVE_OFFSET, ARTIFACT_BELOW_OFFSET

logger = logging.getLogger(__name__)

ARTIFACT_SPREAD_GAP = 20


def place_artifacts(graph: LayoutGraph) -> int:
    """Place associated artifacts next to their anchor node.

    Returns:
        Number of artifacts placed
    """
    above_count: Dict[str, int] = {}
    below_count: Dict[str, int] = {}
    placed = 0
    for artifact_id, anchor_id in graph.artifact_anchors.items():
        artifact = graph.nodes.get(artifact_id)
        anchor = graph.nodes.get(anchor_id)
        if artifact is None or anchor is None or artifact.kind == NodeKind.GROUP:
            continue
        if artifact.kind == NodeKind.TEXT_ANNOTATION:
            slot = above_count.get(anchor_id, 0)
            above_count[anchor_id] = slot + 1
            artifact.x = anchor.cx + ARTIFACT_SPREAD_GAP + slot * (artifact.width + ARTIFACT_SPREAD_GAP)
            artifact.y = anchor.y - ARTIFACT_ABOVE_OFFSET
        else:
            slot = below_count.get(anchor_id, 0)
            below_count[anchor_id] = slot + 1
            artifact.x = anchor.cx - artifact.width / 2 + slot * (artifact.width + ARTIFACT_SPREAD_GAP)
            artifact.y = anchor.bottom + ARTIFACT_BELOW_OFFSET - artifact.height
        placed += 1
    logger.debug(f"Placed {placed} artifacts")
    return placed
