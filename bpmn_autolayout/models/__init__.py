"""Data models for the BPMN layout engine.

- bpmn: in-memory BPMN diagram (the read/write model collaborator)
- layout_graph: typed layout nodes, edges and containment for one run
- layout_metadata: imported solver output
- layout_options / layout_result: call options and diagnostics
"""

from .bpmn import Bounds, BpmnDiagram, BpmnElement, DiagramModel
from .layout_graph import (
    BranchClassification,
    ContainmentTree,
    EdgeKind,
    GatewayBranches,
    LayoutEdge,
    LayoutGraph,
    LayoutLabel,
    LayoutNode,
    NodeKind,
    PositionSnapshot,
)
from .layout_metadata import BoundingBox, EdgeRoute, EdgeSection, NodePosition, SolverLayout
from .layout_options import LayoutOptions
from .layout_result import ContainerSizingIssue, LaneCrossingMetrics, LayoutResult, StepRecord

__all__ = [
    # BPMN model
    "Bounds",
    "BpmnDiagram",
    "BpmnElement",
    "DiagramModel",

    # Layout graph
    "BranchClassification",
    "ContainmentTree",
    "EdgeKind",
    "GatewayBranches",
    "LayoutEdge",
    "LayoutGraph",
    "LayoutLabel",
    "LayoutNode",
    "NodeKind",
    "PositionSnapshot",

    # Solver output
    "BoundingBox",
    "EdgeRoute",
    "EdgeSection",
    "NodePosition",
    "SolverLayout",

    # Options and results
    "LayoutOptions",
    "ContainerSizingIssue",
    "LaneCrossingMetrics",
    "LayoutResult",
    "StepRecord",
]
