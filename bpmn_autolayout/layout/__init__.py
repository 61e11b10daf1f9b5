"""Automatic layout for BPMN diagrams.

This module provides:
- Graph model builder and happy-path classification
- Solver engine abstraction (layered in-process, ELK via elkjs)
- BPMN post-processing stages (branch rows, pools/lanes, exception chains)
- Edge routing, crossing detection and label decluttering

Architecture Decision:
    - The external solver only layers flow nodes; BPMN conventions are
      enforced by post-processing stages on a per-call LayoutGraph
    - Every stage works on the LayoutGraph; the diagram is only written
      once all stages succeed
"""

from .errors import GraphBuildError, LayoutError, LayoutSolverError
from .graph_builder import GraphBuilder, build_layout_graph
from .happy_path import classify_branches, happy_path_chains
from .logger import LayoutLogger
from .pipeline import layout_diagram, layout_diagram_sync
from .pool_geometry import detect_container_sizing_issues

__all__ = [
    "GraphBuildError",
    "LayoutError",
    "LayoutSolverError",
    "GraphBuilder",
    "build_layout_graph",
    "classify_branches",
    "happy_path_chains",
    "LayoutLogger",
    "layout_diagram",
    "layout_diagram_sync",
    "detect_container_sizing_issues",
]
