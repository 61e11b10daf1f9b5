"""BPMN auto-layout: readable coordinates and routed edges for BPMN diagrams."""

from .layout import GraphBuildError, LayoutSolverError, layout_diagram, layout_diagram_sync
from .models import BpmnDiagram, LayoutOptions, LayoutResult

__version__ = "0.1.0"

__all__ = [
    "BpmnDiagram",
    "LayoutOptions",
    "LayoutResult",
    "GraphBuildError",
    "LayoutSolverError",
    "layout_diagram",
    "layout_diagram_sync",
]
