"""MCP tools for BPMN diagram layout.

Provides tools to:
- Lay out a whole diagram (positions, routed flows, labels)
- Check lanes for sizing problems without changing the diagram

Architecture Decision:
    - Diagrams are held by the host in a store keyed by diagram ID
    - Layout errors map to stable error codes in the response envelope
    - Calls on the same diagram must be serialized by the host
"""

import logging
from typing import Dict, List, Optional

from mcp import Tool
from pydantic import ValidationError

from ..layout.engines import ENGINES
from ..layout.errors import GraphBuildError, LayoutSolverError
from ..layout.graph_builder import build_layout_graph
from ..layout.pipeline import layout_diagram
from ..layout.pool_geometry import detect_container_sizing_issues
from ..models.bpmn import DiagramModel
from ..models.layout_options import LayoutOptions
from ..utils.response import error_response, success_response

logger = logging.getLogger(__name__)

OPTION_SCHEMA = {
    "poolExpansion": {
        "type": "boolean",
        "description": "Auto-size pools and lanes (default: on when the diagram has pools)"
    },
    "gridSnap": {
        "type": "number",
        "description": "Round coordinates to this pixel grid (omit for no snapping)"
    },
    "solver": {
        "type": "string",
        "enum": ["layered", "elk"],
        "description": "Layout solver (default from BPMN_LAYOUT_SOLVER, else layered)"
    },
    "nodeSpacing": {
        "type": "number",
        "description": "Spacing between nodes in the same layer",
        "default": 50
    },
    "layerSpacing": {
        "type": "number",
        "description": "Spacing between layers",
        "default": 60
    },
    "preserveHappyPath": {
        "type": "boolean",
        "description": "Keep the happy path on one row and stack other branches below",
        "default": True
    },
}


class LayoutTools:
    """Provides BPMN layout tools over a diagram store."""

    def __init__(self, diagrams: Optional[Dict[str, DiagramModel]] = None):
        """Initialize with a diagram store.

        Args:
            diagrams: Store of diagrams keyed by diagram ID
        """
        self.diagrams = diagrams if diagrams is not None else {}

    def get_tools(self) -> List[Tool]:
        """Return layout MCP tools."""
        return [
            Tool(
                name="layout_diagram",
                description=(
                    "Automatically lay out a BPMN diagram: positions every element, keeps the happy path "
                    "on one row, sizes pools and lanes, places boundary exception chains below their "
                    "host and routes all flows. Returns crossing and label diagnostics."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "diagram_id": {
                            "type": "string",
                            "description": "ID of diagram to lay out"
                        },
                        **OPTION_SCHEMA,
                    },
                    "required": ["diagram_id"]
                }
            ),
            Tool(
                name="layout_check_sizing",
                description="Report lanes that are too small for the elements assigned to them (read-only)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "diagram_id": {
                            "type": "string",
                            "description": "ID of diagram to check"
                        }
                    },
                    "required": ["diagram_id"]
                }
            ),
        ]

    async def handle_tool(self, name: str, arguments: dict) -> dict:
        """Route tool call to appropriate handler.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Standardized response
        """
        handlers = {
            "layout_diagram": self._layout_diagram,
            "layout_check_sizing": self._check_sizing,
        }

        handler = handlers.get(name)
        if not handler:
            return error_response(f"Unknown layout tool: {name}", code="UNKNOWN_TOOL")

        try:
            return await handler(arguments)
        except Exception as e:
            logger.error(f"Error in {name}: {e}", exc_info=True)
            return error_response(str(e), code="TOOL_ERROR")

    def _get_diagram(self, args: dict) -> Optional[DiagramModel]:
        return self.diagrams.get(args.get("diagram_id"))

    async def _layout_diagram(self, args: dict) -> dict:
        """Lay out a diagram in place."""
        diagram_id = args.get("diagram_id")
        diagram = self._get_diagram(args)
        if diagram is None:
            return error_response(f"Diagram {diagram_id} not found", code="DIAGRAM_NOT_FOUND")

        raw_options = {k: v for k, v in args.items() if k != "diagram_id"}
        try:
            options = LayoutOptions.model_validate(raw_options)
        except ValidationError as e:
            return error_response(
                "Invalid layout options",
                code="INVALID_OPTIONS",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
        if options.solver and options.solver not in ENGINES:
            return error_response(
                f"Unknown solver: {options.solver}",
                code="INVALID_OPTIONS",
                details={"available": list(ENGINES)},
            )

        try:
            result = await layout_diagram(diagram, options)
        except GraphBuildError as e:
            return error_response(
                str(e),
                code="GRAPH_BUILD_ERROR",
                details={"element_id": e.element_id, "missing_id": e.missing_id},
            )
        except LayoutSolverError as e:
            return error_response(str(e), code="LAYOUT_SOLVER_ERROR", details={"solver": e.solver})

        warnings = []
        if not result.pool_expansion_applied:
            warnings = [
                f"Lane {issue.container_id} holds {issue.element_count} elements in "
                f"{issue.current_height:g}px (needs {issue.min_height:g}px)"
                for issue in result.container_sizing_issues
            ]
        data = result.to_dict()
        data["diagram_id"] = diagram_id
        return success_response(data, warnings=warnings or None)

    async def _check_sizing(self, args: dict) -> dict:
        """Report undersized lanes without laying out."""
        diagram_id = args.get("diagram_id")
        diagram = self._get_diagram(args)
        if diagram is None:
            return error_response(f"Diagram {diagram_id} not found", code="DIAGRAM_NOT_FOUND")

        try:
            graph = build_layout_graph(diagram)
        except GraphBuildError as e:
            return error_response(str(e), code="GRAPH_BUILD_ERROR", details={"element_id": e.element_id})

        issues = detect_container_sizing_issues(graph)
        return success_response({
            "diagram_id": diagram_id,
            "needs_expansion": bool(issues),
            "issues": [issue.model_dump(by_alias=True, exclude_none=True) for issue in issues],
        })
