"""Solver output schema: absolute node positions, sizes and edge sections.

This module provides schemas for the raw result of the layered-layout
solver once it has been imported back from the solver's JSON format:
- Node positions (absolute x, y; top-left origin)
- Compound node sizes (containers resized by the solver)
- Edge routing (orthogonal sections with bend points)

Architecture Decision:
    - Keep the solver result separate from the layout graph so that a solver
      failure leaves the graph untouched
    - Store ELK-native coordinates (top-left origin, px) made absolute by
      accumulating parent offsets
    - Persist edge sections with startPoint/endPoint/bendPoints
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class NodePosition(BaseModel):
    """Absolute position of a single node in 2D layout space.

    Attributes:
        x: Horizontal coordinate of the top-left corner
        y: Vertical coordinate of the top-left corner
    """

    x: float = Field(..., description="Horizontal coordinate")
    y: float = Field(..., description="Vertical coordinate")

    @field_validator("x", "y")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"Coordinate must be finite, got {v}")
        return v


class BoundingBox(BaseModel):
    """Bounding box for a node set or an entire layout.

    Attributes:
        min_x: Minimum x coordinate
        max_x: Maximum x coordinate
        min_y: Minimum y coordinate
        max_y: Maximum y coordinate
    """

    min_x: float = Field(..., description="Minimum x coordinate")
    max_x: float = Field(..., description="Maximum x coordinate")
    min_y: float = Field(..., description="Minimum y coordinate")
    max_y: float = Field(..., description="Maximum y coordinate")

    @property
    def width(self) -> float:
        """Computed width of bounding box."""
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        """Computed height of bounding box."""
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        """Computed center point of bounding box."""
        return (
            (self.min_x + self.max_x) / 2,
            (self.min_y + self.max_y) / 2
        )

    @classmethod
    def from_rects(cls, rects: List[Tuple[float, float, float, float]]) -> "BoundingBox":
        """Compute bounding box enclosing (x, y, width, height) rectangles.

        Raises:
            ValueError: If rects is empty
        """
        if not rects:
            raise ValueError("Cannot compute bounding box from empty rectangles")

        return cls(
            min_x=min(r[0] for r in rects),
            max_x=max(r[0] + r[2] for r in rects),
            min_y=min(r[1] for r in rects),
            max_y=max(r[1] + r[3] for r in rects),
        )


class EdgeSection(BaseModel):
    """A segment of an edge route.

    ELK uses sections to represent edge routing, especially for long edges
    that may have multiple segments. Each section has a start point, end point,
    and optional bend points for orthogonal routing.
    """

    id: Optional[str] = Field(default=None, description="Section ID (ELK may omit)")
    startPoint: Tuple[float, float] = Field(..., description="Start point (x, y)")
    endPoint: Tuple[float, float] = Field(..., description="End point (x, y)")
    bendPoints: List[Tuple[float, float]] = Field(
        default_factory=list, description="Bend points for orthogonal routing"
    )

    def get_all_points(self) -> List[Tuple[float, float]]:
        """Get all points in order: start -> bends -> end."""
        return [self.startPoint] + self.bendPoints + [self.endPoint]

    def translated(self, dx: float, dy: float) -> "EdgeSection":
        """Copy of this section shifted by (dx, dy)."""
        return EdgeSection(
            id=self.id,
            startPoint=(self.startPoint[0] + dx, self.startPoint[1] + dy),
            endPoint=(self.endPoint[0] + dx, self.endPoint[1] + dy),
            bendPoints=[(x + dx, y + dy) for x, y in self.bendPoints],
        )


class EdgeRoute(BaseModel):
    """Provisional routing data for an edge, as returned by the solver."""

    sections: List[EdgeSection] = Field(
        default_factory=list, description="Edge sections (segments)"
    )

    def get_all_points(self) -> List[Tuple[float, float]]:
        """Get all points from all sections in order."""
        points = []
        for section in self.sections:
            section_points = section.get_all_points()
            # Avoid duplicate points at section boundaries
            if points and section_points and points[-1] == section_points[0]:
                section_points = section_points[1:]
            points.extend(section_points)
        return points


class SolverLayout(BaseModel):
    """Imported result of one solver run.

    Attributes:
        algorithm: Engine that produced the layout (e.g., 'layered', 'elk')
        layout_options: Root layout options sent to the engine
        positions: Absolute node positions keyed by node ID
        sizes: Width/height per node as returned (compound nodes resized)
        edges: Provisional edge routes keyed by edge ID (absolute coordinates)
    """

    algorithm: str = Field(..., description="Layout engine used")
    layout_options: Dict[str, Any] = Field(
        default_factory=dict, description="Root layout options sent to the engine"
    )
    positions: Dict[str, NodePosition] = Field(
        default_factory=dict, description="Node positions keyed by node ID"
    )
    sizes: Dict[str, Tuple[float, float]] = Field(
        default_factory=dict, description="Solver (width, height) per node; compound nodes are resized"
    )
    edges: Dict[str, EdgeRoute] = Field(
        default_factory=dict, description="Edge routes keyed by edge ID"
    )

    @field_validator("sizes")
    @classmethod
    def validate_sizes(cls, v: Dict[str, Tuple[float, float]]) -> Dict[str, Tuple[float, float]]:
        for node_id, (width, height) in v.items():
            if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
                raise ValueError(f"Solver produced degenerate size for {node_id}: {width}x{height}")
        return v

    def get_bounding_box(self) -> Optional[BoundingBox]:
        """Bounding box over all positioned nodes that have a solver size."""
        rects = [
            (pos.x, pos.y, *self.sizes[node_id])
            for node_id, pos in self.positions.items()
            if node_id in self.sizes
        ]
        if not rects:
            return None
        return BoundingBox.from_rects(rects)
