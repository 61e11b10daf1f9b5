"""Base layout engine protocol.

Defines the interface that all layered-layout solvers must implement. An
engine receives an ELK JSON graph (nested children, edges, layoutOptions)
and returns the same structure with x/y set on every child, width/height
set on compound nodes and provisional sections on edges.
"""

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class LayoutEngine(ABC):
    """Abstract base class for layout engines.

    Layout engines convert a hinted graph into positioned children with
    provisional orthogonal edge sections.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name (e.g., 'elk', 'layered')."""
        ...

    @property
    @abstractmethod
    def supports_orthogonal_routing(self) -> bool:
        """Whether engine supports orthogonal (Manhattan) edge routing."""
        ...

    @property
    @abstractmethod
    def supports_ports(self) -> bool:
        """Whether engine supports port-aware layout."""
        ...

    @abstractmethod
    async def layout(
        self,
        graph: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Compute layout for an ELK JSON graph.

        Args:
            graph: ELK JSON graph (root node with children and edges)
            options: Root layout options merged over graph['layoutOptions']

        Returns:
            Laid-out ELK JSON graph

        Raises:
            ValueError: If the graph contains degenerate nodes
            RuntimeError: If the engine fails
        """
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if engine is available (dependencies installed).

        Returns:
            True if engine can be used
        """
        ...


def validate_elk_graph(node: Dict[str, Any]) -> None:
    """Reject leaf nodes without a positive, finite size.

    Raises:
        ValueError: On the first degenerate node found
    """
    for child in node.get("children", []):
        if not child.get("children"):
            width = child.get("width", 0)
            height = child.get("height", 0)
            if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
                raise ValueError(f"Degenerate node '{child.get('id')}': size {width}x{height}")
        validate_elk_graph(child)
