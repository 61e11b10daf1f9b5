"""Layout error taxonomy.

Fatal errors abort the layout run before anything is written back to the
diagram. Soft failures (label placement exhausted, lane dedup conflicts,
chain overlap not fully avoided) are never raised; they are logged and
surface only through diagnostic counts.
"""

from typing import Optional


class LayoutError(Exception):
    """Base class for all layout failures."""


class GraphBuildError(LayoutError):
    """Raised when the element tree cannot be turned into a layout graph.

    Typically a dangling reference: a connection (or boundary attachment)
    naming an element that does not exist.
    """

    def __init__(self, element_id: str, missing_id: Optional[str] = None, reason: Optional[str] = None):
        self.element_id = element_id
        self.missing_id = missing_id
        if reason is None:
            reason = f"references unknown element '{missing_id}'"
        super().__init__(f"Cannot build layout graph: '{element_id}' {reason}")


class LayoutSolverError(LayoutError):
    """Raised when the external layered-layout solver fails.

    No partial positions are applied when this is raised.
    """

    def __init__(self, solver: str, message: str, cause: Optional[BaseException] = None):
        self.solver = solver
        self.cause = cause
        super().__init__(f"Layout solver '{solver}' failed: {message}")
