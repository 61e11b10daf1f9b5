"""Layout engines registry.

Available engines:
- layered: in-process layered solver on networkx (default)
- elk: ELK via elkjs (persistent Node.js worker)
"""

from .base import LayoutEngine, validate_elk_graph
from .elk import ELKLayoutEngine
from .layered import LayeredLayoutEngine

# Engine registry
ENGINES = {
    "layered": LayeredLayoutEngine,
    "elk": ELKLayoutEngine,
}


def get_engine(name: str) -> type:
    """Get layout engine class by name.

    Args:
        name: Engine name ('layered', 'elk')

    Returns:
        Layout engine class

    Raises:
        ValueError: If engine not found
    """
    if name not in ENGINES:
        raise ValueError(f"Unknown layout engine: {name}. Available: {list(ENGINES.keys())}")
    return ENGINES[name]


__all__ = [
    "LayoutEngine",
    "LayeredLayoutEngine",
    "ELKLayoutEngine",
    "ENGINES",
    "get_engine",
    "validate_elk_graph",
]
