"""In-process layered layout engine.

A deterministic left-to-right layered solver on networkx that consumes and
produces the same ELK JSON structure as the elkjs engine, so the placement
adapter does not care which one runs.

Algorithm per compound node (children first, so compound sizes are known):
    1. Lift every edge endpoint to the direct child that contains it
    2. Split into weakly connected components (stacked vertically)
    3. Break cycles by removing DFS back edges (model order)
    4. Longest-path layering (topological generations)
    5. Row assignment: a node inherits the row of the predecessor reached
       through its highest-priority incoming edge; when that row is taken in
       the layer it moves to the next free row below
    6. Columns sized by the widest node per layer, rows by the tallest node
       per row; nodes are centred in their cell, so a row shares one centre Y
    7. Provisional orthogonal sections for the container's edges
"""

import copy
import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

import networkx as nx

from .base import LayoutEngine, validate_elk_graph

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = {
    "elk.direction": "RIGHT",
    "elk.spacing.nodeNode": 50,
    "elk.layered.spacing.nodeNodeBetweenLayers": 60,
    "elk.spacing.componentComponent": 50,
}

# Options that apply only to the node that declares them
NON_INHERITED_OPTIONS = ("elk.padding",)

_PADDING_RE = re.compile(r"(top|left|bottom|right)\s*=\s*(-?[\d.]+)")

Rect = Tuple[float, float, float, float]


def parse_padding(value: Optional[str]) -> Dict[str, float]:
    """Parse an ELK padding string like '[top=80,left=50,bottom=80,right=40]'."""
    padding = {"top": 12.0, "left": 12.0, "bottom": 12.0, "right": 12.0}
    if value:
        for side, amount in _PADDING_RE.findall(str(value)):
            padding[side] = float(amount)
    return padding


def _edge_priority(edge: Dict[str, Any]) -> int:
    options = edge.get("layoutOptions", {})
    try:
        return int(options.get("elk.priority.straightness", options.get("elk.priority.direction", 1)))
    except (TypeError, ValueError):
        return 1


def _sorted_out_edges(g: nx.MultiDiGraph, node_id: str):
    return sorted(g.out_edges(node_id, keys=True, data=True), key=lambda e: e[3].get("order", 0))


def find_back_edges(g: nx.MultiDiGraph, nodes: List[str]) -> Set[Tuple[str, str, str]]:
    """Edges closing a cycle in a depth-first search that follows model order.

    Roots are the nodes without incoming edges, then every other node in the
    given order. Edge data may carry an "order" attribute for tie-breaks.

    Returns:
        Set of (source, target, key) triples
    """
    state: Dict[str, int] = {}
    back: Set[Tuple[str, str, str]] = set()
    roots = [n for n in nodes if g.in_degree(n) == 0] + list(nodes)
    for root in roots:
        if state.get(root):
            continue
        state[root] = 1
        stack = [(root, iter(_sorted_out_edges(g, root)))]
        while stack:
            current, edges = stack[-1]
            descended = False
            for u, v, key, _ in edges:
                seen = state.get(v, 0)
                if seen == 1:
                    back.add((u, v, key))
                elif seen == 0:
                    state[v] = 1
                    stack.append((v, iter(_sorted_out_edges(g, v))))
                    descended = True
                    break
            if not descended:
                state[current] = 2
                stack.pop()
    return back


class LayeredLayoutEngine(LayoutEngine):
    """Deterministic layered solver running in-process."""

    @property
    def name(self) -> str:
        return "layered"

    @property
    def supports_orthogonal_routing(self) -> bool:
        return True

    @property
    def supports_ports(self) -> bool:
        return False

    async def is_available(self) -> bool:
        return True

    async def layout(
        self,
        graph: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Lay out an ELK JSON graph.

        Args:
            graph: ELK JSON graph
            options: Root layout options merged over the graph's own

        Returns:
            Copy of the graph with positions, compound sizes and sections

        Raises:
            ValueError: If a leaf node has no positive size
        """
        validate_elk_graph(graph)
        result = copy.deepcopy(graph)
        root_options = {**DEFAULT_OPTIONS, **graph.get("layoutOptions", {}), **(options or {})}
        result["layoutOptions"] = root_options
        self._layout_compound(result, root_options)
        result.setdefault("x", 0)
        result.setdefault("y", 0)
        return result

    # ------------------------------------------------------------------
    # Compound layout
    # ------------------------------------------------------------------

    def _layout_compound(self, node: Dict[str, Any], inherited: Dict[str, Any]) -> None:
        options = {**inherited, **node.get("layoutOptions", {})}
        child_inherited = {k: v for k, v in options.items() if k not in NON_INHERITED_OPTIONS}

        children = node.get("children", [])
        for child in children:
            if child.get("children"):
                self._layout_compound(child, child_inherited)

        padding = parse_padding(options.get("elk.padding"))
        if not children:
            node.setdefault("width", padding["left"] + padding["right"])
            node.setdefault("height", padding["top"] + padding["bottom"])
            return

        node_spacing = float(options.get("elk.spacing.nodeNode", 50))
        layer_spacing = float(options.get("elk.layered.spacing.nodeNodeBetweenLayers", 60))
        component_spacing = float(options.get("elk.spacing.componentComponent", node_spacing))

        index = {child["id"]: i for i, child in enumerate(children)}
        owner = self._owners(children)
        g = nx.MultiDiGraph()
        g.add_nodes_from(child["id"] for child in children)
        for order, edge in enumerate(node.get("edges", [])):
            source = owner.get(edge["sources"][0])
            target = owner.get(edge["targets"][0])
            if source is None or target is None or source == target:
                continue
            g.add_edge(source, target, key=edge["id"], priority=_edge_priority(edge), order=order)

        by_id = {child["id"]: child for child in children}
        components = sorted(
            (sorted(c, key=index.get) for c in nx.weakly_connected_components(g)),
            key=lambda c: index[c[0]],
        )

        y_offset = padding["top"]
        max_right = padding["left"]
        back_edges: Set[Tuple[str, str, str]] = set()
        for component in components:
            sub = g.subgraph(component)
            back = find_back_edges(sub, component)
            back_edges.update(back)
            layers = self._layering(sub, component, back)
            rows = self._assign_rows(sub, component, layers, back, index)
            bottom, right = self._place(by_id, component, layers, rows, padding["left"], y_offset,
                                        node_spacing, layer_spacing)
            y_offset = bottom + component_spacing
            max_right = max(max_right, right)

        node["width"] = max_right + padding["right"]
        node["height"] = y_offset - component_spacing + padding["bottom"]
        self._route_edges(node, owner, by_id, back_edges, node_spacing)

    @staticmethod
    def _owners(children: List[Dict[str, Any]]) -> Dict[str, str]:
        """Map every descendant ID to the direct child that contains it."""
        owner: Dict[str, str] = {}
        for child in children:
            stack = [child]
            while stack:
                current = stack.pop()
                owner[current["id"]] = child["id"]
                stack.extend(current.get("children", []))
        return owner

    @staticmethod
    def _layering(g: nx.MultiDiGraph, nodes: List[str], back: Set[Tuple[str, str, str]]) -> Dict[str, int]:
        dag = nx.DiGraph()
        dag.add_nodes_from(nodes)
        for u, v, key in g.edges(keys=True):
            if (u, v, key) not in back:
                dag.add_edge(u, v)
        layers: Dict[str, int] = {}
        for layer, generation in enumerate(nx.topological_generations(dag)):
            for node_id in generation:
                layers[node_id] = layer
        return layers

    @staticmethod
    def _assign_rows(
        g: nx.MultiDiGraph,
        nodes: List[str],
        layers: Dict[str, int],
        back: Set[Tuple[str, str, str]],
        index: Dict[str, int],
    ) -> Dict[str, int]:
        rows: Dict[str, int] = {}
        occupied: Dict[int, Set[int]] = defaultdict(set)
        for layer in sorted(set(layers.values())):
            members = [n for n in nodes if layers[n] == layer]
            preferences = {}
            for node_id in members:
                incoming = [
                    (u, data)
                    for u, _, key, data in g.in_edges(node_id, keys=True, data=True)
                    if (u, node_id, key) not in back and u in rows
                ]
                if incoming:
                    u, data = max(incoming, key=lambda e: (e[1]["priority"], -e[1]["order"]))
                    preferences[node_id] = (rows[u], -data["priority"], data["order"], index[node_id])
                else:
                    preferences[node_id] = (0, 0, float("inf"), index[node_id])
            for node_id in sorted(members, key=preferences.get):
                row = preferences[node_id][0]
                while row in occupied[layer]:
                    row += 1
                rows[node_id] = row
                occupied[layer].add(row)
        # Compress unused rows
        dense = {row: i for i, row in enumerate(sorted(set(rows.values())))}
        return {node_id: dense[row] for node_id, row in rows.items()}

    @staticmethod
    def _place(
        by_id: Dict[str, Dict[str, Any]],
        nodes: List[str],
        layers: Dict[str, int],
        rows: Dict[str, int],
        left: float,
        top: float,
        node_spacing: float,
        layer_spacing: float,
    ) -> Tuple[float, float]:
        """Set child x/y; returns (bottom, right) of the component."""
        layer_width: Dict[int, float] = defaultdict(float)
        row_height: Dict[int, float] = defaultdict(float)
        for node_id in nodes:
            child = by_id[node_id]
            layer_width[layers[node_id]] = max(layer_width[layers[node_id]], child["width"])
            row_height[rows[node_id]] = max(row_height[rows[node_id]], child["height"])

        layer_x: Dict[int, float] = {}
        x = left
        for layer in sorted(layer_width):
            layer_x[layer] = x
            x += layer_width[layer] + layer_spacing
        row_y: Dict[int, float] = {}
        y = top
        for row in sorted(row_height):
            row_y[row] = y
            y += row_height[row] + node_spacing

        for node_id in nodes:
            child = by_id[node_id]
            layer, row = layers[node_id], rows[node_id]
            child["x"] = layer_x[layer] + (layer_width[layer] - child["width"]) / 2
            child["y"] = row_y[row] + (row_height[row] - child["height"]) / 2

        return y - node_spacing, x - layer_spacing

    # ------------------------------------------------------------------
    # Provisional edge sections
    # ------------------------------------------------------------------

    def _route_edges(
        self,
        node: Dict[str, Any],
        owner: Dict[str, str],
        by_id: Dict[str, Dict[str, Any]],
        back_edges: Set[Tuple[str, str, str]],
        node_spacing: float,
    ) -> None:
        lowest = max((c["y"] + c["height"] for c in by_id.values()), default=0)
        for edge in node.get("edges", []):
            source = owner.get(edge["sources"][0])
            target = owner.get(edge["targets"][0])
            if source is None or target is None or source == target:
                continue
            s = self._rect(by_id[source])
            t = self._rect(by_id[target])
            backward = (source, target, edge["id"]) in back_edges or t[0] + t[2] <= s[0]
            edge["sections"] = [self._section(edge["id"], s, t, backward, lowest + node_spacing / 2)]

    @staticmethod
    def _rect(child: Dict[str, Any]) -> Rect:
        return (child["x"], child["y"], child["width"], child["height"])

    @staticmethod
    def _section(edge_id: str, s: Rect, t: Rect, backward: bool, below_y: float) -> Dict[str, Any]:
        s_cx, s_cy = s[0] + s[2] / 2, s[1] + s[3] / 2
        t_cx, t_cy = t[0] + t[2] / 2, t[1] + t[3] / 2
        if backward:
            start = (s_cx, s[1] + s[3])
            end = (t_cx, t[1] + t[3])
            bends = [(s_cx, below_y), (t_cx, below_y)]
        elif abs(s_cy - t_cy) < 0.5:
            start = (s[0] + s[2], s_cy)
            end = (t[0], s_cy)
            bends = []
        else:
            mid_x = (s[0] + s[2] + t[0]) / 2
            start = (s[0] + s[2], s_cy)
            end = (t[0], t_cy)
            bends = [(mid_x, s_cy), (mid_x, t_cy)]
        return {
            "id": f"{edge_id}_s0",
            "startPoint": {"x": start[0], "y": start[1]},
            "endPoint": {"x": end[0], "y": end[1]},
            "bendPoints": [{"x": x, "y": y} for x, y in bends],
        }
