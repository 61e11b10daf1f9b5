"""Layout pipeline: one invocation from element tree to written-back DI.

Stages run strictly in sequence on a fresh LayoutGraph; the only
suspension point is the solver call. Positions are written back to the
diagram only after every stage has succeeded, so a GraphBuildError or
LayoutSolverError leaves the diagram untouched.

Architecture Decision:
    - A LayoutLogger is created per invocation and passed to each stage
      explicitly; no layout state outlives the call
    - Exception-chain members and boundary events are kept from the solver
      and placed by BPMN-specific stages
    - Pool geometry is resolved before chain placement (so chains start
      from final host rows) and refitted afterwards (so pools enclose the
      chains)

Example:
    >>> result = await layout_diagram(diagram, LayoutOptions(grid_snap=10))
    >>> result.to_dict()["crossingFlows"]
    0
"""

import asyncio
import logging
from typing import List, Optional

from ..config.settings import get_default_solver
from ..models.bpmn import Bounds, DiagramModel
from ..models.layout_graph import LayoutGraph, NodeKind
from ..models.layout_options import LayoutOptions
from ..models.layout_result import LayoutResult
from .artifacts import place_artifacts
from .boundary_chains import chain_anchors, find_exception_chains, position_exception_chains
from .branch_rows import order_branch_rows
from .constants import SAME_ROW_TOLERANCE
from .crossings import detect_crossings
from .edge_routing import clamp_to_lanes, lane_crossing_metrics, route_edges, snap_waypoints
from .engines import get_engine
from .engines.base import LayoutEngine
from .errors import LayoutSolverError
from .geometry import snap
from .graph_builder import build_layout_graph
from .happy_path import classify_branches, happy_path_chains, happy_path_edge_ids
from .labels import anchor_labels, declutter_labels
from .logger import LayoutLogger
from .placement import PlacementAdapter, apply_solver_layout
from .pool_geometry import detect_container_sizing_issues, fit_subprocesses, resolve_pool_lane_geometry

logger = logging.getLogger(__name__)


def resolve_engine(options: LayoutOptions, engine: Optional[LayoutEngine] = None) -> LayoutEngine:
    """Engine instance for a call: explicit, then options, then settings."""
    if engine is not None:
        return engine
    name = options.solver or get_default_solver()
    try:
        return get_engine(name)()
    except ValueError as e:
        raise LayoutSolverError(name, str(e), cause=e) from e


def snap_nodes(graph: LayoutGraph, grid: float, chains: Optional[List[List[str]]] = None) -> None:
    """Round node positions to the grid.

    Shapes snap their left edge and their centre line, so shapes of
    different heights sharing a row stay on one row. Happy-path chain
    nodes that shared a row with their predecessor before snapping are
    put back on that row. Containers round
    all four edges so adjacent lanes keep sharing a border. Boundary
    events follow their host and stay centred on its bottom border.
    """
    before = {n.id: (n.x, n.y) for n in graph.nodes.values()}
    centres = {n.id: n.cy for n in graph.nodes.values()}
    for node in graph.nodes.values():
        if node.kind == NodeKind.BOUNDARY_EVENT:
            continue
        if node.kind in (NodeKind.PARTICIPANT, NodeKind.LANE) or (
            node.kind == NodeKind.SUB_PROCESS and node.expanded
        ):
            right, bottom = node.right, node.bottom
            node.x = snap(node.x, grid)
            node.y = snap(node.y, grid)
            node.width = snap(right, grid) - node.x
            node.height = snap(bottom, grid) - node.y
        else:
            node.x = snap(node.x, grid)
            node.y = snap(node.cy, grid) - node.height / 2

    for chain in chains or []:
        for prev_id, node_id in zip(chain, chain[1:]):
            if abs(centres[node_id] - centres[prev_id]) <= SAME_ROW_TOLERANCE:
                node = graph.nodes[node_id]
                node.y = graph.nodes[prev_id].cy - node.height / 2

    for event in graph.nodes_of_kind(NodeKind.BOUNDARY_EVENT):
        host = graph.nodes[event.host_id]
        event.x += host.x - before[host.id][0]
        event.y = host.bottom - event.height / 2


def write_back(diagram: DiagramModel, graph: LayoutGraph) -> None:
    """Copy final geometry from the layout graph onto the diagram."""
    for node in graph.nodes.values():
        diagram.set_bounds(node.id, node.x, node.y, node.width, node.height)
    for edge in graph.edges.values():
        diagram.set_waypoints(edge.id, edge.waypoints)
    for label in graph.labels.values():
        diagram.set_label_bounds(
            label.owner_id,
            Bounds(x=label.x, y=label.y, width=label.width, height=label.height),
        )


async def layout_diagram(
    diagram: DiagramModel,
    options: Optional[LayoutOptions] = None,
    engine: Optional[LayoutEngine] = None,
) -> LayoutResult:
    """Lay out a whole diagram in place.

    Args:
        diagram: Diagram to lay out; its bounds and waypoints are updated
        options: Call options (defaults apply when omitted)
        engine: Solver engine instance; overrides ``options.solver``

    Returns:
        LayoutResult with counts and diagnostics

    Raises:
        GraphBuildError: Dangling reference in the element tree
        LayoutSolverError: The solver failed; nothing is written back
    """
    options = options or LayoutOptions()
    layout_logger = LayoutLogger(diagram.diagram_id)

    layout_logger.begin_step("build_graph")
    graph = build_layout_graph(diagram)
    layout_logger.end_step("build_graph", note=f"{len(graph.nodes)} nodes, {len(graph.edges)} edges")

    layout_logger.begin_step("classify")
    classification = classify_branches(graph)
    chains = happy_path_chains(graph, classification)
    happy_edges = happy_path_edge_ids(graph, chains)
    exception_chains = find_exception_chains(graph)
    excluded = {n for chain in exception_chains.values() for n in chain}
    sizing_issues = detect_container_sizing_issues(graph)
    layout_logger.end_step(
        "classify",
        note=f"{len(classification.gateways)} gateways, {len(exception_chains)} exception chains",
    )

    solver = resolve_engine(options, engine)
    layout_logger.begin_step("placement")
    adapter = PlacementAdapter(graph, happy_edges, excluded, options, solver)
    solver_layout = await adapter.run()
    apply_solver_layout(graph, solver_layout, chain_anchors(graph, exception_chains))
    layout_logger.end_step("placement", note=solver.name)

    if options.preserve_happy_path:
        layout_logger.begin_step("branch_rows", graph)
        passes = order_branch_rows(graph, classification, chains, excluded, layout_logger)
        layout_logger.end_step("branch_rows", graph, note=f"{passes} passes")

    pool_expansion = options.pool_expansion_enabled(bool(graph.participants()))
    if pool_expansion:
        layout_logger.begin_step("pool_geometry", graph)
        resolve_pool_lane_geometry(graph, layout_logger)
        layout_logger.end_step("pool_geometry", graph)

    layout_logger.begin_step("exception_chains", graph)
    failures = position_exception_chains(graph, exception_chains, layout_logger)
    place_artifacts(graph)
    fit_subprocesses(graph)
    layout_logger.end_step("exception_chains", graph, note=f"{failures} unresolved overlaps" if failures else None)

    if pool_expansion:
        layout_logger.begin_step("pool_refit", graph)
        resolve_pool_lane_geometry(graph)
        layout_logger.end_step("pool_refit", graph)

    if options.grid_snap:
        layout_logger.begin_step("grid_snap", graph)
        snap_nodes(graph, options.grid_snap, chains if options.preserve_happy_path else None)
        layout_logger.end_step("grid_snap", graph)

    layout_logger.begin_step("edge_routing")
    route_edges(graph, classification)
    clamped = clamp_to_lanes(graph)
    if options.grid_snap:
        snap_waypoints(graph, options.grid_snap)
    layout_logger.end_step("edge_routing", note=f"{clamped} clamped")

    layout_logger.begin_step("crossings")
    crossing_count, crossing_pairs = detect_crossings(graph)
    layout_logger.end_step("crossings", note=f"{crossing_count} crossings")

    layout_logger.begin_step("labels")
    anchor_labels(graph)
    labels_moved = declutter_labels(graph, layout_logger)
    layout_logger.end_step("labels", note=f"{labels_moved} moved")

    write_back(diagram, graph)
    logger.info(layout_logger.summary())

    return LayoutResult(
        element_count=len(graph.nodes),
        labels_moved=labels_moved,
        crossing_flows=crossing_count,
        crossing_flow_pairs=crossing_pairs,
        pool_expansion_applied=True if pool_expansion else None,
        container_sizing_issues=sizing_issues,
        lane_crossing_metrics=lane_crossing_metrics(graph),
        steps=layout_logger.steps,
    )


def layout_diagram_sync(
    diagram: DiagramModel,
    options: Optional[LayoutOptions] = None,
    engine: Optional[LayoutEngine] = None,
) -> LayoutResult:
    """Blocking variant of layout_diagram for callers without an event loop."""
    return asyncio.run(layout_diagram(diagram, options, engine))
