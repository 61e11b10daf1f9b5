"""Tests for branch row ordering."""

import pytest

from bpmn_autolayout.layout.branch_rows import BranchRowOrderer, order_branch_rows
from bpmn_autolayout.layout.constants import BRANCH_GAP, BRANCH_ROW_STEP
from bpmn_autolayout.layout.geometry import rects_overlap
from bpmn_autolayout.layout.logger import LayoutLogger
from tests.fixtures.diagrams import gateway_diagram, multi_branch_diagram, parallel_diagram
from tests.fixtures.staging import placed_graph


class TestBranchRowOrderer:
    """Test the row invariants after ordering."""

    @pytest.mark.asyncio
    async def test_gateway_rows(self):
        """On-path branch on the gateway row, off-path one row step below."""
        staged = await placed_graph(gateway_diagram())
        graph = staged.graph
        order_branch_rows(graph, staged.classification, staged.chains, staged.excluded)

        gateway = graph.nodes["Gateway"]
        assert graph.nodes["TaskA"].cy == pytest.approx(gateway.cy)
        assert graph.nodes["Merge"].cy == pytest.approx(gateway.cy)
        assert graph.nodes["TaskB"].cy == pytest.approx(gateway.cy + BRANCH_ROW_STEP)

    @pytest.mark.asyncio
    async def test_chain_pinned_after_disturbance(self):
        """Chain nodes return to the row of the chain's first node."""
        staged = await placed_graph(gateway_diagram())
        graph = staged.graph
        graph.move_node("Merge", 0, 37)
        graph.move_node("TaskB", 0, -200)
        order_branch_rows(graph, staged.classification, staged.chains, staged.excluded)

        row = graph.nodes["Start"].cy
        for node_id in staged.chains[0]:
            assert graph.nodes[node_id].cy == pytest.approx(row)
        assert graph.nodes["TaskB"].y >= graph.nodes["Gateway"].bottom + BRANCH_GAP

    @pytest.mark.asyncio
    async def test_off_path_branches_stack_in_declaration_order(self):
        """Each off-path branch sits below the previous one."""
        staged = await placed_graph(multi_branch_diagram())
        graph = staged.graph
        passes = order_branch_rows(graph, staged.classification, staged.chains, staged.excluded)

        gateway = graph.nodes["Gateway"]
        main, alt1, alt1b, alt2 = (graph.nodes[n] for n in ("Main", "Alt1", "Alt1b", "Alt2"))
        assert main.cy == pytest.approx(gateway.cy)
        assert alt1.cy > gateway.cy
        assert alt1b.cy == pytest.approx(alt1.cy)
        assert alt2.y >= alt1.bottom + BRANCH_GAP
        assert 1 <= passes <= 6

    @pytest.mark.asyncio
    async def test_parallel_branches_stack(self):
        """Parallel branches stack below the first one."""
        staged = await placed_graph(parallel_diagram())
        graph = staged.graph
        order_branch_rows(graph, staged.classification, staged.chains, staged.excluded)

        fork = graph.nodes["Fork"]
        p1, p2, p3 = (graph.nodes[n] for n in ("P1", "P2", "P3"))
        assert p1.cy == pytest.approx(fork.cy)
        assert fork.cy < p2.cy < p3.cy

    @pytest.mark.asyncio
    async def test_gateway_order_downstream_first(self):
        """Split gateways are visited downstream first."""
        diagram = gateway_diagram()
        diagram.add_shape("bpmn:ExclusiveGateway", "Inner")
        diagram.add_shape("bpmn:Task", "InnerX")
        diagram.add_shape("bpmn:Task", "InnerY")
        diagram.connect("TaskB", "Inner", "Flow_inner")
        diagram.connect("Inner", "InnerX", "Flow_ix", condition="${x}")
        diagram.connect("Inner", "InnerY", "Flow_iy")
        staged = await placed_graph(diagram)

        orderer = BranchRowOrderer(staged.graph, staged.classification, staged.chains)
        assert orderer.gateway_order() == ["Inner", "Gateway"]

    @pytest.mark.asyncio
    async def test_branch_nodes_exclude_shared_merge(self):
        """Nodes reachable from sibling branches belong to neither."""
        staged = await placed_graph(multi_branch_diagram())
        orderer = BranchRowOrderer(staged.graph, staged.classification, staged.chains)
        branches = orderer.branch_nodes("Gateway")

        assert branches["Flow_alt1"] == {"Alt1", "Alt1b"}
        assert branches["Flow_alt2"] == {"Alt2"}
        assert branches["Flow_main"] == set()

    @pytest.mark.asyncio
    async def test_no_overlaps_after_ordering(self):
        """Flow nodes do not overlap after ordering."""
        staged = await placed_graph(multi_branch_diagram())
        graph = staged.graph
        layout_logger = LayoutLogger("multi_branch")
        order_branch_rows(graph, staged.classification, staged.chains, staged.excluded, layout_logger)

        nodes = list(graph.nodes.values())
        for i, a in enumerate(nodes):
            for b in nodes[i + 1:]:
                assert not rects_overlap(a.rect, b.rect), f"{a.id} overlaps {b.id}"

    @pytest.mark.asyncio
    async def test_overlap_resolution_moves_non_chain_node(self):
        """An off-path node dropped onto the chain is pushed below it."""
        staged = await placed_graph(gateway_diagram())
        graph = staged.graph
        orderer = BranchRowOrderer(graph, staged.classification, staged.chains)
        task_a = graph.nodes["TaskA"]
        task_b = graph.nodes["TaskB"]
        graph.move_node("TaskB", task_a.x - task_b.x, task_a.y - task_b.y)
        row_y = task_a.y

        moves = orderer.resolve_overlaps()

        assert moves >= 1
        assert task_a.y == row_y
        assert task_b.y >= task_a.bottom
