"""Diagram builders shared by the layout tests.

Every builder returns a fresh BpmnDiagram without DI, so the layout
pipeline starts from default sizes.

Usage:
    from tests.fixtures.diagrams import gateway_diagram

    diagram = gateway_diagram()
"""

from bpmn_autolayout.models.bpmn import BpmnDiagram


def linear_diagram(task_count: int = 3) -> BpmnDiagram:
    """Start -> Task_1 .. Task_n -> End."""
    diagram = BpmnDiagram("linear")
    diagram.add_shape("bpmn:StartEvent", "Start", name="Start")
    previous = "Start"
    for i in range(1, task_count + 1):
        task_id = f"Task_{i}"
        diagram.add_shape("bpmn:Task", task_id, name=f"Task {i}")
        diagram.connect(previous, task_id)
        previous = task_id
    diagram.add_shape("bpmn:EndEvent", "End", name="End")
    diagram.connect(previous, "End")
    return diagram


def gateway_diagram() -> BpmnDiagram:
    """Start -> Valid? -> [conditioned TaskA, default TaskB] -> Merge -> End."""
    diagram = BpmnDiagram("gateway")
    diagram.add_shape("bpmn:StartEvent", "Start", name="Order received")
    diagram.add_shape("bpmn:ExclusiveGateway", "Gateway", name="Valid?")
    diagram.add_shape("bpmn:Task", "TaskA", name="Process order")
    diagram.add_shape("bpmn:Task", "TaskB", name="Reject order")
    diagram.add_shape("bpmn:ExclusiveGateway", "Merge")
    diagram.add_shape("bpmn:EndEvent", "End", name="Done")
    diagram.connect("Start", "Gateway", "Flow_start")
    diagram.connect("Gateway", "TaskB", "Flow_default", name="No")
    diagram.connect("Gateway", "TaskA", "Flow_valid", name="Yes", condition="${valid}")
    diagram.connect("TaskA", "Merge", "Flow_a_merge")
    diagram.connect("TaskB", "Merge", "Flow_b_merge")
    diagram.connect("Merge", "End", "Flow_end")
    diagram.set_default_flow("Gateway", "Flow_default")
    return diagram


def multi_branch_diagram() -> BpmnDiagram:
    """Gateway with one conditioned on-path branch and two off-path branches."""
    diagram = BpmnDiagram("multi_branch")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:ExclusiveGateway", "Gateway", name="Route")
    diagram.add_shape("bpmn:Task", "Main")
    diagram.add_shape("bpmn:Task", "Alt1")
    diagram.add_shape("bpmn:Task", "Alt1b")
    diagram.add_shape("bpmn:Task", "Alt2")
    diagram.add_shape("bpmn:ExclusiveGateway", "Merge")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Gateway", "Flow_1")
    diagram.connect("Gateway", "Alt1", "Flow_alt1")
    diagram.connect("Gateway", "Main", "Flow_main", condition="${ok}")
    diagram.connect("Gateway", "Alt2", "Flow_alt2")
    diagram.connect("Alt1", "Alt1b", "Flow_alt1b")
    diagram.connect("Main", "Merge", "Flow_m1")
    diagram.connect("Alt1b", "Merge", "Flow_m2")
    diagram.connect("Alt2", "Merge", "Flow_m3")
    diagram.connect("Merge", "End", "Flow_end")
    diagram.set_default_flow("Gateway", "Flow_alt2")
    return diagram


def loop_diagram() -> BpmnDiagram:
    """Start -> Work -> Check? -> (yes) End, (default) back to Work."""
    diagram = BpmnDiagram("loop")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:Task", "Work", name="Do work")
    diagram.add_shape("bpmn:ExclusiveGateway", "Check", name="Done?")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Work", "Flow_1")
    diagram.connect("Work", "Check", "Flow_2")
    diagram.connect("Check", "Work", "Flow_retry")
    diagram.connect("Check", "End", "Flow_done", condition="${done}")
    diagram.set_default_flow("Check", "Flow_retry")
    return diagram


def parallel_diagram() -> BpmnDiagram:
    """Fork into three parallel tasks and join."""
    diagram = BpmnDiagram("parallel")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:ParallelGateway", "Fork")
    for name in ("P1", "P2", "P3"):
        diagram.add_shape("bpmn:Task", name)
    diagram.add_shape("bpmn:ParallelGateway", "Join")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Fork", "Flow_0")
    for name in ("P1", "P2", "P3"):
        diagram.connect("Fork", name, f"Flow_fork_{name}")
        diagram.connect(name, "Join", f"Flow_join_{name}")
    diagram.connect("Join", "End", "Flow_end")
    return diagram


def lanes_diagram(lane1_height: float = None) -> BpmnDiagram:
    """Pool with two lanes; Lane1 holds the start event and five tasks.

    With lane1_height set, the pool and lanes get DI bounds and Lane1 is
    forced to that height.
    """
    diagram = BpmnDiagram("lanes")
    pool_bounds = lane1_bounds = lane2_bounds = None
    if lane1_height is not None:
        pool_bounds = (100, 50, 1200, lane1_height + 250)
        lane1_bounds = (130, 50, 1170, lane1_height)
        lane2_bounds = (130, 50 + lane1_height, 1170, 250)

    diagram.add_participant("Pool", name="Company", bounds=pool_bounds)
    tasks = [f"T{i}" for i in range(1, 6)]
    diagram.add_lane("Lane1", "Pool", ["Start"] + tasks, name="Sales", bounds=lane1_bounds)
    diagram.add_lane("Lane2", "Pool", ["Ship", "End"], name="Shipping", bounds=lane2_bounds)

    diagram.add_shape("bpmn:StartEvent", "Start", parent="Pool")
    previous = "Start"
    for task_id in tasks:
        diagram.add_shape("bpmn:Task", task_id, name=task_id, parent="Pool")
        diagram.connect(previous, task_id)
        previous = task_id
    diagram.add_shape("bpmn:Task", "Ship", name="Ship", parent="Pool")
    diagram.add_shape("bpmn:EndEvent", "End", parent="Pool")
    diagram.connect(previous, "Ship", "Flow_cross")
    diagram.connect("Ship", "End", "Flow_ship_end")
    return diagram


def lane_loop_diagram() -> BpmnDiagram:
    """Two lanes with a loop-back flow from LaneB to LaneA."""
    diagram = BpmnDiagram("lane_loop")
    diagram.add_participant("Pool")
    diagram.add_lane("LaneA", "Pool", ["Start", "Prepare", "End"])
    diagram.add_lane("LaneB", "Pool", ["Review", "Decide"])
    diagram.add_shape("bpmn:StartEvent", "Start", parent="Pool")
    diagram.add_shape("bpmn:Task", "Prepare", parent="Pool")
    diagram.add_shape("bpmn:Task", "Review", parent="Pool")
    diagram.add_shape("bpmn:ExclusiveGateway", "Decide", parent="Pool")
    diagram.add_shape("bpmn:EndEvent", "End", parent="Pool")
    diagram.connect("Start", "Prepare", "Flow_1")
    diagram.connect("Prepare", "Review", "Flow_2")
    diagram.connect("Review", "Decide", "Flow_3")
    diagram.connect("Decide", "End", "Flow_ok", condition="${approved}")
    diagram.connect("Decide", "Prepare", "Flow_rework")
    diagram.set_default_flow("Decide", "Flow_rework")
    return diagram


def boundary_diagram() -> BpmnDiagram:
    """Two adjacent hosts, each with a boundary event and its own chain."""
    diagram = BpmnDiagram("boundary")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:Task", "Host1", name="Charge card")
    diagram.add_shape("bpmn:Task", "Host2", name="Ship goods")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Host1", "Flow_1")
    diagram.connect("Host1", "Host2", "Flow_2")
    diagram.connect("Host2", "End", "Flow_3")

    diagram.add_boundary_event("Timer1", "Host1", name="Timeout")
    diagram.add_shape("bpmn:Task", "Notify", name="Notify customer")
    diagram.add_shape("bpmn:Task", "Refund", name="Refund")
    diagram.add_shape("bpmn:EndEvent", "EndX", name="Cancelled")
    diagram.connect("Timer1", "Notify", "Flow_x1")
    diagram.connect("Notify", "Refund", "Flow_x2")
    diagram.connect("Refund", "EndX", "Flow_x3")

    diagram.add_boundary_event("Error2", "Host2", name="Damaged")
    diagram.add_shape("bpmn:Task", "Replace", name="Replace goods")
    diagram.add_shape("bpmn:EndEvent", "EndY")
    diagram.connect("Error2", "Replace", "Flow_y1")
    diagram.connect("Replace", "EndY", "Flow_y2")
    return diagram


def rejoin_diagram() -> BpmnDiagram:
    """A boundary flow that rejoins the main flow (no exception chain)."""
    diagram = BpmnDiagram("rejoin")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:Task", "Host")
    diagram.add_shape("bpmn:Task", "Next")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Host", "Flow_1")
    diagram.connect("Host", "Next", "Flow_2")
    diagram.connect("Next", "End", "Flow_3")
    diagram.add_boundary_event("Escalate", "Host")
    diagram.connect("Escalate", "Next", "Flow_escalate")
    return diagram


def collaboration_diagram() -> BpmnDiagram:
    """Two expanded pools linked by message flows plus a collapsed pool."""
    diagram = BpmnDiagram("collaboration")
    diagram.add_participant("Customer", name="Customer")
    diagram.add_participant("Supplier", name="Supplier")
    diagram.add_participant("Bank", name="Bank")

    diagram.add_shape("bpmn:StartEvent", "C_Start", parent="Customer")
    diagram.add_shape("bpmn:SendTask", "C_Order", name="Send order", parent="Customer")
    diagram.add_shape("bpmn:EndEvent", "C_End", parent="Customer")
    diagram.connect("C_Start", "C_Order", "Flow_c1")
    diagram.connect("C_Order", "C_End", "Flow_c2")

    diagram.add_shape("bpmn:StartEvent", "S_Start", parent="Supplier")
    diagram.add_shape("bpmn:Task", "S_Check", name="Check stock", parent="Supplier")
    diagram.add_shape("bpmn:Task", "S_Deliver", name="Deliver", parent="Supplier")
    diagram.add_shape("bpmn:EndEvent", "S_End", parent="Supplier")
    diagram.connect("S_Start", "S_Check", "Flow_s1")
    diagram.connect("S_Check", "S_Deliver", "Flow_s2")
    diagram.connect("S_Deliver", "S_End", "Flow_s3")

    diagram.connect("C_Order", "S_Start", "Msg_order", element_type="bpmn:MessageFlow")
    diagram.connect("S_Deliver", "Bank", "Msg_invoice", element_type="bpmn:MessageFlow")
    return diagram


def artifact_diagram() -> BpmnDiagram:
    """Tasks with a text annotation and a data object."""
    diagram = BpmnDiagram("artifacts")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:Task", "Write", name="Write report")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Write", "Flow_1")
    diagram.connect("Write", "End", "Flow_2")
    diagram.add_shape("bpmn:TextAnnotation", "Note", name="Monthly")
    diagram.add_shape("bpmn:DataObjectReference", "Report", name="Report")
    diagram.connect("Write", "Note", "Assoc_note", element_type="bpmn:Association")
    diagram.connect("Write", "Report", "Assoc_report", element_type="bpmn:DataOutputAssociation")
    return diagram


def subprocess_diagram() -> BpmnDiagram:
    """Expanded subprocess with its own start/task/end."""
    diagram = BpmnDiagram("subprocess")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:SubProcess", "Sub", name="Handle claim")
    diagram.add_shape("bpmn:StartEvent", "Sub_Start", parent="Sub")
    diagram.add_shape("bpmn:Task", "Sub_Task", name="Assess", parent="Sub")
    diagram.add_shape("bpmn:EndEvent", "Sub_End", parent="Sub")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Sub", "Flow_1")
    diagram.connect("Sub_Start", "Sub_Task", "Flow_s1")
    diagram.connect("Sub_Task", "Sub_End", "Flow_s2")
    diagram.connect("Sub", "End", "Flow_2")
    return diagram


def retry_chain_diagram() -> BpmnDiagram:
    """Two hosts; Host1's exception chain retries Fix until Ok? passes."""
    diagram = BpmnDiagram("retry_chain")
    diagram.add_shape("bpmn:StartEvent", "Start")
    diagram.add_shape("bpmn:Task", "Host1")
    diagram.add_shape("bpmn:Task", "Host2")
    diagram.add_shape("bpmn:EndEvent", "End")
    diagram.connect("Start", "Host1", "Flow_1")
    diagram.connect("Host1", "Host2", "Flow_2")
    diagram.connect("Host2", "End", "Flow_3")

    diagram.add_boundary_event("B1", "Host1")
    diagram.add_shape("bpmn:Task", "Fix")
    diagram.add_shape("bpmn:ExclusiveGateway", "Ok")
    diagram.add_shape("bpmn:EndEvent", "EndFixed")
    diagram.connect("B1", "Fix", "Flow_b1")
    diagram.connect("Fix", "Ok", "Flow_check")
    diagram.connect("Ok", "Fix", "Flow_retry")
    diagram.connect("Ok", "EndFixed", "Flow_fixed", condition="${fixed}")
    diagram.set_default_flow("Ok", "Flow_retry")

    diagram.add_boundary_event("B2", "Host2")
    diagram.add_shape("bpmn:EndEvent", "EndFailed")
    diagram.connect("B2", "EndFailed", "Flow_b2")
    return diagram
