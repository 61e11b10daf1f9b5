"""Layout constants shared across pipeline stages (pixels, BPMN DI space)."""

from typing import Dict, Tuple

# Default shape sizes keyed by node kind value (width, height)
ELEMENT_SIZES: Dict[str, Tuple[float, float]] = {
    "task": (100, 80),
    "subProcess": (350, 200),
    "collapsedSubProcess": (100, 80),
    "startEvent": (36, 36),
    "endEvent": (36, 36),
    "intermediateEvent": (36, 36),
    "boundaryEvent": (36, 36),
    "gateway": (50, 50),
    "participant": (600, 250),
    "collapsedParticipant": (600, 60),
    "lane": (570, 125),
    "textAnnotation": (100, 30),
    "dataObject": (36, 50),
    "dataStore": (50, 50),
    "group": (300, 200),
}

# Solver spacing
LAYER_SPACING = 60
NODE_SPACING = 50
COMPONENT_SPACING = 50

# Offset of the diagram origin in DI space
ORIGIN_OFFSET_X = 180
ORIGIN_OFFSET_Y = 80

# Solver padding (top, left, bottom, right)
PARTICIPANT_PADDING = (80, 50, 80, 40)
PARTICIPANT_WITH_LANES_PADDING = (80, 80, 80, 40)
CONTAINER_PADDING = (60, 40, 60, 50)

# Edge priorities handed to the solver
HAPPY_PATH_PRIORITY = 10
BACK_EDGE_PRIORITY = 0

# Traversal guards for cyclic flow graphs
MAX_TRAVERSAL_DEPTH = 25
MAX_ROW_PASSES = 6
MAX_OVERLAP_PASSES = 5

# Branch rows
SAME_ROW_TOLERANCE = 5
BRANCH_ROW_STEP = 130
BRANCH_GAP = 50
MIN_MOVE_THRESHOLD = 1

# Pools and lanes
POOL_HEADER_WIDTH = 30
LANE_HEADER_WIDTH = 30
POOL_SIDE_MARGIN = 30
POOL_GAP = 50
LANE_ELEMENT_HEIGHT = 80
LANE_VERTICAL_MARGIN = 40
LANE_MIN_HEIGHT = 120
LANE_CLAMP_TOLERANCE = 6

# Boundary exception chains
BOUNDARY_TARGET_Y_OFFSET = 85
BOUNDARY_CHAIN_STACK_OFFSET = 120
BOUNDARY_CHAIN_GAP = 50
BOUNDARY_COLUMN_GAP = 20
MAX_CHAIN_SHIFT_ATTEMPTS = 10

# Edge routing
LOOPBACK_BELOW_MARGIN = 30
LOOPBACK_HORIZONTAL_MARGIN = 15
SELF_LOOP_MARGIN = 20
DETOUR_MARGIN = 20

# Labels
DEFAULT_LABEL_SIZE = (90, 20)
ELEMENT_LABEL_DISTANCE = 10
ELEMENT_LABEL_BOTTOM_EXTRA = 5
FLOW_LABEL_INDENT = 15

# Artifacts
ARTIFACT_ABOVE_OFFSET = 80
ARTIFACT_BELOW_OFFSET = 80
