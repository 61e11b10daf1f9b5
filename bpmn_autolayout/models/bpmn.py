"""In-memory BPMN diagram model consumed by the layout engine.

The layout engine only needs a narrow read/write view of a BPMN model:
element types, names, containment, connections, boundary attachments,
lane membership and existing DI bounds (read), plus bounds, waypoints and
label bounds (write). DiagramModel captures that view; BpmnDiagram is the
in-memory implementation used by the tool layer and the tests.

Element types use the bpmn-moddle names ("bpmn:Task", "bpmn:SequenceFlow",
...), so diagrams produced by an XML importer can be fed in unchanged.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


CONNECTION_TYPES = {
    "bpmn:SequenceFlow",
    "bpmn:MessageFlow",
    "bpmn:Association",
    "bpmn:DataInputAssociation",
    "bpmn:DataOutputAssociation",
}


class Bounds(BaseModel):
    """DI bounds of a shape or label (top-left origin)."""

    x: float = Field(0, description="Left edge")
    y: float = Field(0, description="Top edge")
    width: float = Field(..., description="Shape width")
    height: float = Field(..., description="Shape height")


class BpmnElement(BaseModel):
    """A single BPMN element with its DI information.

    Attributes:
        id: Element ID
        type: bpmn-moddle type name (e.g., 'bpmn:ExclusiveGateway')
        name: Optional display name
        parent_id: Semantic parent (participant, subprocess); None for root
        bounds: DI bounds if the element has a shape
        attached_to: Host ID for boundary events (attachedToRef)
        source_id: Source element for connections
        target_id: Target element for connections
        condition_expression: Condition body for sequence flows
        default_flow_id: Default outgoing flow for gateways/activities
        flow_node_refs: Lane membership (flowNodeRef list)
        waypoints: DI waypoints for connections
        label: External label bounds, if any
        is_expanded: False for collapsed subprocesses/participants
        triggered_by_event: True for event subprocesses
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    name: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    bounds: Optional[Bounds] = None
    attached_to: Optional[str] = Field(None, alias="attachedToRef")
    source_id: Optional[str] = Field(None, alias="sourceRef")
    target_id: Optional[str] = Field(None, alias="targetRef")
    condition_expression: Optional[str] = Field(None, alias="conditionExpression")
    default_flow_id: Optional[str] = Field(None, alias="default")
    flow_node_refs: List[str] = Field(default_factory=list, alias="flowNodeRef")
    waypoints: List[Tuple[float, float]] = Field(default_factory=list)
    label: Optional[Bounds] = None
    is_expanded: bool = Field(True, alias="isExpanded")
    triggered_by_event: bool = Field(False, alias="triggeredByEvent")

    @property
    def is_connection(self) -> bool:
        return self.type in CONNECTION_TYPES


class DiagramModel(ABC):
    """Read/write view of a BPMN model used by the layout pipeline."""

    @property
    @abstractmethod
    def diagram_id(self) -> str:
        """Identifier of the diagram."""
        ...

    @abstractmethod
    def elements(self) -> List[BpmnElement]:
        """All elements in declaration order."""
        ...

    @abstractmethod
    def get(self, element_id: str) -> Optional[BpmnElement]:
        """Element by ID, or None."""
        ...

    @abstractmethod
    def set_bounds(self, element_id: str, x: float, y: float, width: float, height: float) -> None:
        """Write shape bounds."""
        ...

    @abstractmethod
    def set_waypoints(self, element_id: str, waypoints: Sequence[Tuple[float, float]]) -> None:
        """Write connection waypoints."""
        ...

    @abstractmethod
    def set_label_bounds(self, element_id: str, bounds: Bounds) -> None:
        """Write external label bounds."""
        ...


class BpmnDiagram(DiagramModel):
    """In-memory BPMN diagram keyed by element ID.

    Elements keep their insertion order, which is the declaration order the
    layout pipeline relies on for every tie-break.

    Example:
        >>> diagram = BpmnDiagram("order")
        >>> diagram.add_shape("bpmn:StartEvent", "start")
        >>> diagram.add_shape("bpmn:Task", "review", name="Review")
        >>> diagram.connect("start", "review")
    """

    def __init__(self, diagram_id: str, name: Optional[str] = None):
        self._diagram_id = diagram_id
        self.name = name
        self._elements: Dict[str, BpmnElement] = {}
        self._flow_counter = 0

    @property
    def diagram_id(self) -> str:
        return self._diagram_id

    def __contains__(self, element_id: str) -> bool:
        return element_id in self._elements

    def __iter__(self) -> Iterator[BpmnElement]:
        return iter(self._elements.values())

    def __len__(self) -> int:
        return len(self._elements)

    def elements(self) -> List[BpmnElement]:
        return list(self._elements.values())

    def get(self, element_id: str) -> Optional[BpmnElement]:
        return self._elements.get(element_id)

    def add_element(self, element: BpmnElement) -> BpmnElement:
        """Add a fully specified element.

        Raises:
            ValueError: If an element with the same ID already exists
        """
        if element.id in self._elements:
            raise ValueError(f"Duplicate element ID: {element.id}")
        self._elements[element.id] = element
        return element

    def add_shape(
        self,
        element_type: str,
        element_id: str,
        name: Optional[str] = None,
        parent: Optional[str] = None,
        bounds: Optional[Tuple[float, float, float, float]] = None,
        **extra,
    ) -> BpmnElement:
        """Add a shape element.

        Args:
            element_type: bpmn-moddle type, e.g. 'bpmn:UserTask'
            element_id: Element ID
            name: Display name
            parent: Semantic parent ID (participant or subprocess)
            bounds: Optional DI bounds as (x, y, width, height)
            **extra: Additional BpmnElement fields

        Returns:
            The created element
        """
        di = None
        if bounds is not None:
            di = Bounds(x=bounds[0], y=bounds[1], width=bounds[2], height=bounds[3])
        return self.add_element(
            BpmnElement(id=element_id, type=element_type, name=name, parent_id=parent, bounds=di, **extra)
        )

    def add_participant(
        self,
        element_id: str,
        name: Optional[str] = None,
        bounds: Optional[Tuple[float, float, float, float]] = None,
    ) -> BpmnElement:
        return self.add_shape("bpmn:Participant", element_id, name=name, bounds=bounds)

    def add_lane(
        self,
        element_id: str,
        participant_id: str,
        flow_node_refs: Optional[List[str]] = None,
        name: Optional[str] = None,
        bounds: Optional[Tuple[float, float, float, float]] = None,
    ) -> BpmnElement:
        """Add a lane to a participant, optionally with its flowNodeRefs."""
        return self.add_shape(
            "bpmn:Lane",
            element_id,
            name=name,
            parent=participant_id,
            bounds=bounds,
            flow_node_refs=list(flow_node_refs or []),
        )

    def add_boundary_event(
        self,
        element_id: str,
        host_id: str,
        name: Optional[str] = None,
        parent: Optional[str] = None,
    ) -> BpmnElement:
        """Add a boundary event attached to host_id."""
        if parent is None and host_id in self._elements:
            parent = self._elements[host_id].parent_id
        return self.add_shape("bpmn:BoundaryEvent", element_id, name=name, parent=parent, attached_to=host_id)

    def connect(
        self,
        source_id: str,
        target_id: str,
        element_id: Optional[str] = None,
        element_type: str = "bpmn:SequenceFlow",
        name: Optional[str] = None,
        condition: Optional[str] = None,
    ) -> BpmnElement:
        """Add a connection between two elements.

        The connection's parent is the source's parent; message flows live
        at the collaboration root.
        """
        if element_id is None:
            self._flow_counter += 1
            element_id = f"Flow_{self._flow_counter}"
            while element_id in self._elements:
                self._flow_counter += 1
                element_id = f"Flow_{self._flow_counter}"
        parent = None
        source = self._elements.get(source_id)
        if source is not None and element_type != "bpmn:MessageFlow":
            parent = source.parent_id
        return self.add_element(
            BpmnElement(
                id=element_id,
                type=element_type,
                name=name,
                parent_id=parent,
                source_id=source_id,
                target_id=target_id,
                condition_expression=condition,
            )
        )

    def set_default_flow(self, gateway_id: str, flow_id: str) -> None:
        """Mark flow_id as the default outgoing flow of gateway_id."""
        element = self._require(gateway_id)
        element.default_flow_id = flow_id

    def children(self, parent_id: Optional[str]) -> List[BpmnElement]:
        """Direct semantic children of parent_id in declaration order."""
        return [e for e in self._elements.values() if e.parent_id == parent_id]

    def set_bounds(self, element_id: str, x: float, y: float, width: float, height: float) -> None:
        element = self._require(element_id)
        element.bounds = Bounds(x=x, y=y, width=width, height=height)

    def set_waypoints(self, element_id: str, waypoints: Sequence[Tuple[float, float]]) -> None:
        element = self._require(element_id)
        element.waypoints = [(float(x), float(y)) for x, y in waypoints]

    def set_label_bounds(self, element_id: str, bounds: Bounds) -> None:
        element = self._require(element_id)
        element.label = bounds

    def _require(self, element_id: str) -> BpmnElement:
        element = self._elements.get(element_id)
        if element is None:
            raise KeyError(f"Element {element_id} not found in diagram {self._diagram_id}")
        return element
