"""Result object returned by a layout invocation."""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ContainerSizingIssue(BaseModel):
    """A lane whose height cannot hold its assigned elements."""

    model_config = ConfigDict(populate_by_name=True)

    container_id: str = Field(..., alias="containerId")
    participant_id: Optional[str] = Field(None, alias="participantId")
    element_count: int = Field(..., alias="elementCount")
    current_height: float = Field(..., alias="currentHeight")
    min_height: float = Field(..., alias="minHeight")

    @property
    def expansion_needed(self) -> bool:
        return self.current_height < self.min_height


class LaneCrossingMetrics(BaseModel):
    """How many sequence flows inside pools stay within one lane."""

    model_config = ConfigDict(populate_by_name=True)

    total_lane_flows: int = Field(..., alias="totalLaneFlows")
    crossing_lane_flows: int = Field(..., alias="crossingLaneFlows")
    crossing_flow_ids: List[str] = Field(default_factory=list, alias="crossingFlowIds")
    lane_coherence_score: float = Field(..., alias="laneCoherenceScore")


class StepRecord(BaseModel):
    """Timing and movement of one pipeline stage."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    duration_ms: float = Field(..., alias="durationMs")
    moved_count: Optional[int] = Field(None, alias="movedCount")
    note: Optional[str] = None


class LayoutResult(BaseModel):
    """Diagnostics of one layout run.

    Serialise with ``to_dict()`` to get the camelCase output contract.
    """

    model_config = ConfigDict(populate_by_name=True)

    element_count: int = Field(..., alias="elementCount")
    labels_moved: int = Field(0, alias="labelsMoved")
    crossing_flows: int = Field(0, alias="crossingFlows")
    crossing_flow_pairs: List[Tuple[str, str]] = Field(default_factory=list, alias="crossingFlowPairs")
    pool_expansion_applied: Optional[bool] = Field(None, alias="poolExpansionApplied")
    container_sizing_issues: List[ContainerSizingIssue] = Field(
        default_factory=list, alias="containerSizingIssues"
    )
    lane_crossing_metrics: Optional[LaneCrossingMetrics] = Field(None, alias="laneCrossingMetrics")
    steps: List[StepRecord] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase dictionary; optional diagnostics omitted when absent."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data["crossingFlowPairs"] = [list(pair) for pair in self.crossing_flow_pairs]
        return data
