"""Per-call layout options.

Accepts both snake_case and the camelCase names used by tool callers
(``poolExpansion``, ``gridSnap``, ...).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LayoutOptions(BaseModel):
    """Options recognized by a single layout invocation.

    Attributes:
        pool_expansion: Pool/lane auto-expansion; None enables it when the
            diagram has participants, False disables it explicitly
        grid_snap: Pixel grid for post-pass coordinate rounding; None = off
        solver: Layout engine name; None uses the configured default
        node_spacing: Spacing between nodes in the same layer
        layer_spacing: Spacing between adjacent layers
        preserve_happy_path: Keep on-path branches on the primary row
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    pool_expansion: Optional[bool] = Field(None, alias="poolExpansion")
    grid_snap: Optional[float] = Field(None, alias="gridSnap")
    solver: Optional[str] = Field(None, description="Layout engine name ('layered', 'elk')")
    node_spacing: float = Field(50, alias="nodeSpacing", gt=0)
    layer_spacing: float = Field(60, alias="layerSpacing", gt=0)
    preserve_happy_path: bool = Field(True, alias="preserveHappyPath")

    @field_validator("grid_snap")
    @classmethod
    def validate_grid_snap(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"gridSnap must be a positive pixel size, got {v}")
        return v

    def pool_expansion_enabled(self, has_participants: bool) -> bool:
        """Resolve the auto default against the diagram's contents."""
        if not has_participants:
            return False
        return self.pool_expansion is not False
