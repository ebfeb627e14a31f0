"""图表状态契约：约束求解后得到的具体属性值。"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List

from apps.authoring.compat import ConfigDict, Field

from apps.authoring.contracts.metadata import ContractModel

AttributeMap = Dict[str, Any]


class ConstraintStrength(IntEnum):
    """约束强度标签，仅透传给求解器，核心逻辑不解释其权重。"""

    WEAK = 1
    MEDIUM = 2
    STRONG = 3
    HARD = 4


class MarkState(ContractModel):
    """单个标记实例的属性值。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回标记状态契约名称。"""

        return "mark_state"

    attributes: AttributeMap = Field(default_factory=dict)


class GlyphState(ContractModel):
    """单个字形实例的属性值。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回字形状态契约名称。"""

        return "glyph_state"

    attributes: AttributeMap = Field(default_factory=dict)
    marks: List[MarkState] = Field(default_factory=list)


class ElementState(ContractModel):
    """图表元素的属性值；绘图区额外持有字形实例状态。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回元素状态契约名称。"""

        return "element_state"

    attributes: AttributeMap = Field(default_factory=dict)
    data_row_indices: List[List[int]] = Field(default_factory=list)
    glyphs: List[GlyphState] = Field(default_factory=list)


class ScaleState(ContractModel):
    """缩放在求解后的属性值。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回缩放状态契约名称。"""

        return "scale_state"

    attributes: AttributeMap = Field(default_factory=dict)


class ChartState(ContractModel):
    """图表状态，元素与缩放状态分别与规范中的集合按位置对齐。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图表状态契约名称。"""

        return "chart_state"

    attributes: AttributeMap = Field(default_factory=dict)
    elements: List[ElementState] = Field(default_factory=list)
    scales: List[ScaleState] = Field(default_factory=list)
