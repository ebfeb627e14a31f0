"""图表规范契约。

图表规范由图表元素、字形（glyph）、标记（mark）、缩放（scale）与映射
（mapping）组成。对象种类以封闭的标签联合表示：

* 映射按 ``type`` 区分为 ``scale`` / ``value`` / ``parent`` 三类。
* 图表元素按 ``kind`` 区分为绘图区（plot segment）、图例与其他元素。
* 缩放按 ``class_id`` 取自固定集合，行为表见 ``services.scale_classes``。

所有集合保持插入顺序，核心逻辑中的遍历顺序即插入顺序。
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from apps.authoring.compat import ConfigDict, Field, model_validator

from apps.authoring.contracts.expression import DataType
from apps.authoring.contracts.metadata import ContractModel

AttributeType = Literal["number", "color", "boolean", "enum", "string", "image", "point"]

ScaleClassID = Literal[
    "scale.linear<number,number>",
    "scale.linear<integer,number>",
    "scale.linear<number,color>",
    "scale.linear<integer,color>",
    "scale.linear<date,number>",
    "scale.categorical<string,color>",
    "scale.categorical<string,number>",
    "scale.categorical<string,boolean>",
    "scale.categorical<string,enum>",
]

BindingType = Literal["default", "numerical", "categorical"]
NumericalMode = Literal["linear", "logarithmic", "temporal"]
SublayoutType = Literal["overlap", "dodge-x", "dodge-y", "grid", "packing", "jitter"]

DISCRETE_SUBLAYOUTS = frozenset({"dodge-x", "dodge-y", "grid"})
"""坐标轴变为连续型后不再可用的子布局。"""


def default_axis_style() -> Dict[str, Any]:
    """返回坐标轴的默认样式，每次调用都生成新字典。"""

    return {
        "tick_color": "#000000",
        "line_color": "#000000",
        "font_family": "Arial",
        "font_size": 12,
        "tick_size": 5,
    }


class ScaleMapping(ContractModel):
    """通过缩放将数据表达式映射到属性。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回缩放映射契约名称。"""

        return "scale_mapping"

    type: Literal["scale"] = "scale"
    table: str = Field(description="表达式所在的数据表。", min_length=1)
    expression: str = Field(description="数据表达式。", min_length=1)
    value_type: DataType = Field(description="表达式结果的值类型。")
    scale: Optional[str] = Field(default=None, description="引用的缩放 ID。")
    attribute: Optional[str] = Field(
        default=None,
        description="映射目标属性名，图表级映射用于区分同一表达式的不同用途。",
    )


class ValueMapping(ContractModel):
    """常量映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回常量映射契约名称。"""

        return "value_mapping"

    type: Literal["value"] = "value"
    value: Any = Field(description="写入属性的常量值。")


class ParentMapping(ContractModel):
    """引用父对象属性的映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回父属性映射契约名称。"""

        return "parent_mapping"

    type: Literal["parent"] = "parent"
    parent_attribute: str = Field(description="父对象的属性名。", min_length=1)


Mapping = Annotated[
    Union[ScaleMapping, ValueMapping, ParentMapping],
    Field(discriminator="type"),
]


class Scale(ContractModel):
    """缩放对象，由图表规范的缩放集合持有。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回缩放契约名称。"""

        return "scale"

    id: str = Field(description="缩放唯一标识。", min_length=1)
    class_id: ScaleClassID = Field(description="缩放种类标签。")
    input_type: Optional[DataType] = Field(default=None, description="输入值类型。")
    output_type: Optional[AttributeType] = Field(default=None, description="输出属性类型。")
    properties: Dict[str, Any] = Field(
        default_factory=dict,
        description="缩放参数，至少包含 name。",
    )


class AxisExpressionEntry(ContractModel):
    """多系列坐标轴上追加的单条表达式。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回追加表达式契约名称。"""

        return "axis_expression_entry"

    name: str = Field(description="条目唯一标识。", min_length=1)
    expression: str = Field(description="分组表达式。", min_length=1)


class AxisDataBinding(ContractModel):
    """坐标轴数据绑定描述，由目标对象独占持有。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回坐标轴绑定契约名称。"""

        return "axis_data_binding"

    type: BindingType = Field(description="绑定的结构类型。")
    expression: str = Field(description="分组表达式。", min_length=1)
    value_type: DataType = Field(description="表达式的值类型。")
    raw_column_expression: Optional[str] = Field(
        default=None,
        description="绑定时所用的原始列表达式。",
    )
    gap_ratio: float = Field(default=0.1, description="类别间隙比例。", ge=0.0, le=1.0)
    visible: bool = Field(default=True, description="是否显示坐标轴。")
    side: Literal["default", "opposite"] = Field(default="default", description="坐标轴位置。")
    style: Dict[str, Any] = Field(default_factory=default_axis_style, description="坐标轴样式。")
    categories: Optional[List[str]] = Field(default=None, description="类别轴的有序类别。")
    domain_min: Optional[float] = Field(default=None, description="连续轴的定义域下界。")
    domain_max: Optional[float] = Field(default=None, description="连续轴的定义域上界。")
    numerical_mode: Optional[NumericalMode] = Field(default=None, description="连续轴的刻度模式。")


class Sublayout(ContractModel):
    """绘图区内字形的子布局配置。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回子布局契约名称。"""

        return "sublayout"

    type: SublayoutType = Field(default="dodge-x", description="子布局类型。")
    ratio_x: float = Field(default=0.1, ge=0.0, le=1.0)
    ratio_y: float = Field(default=0.1, ge=0.0, le=1.0)


class GroupBy(ContractModel):
    """绘图区的行分组键。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回分组契约名称。"""

        return "group_by"

    expression: Optional[str] = Field(default=None, description="分组表达式，为空表示不分组。")


class PlotSegmentProperties(ContractModel):
    """绘图区属性，允许追加多系列表达式列表等扩展字段。"""

    model_config = ConfigDict(extra="allow")

    @classmethod
    def schema_name(cls) -> str:
        """返回绘图区属性契约名称。"""

        return "plot_segment_properties"

    name: Optional[str] = None
    x_data: Optional[AxisDataBinding] = None
    y_data: Optional[AxisDataBinding] = None
    axis: Optional[AxisDataBinding] = None
    sublayout: Optional[Sublayout] = None


class ObjectProperties(ContractModel):
    """标记、图例等对象的开放属性集合。"""

    model_config = ConfigDict(extra="allow")

    @classmethod
    def schema_name(cls) -> str:
        """返回对象属性契约名称。"""

        return "object_properties"

    name: Optional[str] = None


class Mark(ContractModel):
    """字形中的单个标记。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回标记契约名称。"""

        return "mark"

    id: str = Field(description="标记唯一标识。", min_length=1)
    class_id: str = Field(description="标记种类，例如 mark.rect。", pattern=r"^mark\.")
    properties: ObjectProperties = Field(default_factory=ObjectProperties)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)


class Glyph(ContractModel):
    """按数据行（或分组）实例化的标记模板。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回字形契约名称。"""

        return "glyph"

    id: str = Field(description="字形唯一标识。", min_length=1)
    table: str = Field(description="字形绑定的数据表。", min_length=1)
    marks: List[Mark] = Field(default_factory=list)


class PlotSegment(ContractModel):
    """按坐标轴排布字形实例的图表元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回绘图区契约名称。"""

        return "plot_segment"

    kind: Literal["plot-segment"] = "plot-segment"
    id: str = Field(description="绘图区唯一标识。", min_length=1)
    class_id: Literal[
        "plot-segment.cartesian",
        "plot-segment.curve",
        "plot-segment.polar",
        "plot-segment.line",
    ] = "plot-segment.cartesian"
    glyph: str = Field(description="引用的字形 ID。", min_length=1)
    table: str = Field(description="绘图区绑定的数据表。", min_length=1)
    group_by: Optional[GroupBy] = None
    properties: PlotSegmentProperties = Field(default_factory=PlotSegmentProperties)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)


class Legend(ContractModel):
    """缩放的图例元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图例契约名称。"""

        return "legend"

    kind: Literal["legend"] = "legend"
    id: str = Field(description="图例唯一标识。", min_length=1)
    class_id: Literal[
        "legend.categorical",
        "legend.numerical-color",
        "legend.numerical-number",
    ]
    scale: str = Field(description="图例展示的缩放 ID。", min_length=1)
    properties: ObjectProperties = Field(default_factory=ObjectProperties)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)


class ChartObject(ContractModel):
    """其他图表元素，例如标题文本或参考线。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回通用图表元素契约名称。"""

        return "chart_object"

    kind: Literal["element"] = "element"
    id: str = Field(description="元素唯一标识。", min_length=1)
    class_id: str = Field(description="元素种类，例如 mark.text、guide.guide。", min_length=1)
    properties: ObjectProperties = Field(default_factory=ObjectProperties)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)


ChartElement = Annotated[
    Union[PlotSegment, Legend, ChartObject],
    Field(discriminator="kind"),
]


class Chart(ContractModel):
    """完整的图表规范。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图表规范契约名称。"""

        return "chart"

    id: str = Field(description="图表唯一标识。", min_length=1)
    table: str = Field(description="图表级映射使用的数据表。", min_length=1)
    elements: List[ChartElement] = Field(default_factory=list)
    glyphs: List[Glyph] = Field(default_factory=list)
    scales: List[Scale] = Field(default_factory=list)
    scale_mappings: List[ScaleMapping] = Field(default_factory=list)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)
    properties: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def ensure_unique_ids(self) -> "Chart":
        """确保元素、字形、标记与缩放的 ID 在图表内唯一。"""

        ids: List[str] = [element.id for element in self.elements]
        ids.extend(glyph.id for glyph in self.glyphs)
        ids.extend(mark.id for glyph in self.glyphs for mark in glyph.marks)
        ids.extend(scale.id for scale in self.scales)
        duplicates = sorted({item for item in ids if ids.count(item) > 1})
        if duplicates:
            raise ValueError(f"图表中存在重复的对象 ID: {duplicates}")
        return self

    def plot_segments(self) -> Iterator[PlotSegment]:
        """按插入顺序遍历绘图区。"""

        for element in self.elements:
            if isinstance(element, PlotSegment):
                yield element

    def get_glyph(self, glyph_id: str) -> Optional[Glyph]:
        """按 ID 查找字形。"""

        for glyph in self.glyphs:
            if glyph.id == glyph_id:
                return glyph
        return None

    def get_scale(self, scale_id: str) -> Optional[Scale]:
        """按 ID 查找缩放。"""

        for scale in self.scales:
            if scale.id == scale_id:
                return scale
        return None

    def get_element(self, element_id: str) -> Optional[Union[PlotSegment, Legend, ChartObject]]:
        """按 ID 查找图表元素。"""

        for element in self.elements:
            if element.id == element_id:
                return element
        return None
