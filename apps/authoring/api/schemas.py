"""图表编辑 API 请求与响应模型。"""

from __future__ import annotations

from typing import List, Literal, Optional

from apps.authoring.compat import BaseModel, ConfigDict, Field

from apps.authoring.contracts.chart_state import ChartState, ConstraintStrength
from apps.authoring.contracts.dataset import Dataset
from apps.authoring.contracts.expression import DataExpression, DataKind, DataType, OrderMode
from apps.authoring.contracts.specification import (
    AttributeType,
    AxisDataBinding,
    BindingType,
    Chart,
    NumericalMode,
)


class ApiModel(BaseModel):
    """统一约束的 API 模型基类，强制禁止额外字段。"""

    model_config = ConfigDict(extra="forbid")


class ChartCreateRequest(ApiModel):
    """创建图表会话的请求模型。"""

    chart: Chart = Field(description="初始图表规范。")
    dataset: Dataset = Field(description="图表使用的数据集。")
    chart_state: Optional[ChartState] = Field(default=None, description="可选的初始图表状态。")


class ChartSnapshotResponse(ApiModel):
    """图表会话快照。"""

    chart: Chart = Field(description="当前图表规范。")
    chart_state: ChartState = Field(description="当前图表状态。")
    chart_hash: str = Field(description="图表规范哈希。")
    solver_status: Literal["idle", "solving"] = Field(description="求解状态。")


class AxisBindingRequest(ApiModel):
    """坐标轴绑定请求。"""

    target_id: str = Field(description="绘图区、图表元素或标记的 ID。", min_length=1)
    property_name: str = Field(description="写入绑定的属性名。", min_length=1)
    data_expression: DataExpression = Field(description="绑定的数据表达式。")
    append_to_property: Optional[str] = Field(default=None, description="多系列表达式列表属性名。")
    binding_type: Optional[BindingType] = Field(default=None, description="显式绑定类型。")
    numerical_mode: Optional[NumericalMode] = Field(default=None, description="连续轴刻度模式。")


class AxisBindingResponse(ApiModel):
    """坐标轴绑定响应。"""

    binding: AxisDataBinding = Field(description="写入目标对象的绑定描述。")
    chart_hash: str = Field(description="绑定后的图表规范哈希。")


class ScaleInferRequest(ApiModel):
    """缩放推断请求。"""

    expression: str = Field(description="数据表达式。", min_length=1)
    value_type: DataType = Field(description="表达式值类型。")
    value_kind: DataKind = Field(description="表达式数据种类。")
    output_type: AttributeType = Field(description="目标属性类型。")
    glyph_id: Optional[str] = Field(default=None, description="映射所在字形，为空表示图表级映射。")
    mark_attribute: Optional[str] = Field(default=None, description="映射目标属性名。")
    new_scale: bool = Field(default=False, description="是否强制创建新缩放。")
    order_mode: Optional[OrderMode] = Field(default=None, description="类别缩放的排序方式。")


class ScaleInferResponse(ApiModel):
    """缩放推断响应。"""

    scale_id: Optional[str] = Field(description="复用或新建的缩放 ID；不适用缩放时为空。")
    scale_count: int = Field(description="推断后的缩放数量。", ge=0)


class ScaleCollectResponse(ApiModel):
    """缩放回收响应。"""

    removed: List[str] = Field(description="被回收的缩放 ID。")
    chart_hash: str = Field(description="回收后的图表规范哈希。")


class PreSolveHint(ApiModel):
    """按元素位置寻址的预求解值。"""

    element_index: int = Field(description="元素在图表状态中的位置。", ge=0)
    attribute: str = Field(description="属性名。", min_length=1)
    value: float = Field(description="提示值。")
    strength: ConstraintStrength = Field(default=ConstraintStrength.STRONG, description="约束强度。")


class SolveRequest(ApiModel):
    """求解请求。"""

    mapping_only: bool = Field(default=False, description="是否仅更新映射。")
    pre_solve_values: List[PreSolveHint] = Field(default_factory=list, description="预求解值。")


class SolveResponse(ApiModel):
    """求解响应。"""

    chart_state: ChartState = Field(description="求解后的图表状态。")
    solver_status: Literal["idle", "solving"] = Field(description="求解状态。")
