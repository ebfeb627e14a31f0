"""坐标轴数据绑定：把数据表达式解析为坐标轴绑定描述并写入目标对象。"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from apps.authoring.contracts.dataset import Dataset
from apps.authoring.contracts.expression import DataExpression, DataExpressionMetadata, DataKind
from apps.authoring.contracts.specification import (
    DISCRETE_SUBLAYOUTS,
    AxisDataBinding,
    AxisExpressionEntry,
    BindingType,
    Chart,
    ChartObject,
    GroupBy,
    Legend,
    Mark,
    NumericalMode,
    PlotSegment,
    default_axis_style,
)
from apps.authoring.services.domain_inference import CategoricalDomain, infer_domain
from apps.authoring.services.expression import ExpressionEvaluator
from apps.authoring.services.spec_lookup import find_glyph_for_mark, group_by_for_glyph

LOGGER = logging.getLogger(__name__)

BindingTarget = Union[PlotSegment, Mark, Legend, ChartObject]

BINDING_BY_KIND: Dict[DataKind, BindingType] = {
    "numerical": "numerical",
    "temporal": "categorical",
    "ordinal": "categorical",
    "categorical": "categorical",
}
"""数据种类到绑定结构类型的固定映射。"""

REBOUND_AXIS_PROPERTIES = ("x_data", "y_data", "axis")


class AxisBinder:
    """把数据表达式绑定到绘图区或标记的坐标轴属性上。

    绑定会原地修改目标对象。撤销快照由调用方负责，``checkpoint`` 在第一次
    修改前被调用。表达式求值错误不做任何处理，直接向上抛出。
    """

    def __init__(
        self,
        *,
        chart: Chart,
        dataset: Dataset,
        evaluator: ExpressionEvaluator,
        default_gap_ratio: float = 0.1,
    ) -> None:
        self._chart = chart
        self._dataset = dataset
        self._evaluator = evaluator
        self._default_gap_ratio = default_gap_ratio

    def bind_data_to_axis(
        self,
        target: BindingTarget,
        property_name: str,
        data_expression: DataExpression,
        *,
        append_to_property: Optional[str] = None,
        binding_type: Optional[BindingType] = None,
        numerical_mode: Optional[NumericalMode] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> AxisDataBinding:
        """将数据表达式绑定到目标对象的属性。

        Parameters
        ----------
        target: BindingTarget
            绘图区或标记对象。
        property_name: str
            写入绑定描述的属性名，例如 ``x_data``。
        data_expression: DataExpression
            本次绑定的数据表达式。
        append_to_property: Optional[str]
            多系列坐标轴的表达式列表属性名；给定时追加表达式而不是替换绑定。
        binding_type: Optional[BindingType]
            显式指定的绑定类型，覆盖按数据种类推断的默认值。
        numerical_mode: Optional[NumericalMode]
            连续轴的刻度模式初值。
        checkpoint: Optional[Callable[[], None]]
            修改前调用的快照钩子。

        Returns
        -------
        AxisDataBinding
            已写入目标对象的绑定描述。
        """

        table = self._dataset.get_table(data_expression.table)
        if table is None:
            raise KeyError(f"数据表 {data_expression.table} 不存在。")
        if binding_type == "default":
            binding_type = None
        kind = data_expression.metadata.kind
        group_expression = data_expression.expression
        value_type = data_expression.value_type
        raw_column_expression = data_expression.raw_column_expression
        if raw_column_expression and kind in {"ordinal", "categorical"}:
            group_expression = raw_column_expression
            value_type = "string"

        binding = AxisDataBinding(
            type=binding_type or BINDING_BY_KIND[kind],
            expression=group_expression,
            value_type=value_type,
            raw_column_expression=raw_column_expression,
            gap_ratio=self._default_gap_ratio,
            style=default_axis_style(),
            numerical_mode=numerical_mode,
        )
        if checkpoint is not None:
            checkpoint()

        properties = target.properties
        expressions = [group_expression]
        if append_to_property:
            entries = [
                AxisExpressionEntry.model_validate(entry)
                for entry in (getattr(properties, append_to_property, None) or [])
            ]
            entries.append(AxisExpressionEntry(name=uuid4().hex, expression=group_expression))
            setattr(properties, append_to_property, entries)
            expressions = [entry.expression for entry in entries]
            existing = getattr(properties, property_name, None)
            if existing is None:
                setattr(properties, property_name, binding)
            else:
                # 追加模式下绑定只在首次创建，之后复用同一个对象。
                binding = AxisDataBinding.model_validate(existing)
                setattr(properties, property_name, binding)
        else:
            setattr(properties, property_name, binding)

        group_by = self.resolve_group_by(target)
        values: List[Any] = []
        for expression in expressions:
            values.extend(self._evaluator.evaluate(expression, group_by, table))

        self._apply_domain(
            binding=binding,
            data_expression=data_expression,
            values=values,
            keep_type=binding_type is not None,
        )
        self._fix_sublayout(target)
        LOGGER.debug(
            "Axis bound",
            extra={
                "target_id": target.id,
                "property": property_name,
                "expression": group_expression,
                "binding_type": binding.type,
            },
        )
        return binding

    def resolve_group_by(self, target: BindingTarget) -> Optional[GroupBy]:
        """确定目标对象实际生效的分组键。"""

        if isinstance(target, PlotSegment):
            return target.group_by
        if isinstance(target, Mark):
            glyph = find_glyph_for_mark(chart=self._chart, mark=target)
            if glyph is not None:
                return group_by_for_glyph(chart=self._chart, glyph_id=glyph.id)
        return None

    @staticmethod
    def _apply_domain(
        *,
        binding: AxisDataBinding,
        data_expression: DataExpression,
        values: List[Any],
        keep_type: bool,
    ) -> None:
        """将推断出的定义域写入绑定描述；显式指定的绑定类型保持不变。"""

        metadata = data_expression.metadata
        domain = infer_domain(
            values,
            metadata.kind,
            order=metadata.order,
            order_mode=metadata.order_mode,
        )
        if isinstance(domain, CategoricalDomain):
            if not keep_type:
                binding.type = "categorical"
            binding.categories = domain.categories
            return
        if not keep_type:
            binding.type = "numerical"
        binding.domain_min = domain.domain_min
        binding.domain_max = domain.domain_max
        if domain.temporal:
            binding.numerical_mode = "temporal"
        elif binding.numerical_mode != "logarithmic":
            binding.numerical_mode = "linear"

    @staticmethod
    def _fix_sublayout(target: BindingTarget) -> None:
        """任一坐标轴变为连续型后，离散子布局退化为 overlap。"""

        if not isinstance(target, PlotSegment):
            return
        properties = target.properties
        sublayout = properties.sublayout
        if sublayout is None or sublayout.type not in DISCRETE_SUBLAYOUTS:
            return
        for axis in (properties.x_data, properties.y_data):
            if axis is not None and axis.type == "numerical":
                sublayout.type = "overlap"
                return

    def rebind_plot_segments(self, checkpoint: Optional[Callable[[], None]] = None) -> int:
        """根据已存储的绑定表达式重新推断所有绘图区的坐标轴定义域。

        数据集替换后调用，使类别与定义域与新数据保持一致。

        Returns
        -------
        int
            重新绑定的坐标轴数量。
        """

        rebound = 0
        for plot_segment in self._chart.plot_segments():
            for property_name in REBOUND_AXIS_PROPERTIES:
                existing: Optional[AxisDataBinding] = getattr(plot_segment.properties, property_name)
                if existing is None:
                    continue
                kind: DataKind = existing.type if existing.type != "default" else "categorical"
                if existing.type == "numerical" and existing.numerical_mode == "temporal":
                    kind = "temporal"
                data_expression = DataExpression(
                    table=plot_segment.table,
                    expression=existing.expression,
                    value_type=existing.value_type,
                    metadata=DataExpressionMetadata(kind=kind),
                    raw_column_expression=existing.raw_column_expression,
                )
                self.bind_data_to_axis(
                    plot_segment,
                    property_name,
                    data_expression,
                    numerical_mode=existing.numerical_mode,
                    checkpoint=checkpoint,
                )
                rebound += 1
        return rebound
