"""缩放生命周期管理：创建、注册、推断参数与回收未引用的缩放。"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set
from uuid import uuid4

from apps.authoring.contracts.chart_state import ChartState, ScaleState
from apps.authoring.contracts.dataset import Dataset, Table
from apps.authoring.contracts.expression import DataKind, DataType
from apps.authoring.contracts.specification import (
    AttributeType,
    Chart,
    Glyph,
    GroupBy,
    Mapping,
    Scale,
    ScaleClassID,
    ScaleMapping,
)
from apps.authoring.services.expression import ExpressionEvaluator
from apps.authoring.services.scale_classes import (
    SCALE_BEHAVIORS,
    ScaleInferenceHints,
    infer_scale_class,
)
from apps.authoring.services.scale_matcher import find_reusable_scale
from apps.authoring.services.spec_lookup import group_by_for_glyph

LOGGER = logging.getLogger(__name__)


def _referenced_scale_ids(mappings: Dict[str, Mapping]) -> Iterable[str]:
    for mapping in mappings.values():
        if isinstance(mapping, ScaleMapping) and mapping.scale is not None:
            yield mapping.scale


def collect_referenced_scales(chart: Chart) -> Set[str]:
    """收集被图表元素映射或字形标记映射引用的缩放 ID。

    缩放之间不会互相保活：缩放自身不参与引用统计。
    """

    referenced: Set[str] = set()
    for element in chart.elements:
        referenced.update(_referenced_scale_ids(element.mappings))
    for glyph in chart.glyphs:
        for mark in glyph.marks:
            referenced.update(_referenced_scale_ids(mark.mappings))
    return referenced


class ScaleLifecycleManager:
    """负责缩放对象的创建、注册与回收。

    管理器直接修改传入的图表规范；若提供图表状态，则同步维护与缩放集合
    按位置对齐的缩放状态列表。
    """

    def __init__(
        self,
        *,
        chart: Chart,
        dataset: Dataset,
        evaluator: ExpressionEvaluator,
        chart_state: Optional[ChartState] = None,
        name_prefix: str = "Scale",
    ) -> None:
        self._chart = chart
        self._dataset = dataset
        self._evaluator = evaluator
        self._chart_state = chart_state
        self._name_prefix = name_prefix

    def find_unused_name(self, prefix: Optional[str] = None) -> str:
        """返回未被任何缩放占用的名称，形如 Scale1、Scale2。"""

        base = prefix or self._name_prefix
        used = {scale.properties.get("name") for scale in self._chart.scales}
        counter = 1
        while f"{base}{counter}" in used:
            counter += 1
        return f"{base}{counter}"

    def create_scale(self, class_id: ScaleClassID) -> Scale:
        """创建并注册新缩放，参数由调用方继续填写。

        Parameters
        ----------
        class_id: ScaleClassID
            缩放种类标签。

        Returns
        -------
        Scale
            已注册到缩放集合中的新缩放。
        """

        scale = Scale(
            id=f"scale_{uuid4().hex}",
            class_id=class_id,
            properties={"name": self.find_unused_name()},
        )
        self._chart.scales.append(scale)
        if self._chart_state is not None:
            self._chart_state.scales.append(ScaleState())
        LOGGER.info(
            "Scale created",
            extra={"scale_id": scale.id, "class_id": class_id, "chart_id": self._chart.id},
        )
        return scale

    def remove_scale(self, scale_id: str) -> None:
        """从缩放集合中移除缩放，并同步移除对应的缩放状态。"""

        for position, scale in enumerate(self._chart.scales):
            if scale.id != scale_id:
                continue
            del self._chart.scales[position]
            if self._chart_state is not None and position < len(self._chart_state.scales):
                del self._chart_state.scales[position]
            LOGGER.info("Scale removed", extra={"scale_id": scale_id, "chart_id": self._chart.id})
            return
        raise KeyError(f"scale_id={scale_id} 不存在。")

    def _inference_table(self, context_table: Table) -> Table:
        """优先使用 parent-main 表推断参数，否则使用上下文表。"""

        for table in self._dataset.tables:
            if table.type == "parent-main":
                return table
        return context_table

    def infer_and_create_scale(
        self,
        *,
        context_table: Table,
        expression: str,
        value_type: DataType,
        value_kind: DataKind,
        output_type: AttributeType,
        hints: Optional[ScaleInferenceHints] = None,
        group_by: Optional[GroupBy] = None,
    ) -> Optional[str]:
        """按查表结果创建新缩放并推断其参数。

        Returns
        -------
        Optional[str]
            新缩放的 ID；不适用任何缩放种类时返回 None。
        """

        class_id = infer_scale_class(value_type, value_kind, output_type)
        if class_id is None:
            LOGGER.debug(
                "No scale class applies",
                extra={"value_type": value_type, "value_kind": value_kind, "output_type": output_type},
            )
            return None
        scale = self.create_scale(class_id)
        scale.input_type = value_type
        scale.output_type = output_type
        table = self._inference_table(context_table)
        values = self._evaluator.evaluate(expression, group_by, table)
        SCALE_BEHAVIORS[class_id].infer_parameters(scale.properties, values, hints or ScaleInferenceHints())
        return scale.id

    def scale_inference(
        self,
        *,
        expression: str,
        value_type: DataType,
        value_kind: DataKind,
        output_type: AttributeType,
        glyph: Optional[Glyph] = None,
        hints: Optional[ScaleInferenceHints] = None,
        mark_attribute: Optional[str] = None,
    ) -> Optional[str]:
        """复用或创建缩放的完整流程。

        数据表取字形所绑定的表，未指定字形时取图表级数据表；分组键取
        引用该字形的首个绘图区的分组。
        """

        hints = hints or ScaleInferenceHints()
        table_name = glyph.table if glyph is not None else self._chart.table
        group_by = None
        if glyph is not None:
            group_by = group_by_for_glyph(chart=self._chart, glyph_id=glyph.id)
        table = self._dataset.get_table(table_name)
        if table is None:
            raise KeyError(f"数据表 {table_name} 不存在。")
        reused = find_reusable_scale(
            chart=self._chart,
            dataset=self._dataset,
            table_name=table.name,
            expression=expression,
            output_type=output_type,
            mark_attribute=mark_attribute,
            allow_new_scale=hints.new_scale,
        )
        if reused is not None:
            return reused
        return self.infer_and_create_scale(
            context_table=table,
            expression=expression,
            value_type=value_type,
            value_kind=value_kind,
            output_type=output_type,
            hints=hints,
            group_by=group_by,
        )

    def garbage_collect(self) -> List[str]:
        """回收未被任何映射引用的缩放。

        先收集引用集合，再过滤缩放集合与图表级缩放映射，两步分离以避免
        遍历时修改集合。

        Returns
        -------
        List[str]
            被移除的缩放 ID，按缩放集合顺序排列。
        """

        referenced = collect_referenced_scales(self._chart)
        removed = [scale.id for scale in self._chart.scales if scale.id not in referenced]
        for scale_id in removed:
            self.remove_scale(scale_id)
        remaining = {scale.id for scale in self._chart.scales}
        self._chart.scale_mappings[:] = [
            mapping for mapping in self._chart.scale_mappings if mapping.scale in remaining
        ]
        if removed:
            LOGGER.info(
                "Unreferenced scales collected",
                extra={"chart_id": self._chart.id, "removed": removed},
            )
        return removed
