"""约束求解器接口与参考实现。

求解器被视为不透明能力：输入图表规范、图表状态、数据集与预求解值，
输出新的图表状态（或原地修改传入的状态）。参考实现只应用映射与预求解值，
不包含任何数值求解方法。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from apps.authoring.contracts.chart_state import (
    AttributeMap,
    ChartState,
    ConstraintStrength,
    ElementState,
    GlyphState,
    MarkState,
    ScaleState,
)
from apps.authoring.contracts.dataset import Dataset, Table
from apps.authoring.contracts.specification import (
    Chart,
    GroupBy,
    Mapping,
    PlotSegment,
    ScaleMapping,
    ValueMapping,
)
from apps.authoring.services.errors import InconsistentSpecificationError
from apps.authoring.services.expression import ExpressionEvaluator, TableExpressionEvaluator
from apps.authoring.services.scale_classes import SCALE_BEHAVIORS
from apps.authoring.services.scale_matcher import require_scale

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreSolveValue:
    """偏置下一次求解的属性值提示。

    ``target`` 是图表状态中某个属性字典的引用，求解时直接写入。
    """

    strength: ConstraintStrength
    target: AttributeMap
    attribute: str
    value: float


class ConstraintSolver(Protocol):
    """约束求解器接口。"""

    async def solve(
        self,
        chart: Chart,
        chart_state: ChartState,
        dataset: Dataset,
        pre_solve_values: Sequence[PreSolveValue],
        mapping_only: bool,
    ) -> Optional[ChartState]:
        """求解并返回新的图表状态；返回 None 表示已原地更新。"""


def _resize(items: List[Any], size: int, factory: Any) -> None:
    """原地把列表长度调整为 size，保留已有元素。"""

    del items[size:]
    while len(items) < size:
        items.append(factory())


class DirectMappingSolver:
    """只应用映射与预求解值的参考求解器，在工作线程中运行。"""

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None) -> None:
        self._evaluator = evaluator or TableExpressionEvaluator()

    async def solve(
        self,
        chart: Chart,
        chart_state: ChartState,
        dataset: Dataset,
        pre_solve_values: Sequence[PreSolveValue],
        mapping_only: bool,
    ) -> Optional[ChartState]:
        """在工作线程中执行映射求解。"""

        return await asyncio.to_thread(
            self._solve_sync,
            chart,
            chart_state,
            dataset,
            list(pre_solve_values),
            mapping_only,
        )

    def _solve_sync(
        self,
        chart: Chart,
        chart_state: ChartState,
        dataset: Dataset,
        pre_solve_values: List[PreSolveValue],
        mapping_only: bool,
    ) -> ChartState:
        _resize(chart_state.elements, len(chart.elements), ElementState)
        _resize(chart_state.scales, len(chart.scales), ScaleState)
        self._apply_mappings(chart=chart, dataset=dataset, mappings=chart.mappings, states=[chart_state.attributes])
        for element, element_state in zip(chart.elements, chart_state.elements):
            self._apply_mappings(
                chart=chart,
                dataset=dataset,
                mappings=element.mappings,
                states=[element_state.attributes],
            )
            if isinstance(element, PlotSegment):
                self._layout_glyphs(chart=chart, dataset=dataset, plot_segment=element, state=element_state)
        for hint in pre_solve_values:
            hint.target[hint.attribute] = hint.value
        LOGGER.info(
            "Chart solved",
            extra={
                "chart_id": chart.id,
                "mapping_only": mapping_only,
                "pre_solve_values": len(pre_solve_values),
            },
        )
        return chart_state

    def _layout_glyphs(
        self,
        *,
        chart: Chart,
        dataset: Dataset,
        plot_segment: PlotSegment,
        state: ElementState,
    ) -> None:
        glyph = chart.get_glyph(plot_segment.glyph)
        if glyph is None:
            message = f"绘图区 {plot_segment.id} 引用的字形 {plot_segment.glyph} 不存在。"
            raise InconsistentSpecificationError(message)
        table = self._require_table(dataset=dataset, name=plot_segment.table)
        state.data_row_indices = self._row_groups(table=table, group_by=plot_segment.group_by)
        _resize(state.glyphs, len(state.data_row_indices), GlyphState)
        for glyph_state in state.glyphs:
            _resize(glyph_state.marks, len(glyph.marks), MarkState)
        for position, mark in enumerate(glyph.marks):
            mark_states = [glyph_state.marks[position].attributes for glyph_state in state.glyphs]
            self._apply_mappings(
                chart=chart,
                dataset=dataset,
                mappings=mark.mappings,
                states=mark_states,
                group_by=plot_segment.group_by,
            )

    def _row_groups(self, *, table: Table, group_by: Optional[GroupBy]) -> List[List[int]]:
        """返回每个字形实例对应的数据行下标。"""

        if group_by is None or not group_by.expression:
            return [[index] for index in range(len(table.rows))]
        keys = self._evaluator.evaluate(group_by.expression, None, table)
        groups: Dict[Any, List[int]] = {}
        for index, key in enumerate(keys):
            groups.setdefault(key, []).append(index)
        return list(groups.values())

    def _apply_mappings(
        self,
        *,
        chart: Chart,
        dataset: Dataset,
        mappings: Dict[str, Mapping],
        states: List[AttributeMap],
        group_by: Optional[GroupBy] = None,
    ) -> None:
        for attribute, mapping in mappings.items():
            if isinstance(mapping, ValueMapping):
                for attributes in states:
                    attributes[attribute] = mapping.value
                continue
            if not isinstance(mapping, ScaleMapping) or mapping.scale is None:
                continue
            scale = require_scale(chart=chart, scale_id=mapping.scale)
            behavior = SCALE_BEHAVIORS[scale.class_id]
            table = self._require_table(dataset=dataset, name=mapping.table)
            values = self._evaluator.evaluate(mapping.expression, group_by, table)
            for attributes, value in zip(states, values):
                attributes[attribute] = behavior.map_value(scale.properties, value)

    @staticmethod
    def _require_table(*, dataset: Dataset, name: str) -> Table:
        table = dataset.get_table(name)
        if table is None:
            raise KeyError(f"数据表 {name} 不存在。")
        return table
