"""缩放复用匹配：在创建新缩放之前查找可复用的已有缩放。"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Tuple

from apps.authoring.contracts.dataset import Dataset, Table
from apps.authoring.contracts.specification import (
    AttributeType,
    Chart,
    Mark,
    Scale,
    ScaleMapping,
)
from apps.authoring.services.errors import InconsistentSpecificationError
from apps.authoring.services.expression import aggregated_column, expressions_equal

LOGGER = logging.getLogger(__name__)


def require_scale(*, chart: Chart, scale_id: str) -> Scale:
    """读取映射引用的缩放，不存在时视为规范损坏。"""

    scale = chart.get_scale(scale_id)
    if scale is None:
        message = f"映射引用的缩放 {scale_id} 不存在于缩放集合中。"
        raise InconsistentSpecificationError(message)
    return scale


def _attribute_matches(mapping: ScaleMapping, mark_attribute: Optional[str]) -> bool:
    """未指定目标属性、属性相同或映射本身没有属性时视为匹配。"""

    return not mark_attribute or mapping.attribute == mark_attribute or not mapping.attribute


def _expression_unit(expression: str, table: Optional[Table]) -> Optional[str]:
    """返回单参数聚合表达式所引用列的度量单位，未知时返回 None。"""

    if table is None:
        return None
    column_name = aggregated_column(expression)
    if column_name is None:
        return None
    column = table.get_column(column_name)
    if column is None:
        return None
    return column.metadata.unit


def _mark_scale_mappings(*, chart: Chart, table_name: str) -> Iterator[Tuple[Mark, ScaleMapping]]:
    """遍历同表绘图区所用字形中，所有已绑定缩放的标记映射。"""

    for plot_segment in chart.plot_segments():
        if plot_segment.table != table_name:
            continue
        glyph = chart.get_glyph(plot_segment.glyph)
        if glyph is None:
            message = f"绘图区 {plot_segment.id} 引用的字形 {plot_segment.glyph} 不存在。"
            raise InconsistentSpecificationError(message)
        for mark in glyph.marks:
            for mapping in mark.mappings.values():
                if isinstance(mapping, ScaleMapping) and mapping.scale is not None:
                    yield mark, mapping


def find_reusable_scale(
    *,
    chart: Chart,
    dataset: Dataset,
    table_name: str,
    expression: str,
    output_type: AttributeType,
    mark_attribute: Optional[str] = None,
    allow_new_scale: bool = False,
) -> Optional[str]:
    """查找可复用的缩放。

    Parameters
    ----------
    chart: Chart
        当前图表规范。
    dataset: Dataset
        当前数据集，用于读取列的度量单位。
    table_name: str
        候选表达式所在的数据表。
    expression: str
        候选数据表达式。
    output_type: AttributeType
        候选映射的输出属性类型。
    mark_attribute: Optional[str]
        候选映射的目标属性名。
    allow_new_scale: bool
        为 True 时跳过匹配，直接要求创建新缩放。

    Returns
    -------
    Optional[str]
        命中的缩放 ID；未命中时返回 None。
    """

    if allow_new_scale:
        return None
    table = dataset.get_table(table_name)
    candidate_unit = _expression_unit(expression, table)
    for mark, mapping in _mark_scale_mappings(chart=chart, table_name=table_name):
        if expressions_equal(mapping.expression, expression) and _attribute_matches(mapping, mark_attribute):
            scale = require_scale(chart=chart, scale_id=mapping.scale)
            if scale.output_type == output_type:
                LOGGER.debug(
                    "Scale reused by expression",
                    extra={"scale_id": scale.id, "mark_id": mark.id, "expression": expression},
                )
                return scale.id
        # 表达式不一致时，退而比较聚合列的度量单位。
        if candidate_unit is not None and _expression_unit(mapping.expression, table) == candidate_unit:
            scale = require_scale(chart=chart, scale_id=mapping.scale)
            if scale.output_type == output_type:
                LOGGER.debug(
                    "Scale reused by unit",
                    extra={"scale_id": scale.id, "mark_id": mark.id, "unit": candidate_unit},
                )
                return scale.id
    for mapping in chart.scale_mappings:
        if mapping.scale is None:
            continue
        if not expressions_equal(mapping.expression, expression):
            continue
        if mapping.attribute and mapping.attribute != mark_attribute:
            continue
        scale = require_scale(chart=chart, scale_id=mapping.scale)
        if scale.output_type == output_type:
            LOGGER.debug(
                "Scale reused by chart mapping",
                extra={"scale_id": scale.id, "expression": expression},
            )
            return scale.id
    LOGGER.debug("No reusable scale", extra={"expression": expression, "table": table_name})
    return None
