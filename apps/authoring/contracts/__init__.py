"""数据契约模型包。

该模块提供图表规范、数据集、数据表达式与图表状态的契约模型。缩放推断、
数据绑定与求解编排均只通过这些模型读写图表。
"""

from apps.authoring.contracts.chart_state import (
    AttributeMap,
    ChartState,
    ConstraintStrength,
    ElementState,
    GlyphState,
    MarkState,
    ScaleState,
)
from apps.authoring.contracts.dataset import Column, ColumnMetadata, Dataset, Table
from apps.authoring.contracts.expression import DataExpression, DataExpressionMetadata
from apps.authoring.contracts.specification import (
    AxisDataBinding,
    AxisExpressionEntry,
    Chart,
    ChartObject,
    Glyph,
    GroupBy,
    Legend,
    Mark,
    ObjectProperties,
    ParentMapping,
    PlotSegment,
    PlotSegmentProperties,
    Scale,
    ScaleMapping,
    Sublayout,
    ValueMapping,
)

__all__ = [
    "AttributeMap",
    "AxisDataBinding",
    "AxisExpressionEntry",
    "Chart",
    "ChartObject",
    "ChartState",
    "Column",
    "ColumnMetadata",
    "ConstraintStrength",
    "DataExpression",
    "DataExpressionMetadata",
    "Dataset",
    "ElementState",
    "Glyph",
    "GlyphState",
    "GroupBy",
    "Legend",
    "Mark",
    "MarkState",
    "ObjectProperties",
    "ParentMapping",
    "PlotSegment",
    "PlotSegmentProperties",
    "Scale",
    "ScaleMapping",
    "ScaleState",
    "Sublayout",
    "Table",
    "ValueMapping",
]
