"""图表规范内的结构查找：标记所属字形、字形所在绘图区与分组键。"""

from __future__ import annotations

from typing import Optional

from apps.authoring.contracts.specification import Chart, Glyph, GroupBy, Mark, PlotSegment


def find_glyph_for_mark(*, chart: Chart, mark: Mark) -> Optional[Glyph]:
    """返回包含给定标记对象的字形。"""

    for glyph in chart.glyphs:
        if any(candidate is mark or candidate.id == mark.id for candidate in glyph.marks):
            return glyph
    return None


def first_plot_segment_for_glyph(*, chart: Chart, glyph_id: str) -> Optional[PlotSegment]:
    """按元素插入顺序返回第一个引用该字形的绘图区。"""

    for plot_segment in chart.plot_segments():
        if plot_segment.glyph == glyph_id:
            return plot_segment
    return None


def group_by_for_glyph(*, chart: Chart, glyph_id: str) -> Optional[GroupBy]:
    """返回字形实际生效的分组键。

    多个绘图区共享同一字形时，以元素插入顺序中的第一个为准。
    """

    plot_segment = first_plot_segment_for_glyph(chart=chart, glyph_id=glyph_id)
    if plot_segment is None:
        return None
    return plot_segment.group_by
