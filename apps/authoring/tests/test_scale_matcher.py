"""缩放复用匹配测试。"""

from __future__ import annotations

import pytest

from apps.authoring.contracts.specification import Scale, ScaleMapping
from apps.authoring.services.errors import InconsistentSpecificationError
from apps.authoring.services.scale_matcher import find_reusable_scale


def _add_scale(chart, scale_id: str, output_type: str = "number") -> Scale:
    class_id = "scale.linear<number,number>" if output_type == "number" else "scale.linear<number,color>"
    scale = Scale(
        id=scale_id,
        class_id=class_id,
        input_type="number",
        output_type=output_type,
        properties={"name": scale_id},
    )
    chart.scales.append(scale)
    return scale


def _map(chart, mark_index: int, attribute: str, expression: str, scale_id: str, mapping_attribute=None) -> None:
    mark = chart.glyphs[0].marks[mark_index]
    mark.mappings[attribute] = ScaleMapping(
        table="sales",
        expression=expression,
        value_type="number",
        scale=scale_id,
        attribute=mapping_attribute,
    )


def test_reuses_scale_with_same_expression(chart, dataset) -> None:
    _add_scale(chart, "scale_height")
    _map(chart, 0, "height", "avg(sales)", "scale_height")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="avg( sales )",
        output_type="number",
    )
    assert found == "scale_height"


def test_output_type_must_match(chart, dataset) -> None:
    _add_scale(chart, "scale_height")
    _map(chart, 0, "height", "avg(sales)", "scale_height")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="avg(sales)",
        output_type="color",
    )
    assert found is None


def test_reuse_is_deterministic(chart, dataset) -> None:
    """相同输入多次调用返回相同结果。"""

    _add_scale(chart, "scale_a")
    _add_scale(chart, "scale_b")
    _map(chart, 0, "height", "avg(sales)", "scale_a")
    _map(chart, 1, "font_size", "avg(sales)", "scale_b")
    results = {
        find_reusable_scale(
            chart=chart,
            dataset=dataset,
            table_name="sales",
            expression="avg(sales)",
            output_type="number",
        )
        for _ in range(5)
    }
    assert results == {"scale_a"}


def test_unit_fallback_reuses_scale_across_columns(chart, dataset) -> None:
    """sales 与 profit 同为 USD 单位时，聚合表达式共享缩放。"""

    _add_scale(chart, "scale_usd")
    _map(chart, 0, "height", "avg(sales)", "scale_usd")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="sum(profit)",
        output_type="number",
        mark_attribute="font_size",
    )
    assert found == "scale_usd"


def test_unit_fallback_requires_known_units(chart, dataset) -> None:
    """单位未知（均为 None）时不能视为兼容。"""

    _add_scale(chart, "scale_quantity")
    _map(chart, 0, "height", "avg(quantity)", "scale_quantity")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="max(day)",
        output_type="number",
    )
    assert found is None


def test_different_units_never_match(chart, dataset) -> None:
    _add_scale(chart, "scale_usd")
    _map(chart, 0, "height", "avg(sales)", "scale_usd")
    dataset.get_table("sales").get_column("profit").metadata.unit = "EUR"
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="sum(profit)",
        output_type="number",
    )
    assert found is None


def test_attribute_mismatch_blocks_expression_match(chart, dataset) -> None:
    _add_scale(chart, "scale_height")
    _map(chart, 0, "height", "quantity", "scale_height", mapping_attribute="height")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="quantity",
        output_type="number",
        mark_attribute="width",
    )
    assert found is None
    same_attribute = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="quantity",
        output_type="number",
        mark_attribute="height",
    )
    assert same_attribute == "scale_height"


def test_new_scale_hint_skips_matching(chart, dataset) -> None:
    _add_scale(chart, "scale_height")
    _map(chart, 0, "height", "avg(sales)", "scale_height")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="avg(sales)",
        output_type="number",
        allow_new_scale=True,
    )
    assert found is None


def test_chart_level_scale_mappings(chart, dataset) -> None:
    _add_scale(chart, "scale_color", output_type="color")
    chart.scale_mappings.append(
        ScaleMapping(
            table="sales",
            expression="avg(profit)",
            value_type="number",
            scale="scale_color",
            attribute="fill",
        )
    )
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="avg(profit)",
        output_type="color",
        mark_attribute="fill",
    )
    assert found == "scale_color"
    other_attribute = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="sales",
        expression="avg(profit)",
        output_type="color",
        mark_attribute="stroke",
    )
    assert other_attribute is None


def test_other_table_mappings_are_ignored(chart, dataset) -> None:
    _add_scale(chart, "scale_height")
    _map(chart, 0, "height", "avg(sales)", "scale_height")
    found = find_reusable_scale(
        chart=chart,
        dataset=dataset,
        table_name="orders",
        expression="avg(sales)",
        output_type="number",
    )
    assert found is None


def test_dangling_scale_reference_is_reported(chart, dataset) -> None:
    _map(chart, 0, "height", "avg(sales)", "scale_missing")
    with pytest.raises(InconsistentSpecificationError):
        find_reusable_scale(
            chart=chart,
            dataset=dataset,
            table_name="sales",
            expression="avg(sales)",
            output_type="number",
        )
