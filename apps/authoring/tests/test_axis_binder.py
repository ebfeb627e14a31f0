"""坐标轴绑定测试。"""

from __future__ import annotations

import pytest

from apps.authoring.contracts.expression import DataExpression
from apps.authoring.contracts.specification import GroupBy
from apps.authoring.services.axis_binder import AxisBinder
from apps.authoring.services.errors import ExpressionError
from apps.authoring.services.expression import TableExpressionEvaluator


def _binder(chart, dataset) -> AxisBinder:
    return AxisBinder(chart=chart, dataset=dataset, evaluator=TableExpressionEvaluator())


def _expression(expression: str, value_type: str, kind: str, **extra) -> DataExpression:
    metadata = {"kind": kind}
    if "order_mode" in extra:
        metadata["order_mode"] = extra.pop("order_mode")
    return DataExpression.model_validate(
        {
            "table": "sales",
            "expression": expression,
            "value_type": value_type,
            "metadata": metadata,
            **extra,
        }
    )


def test_categorical_binding_keeps_discrete_sublayout(chart, dataset) -> None:
    plot = chart.elements[0]
    binding = _binder(chart, dataset).bind_data_to_axis(
        plot,
        "x_data",
        _expression("region", "string", "categorical"),
    )
    assert plot.properties.x_data is binding
    assert binding.type == "categorical"
    assert binding.categories == ["east", "north", "south"]
    assert binding.gap_ratio == 0.1
    assert binding.visible is True
    assert plot.properties.sublayout.type == "grid"


def test_numerical_binding_switches_grid_to_overlap(chart, dataset) -> None:
    plot = chart.elements[0]
    binding = _binder(chart, dataset).bind_data_to_axis(
        plot,
        "y_data",
        _expression("sales", "number", "numerical"),
    )
    assert binding.type == "numerical"
    assert (binding.domain_min, binding.domain_max) == (60.0, 200.0)
    assert binding.numerical_mode == "linear"
    assert plot.properties.sublayout.type == "overlap"


def test_occurrence_order_mode_is_respected(chart, dataset) -> None:
    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "x_data",
        _expression("region", "string", "categorical", order_mode="occurrence"),
    )
    assert binding.categories == ["north", "south", "east"]


def test_raw_column_substitution_forces_string(chart, dataset) -> None:
    """带原始列表达式的有序数据按原始列分组，值类型改为字符串。"""

    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "x_data",
        _expression("first(quantity)", "integer", "ordinal", raw_column_expression="quantity"),
    )
    assert binding.expression == "quantity"
    assert binding.value_type == "string"
    assert binding.raw_column_expression == "quantity"
    assert binding.categories == ["1", "2", "4", "7"]


def test_raw_column_ignored_for_numerical_kind(chart, dataset) -> None:
    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "y_data",
        _expression("avg(sales)", "number", "numerical", raw_column_expression="sales"),
    )
    assert binding.expression == "avg(sales)"
    assert binding.value_type == "number"


def test_temporal_binding_uses_temporal_mode(chart, dataset) -> None:
    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "x_data",
        _expression("day", "date", "temporal"),
    )
    assert binding.type == "numerical"
    assert binding.numerical_mode == "temporal"
    assert (binding.domain_min, binding.domain_max) == (1000.0, 4000.0)


def test_logarithmic_mode_is_preserved(chart, dataset) -> None:
    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "y_data",
        _expression("sales", "number", "numerical"),
        numerical_mode="logarithmic",
    )
    assert binding.numerical_mode == "logarithmic"


def test_explicit_binding_type_overrides_kind(chart, dataset) -> None:
    binding = _binder(chart, dataset).bind_data_to_axis(
        chart.elements[0],
        "x_data",
        _expression("quantity", "integer", "numerical"),
        binding_type="categorical",
    )
    assert binding.type == "categorical"
    assert chart.elements[0].properties.sublayout.type == "grid"


def test_append_mode_accumulates_expressions(chart, dataset) -> None:
    """追加模式复用同一绑定，类别覆盖所有追加表达式的取值。"""

    plot = chart.elements[0]
    binder = _binder(chart, dataset)
    first = binder.bind_data_to_axis(
        plot,
        "x_data",
        _expression("region", "string", "categorical"),
        append_to_property="series",
    )
    second = binder.bind_data_to_axis(
        plot,
        "x_data",
        _expression("product", "string", "categorical"),
        append_to_property="series",
    )
    assert second is plot.properties.x_data
    assert second.expression == first.expression == "region"
    assert [entry.expression for entry in plot.properties.series] == ["region", "product"]
    assert len({entry.name for entry in plot.properties.series}) == 2
    assert second.categories == ["coffee", "east", "north", "south", "tea"]


def test_mark_binding_uses_plot_segment_group_by(chart, dataset) -> None:
    chart.elements[0].group_by = GroupBy(expression="region")
    mark = chart.glyphs[0].marks[0]
    binding = _binder(chart, dataset).bind_data_to_axis(
        mark,
        "axis",
        _expression("sum(sales)", "number", "numerical"),
    )
    assert mark.properties.axis is binding
    assert (binding.domain_min, binding.domain_max) == (60.0, 320.0)


def test_checkpoint_runs_once_before_mutation(chart, dataset) -> None:
    plot = chart.elements[0]
    seen = []

    def checkpoint() -> None:
        seen.append(plot.properties.x_data)

    _binder(chart, dataset).bind_data_to_axis(
        plot,
        "x_data",
        _expression("region", "string", "categorical"),
        checkpoint=checkpoint,
    )
    assert seen == [None]


def test_missing_table_fails_before_mutation(chart, dataset) -> None:
    plot = chart.elements[0]
    expression = DataExpression.model_validate(
        {
            "table": "orders",
            "expression": "region",
            "value_type": "string",
            "metadata": {"kind": "categorical"},
        }
    )
    with pytest.raises(KeyError):
        _binder(chart, dataset).bind_data_to_axis(plot, "x_data", expression)
    assert plot.properties.x_data is None


def test_evaluation_errors_propagate(chart, dataset) -> None:
    with pytest.raises(ExpressionError):
        _binder(chart, dataset).bind_data_to_axis(
            chart.elements[0],
            "y_data",
            _expression("avg(revenue)", "number", "numerical"),
        )


def test_rebind_plot_segments_refreshes_domains(chart, dataset) -> None:
    plot = chart.elements[0]
    binder = _binder(chart, dataset)
    binder.bind_data_to_axis(plot, "x_data", _expression("region", "string", "categorical"))
    binder.bind_data_to_axis(plot, "y_data", _expression("day", "date", "temporal"))
    table = dataset.get_table("sales")
    table.rows.append({"region": "west", "product": "tea", "sales": 10.0, "profit": 1.0, "quantity": 1, "day": 9000.0})
    assert binder.rebind_plot_segments() == 2
    assert plot.properties.x_data.categories == ["east", "north", "south", "west"]
    assert plot.properties.y_data.numerical_mode == "temporal"
    assert plot.properties.y_data.domain_max == 9000.0
