"""契约模型校验与 JSONSchema 元数据测试。"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from apps.authoring.compat import model_dump, model_snapshot, model_validate
from apps.authoring.contracts.dataset import Dataset
from apps.authoring.contracts.expression import DataExpression
from apps.authoring.contracts.metadata import SCHEMA_BASE_URI, SCHEMA_VERSION
from apps.authoring.contracts.specification import (
    AxisDataBinding,
    Chart,
    ChartObject,
    Legend,
    ParentMapping,
    PlotSegment,
    ScaleMapping,
    ValueMapping,
)


def test_schema_metadata_is_injected() -> None:
    schema = Chart.model_json_schema()
    assert schema["$id"] == f"{SCHEMA_BASE_URI}/chart.json"
    assert schema["version"] == SCHEMA_VERSION
    assert schema["$schema"].endswith("2020-12/schema")
    assert AxisDataBinding.model_json_schema()["$id"].endswith("/axis_data_binding.json")


def test_elements_and_mappings_are_tagged_unions(chart) -> None:
    payload = model_dump(chart, mode="json")
    payload["elements"].append(
        {"kind": "legend", "id": "legend_1", "class_id": "legend.categorical", "scale": "scale_1"}
    )
    payload["elements"].append(
        {
            "kind": "element",
            "id": "title_1",
            "class_id": "mark.text",
            "mappings": {
                "text": {"type": "value", "value": "Sales"},
                "x": {"type": "parent", "parent_attribute": "x1"},
            },
        }
    )
    payload["glyphs"][0]["marks"][0]["mappings"] = {
        "height": {"type": "scale", "table": "sales", "expression": "sales", "value_type": "number"},
    }
    restored = model_validate(Chart, payload)
    assert [type(element) for element in restored.elements] == [PlotSegment, Legend, ChartObject]
    title = restored.get_element("title_1")
    assert isinstance(title.mappings["text"], ValueMapping)
    assert isinstance(title.mappings["x"], ParentMapping)
    assert isinstance(restored.glyphs[0].marks[0].mappings["height"], ScaleMapping)


def test_unknown_mapping_type_rejected(chart) -> None:
    payload = model_dump(chart, mode="json")
    payload["glyphs"][0]["marks"][0]["mappings"] = {"height": {"type": "expression", "expression": "sales"}}
    with pytest.raises(ValidationError):
        Chart.model_validate(payload)


def test_unknown_scale_class_rejected() -> None:
    with pytest.raises(ValidationError):
        Chart.model_validate(
            {
                "id": "chart_x",
                "table": "sales",
                "scales": [{"id": "scale_1", "class_id": "scale.log<number,number>"}],
            }
        )


def test_duplicate_ids_rejected(chart) -> None:
    payload = model_dump(chart, mode="json")
    payload["glyphs"][0]["marks"][1]["id"] = "mark_rect"
    with pytest.raises(ValidationError):
        Chart.model_validate(payload)


def test_duplicate_table_names_rejected(dataset) -> None:
    payload = model_dump(dataset, mode="json")
    payload["tables"].append(dict(payload["tables"][0]))
    with pytest.raises(ValidationError):
        Dataset.model_validate(payload)


def test_data_expression_is_immutable() -> None:
    expression = DataExpression.model_validate(
        {"table": "sales", "expression": "region", "value_type": "string", "metadata": {"kind": "categorical"}}
    )
    with pytest.raises(ValidationError):
        expression.expression = "product"
    with pytest.raises(ValidationError):
        DataExpression.model_validate(
            {
                "table": "sales",
                "expression": "region",
                "value_type": "string",
                "metadata": {"kind": "categorical"},
                "raw_column_expression": "  ",
            }
        )


def test_gap_ratio_bounds() -> None:
    with pytest.raises(ValidationError):
        AxisDataBinding(type="categorical", expression="region", value_type="string", gap_ratio=1.5)


def test_snapshot_shares_no_mutable_state(chart) -> None:
    snapshot = model_snapshot(chart)
    snapshot.glyphs[0].marks[0].mappings["fill"] = ValueMapping(value="#ff0000")
    assert "fill" not in chart.glyphs[0].marks[0].mappings


def test_model_dump_rejects_non_models() -> None:
    with pytest.raises(TypeError):
        model_dump({"id": "chart_1"})
