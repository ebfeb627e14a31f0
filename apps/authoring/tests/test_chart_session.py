"""图表会话集成测试。"""

from __future__ import annotations

import asyncio
import threading

import pytest

from apps.authoring.contracts.chart_state import ConstraintStrength
from apps.authoring.contracts.dataset import Dataset
from apps.authoring.contracts.expression import DataExpression
from apps.authoring.contracts.specification import Legend, ScaleMapping, ValueMapping
from apps.authoring.infra.events import EVENT_DATASET, EVENT_SCALES_COLLECTED
from apps.authoring.infra.settings import Settings
from apps.authoring.services.chart_session import ChartSession
from apps.authoring.services.errors import ChartBusyError
from apps.authoring.services.expression import TableExpressionEvaluator


def _settings() -> Settings:
    return Settings(default_gap_ratio=0.2, event_history_limit=50, scale_name_prefix="Scale")


def _session(chart, dataset, **kwargs) -> ChartSession:
    return ChartSession(chart=chart, dataset=dataset, settings=_settings(), **kwargs)


def _map_with_inferred_scale(session: ChartSession, mark_index: int, attribute: str, expression: str) -> str:
    glyph = session.chart.glyphs[0]
    scale_id = session.scale_inference(
        expression=expression,
        value_type="number",
        value_kind="numerical",
        output_type="number",
        glyph=glyph,
        mark_attribute=attribute,
    )
    glyph.marks[mark_index].mappings[attribute] = ScaleMapping(
        table="sales",
        expression=expression,
        value_type="number",
        scale=scale_id,
        attribute=attribute,
    )
    return scale_id


def test_same_expression_on_another_mark_reuses_scale(chart, dataset) -> None:
    session = _session(chart, dataset)
    height_scale = _map_with_inferred_scale(session, 0, "height", "avg(sales)")
    assert session.chart.get_scale(height_scale).class_id == "scale.linear<number,number>"
    reused = session.scale_inference(
        expression="avg(sales)",
        value_type="number",
        value_kind="numerical",
        output_type="number",
        glyph=session.chart.glyphs[0],
        mark_attribute="font_size",
    )
    assert reused == height_scale
    assert len(session.chart.scales) == 1


def test_same_unit_aggregates_share_one_scale(chart, dataset) -> None:
    """avg(sales) 映射到矩形高度后，文本字号上的 sum(profit) 复用同一缩放。"""

    session = _session(chart, dataset)
    height_scale = _map_with_inferred_scale(session, 0, "height", "avg(sales)")
    size_scale = _map_with_inferred_scale(session, 1, "font_size", "sum(profit)")
    assert height_scale == size_scale
    assert len(session.chart.scales) == 1


def test_settings_flow_into_bindings(chart, dataset) -> None:
    expression = DataExpression.model_validate(
        {"table": "sales", "expression": "region", "value_type": "string", "metadata": {"kind": "categorical"}}
    )
    checkpoints = []
    session = ChartSession(chart=chart, dataset=dataset, settings=_settings(), checkpoint=checkpoints.append)
    binding = session.bind_data_to_axis(session.chart.elements[0], "x_data", expression)
    assert binding.gap_ratio == 0.2
    assert checkpoints == [session]


def test_request_solve_applies_mappings_and_hints(chart, dataset) -> None:
    async def _run() -> None:
        session = _session(chart, dataset)
        _map_with_inferred_scale(session, 0, "height", "sales")
        session.chart.glyphs[0].marks[1].mappings["text"] = ValueMapping(value="label")
        state = await session.request_solve()
        plot_state = state.elements[0]
        assert plot_state.data_row_indices == [[0], [1], [2], [3]]
        heights = [glyph.marks[0].attributes["height"] for glyph in plot_state.glyphs]
        assert heights[0] == pytest.approx(100 * (120 - 60) / (200 - 60))
        assert heights[2] == pytest.approx(100.0)
        assert heights[3] == pytest.approx(0.0)
        assert all(glyph.marks[1].attributes["text"] == "label" for glyph in plot_state.glyphs)
        session.add_presolve_value(ConstraintStrength.STRONG, plot_state.attributes, "x1", -50.0)
        state = await session.request_solve(mapping_only=True)
        assert state.elements[0].attributes["x1"] == -50.0
        assert session.orchestrator.status == "idle"

    asyncio.run(_run())


def test_glyph_queries(chart, dataset) -> None:
    async def _run() -> None:
        session = _session(chart, dataset)
        glyph = session.chart.glyphs[0]
        assert session.representative_glyph_state(glyph) is None
        await session.request_solve()
        assert session.find_plot_segment_for_glyph(glyph).id == "plot_1"
        instances = list(session.for_all_glyph(glyph))
        assert len(instances) == 4
        assert session.representative_glyph_state(glyph) is instances[0][0]

    asyncio.run(_run())


def test_mutations_rejected_while_solving(chart, dataset) -> None:
    class GatedSolver:
        def __init__(self) -> None:
            self.started = asyncio.Event()
            self.release = asyncio.Event()

        async def solve(self, chart, chart_state, dataset, pre_solve_values, mapping_only):
            self.started.set()
            await self.release.wait()
            return None

    async def _run() -> None:
        solver = GatedSolver()
        session = _session(chart, dataset, solver=solver)
        running = asyncio.create_task(session.request_solve())
        await solver.started.wait()
        with pytest.raises(ChartBusyError):
            session.garbage_collect()
        with pytest.raises(ChartBusyError):
            session.scale_inference(
                expression="sales",
                value_type="number",
                value_kind="numerical",
                output_type="number",
            )
        session.add_presolve_value(ConstraintStrength.WEAK, {}, "x", 1.0)
        solver.release.set()
        await running
        assert len(session.orchestrator.queued_values) == 1

    asyncio.run(_run())


def test_garbage_collect_emits_event(chart, dataset) -> None:
    session = _session(chart, dataset)
    scale_id = session.scale_inference(
        expression="sales",
        value_type="number",
        value_kind="numerical",
        output_type="number",
    )
    assert session.garbage_collect() == [scale_id]
    assert session.events.history[-1]["type"] == EVENT_SCALES_COLLECTED
    assert session.garbage_collect() == []


def test_toggle_legend_for_scale(chart, dataset) -> None:
    session = _session(chart, dataset)
    scale_id = session.scale_inference(
        expression="region",
        value_type="string",
        value_kind="categorical",
        output_type="color",
        glyph=session.chart.glyphs[0],
    )
    assert not session.legend_exists_for_scale(scale_id)
    legend = session.toggle_legend_for_scale(scale_id)
    assert isinstance(legend, Legend)
    assert legend.class_id == "legend.categorical"
    assert session.legend_exists_for_scale(scale_id)
    assert session.chart.mappings["margin_right"].value == 100
    assert session.toggle_legend_for_scale(scale_id) is None
    assert not session.legend_exists_for_scale(scale_id)


def test_toggle_legend_unsupported_scale(chart, dataset) -> None:
    session = _session(chart, dataset)
    scale_id = session.scale_inference(
        expression="region",
        value_type="string",
        value_kind="categorical",
        output_type="boolean",
        glyph=session.chart.glyphs[0],
    )
    assert session.toggle_legend_for_scale(scale_id) is None
    assert not session.legend_exists_for_scale(scale_id)


def test_save_and_load_state_are_isolated(chart, dataset) -> None:
    session = _session(chart, dataset)
    saved = session.save_state()
    original_hash = session.chart_hash
    session.scale_inference(
        expression="sales",
        value_type="number",
        value_kind="numerical",
        output_type="number",
    )
    assert session.chart_hash != original_hash
    assert saved.chart.scales == []
    session.load_state(saved)
    assert session.chart_hash == original_hash
    assert session.chart is not saved.chart


def test_replace_dataset_rebinds_axes(chart, dataset) -> None:
    session = _session(chart, dataset)
    expression = DataExpression.model_validate(
        {"table": "sales", "expression": "region", "value_type": "string", "metadata": {"kind": "categorical"}}
    )
    session.bind_data_to_axis(session.chart.elements[0], "x_data", expression)
    replacement = Dataset.model_validate(
        {
            "name": "retail_v2",
            "tables": [
                {
                    "name": "sales",
                    "columns": [{"name": "region", "type": "string", "metadata": {"kind": "categorical"}}],
                    "rows": [{"region": "west"}, {"region": "central"}],
                }
            ],
        }
    )
    assert session.replace_dataset(replacement) == 1
    assert session.chart.elements[0].properties.x_data.categories == ["central", "west"]
    assert session.events.history[-1]["type"] == EVENT_DATASET
    assert [table.name for table in session.get_tables()] == ["sales"]
    assert session.get_column_vector(session.get_table("sales"), "region") == ["west", "central"]


def test_solve_waits_for_binding_running_on_worker_thread(chart, dataset) -> None:
    """工作线程上的绑定写完之前，求解器不会读取图表。"""

    class BlockingEvaluator(TableExpressionEvaluator):
        def __init__(self) -> None:
            self.entered = threading.Event()
            self.release = threading.Event()

        def evaluate(self, expression, group_by, table):
            self.entered.set()
            assert self.release.wait(5)
            return super().evaluate(expression, group_by, table)

    class CapturingSolver:
        def __init__(self) -> None:
            self.seen = []

        async def solve(self, chart, chart_state, dataset, pre_solve_values, mapping_only):
            binding = chart.elements[0].properties.x_data
            self.seen.append(None if binding is None else binding.categories)
            return None

    evaluator = BlockingEvaluator()
    solver = CapturingSolver()
    session = _session(chart, dataset, evaluator=evaluator, solver=solver)
    expression = DataExpression.model_validate(
        {"table": "sales", "expression": "region", "value_type": "string", "metadata": {"kind": "categorical"}}
    )
    worker = threading.Thread(
        target=session.bind_data_to_axis,
        args=(session.chart.elements[0], "x_data", expression),
    )

    async def _run() -> None:
        worker.start()
        assert await asyncio.to_thread(evaluator.entered.wait, 5)
        solving = asyncio.create_task(session.request_solve())
        await asyncio.sleep(0.05)
        assert not solving.done()
        assert solver.seen == []
        with pytest.raises(ChartBusyError):
            session.garbage_collect()
        evaluator.release.set()
        await solving
        await asyncio.to_thread(worker.join, 5)

    asyncio.run(_run())
    assert solver.seen == [["east", "north", "south"]]
    assert session.orchestrator.status == "idle"
