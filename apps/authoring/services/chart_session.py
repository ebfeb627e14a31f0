"""图表会话：持有图表规范、数据集与图表状态，并串联绑定、缩放与求解。"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Tuple
from uuid import uuid4

from apps.authoring.compat import model_dump, model_snapshot
from apps.authoring.contracts.chart_state import AttributeMap, ChartState, ConstraintStrength, ElementState, GlyphState
from apps.authoring.contracts.dataset import Dataset, Table
from apps.authoring.contracts.expression import DataExpression, DataKind, DataType
from apps.authoring.contracts.specification import (
    AttributeType,
    AxisDataBinding,
    BindingType,
    Chart,
    Glyph,
    Legend,
    NumericalMode,
    ParentMapping,
    PlotSegment,
    ValueMapping,
)
from apps.authoring.infra.clock import UtcClock
from apps.authoring.infra.events import EVENT_DATASET, EVENT_SCALES_COLLECTED, ChartEventHub
from apps.authoring.infra.settings import Settings, get_settings
from apps.authoring.services.axis_binder import AxisBinder, BindingTarget
from apps.authoring.services.expression import ExpressionEvaluator, TableExpressionEvaluator
from apps.authoring.services.scale_classes import LEGEND_CLASSES, ScaleInferenceHints
from apps.authoring.services.scale_lifecycle import ScaleLifecycleManager
from apps.authoring.services.scale_matcher import require_scale
from apps.authoring.services.solve_orchestrator import SolveOrchestrator
from apps.authoring.services.solver import ConstraintSolver, DirectMappingSolver
from apps.authoring.services.spec_lookup import first_plot_segment_for_glyph

LOGGER = logging.getLogger(__name__)


def compute_chart_hash(*, chart: Chart) -> str:
    """计算图表规范的稳定哈希值。

    Parameters
    ----------
    chart: Chart
        需要计算哈希的图表规范。

    Returns
    -------
    str
        经过键排序序列化后的 SHA256 哈希字符串。
    """

    # 序列化时按键排序，确保不同运行环境得到一致字符串。
    payload = model_dump(chart, mode="json")
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SessionState:
    """会话的可保存状态，与会话本身不共享可变结构。"""

    chart: Chart
    chart_state: ChartState
    dataset: Dataset


class ChartSession:
    """单个图表的编辑会话。

    会话是图表规范的唯一写入方；修改入口在编排器的写锁内执行，求解期间
    直接被拒绝，求解也会等待已开始的修改完成。撤销
    管理在会话之外，``checkpoint`` 钩子会在每次绑定修改前被调用。
    """

    def __init__(
        self,
        *,
        chart: Chart,
        dataset: Dataset,
        chart_state: Optional[ChartState] = None,
        solver: Optional[ConstraintSolver] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        clock: Optional[UtcClock] = None,
        settings: Optional[Settings] = None,
        checkpoint: Optional[Callable[["ChartSession"], None]] = None,
    ) -> None:
        self.chart = chart
        self.dataset = dataset
        self.chart_state = chart_state or ChartState()
        self._evaluator = evaluator or TableExpressionEvaluator()
        self._clock = clock or UtcClock()
        self._settings = settings or get_settings()
        self._checkpoint = checkpoint
        self.events = ChartEventHub(
            chart_id=chart.id,
            clock=self._clock,
            history_limit=self._settings.event_history_limit,
        )
        self.orchestrator = SolveOrchestrator(
            solver=solver or DirectMappingSolver(evaluator=self._evaluator),
            events=self.events,
            clock=self._clock,
        )

    # 组件均绑定到当前的 chart / dataset 对象，替换后按需重建。
    def _binder(self) -> AxisBinder:
        return AxisBinder(
            chart=self.chart,
            dataset=self.dataset,
            evaluator=self._evaluator,
            default_gap_ratio=self._settings.default_gap_ratio,
        )

    def _scales(self) -> ScaleLifecycleManager:
        return ScaleLifecycleManager(
            chart=self.chart,
            dataset=self.dataset,
            evaluator=self._evaluator,
            chart_state=self.chart_state,
            name_prefix=self._settings.scale_name_prefix,
        )

    def _run_checkpoint(self) -> None:
        if self._checkpoint is not None:
            self._checkpoint(self)

    @property
    def chart_hash(self) -> str:
        """当前图表规范的哈希值。"""

        return compute_chart_hash(chart=self.chart)

    def save_state(self) -> SessionState:
        """返回与会话解耦的深拷贝状态。"""

        return SessionState(
            chart=model_snapshot(self.chart),
            chart_state=model_snapshot(self.chart_state),
            dataset=model_snapshot(self.dataset),
        )

    def load_state(self, state: SessionState) -> None:
        """载入保存的状态，会话持有其副本。"""

        with self.orchestrator.mutation():
            self.chart = model_snapshot(state.chart)
            self.chart_state = model_snapshot(state.chart_state)
            self.dataset = model_snapshot(state.dataset)
        self.events.emit(EVENT_DATASET, {"dataset": self.dataset.name})

    def get_table(self, name: str) -> Optional[Table]:
        """按名称查找数据表。"""

        return self.dataset.get_table(name)

    def get_tables(self) -> List[Table]:
        """返回数据集中的全部数据表。"""

        return list(self.dataset.tables)

    def get_column_vector(self, table: Table, column_name: str) -> List[Any]:
        """按行顺序返回某一列的全部取值。"""

        return [row.get(column_name) for row in table.rows]

    def bind_data_to_axis(
        self,
        target: BindingTarget,
        property_name: str,
        data_expression: DataExpression,
        *,
        append_to_property: Optional[str] = None,
        binding_type: Optional[BindingType] = None,
        numerical_mode: Optional[NumericalMode] = None,
    ) -> AxisDataBinding:
        """把数据表达式绑定到目标对象的坐标轴属性。"""

        with self.orchestrator.mutation():
            return self._binder().bind_data_to_axis(
                target,
                property_name,
                data_expression,
                append_to_property=append_to_property,
                binding_type=binding_type,
                numerical_mode=numerical_mode,
                checkpoint=self._run_checkpoint,
            )

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
        """复用已有缩放或创建新缩放，返回缩放 ID。"""

        with self.orchestrator.mutation():
            return self._scales().scale_inference(
                expression=expression,
                value_type=value_type,
                value_kind=value_kind,
                output_type=output_type,
                glyph=glyph,
                hints=hints,
                mark_attribute=mark_attribute,
            )

    def garbage_collect(self) -> List[str]:
        """回收未被引用的缩放，通常在保存前调用。"""

        with self.orchestrator.mutation():
            removed = self._scales().garbage_collect()
        if removed:
            self.events.emit(EVENT_SCALES_COLLECTED, {"removed": removed})
        return removed

    def replace_dataset(self, dataset: Dataset) -> int:
        """替换数据集并按新数据重新推断所有绘图区坐标轴。"""

        with self.orchestrator.mutation():
            self.dataset = dataset
            rebound = self._binder().rebind_plot_segments(checkpoint=self._run_checkpoint)
        self.events.emit(EVENT_DATASET, {"dataset": dataset.name})
        LOGGER.info(
            "Dataset replaced",
            extra={"chart_id": self.chart.id, "dataset": dataset.name, "rebound_axes": rebound},
        )
        return rebound

    def add_presolve_value(
        self,
        strength: ConstraintStrength,
        target: AttributeMap,
        attribute: str,
        value: float,
    ) -> None:
        """为下一次求解加入预求解值。"""

        self.orchestrator.add_presolve_value(strength, target, attribute, value)

    async def request_solve(self, *, mapping_only: bool = False) -> ChartState:
        """请求求解并等待完成。"""

        return await self.orchestrator.request_solve(self, mapping_only=mapping_only)

    def find_plot_segment_for_glyph(self, glyph: Glyph) -> Optional[PlotSegment]:
        """按元素插入顺序返回使用该字形的第一个绘图区。"""

        return first_plot_segment_for_glyph(chart=self.chart, glyph_id=glyph.id)

    def for_all_glyph(self, glyph: Glyph) -> Iterator[Tuple[GlyphState, PlotSegment, ElementState]]:
        """遍历所有使用该字形的绘图区中的字形实例状态。"""

        for element, element_state in zip(self.chart.elements, self.chart_state.elements):
            if isinstance(element, PlotSegment) and element.glyph == glyph.id:
                for glyph_state in element_state.glyphs:
                    yield glyph_state, element, element_state

    def representative_glyph_state(self, glyph: Glyph) -> Optional[GlyphState]:
        """返回首个使用该字形的绘图区中的第一个字形实例状态。"""

        for glyph_state, _, _ in self.for_all_glyph(glyph):
            return glyph_state
        return None

    def legend_exists_for_scale(self, scale_id: str) -> bool:
        """判断是否已存在展示该缩放的图例。"""

        return any(
            isinstance(element, Legend) and element.scale == scale_id for element in self.chart.elements
        )

    def toggle_legend_for_scale(self, scale_id: str) -> Optional[Legend]:
        """存在图例时移除，否则按缩放种类创建图例。

        Returns
        -------
        Optional[Legend]
            新建的图例；移除或缩放种类不支持图例时返回 None。
        """

        with self.orchestrator.mutation():
            return self._toggle_legend(scale_id)

    def _toggle_legend(self, scale_id: str) -> Optional[Legend]:
        scale = require_scale(chart=self.chart, scale_id=scale_id)
        for position, element in enumerate(self.chart.elements):
            if isinstance(element, Legend) and element.scale == scale_id:
                del self.chart.elements[position]
                if position < len(self.chart_state.elements):
                    del self.chart_state.elements[position]
                return None
        legend_class = LEGEND_CLASSES.get(scale.class_id)
        if legend_class is None:
            return None
        if legend_class == "legend.numerical-number":
            mappings = {
                "x1": ParentMapping(parent_attribute="x1"),
                "y1": ParentMapping(parent_attribute="y1"),
                "x2": ParentMapping(parent_attribute="x1"),
                "y2": ParentMapping(parent_attribute="y2"),
            }
        else:
            mappings = {
                "x": ParentMapping(parent_attribute="x2"),
                "y": ParentMapping(parent_attribute="y2"),
            }
            self.chart.mappings["margin_right"] = ValueMapping(value=100)
        legend = Legend(id=f"legend_{uuid4().hex}", class_id=legend_class, scale=scale_id, mappings=mappings)
        aligned = len(self.chart_state.elements) == len(self.chart.elements)
        self.chart.elements.append(legend)
        if aligned:
            self.chart_state.elements.append(ElementState())
        LOGGER.info("Legend created", extra={"chart_id": self.chart.id, "scale_id": scale_id})
        return legend
