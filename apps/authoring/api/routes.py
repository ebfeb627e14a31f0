"""FastAPI 路由定义。"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from apps.authoring.api.dependencies import get_app_settings, get_chart_store, get_clock
from apps.authoring.api.schemas import (
    AxisBindingRequest,
    AxisBindingResponse,
    ChartCreateRequest,
    ChartSnapshotResponse,
    ScaleCollectResponse,
    ScaleInferRequest,
    ScaleInferResponse,
    SolveRequest,
    SolveResponse,
)
from apps.authoring.contracts.specification import Chart
from apps.authoring.infra.clock import UtcClock
from apps.authoring.infra.settings import Settings
from apps.authoring.services.chart_session import ChartSession
from apps.authoring.services.axis_binder import BindingTarget
from apps.authoring.services.errors import ChartBusyError
from apps.authoring.services.scale_classes import ScaleInferenceHints
from apps.authoring.stores import ChartStore

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _http_error(endpoint: str, error: Exception, status_code: int) -> HTTPException:
    """记录失败日志并构造 HTTPException。"""

    log = LOGGER.exception if status_code >= 500 else LOGGER.warning
    log(
        "API 调用失败",
        extra={
            "endpoint": endpoint,
            "error_type": error.__class__.__name__,
            "status_code": status_code,
        },
    )
    return HTTPException(status_code=status_code, detail=str(error))


def _snapshot(session: ChartSession) -> ChartSnapshotResponse:
    return ChartSnapshotResponse(
        chart=session.chart,
        chart_state=session.chart_state,
        chart_hash=session.chart_hash,
        solver_status=session.orchestrator.status,
    )


def _find_target(chart: Chart, target_id: str) -> BindingTarget:
    """按 ID 查找图表元素或字形中的标记。"""

    element = chart.get_element(target_id)
    if element is not None:
        return element
    for glyph in chart.glyphs:
        for mark in glyph.marks:
            if mark.id == target_id:
                return mark
    raise KeyError(f"target_id={target_id} 不存在于图表中。")


@router.post("/api/charts", response_model=ChartSnapshotResponse)
def create_chart(
    request: ChartCreateRequest,
    chart_store: ChartStore = Depends(get_chart_store),
    clock: UtcClock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
) -> ChartSnapshotResponse:
    """创建图表会话，同 ID 的旧会话会被替换。"""

    session = ChartSession(
        chart=request.chart,
        dataset=request.dataset,
        chart_state=request.chart_state,
        clock=clock,
        settings=settings,
    )
    chart_store.save(session)
    LOGGER.info("Chart session created", extra={"chart_id": request.chart.id})
    return _snapshot(session)


@router.get("/api/charts/{chart_id}", response_model=ChartSnapshotResponse)
def get_chart(
    chart_id: str,
    chart_store: ChartStore = Depends(get_chart_store),
) -> ChartSnapshotResponse:
    """返回图表规范、状态、哈希与求解状态。"""

    endpoint = "api_chart_get"
    try:
        session = chart_store.require(chart_id)
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error
    return _snapshot(session)


@router.post("/api/charts/{chart_id}/bindings/axis", response_model=AxisBindingResponse)
def bind_axis(
    chart_id: str,
    request: AxisBindingRequest,
    chart_store: ChartStore = Depends(get_chart_store),
) -> AxisBindingResponse:
    """把数据表达式绑定到目标对象的坐标轴属性。"""

    endpoint = "api_chart_bind_axis"
    try:
        session = chart_store.require(chart_id)
        target = _find_target(session.chart, request.target_id)
        binding = session.bind_data_to_axis(
            target,
            request.property_name,
            request.data_expression,
            append_to_property=request.append_to_property,
            binding_type=request.binding_type,
            numerical_mode=request.numerical_mode,
        )
        response = AxisBindingResponse(binding=binding, chart_hash=session.chart_hash)
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error
    except ValueError as error:
        raise _http_error(endpoint, error, status.HTTP_400_BAD_REQUEST) from error
    except ChartBusyError as error:
        raise _http_error(endpoint, error, status.HTTP_409_CONFLICT) from error
    except RuntimeError as error:
        raise _http_error(endpoint, error, status.HTTP_500_INTERNAL_SERVER_ERROR) from error
    return response


@router.post("/api/charts/{chart_id}/scales/infer", response_model=ScaleInferResponse)
def infer_scale(
    chart_id: str,
    request: ScaleInferRequest,
    chart_store: ChartStore = Depends(get_chart_store),
) -> ScaleInferResponse:
    """复用已有缩放或创建新缩放。"""

    endpoint = "api_chart_scale_infer"
    try:
        session = chart_store.require(chart_id)
        glyph = None
        if request.glyph_id is not None:
            glyph = session.chart.get_glyph(request.glyph_id)
            if glyph is None:
                raise KeyError(f"glyph_id={request.glyph_id} 不存在于图表中。")
        scale_id = session.scale_inference(
            expression=request.expression,
            value_type=request.value_type,
            value_kind=request.value_kind,
            output_type=request.output_type,
            glyph=glyph,
            hints=ScaleInferenceHints(new_scale=request.new_scale, order_mode=request.order_mode),
            mark_attribute=request.mark_attribute,
        )
        response = ScaleInferResponse(scale_id=scale_id, scale_count=len(session.chart.scales))
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error
    except ValueError as error:
        raise _http_error(endpoint, error, status.HTTP_400_BAD_REQUEST) from error
    except ChartBusyError as error:
        raise _http_error(endpoint, error, status.HTTP_409_CONFLICT) from error
    except RuntimeError as error:
        raise _http_error(endpoint, error, status.HTTP_500_INTERNAL_SERVER_ERROR) from error
    return response


@router.post("/api/charts/{chart_id}/scales/collect", response_model=ScaleCollectResponse)
def collect_scales(
    chart_id: str,
    chart_store: ChartStore = Depends(get_chart_store),
) -> ScaleCollectResponse:
    """回收未被引用的缩放。"""

    endpoint = "api_chart_scale_collect"
    try:
        session = chart_store.require(chart_id)
        removed = session.garbage_collect()
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error
    except ChartBusyError as error:
        raise _http_error(endpoint, error, status.HTTP_409_CONFLICT) from error
    return ScaleCollectResponse(removed=removed, chart_hash=session.chart_hash)


@router.post("/api/charts/{chart_id}/solve", response_model=SolveResponse)
async def solve_chart(
    chart_id: str,
    request: SolveRequest,
    chart_store: ChartStore = Depends(get_chart_store),
) -> SolveResponse:
    """加入预求解值并请求一次求解。"""

    endpoint = "api_chart_solve"
    try:
        session = chart_store.require(chart_id)
        # 全部校验通过后再入队，失败的请求不会留下预求解值。
        element_count = len(session.chart_state.elements)
        for hint in request.pre_solve_values:
            if hint.element_index >= element_count:
                raise ValueError(f"element_index={hint.element_index} 超出图表状态范围。")
        for hint in request.pre_solve_values:
            target = session.chart_state.elements[hint.element_index].attributes
            session.add_presolve_value(hint.strength, target, hint.attribute, hint.value)
        chart_state = await session.request_solve(mapping_only=request.mapping_only)
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error
    except ValueError as error:
        raise _http_error(endpoint, error, status.HTTP_400_BAD_REQUEST) from error
    except ChartBusyError as error:
        raise _http_error(endpoint, error, status.HTTP_409_CONFLICT) from error
    except RuntimeError as error:
        raise _http_error(endpoint, error, status.HTTP_500_INTERNAL_SERVER_ERROR) from error
    return SolveResponse(chart_state=chart_state, solver_status=session.orchestrator.status)


@router.get("/api/charts/{chart_id}/events")
async def stream_events(
    chart_id: str,
    follow: bool = True,
    chart_store: ChartStore = Depends(get_chart_store),
):
    """通过 SSE 推送图表通知；follow=false 时仅回放历史事件。"""

    endpoint = "api_chart_events"
    try:
        session = chart_store.require(chart_id)
    except KeyError as error:
        raise _http_error(endpoint, error, status.HTTP_404_NOT_FOUND) from error

    async def event_generator():
        if not follow:
            for event in session.events.history:
                yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
            yield "event: end\n\n"
            return
        queue = session.events.subscribe()
        try:
            while True:
                item = await queue.get()
                if item is None:
                    yield "event: end\n\n"
                    break
                yield f"data: {json.dumps(item, ensure_ascii=False)}\n\n"
        finally:
            session.events.unsubscribe(queue)

    return StreamingResponse(event_generator(), media_type="text/event-stream")
