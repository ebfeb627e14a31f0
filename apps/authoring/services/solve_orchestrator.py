"""求解编排器：串行化对约束求解器的异步调用，并管理预求解值队列。"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Literal, Optional, Protocol

from apps.authoring.contracts.chart_state import AttributeMap, ChartState, ConstraintStrength
from apps.authoring.contracts.dataset import Dataset
from apps.authoring.contracts.specification import Chart
from apps.authoring.infra.clock import UtcClock
from apps.authoring.infra.events import EVENT_GRAPHICS, EVENT_SOLVER_STATUS, ChartEventHub
from apps.authoring.services.errors import ChartBusyError, SolverFaultError
from apps.authoring.services.solver import ConstraintSolver, PreSolveValue

LOGGER = logging.getLogger(__name__)

SolverStatus = Literal["idle", "solving"]


class SolveTarget(Protocol):
    """被求解的图表会话：求解期间由编排器独占。"""

    chart: Chart
    chart_state: ChartState
    dataset: Dataset


class SolveOrchestrator:
    """两状态（idle / solving）的求解编排器。

    预求解值在发出求解调用的瞬间被整体取走，求解进行中新加入的值属于
    下一次求解。并发的求解请求通过锁排队，任何时刻最多只有一个求解调用
    作用于同一个图表状态。

    修改图表规范的调用可能来自工作线程，它们与求解调用共用一把写锁：
    求解开始后的修改被拒绝，已开始的修改完成之前求解器不会读取图表。
    """

    def __init__(
        self,
        *,
        solver: ConstraintSolver,
        events: ChartEventHub,
        clock: UtcClock,
    ) -> None:
        self._solver = solver
        self._events = events
        self._clock = clock
        self._queue: List[PreSolveValue] = []
        self._status: SolverStatus = "idle"
        self._lock: Optional[asyncio.Lock] = None
        self._writer = threading.Lock()

    @property
    def status(self) -> SolverStatus:
        """当前求解状态。"""

        return self._status

    @property
    def solving(self) -> bool:
        """是否正在求解。"""

        return self._status == "solving"

    @property
    def queued_values(self) -> List[PreSolveValue]:
        """返回当前排队中的预求解值副本。"""

        return list(self._queue)

    def ensure_mutable(self) -> None:
        """求解期间禁止修改图表规范。"""

        if self.solving:
            raise ChartBusyError("求解进行中，图表规范暂不可修改。")

    @contextmanager
    def mutation(self) -> Iterator[None]:
        """在写锁内执行一次图表修改，求解期间立即拒绝。"""

        self.ensure_mutable()
        with self._writer:
            yield

    def add_presolve_value(
        self,
        strength: ConstraintStrength,
        target: AttributeMap,
        attribute: str,
        value: float,
    ) -> None:
        """加入一条预求解值，求解进行中也允许加入。"""

        self._queue.append(
            PreSolveValue(strength=strength, target=target, attribute=attribute, value=value),
        )

    def take_queued_values(self) -> List[PreSolveValue]:
        """整体取走并清空预求解值队列。"""

        values, self._queue = self._queue, []
        return values

    async def issue_solve(
        self,
        target: SolveTarget,
        values: List[PreSolveValue],
        *,
        mapping_only: bool = False,
    ) -> ChartState:
        """以给定的预求解值发出一次求解调用。

        Parameters
        ----------
        target: SolveTarget
            持有图表规范、状态与数据集的会话。
        values: List[PreSolveValue]
            已从队列取出的预求解值。
        mapping_only: bool
            是否只更新映射而不做完整求解。

        Returns
        -------
        ChartState
            求解后的图表状态。
        """

        if self.solving:
            raise ChartBusyError("已有求解正在进行，不能并发发出求解调用。")
        self._set_status("solving")
        started = self._clock.monotonic_ms()
        try:
            await self._acquire_writer()
        except BaseException:
            self._set_status("idle")
            raise
        try:
            result = await self._solver.solve(
                target.chart,
                target.chart_state,
                target.dataset,
                values,
                mapping_only,
            )
        except Exception as error:
            LOGGER.error(
                "Solver failed",
                extra={"chart_id": target.chart.id, "error_class": error.__class__.__name__},
            )
            raise SolverFaultError(f"约束求解失败: {error}") from error
        else:
            if result is not None and result is not target.chart_state:
                target.chart_state = result
        finally:
            self._writer.release()
            self._set_status("idle")
        LOGGER.info(
            "Solve finished",
            extra={
                "chart_id": target.chart.id,
                "duration_ms": round(self._clock.monotonic_ms() - started, 3),
                "mapping_only": mapping_only,
            },
        )
        self._events.emit(EVENT_GRAPHICS)
        return target.chart_state

    async def request_solve(self, target: SolveTarget, *, mapping_only: bool = False) -> ChartState:
        """请求一次求解；与进行中的求解排队串行执行。"""

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            values = self.take_queued_values()
            return await self.issue_solve(target, values, mapping_only=mapping_only)

    async def _acquire_writer(self) -> None:
        # 进行中的修改运行在工作线程上，等待它们结束时不能阻塞事件循环。
        if self._writer.acquire(blocking=False):
            return
        LOGGER.debug("Solve waiting for in-flight mutation")
        acquiring = asyncio.ensure_future(asyncio.to_thread(self._writer.acquire))
        try:
            await asyncio.shield(acquiring)
        except asyncio.CancelledError:
            # 取消后线程仍会拿到锁，拿到即释放。
            acquiring.add_done_callback(lambda _: self._writer.release())
            raise

    def _set_status(self, status: SolverStatus) -> None:
        self._status = status
        self._events.emit(EVENT_SOLVER_STATUS, {"solving": status == "solving"})
