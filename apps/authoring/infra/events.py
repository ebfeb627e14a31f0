"""图表通知中心：向订阅者推送求解状态与图形更新事件。"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from apps.authoring.infra.clock import UtcClock

LOGGER = logging.getLogger(__name__)

EVENT_SOLVER_STATUS = "solver_status"
EVENT_GRAPHICS = "graphics"
EVENT_DATASET = "dataset"
EVENT_SCALES_COLLECTED = "scales_collected"


class ChartEventHub:
    """以 asyncio.Queue 为通道的事件广播器，保留有限长度的历史事件。

    订阅时记录队列所属的事件循环；从其他线程发出的事件经
    ``call_soon_threadsafe`` 投递到该循环。
    """

    def __init__(self, *, chart_id: str, clock: UtcClock, history_limit: int = 200) -> None:
        self._chart_id = chart_id
        self._clock = clock
        self._history: Deque[dict] = deque(maxlen=history_limit)
        self._subscribers: List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []

    @property
    def history(self) -> List[dict]:
        """按发生顺序返回历史事件。"""

        return list(self._history)

    def subscribe(self, *, replay: bool = True) -> asyncio.Queue:
        """注册订阅者并返回事件队列，需在事件循环内调用。

        Parameters
        ----------
        replay: bool
            是否先把历史事件放入队列。

        Returns
        -------
        asyncio.Queue
            接收事件字典的队列。
        """

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        if replay:
            for event in self._history:
                queue.put_nowait(event)
        self._subscribers.append((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """移除订阅者，重复移除不报错。"""

        self._subscribers = [entry for entry in self._subscribers if entry[1] is not queue]

    def emit(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> dict:
        """广播事件并写入历史。"""

        event = {
            "type": event_type,
            "chart_id": self._chart_id,
            "timestamp": self._clock.now().isoformat(),
            "payload": payload or {},
        }
        self._history.append(event)
        self._deliver(event)
        LOGGER.debug("Chart event emitted", extra={"chart_id": self._chart_id, "event_type": event_type})
        return event

    def close(self) -> None:
        """通知所有订阅者事件流结束。"""

        self._deliver(None)
        self._subscribers = []

    def _deliver(self, item: Optional[dict]) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        for loop, queue in list(self._subscribers):
            if loop is current:
                queue.put_nowait(item)
            elif loop.is_closed():
                self.unsubscribe(queue)
            else:
                loop.call_soon_threadsafe(queue.put_nowait, item)
