"""图表会话 Store，集中管理进程内的编辑会话。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from apps.authoring.services.chart_session import ChartSession


@dataclass
class ChartStore:
    """维护图表会话的内存缓存。"""

    _sessions: Dict[str, ChartSession] = field(default_factory=dict)

    def save(self, session: ChartSession) -> None:
        """写入会话，已存在同 ID 的会话时覆盖。

        Parameters
        ----------
        session: ChartSession
            需要缓存的会话。
        """

        self._sessions[session.chart.id] = session

    def require(self, chart_id: str) -> ChartSession:
        """读取会话，不存在时立即失败。

        Parameters
        ----------
        chart_id: str
            图表标识。

        Returns
        -------
        ChartSession
            已缓存的会话对象。
        """

        if chart_id not in self._sessions:
            message = f"chart_id={chart_id} 未找到会话，请先创建图表。"
            raise KeyError(message)
        return self._sessions[chart_id]
