"""提供统一的时钟接口，避免直接调用 datetime.now 与 time.monotonic。"""

from __future__ import annotations

import time
from datetime import datetime, timezone


class UtcClock:
    """UTC 时钟，用于事件时间戳与求解耗时统计。"""

    def now(self) -> datetime:
        """返回当前 UTC 时间。

        Returns
        -------
        datetime
            带有 UTC 时区信息的当前时间。
        """

        return datetime.now(timezone.utc)

    def monotonic_ms(self) -> float:
        """返回单调递增的毫秒计时，仅用于计算耗时差值。"""

        return time.monotonic() * 1000.0
