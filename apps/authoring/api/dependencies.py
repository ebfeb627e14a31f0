"""FastAPI 依赖注入配置。"""

from __future__ import annotations

from functools import lru_cache

from apps.authoring.infra.clock import UtcClock
from apps.authoring.infra.settings import Settings, get_settings
from apps.authoring.stores import ChartStore


@lru_cache
def get_clock() -> UtcClock:
    """提供全局 UTC 时钟实例。"""

    return UtcClock()


@lru_cache
def get_chart_store() -> ChartStore:
    """提供图表会话缓存。"""

    return ChartStore()


def get_app_settings() -> Settings:
    """提供进程级配置。"""

    return get_settings()
