"""运行配置，统一从环境变量读取。"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """图表编辑核心的运行配置。"""

    default_gap_ratio: float
    event_history_limit: int
    scale_name_prefix: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """读取环境变量构造配置，结果在进程内缓存。"""

    gap_ratio = float(os.getenv("AUTHORING_DEFAULT_GAP_RATIO", "0.1"))
    if not 0.0 <= gap_ratio <= 1.0:
        raise ValueError("AUTHORING_DEFAULT_GAP_RATIO 必须位于 [0, 1]。")
    history_limit = int(os.getenv("AUTHORING_EVENT_HISTORY_LIMIT", "200"))
    if history_limit <= 0:
        raise ValueError("AUTHORING_EVENT_HISTORY_LIMIT 必须为正数。")
    return Settings(
        default_gap_ratio=gap_ratio,
        event_history_limit=history_limit,
        scale_name_prefix=os.getenv("AUTHORING_SCALE_NAME_PREFIX", "Scale"),
    )
