"""基础设施组件导出。"""

from apps.authoring.infra.clock import UtcClock
from apps.authoring.infra.events import ChartEventHub
from apps.authoring.infra.settings import Settings, get_settings

__all__ = [
    "ChartEventHub",
    "Settings",
    "UtcClock",
    "get_settings",
]
