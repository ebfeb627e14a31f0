"""Store 层导出。"""

from apps.authoring.stores.chart_store import ChartStore

__all__ = [
    "ChartStore",
]
