"""测试前置配置。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """确保仓库根目录位于 Python 模块搜索路径。"""

    root = Path(__file__).resolve().parents[3]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


SALES_ROWS = [
    {"region": "north", "product": "tea", "sales": 120.0, "profit": 30.0, "quantity": 4, "day": 1000.0},
    {"region": "south", "product": "coffee", "sales": 80.0, "profit": -5.0, "quantity": 2, "day": 2000.0},
    {"region": "north", "product": "coffee", "sales": 200.0, "profit": 45.0, "quantity": 7, "day": 3000.0},
    {"region": "east", "product": "tea", "sales": 60.0, "profit": 12.0, "quantity": 1, "day": 4000.0},
]


@pytest.fixture
def dataset():
    """包含单张销售表的数据集。"""

    from apps.authoring.contracts.dataset import Dataset

    return Dataset.model_validate(
        {
            "name": "retail",
            "tables": [
                {
                    "name": "sales",
                    "columns": [
                        {"name": "region", "type": "string", "metadata": {"kind": "categorical"}},
                        {"name": "product", "type": "string", "metadata": {"kind": "categorical"}},
                        {"name": "sales", "type": "number", "metadata": {"kind": "numerical", "unit": "USD"}},
                        {"name": "profit", "type": "number", "metadata": {"kind": "numerical", "unit": "USD"}},
                        {"name": "quantity", "type": "integer", "metadata": {"kind": "numerical"}},
                        {"name": "day", "type": "date", "metadata": {"kind": "temporal"}},
                    ],
                    "rows": [dict(row) for row in SALES_ROWS],
                }
            ],
        }
    )


@pytest.fixture
def chart():
    """一个绘图区、一个字形（矩形与文本两个标记）、尚无缩放的图表。"""

    from apps.authoring.contracts.specification import Chart

    return Chart.model_validate(
        {
            "id": "chart_1",
            "table": "sales",
            "glyphs": [
                {
                    "id": "glyph_1",
                    "table": "sales",
                    "marks": [
                        {"id": "mark_rect", "class_id": "mark.rect"},
                        {"id": "mark_text", "class_id": "mark.text"},
                    ],
                }
            ],
            "elements": [
                {
                    "kind": "plot-segment",
                    "id": "plot_1",
                    "glyph": "glyph_1",
                    "table": "sales",
                    "properties": {"name": "PlotSegment1", "sublayout": {"type": "grid"}},
                }
            ],
        }
    )
