"""缩放种类行为表。

缩放种类是封闭集合：``infer_scale_class`` 以 (值类型, 数据种类, 输出类型)
查表得到种类标签，``SCALE_BEHAVIORS`` 以标签查表得到参数推断行为。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

from apps.authoring.contracts.expression import DataKind, DataType, OrderMode
from apps.authoring.contracts.specification import AttributeType, ScaleClassID
from apps.authoring.services.domain_inference import (
    infer_categorical_domain,
    infer_numerical_domain,
)

CATEGORY_PALETTE: Tuple[str, ...] = (
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
)
"""类别颜色缩放的默认调色板，类别多于调色板时循环使用。"""

DEFAULT_RANGE_NUMBER: Tuple[float, float] = (0.0, 100.0)
DEFAULT_RANGE_COLOR: Tuple[str, str] = ("#f7fbff", "#08306b")


@dataclass(frozen=True)
class ScaleInferenceHints:
    """缩放推断的可选提示。"""

    new_scale: bool = False
    range_number: Optional[Tuple[float, float]] = None
    range_color: Optional[Tuple[str, str]] = None
    order_mode: Optional[OrderMode] = None


_NUMERIC_TYPES = ("number", "integer")
_CATEGORICAL_KINDS = ("categorical", "ordinal")

_SCALE_CLASS_TABLE: Dict[Tuple[str, str, str], ScaleClassID] = {}
for _value_type in _NUMERIC_TYPES:
    _SCALE_CLASS_TABLE[(_value_type, "numerical", "number")] = f"scale.linear<{_value_type},number>"
    _SCALE_CLASS_TABLE[(_value_type, "numerical", "color")] = f"scale.linear<{_value_type},color>"
for _value_type in ("date", "number", "integer"):
    _SCALE_CLASS_TABLE[(_value_type, "temporal", "number")] = "scale.linear<date,number>"
for _value_type in ("string", "number", "integer", "boolean", "date"):
    for _kind in _CATEGORICAL_KINDS:
        _SCALE_CLASS_TABLE[(_value_type, _kind, "color")] = "scale.categorical<string,color>"
        _SCALE_CLASS_TABLE[(_value_type, _kind, "number")] = "scale.categorical<string,number>"
        _SCALE_CLASS_TABLE[(_value_type, _kind, "boolean")] = "scale.categorical<string,boolean>"
        _SCALE_CLASS_TABLE[(_value_type, _kind, "enum")] = "scale.categorical<string,enum>"


def infer_scale_class(
    value_type: DataType,
    value_kind: DataKind,
    output_type: AttributeType,
) -> Optional[ScaleClassID]:
    """查表得到缩放种类；不适用任何缩放时返回 None。"""

    return _SCALE_CLASS_TABLE.get((value_type, value_kind, output_type))


def _normalized(properties: Dict[str, Any], value: Any) -> Optional[float]:
    """把数值映射到 [0, 1] 区间，定义域退化时返回 0。"""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    low = properties.get("domain_min", 0.0)
    high = properties.get("domain_max", 1.0)
    if high == low:
        return 0.0
    return (number - low) / (high - low)


def _hex_to_rgb(color: str) -> Tuple[int, int, int]:
    text = color.lstrip("#")
    return int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16)


def interpolate_color(start: str, end: str, ratio: float) -> str:
    """在两个十六进制颜色之间线性插值。"""

    ratio = min(max(ratio, 0.0), 1.0)
    begin = _hex_to_rgb(start)
    finish = _hex_to_rgb(end)
    channels = [round(a + (b - a) * ratio) for a, b in zip(begin, finish)]
    return "#" + "".join(f"{channel:02x}" for channel in channels)


class ScaleBehavior(Protocol):
    """缩放种类的行为：参数推断与取值映射。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        """根据取值推断缩放参数并写入 properties。"""

    def map_value(self, properties: Dict[str, Any], value: Any) -> Any:
        """按缩放参数映射单个数据值，无法映射时返回 None。"""


class LinearNumberBehavior:
    """数值到数值的线性缩放。"""

    temporal = False

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_numerical_domain(values, temporal=self.temporal)
        range_min, range_max = hints.range_number or DEFAULT_RANGE_NUMBER
        properties["domain_min"] = domain.domain_min if domain.domain_min is not None else 0.0
        properties["domain_max"] = domain.domain_max if domain.domain_max is not None else 1.0
        properties["range_min"] = range_min
        properties["range_max"] = range_max

    def map_value(self, properties: Dict[str, Any], value: Any) -> Any:
        ratio = _normalized(properties, value)
        if ratio is None:
            return None
        low = properties.get("range_min", DEFAULT_RANGE_NUMBER[0])
        high = properties.get("range_max", DEFAULT_RANGE_NUMBER[1])
        return low + (high - low) * ratio


class LinearDateBehavior(LinearNumberBehavior):
    """时间戳到数值的线性缩放。"""

    temporal = True


class LinearColorBehavior:
    """数值到颜色渐变的线性缩放。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_numerical_domain(values)
        start, end = hints.range_color or DEFAULT_RANGE_COLOR
        properties["domain_min"] = domain.domain_min if domain.domain_min is not None else 0.0
        properties["domain_max"] = domain.domain_max if domain.domain_max is not None else 1.0
        properties["range_start"] = start
        properties["range_end"] = end

    def map_value(self, properties: Dict[str, Any], value: Any) -> Any:
        ratio = _normalized(properties, value)
        if ratio is None:
            return None
        start = properties.get("range_start", DEFAULT_RANGE_COLOR[0])
        end = properties.get("range_end", DEFAULT_RANGE_COLOR[1])
        return interpolate_color(start, end, ratio)


class _CategoricalBehavior:
    """类别缩放的公共映射逻辑：按标签查 mapping 表。"""

    def map_value(self, properties: Dict[str, Any], value: Any) -> Any:
        if value is None:
            return None
        return properties.get("mapping", {}).get(str(value))


class CategoricalColorBehavior(_CategoricalBehavior):
    """类别到调色板颜色的映射。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_categorical_domain(values, order_mode=hints.order_mode)
        properties["mapping"] = {
            label: CATEGORY_PALETTE[position % len(CATEGORY_PALETTE)]
            for label, position in domain.index.items()
        }


class CategoricalNumberBehavior(_CategoricalBehavior):
    """类别到等间距数值的映射。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_categorical_domain(values, order_mode=hints.order_mode)
        if hints.range_number is None:
            properties["mapping"] = {label: float(position + 1) for label, position in domain.index.items()}
            return
        low, high = hints.range_number
        step = (high - low) / max(len(domain) - 1, 1)
        properties["mapping"] = {label: low + step * position for label, position in domain.index.items()}


class CategoricalBooleanBehavior(_CategoricalBehavior):
    """类别到可见性开关的映射，默认全部开启。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_categorical_domain(values, order_mode=hints.order_mode)
        properties["mapping"] = {label: True for label in domain.index}


class CategoricalEnumBehavior(_CategoricalBehavior):
    """类别到枚举值的恒等映射。"""

    def infer_parameters(
        self,
        properties: Dict[str, Any],
        values: Sequence[Any],
        hints: ScaleInferenceHints,
    ) -> None:
        domain = infer_categorical_domain(values, order_mode=hints.order_mode)
        properties["mapping"] = {label: label for label in domain.index}


SCALE_BEHAVIORS: Dict[str, ScaleBehavior] = {
    "scale.linear<number,number>": LinearNumberBehavior(),
    "scale.linear<integer,number>": LinearNumberBehavior(),
    "scale.linear<date,number>": LinearDateBehavior(),
    "scale.linear<number,color>": LinearColorBehavior(),
    "scale.linear<integer,color>": LinearColorBehavior(),
    "scale.categorical<string,color>": CategoricalColorBehavior(),
    "scale.categorical<string,number>": CategoricalNumberBehavior(),
    "scale.categorical<string,boolean>": CategoricalBooleanBehavior(),
    "scale.categorical<string,enum>": CategoricalEnumBehavior(),
}

LEGEND_CLASSES: Dict[str, str] = {
    "scale.categorical<string,color>": "legend.categorical",
    "scale.linear<number,color>": "legend.numerical-color",
    "scale.linear<integer,color>": "legend.numerical-color",
    "scale.linear<number,number>": "legend.numerical-number",
    "scale.linear<integer,number>": "legend.numerical-number",
}
"""支持图例的缩放种类到图例种类的映射。"""
