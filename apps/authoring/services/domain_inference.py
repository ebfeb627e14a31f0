"""定义域推断：根据带种类标签的取值序列计算缩放参数。"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from apps.authoring.contracts.expression import DataKind, OrderMode

DEFAULT_ORDER_MODE: OrderMode = "alphabetically"


@dataclass(frozen=True)
class CategoricalDomain:
    """类别定义域：标签到稠密下标 0..N-1 的映射。"""

    index: Dict[str, int] = field(default_factory=dict)

    @property
    def categories(self) -> List[str]:
        """通过反转下标映射重建有序类别列表。"""

        categories: List[str] = [""] * len(self.index)
        for label, position in self.index.items():
            categories[position] = label
        return categories

    def __len__(self) -> int:
        return len(self.index)


@dataclass(frozen=True)
class NumericalDomain:
    """连续定义域；输入为空时上下界均为 None。"""

    domain_min: Optional[float] = None
    domain_max: Optional[float] = None
    temporal: bool = False

    @property
    def is_degenerate(self) -> bool:
        """定义域缺失或宽度为零。"""

        if self.domain_min is None or self.domain_max is None:
            return True
        return self.domain_min == self.domain_max


DomainParameters = Union[CategoricalDomain, NumericalDomain]


def _unique_labels(values: Iterable[Any]) -> List[str]:
    """按首次出现顺序返回去重后的字符串标签，跳过空值。"""

    seen: Dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        seen.setdefault(str(value), None)
    return list(seen)


def infer_categorical_domain(
    values: Sequence[Any],
    *,
    order: Optional[Sequence[str]] = None,
    order_mode: Optional[OrderMode] = None,
    ranking: Optional[Sequence[str]] = None,
) -> CategoricalDomain:
    """推断类别定义域。

    Parameters
    ----------
    values: Sequence[Any]
        观察到的取值序列。
    order: Optional[Sequence[str]]
        显式类别顺序，存在时原样复制使用。
    order_mode: Optional[OrderMode]
        未给定 order 时的排序方式，缺省为按字母排序。
    ranking: Optional[Sequence[str]]
        ``order`` 排序方式所需的外部排名，缺失时退化为按出现顺序。

    Returns
    -------
    CategoricalDomain
        有序类别及其下标映射。
    """

    if order is not None:
        labels = list(order)
    else:
        labels = _unique_labels(values)
        mode = order_mode or DEFAULT_ORDER_MODE
        if mode == "alphabetically":
            labels.sort()
        elif mode == "order" and ranking is not None:
            rank = {str(label): position for position, label in enumerate(ranking)}
            # 未出现在排名中的标签排在末尾，并保持出现顺序。
            labels.sort(key=lambda label: rank.get(label, len(rank)))
    index: Dict[str, int] = {}
    for label in labels:
        index.setdefault(label, len(index))
    return CategoricalDomain(index=index)


def _finite_numbers(values: Iterable[Any]) -> List[float]:
    """筛选出有限数值，布尔值与非数值被忽略。"""

    numbers: List[float] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, Real):
            continue
        number = float(value)
        if math.isfinite(number):
            numbers.append(number)
    return numbers


def infer_numerical_domain(values: Sequence[Any], *, temporal: bool = False) -> NumericalDomain:
    """推断连续定义域 [min, max]，非有限值不参与计算。"""

    numbers = _finite_numbers(values)
    if not numbers:
        return NumericalDomain(temporal=temporal)
    return NumericalDomain(domain_min=min(numbers), domain_max=max(numbers), temporal=temporal)


def infer_domain(
    values: Sequence[Any],
    kind: DataKind,
    *,
    order: Optional[Sequence[str]] = None,
    order_mode: Optional[OrderMode] = None,
    ranking: Optional[Sequence[str]] = None,
) -> DomainParameters:
    """按数据种类分派定义域推断，任何输入都不会抛出异常。"""

    if kind in {"categorical", "ordinal"}:
        return infer_categorical_domain(values, order=order, order_mode=order_mode, ranking=ranking)
    return infer_numerical_domain(values, temporal=kind == "temporal")
