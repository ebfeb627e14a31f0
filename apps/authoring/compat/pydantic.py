"""pydantic 兼容层，集中管理模型序列化、校验与快照复制接口。"""

from __future__ import annotations

from typing import Any, Type, TypeVar

import pydantic

BaseModel = pydantic.BaseModel
Field = pydantic.Field
ConfigDict = pydantic.ConfigDict
model_validator = pydantic.model_validator

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def model_dump(payload: Any, **kwargs: Any) -> Any:
    """统一的模型序列化接口。

    Parameters
    ----------
    payload: Any
        需要序列化的 Pydantic 模型。
    **kwargs: Any
        透传给 ``model_dump`` 的参数，例如 ``mode="json"``。

    Returns
    -------
    Any
        序列化后的 dict 结构。
    """

    if isinstance(payload, pydantic.BaseModel):
        return payload.model_dump(**kwargs)
    raise TypeError("无法序列化给定对象，需为 Pydantic 模型。")


def model_validate(model_type: Type[ModelT], payload: Any) -> ModelT:
    """按模型类型校验原始 payload。"""

    return model_type.model_validate(payload)


def model_snapshot(payload: ModelT) -> ModelT:
    """返回模型的深拷贝，快照与原对象不共享任何可变结构。"""

    return payload.model_copy(deep=True)


__all__ = [
    "BaseModel",
    "Field",
    "ConfigDict",
    "model_validator",
    "model_dump",
    "model_validate",
    "model_snapshot",
]
