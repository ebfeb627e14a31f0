"""兼容层工具包。"""

from apps.authoring.compat.pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_dump,
    model_snapshot,
    model_validate,
    model_validator,
)

__all__ = [
    "BaseModel",
    "ConfigDict",
    "Field",
    "model_dump",
    "model_snapshot",
    "model_validate",
    "model_validator",
]
