"""数据表达式契约，描述一次绑定请求所查询的数据。"""

from __future__ import annotations

from typing import List, Literal, Optional

from apps.authoring.compat import ConfigDict, Field, model_validator

from apps.authoring.contracts.metadata import ContractModel

DataKind = Literal["categorical", "ordinal", "numerical", "temporal"]
DataType = Literal["string", "number", "integer", "boolean", "date"]
OrderMode = Literal["alphabetically", "occurrence", "order"]


class DataExpressionMetadata(ContractModel):
    """表达式取值的语义信息。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def schema_name(cls) -> str:
        """返回表达式元数据契约名称。"""

        return "data_expression_metadata"

    kind: DataKind = Field(description="数据种类。")
    order: Optional[List[str]] = Field(
        default=None,
        description="显式给定的类别顺序。",
    )
    order_mode: Optional[OrderMode] = Field(
        default=None,
        description="未给定 order 时的类别排序方式。",
    )


class DataExpression(ContractModel):
    """针对单个数据表的查询表达式，构造后不可修改。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def schema_name(cls) -> str:
        """返回数据表达式契约名称。"""

        return "data_expression"

    table: str = Field(description="查询的数据表名。", min_length=1)
    expression: str = Field(description="表达式文本，例如 avg(sales)。", min_length=1)
    value_type: DataType = Field(description="表达式结果的值类型。")
    metadata: DataExpressionMetadata = Field(description="表达式的语义信息。")
    raw_column_expression: Optional[str] = Field(
        default=None,
        description="聚合表达式背后的原始列表达式，用于类别轴分组。",
    )

    @model_validator(mode="after")
    def validate_raw_column(self) -> "DataExpression":
        """原始列表达式不允许为空字符串。"""

        if self.raw_column_expression is not None and not self.raw_column_expression.strip():
            raise ValueError("raw_column_expression 不能为空字符串。")
        return self
