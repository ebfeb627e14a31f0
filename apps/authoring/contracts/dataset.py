"""数据集契约：表、列与列元数据。

图表规范中的所有数据绑定都以表名引用数据。列元数据中的 ``unit`` 仅被
缩放复用的单位兼容匹配读取，其余字段用于推断绑定类型。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from apps.authoring.compat import ConfigDict, Field, model_validator

from apps.authoring.contracts.expression import DataKind, DataType
from apps.authoring.contracts.metadata import ContractModel

TableType = Literal["main", "parent-main", "child", "links"]


class ColumnMetadata(ContractModel):
    """列的语义元数据。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回列元数据契约名称。"""

        return "column_metadata"

    kind: DataKind = Field(description="列的数据种类。")
    unit: Optional[str] = Field(
        default=None,
        description="列的度量单位，例如 USD。",
    )
    raw_column_name: Optional[str] = Field(
        default=None,
        description="派生列对应的原始列名。",
    )


class Column(ContractModel):
    """数据表中的单列描述。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回列契约名称。"""

        return "column"

    name: str = Field(description="列名。", min_length=1)
    display_name: Optional[str] = Field(default=None, description="展示名称。")
    type: DataType = Field(description="列的值类型。")
    metadata: ColumnMetadata = Field(description="列的语义元数据。")


class Table(ContractModel):
    """数据表，行以列名为键的字典保存。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回数据表契约名称。"""

        return "table"

    name: str = Field(description="表名，在数据集内唯一。", min_length=1)
    type: TableType = Field(default="main", description="表在数据集中的角色。")
    columns: List[Column] = Field(default_factory=list, description="列定义。")
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="数据行。")

    def get_column(self, name: str) -> Optional[Column]:
        """按列名查找列定义，不存在时返回 None。"""

        for column in self.columns:
            if column.name == name:
                return column
        return None


class Dataset(ContractModel):
    """一组数据表。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回数据集契约名称。"""

        return "dataset"

    name: str = Field(description="数据集名称。", min_length=1)
    tables: List[Table] = Field(default_factory=list, description="数据表列表。")

    @model_validator(mode="after")
    def ensure_unique_tables(self) -> "Dataset":
        """确保表名唯一，避免按名称查找时出现歧义。"""

        names = [table.name for table in self.tables]
        if len(names) != len(set(names)):
            raise ValueError("数据集中存在重名的数据表。")
        return self

    def get_table(self, name: Optional[str]) -> Optional[Table]:
        """按表名查找数据表，不存在时返回 None。"""

        if name is None:
            return None
        for table in self.tables:
            if table.name == name:
                return table
        return None
