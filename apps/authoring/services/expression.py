"""数据表达式的解析、规范化与按分组求值。

表达式语法覆盖绑定场景所需的子集：列引用（标识符或反引号包裹的列名）、
数字与字符串字面量、函数调用以及四则运算。规范化形式用于缩放复用时的
表达式比较，避免空白或引号差异导致的误判。
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

from apps.authoring.contracts.dataset import Table
from apps.authoring.contracts.specification import GroupBy
from apps.authoring.services.errors import ExpressionError

_PD_MODULE: Optional[Any] = None


def _get_pandas() -> Any:
    """延迟加载 pandas，仅在真正求值时导入。"""

    global _PD_MODULE
    if _PD_MODULE is None:
        import pandas as pd  # noqa: WPS433 - 延迟导入

        _PD_MODULE = pd
    return _PD_MODULE


LOGGER = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<quoted>`[^`]+`)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<op>[-+*/(),])
    )""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class Variable:
    """列引用。"""

    name: str


@dataclass(frozen=True)
class Constant:
    """数字或字符串字面量。"""

    value: Union[float, str]


@dataclass(frozen=True)
class FunctionCall:
    """函数调用，例如 avg(sales)。"""

    name: str
    args: Tuple["ParsedExpression", ...]


@dataclass(frozen=True)
class BinaryOp:
    """四则运算。"""

    op: str
    left: "ParsedExpression"
    right: "ParsedExpression"


@dataclass(frozen=True)
class Negate:
    """一元负号。"""

    operand: "ParsedExpression"


ParsedExpression = Union[Variable, Constant, FunctionCall, BinaryOp, Negate]


def _tokenize(text: str) -> List[Tuple[str, str]]:
    """将表达式切分为 (类别, 文本) 序列。"""

    tokens: List[Tuple[str, str]] = []
    position = 0
    stripped_end = len(text.rstrip())
    while position < stripped_end:
        match = _TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise ExpressionError(f"表达式 {text!r} 在位置 {position} 处无法解析。")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    """递归下降解析器。"""

    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = _tokenize(text)
        self._index = 0

    def parse(self) -> ParsedExpression:
        if not self._tokens:
            raise ExpressionError("表达式不能为空。")
        node = self._expression()
        if self._index != len(self._tokens):
            raise ExpressionError(f"表达式 {self._text!r} 存在多余内容。")
        return node

    def _peek(self) -> Optional[Tuple[str, str]]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _take(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ExpressionError(f"表达式 {self._text!r} 意外结束。")
        self._index += 1
        return token

    def _expect(self, symbol: str) -> None:
        kind, value = self._take()
        if kind != "op" or value != symbol:
            raise ExpressionError(f"表达式 {self._text!r} 缺少 {symbol!r}。")

    def _expression(self) -> ParsedExpression:
        node = self._term()
        while self._peek() in {("op", "+"), ("op", "-")}:
            _, op = self._take()
            node = BinaryOp(op=op, left=node, right=self._term())
        return node

    def _term(self) -> ParsedExpression:
        node = self._factor()
        while self._peek() in {("op", "*"), ("op", "/")}:
            _, op = self._take()
            node = BinaryOp(op=op, left=node, right=self._factor())
        return node

    def _factor(self) -> ParsedExpression:
        kind, value = self._take()
        if kind == "number":
            return Constant(value=float(value))
        if kind == "string":
            return Constant(value=value[1:-1])
        if kind == "quoted":
            return Variable(name=value[1:-1])
        if kind == "name":
            if self._peek() == ("op", "("):
                self._take()
                return FunctionCall(name=value, args=self._arguments())
            return Variable(name=value)
        if (kind, value) == ("op", "-"):
            return Negate(operand=self._factor())
        if (kind, value) == ("op", "("):
            node = self._expression()
            self._expect(")")
            return node
        raise ExpressionError(f"表达式 {self._text!r} 中出现意外符号 {value!r}。")

    def _arguments(self) -> Tuple[ParsedExpression, ...]:
        args: List[ParsedExpression] = []
        if self._peek() == ("op", ")"):
            self._take()
            return tuple(args)
        while True:
            args.append(self._expression())
            kind, value = self._take()
            if (kind, value) == ("op", ")"):
                return tuple(args)
            if (kind, value) != ("op", ","):
                raise ExpressionError(f"表达式 {self._text!r} 的参数列表格式错误。")


def parse_expression(text: str) -> ParsedExpression:
    """解析表达式文本。

    Parameters
    ----------
    text: str
        表达式文本，例如 ``avg(sales)``。

    Returns
    -------
    ParsedExpression
        结构化的表达式节点。
    """

    return _Parser(text).parse()


def render_expression(node: ParsedExpression) -> str:
    """将表达式节点渲染为规范字符串。"""

    if isinstance(node, Variable):
        if _IDENTIFIER.match(node.name):
            return node.name
        return f"`{node.name}`"
    if isinstance(node, Constant):
        if isinstance(node.value, str):
            escaped = node.value.replace('"', '\\"')
            return f'"{escaped}"'
        return repr(node.value)
    if isinstance(node, FunctionCall):
        args = ", ".join(render_expression(arg) for arg in node.args)
        return f"{node.name}({args})"
    if isinstance(node, Negate):
        return f"-{_render_operand(node.operand)}"
    return f"{_render_operand(node.left)} {node.op} {_render_operand(node.right)}"


def _render_operand(node: ParsedExpression) -> str:
    rendered = render_expression(node)
    if isinstance(node, BinaryOp):
        return f"({rendered})"
    return rendered


def canonical_expression(text: str) -> str:
    """返回表达式的规范形式；无法解析时原样返回文本，退化为精确匹配。"""

    try:
        return render_expression(parse_expression(text))
    except ExpressionError:
        return text


def expressions_equal(left: str, right: str) -> bool:
    """按规范形式比较两个表达式。"""

    if left == right:
        return True
    return canonical_expression(left) == canonical_expression(right)


def aggregated_column(text: str) -> Optional[str]:
    """若表达式是单参数聚合且参数为普通列，返回列名，否则返回 None。"""

    try:
        node = parse_expression(text)
    except ExpressionError:
        return None
    if isinstance(node, FunctionCall) and len(node.args) == 1:
        argument = node.args[0]
        if isinstance(argument, Variable):
            return argument.name
    return None


class ExpressionEvaluator(Protocol):
    """表达式求值器接口。"""

    def evaluate(self, expression: str, group_by: Optional[GroupBy], table: Table) -> List[Any]:
        """按分组对表达式求值，每个分组返回一个值。"""


def _scalar(value: Any) -> Any:
    """将 numpy 标量转换为 Python 原生值。"""

    if hasattr(value, "item"):
        return value.item()
    return value


_AGGREGATIONS: Dict[str, Callable[[Any], Any]] = {
    "avg": lambda series: series.mean(),
    "mean": lambda series: series.mean(),
    "sum": lambda series: series.sum(),
    "min": lambda series: series.min(),
    "max": lambda series: series.max(),
    "count": lambda series: series.count(),
    "median": lambda series: series.median(),
    "stdev": lambda series: series.std(),
    "variance": lambda series: series.var(),
    "first": lambda series: series.iloc[0],
    "last": lambda series: series.iloc[-1],
}


class TableExpressionEvaluator:
    """基于 pandas 的参考求值器。

    未指定分组时每一行自成一组；指定分组时按分组表达式的取值分组，
    分组顺序为首次出现顺序。列引用在分组上下文中取分组首行的值。
    """

    def evaluate(self, expression: str, group_by: Optional[GroupBy], table: Table) -> List[Any]:
        """对表达式求值并返回按分组排列的结果序列。

        Parameters
        ----------
        expression: str
            需要求值的表达式。
        group_by: Optional[GroupBy]
            行分组键，为空表示逐行求值。
        table: Table
            数据来源表。

        Returns
        -------
        List[Any]
            每个分组对应一个值。
        """

        pd = _get_pandas()
        node = parse_expression(expression)
        columns = [column.name for column in table.columns]
        frame = pd.DataFrame(table.rows, columns=columns or None)
        groups = self._split_groups(frame=frame, group_by=group_by)
        values = [self._evaluate_node(node=node, frame=group) for group in groups]
        LOGGER.debug(
            "Expression evaluated",
            extra={"expression": expression, "table": table.name, "groups": len(values)},
        )
        return values

    def _split_groups(self, frame: Any, group_by: Optional[GroupBy]) -> List[Any]:
        if group_by is None or not group_by.expression:
            return [frame.iloc[[index]] for index in range(len(frame))]
        key_node = parse_expression(group_by.expression)
        keys = [
            self._evaluate_node(node=key_node, frame=frame.iloc[[index]])
            for index in range(len(frame))
        ]
        # 分组顺序按首次出现排列，与逐行求值的顺序保持一致。
        positions: Dict[Any, List[int]] = {}
        for index, key in enumerate(keys):
            positions.setdefault(key, []).append(index)
        return [frame.iloc[indices] for indices in positions.values()]

    def _evaluate_node(self, node: ParsedExpression, frame: Any) -> Any:
        if isinstance(node, Constant):
            return node.value
        if isinstance(node, Variable):
            return _scalar(self._column(frame=frame, name=node.name).iloc[0])
        if isinstance(node, Negate):
            return -self._evaluate_node(node=node.operand, frame=frame)
        if isinstance(node, FunctionCall):
            return self._call(node=node, frame=frame)
        left = self._evaluate_node(node=node.left, frame=frame)
        right = self._evaluate_node(node=node.right, frame=frame)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            return math.nan
        return left / right

    def _call(self, node: FunctionCall, frame: Any) -> Any:
        aggregate = _AGGREGATIONS.get(node.name)
        if aggregate is None:
            raise ExpressionError(f"不支持的函数 {node.name}。")
        if len(node.args) != 1 or not isinstance(node.args[0], Variable):
            raise ExpressionError(f"聚合函数 {node.name} 仅支持单个列参数。")
        series = self._column(frame=frame, name=node.args[0].name)
        return _scalar(aggregate(series))

    @staticmethod
    def _column(frame: Any, name: str) -> Any:
        if name not in frame.columns:
            raise ExpressionError(f"列 {name} 不存在。")
        return frame[name]
