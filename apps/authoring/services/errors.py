"""核心服务抛出的异常类型。"""

from __future__ import annotations


class AuthoringError(RuntimeError):
    """图表编辑核心的异常基类。"""


class InconsistentSpecificationError(AuthoringError):
    """图表规范存在悬空引用，例如映射指向不存在的缩放。"""


class ChartBusyError(AuthoringError):
    """求解进行中时尝试修改图表规范。"""


class SolverFaultError(AuthoringError):
    """约束求解器调用失败。"""


class ExpressionError(ValueError):
    """表达式解析或求值失败。"""
