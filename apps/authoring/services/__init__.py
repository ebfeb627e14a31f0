"""服务层导出。"""

from apps.authoring.services.axis_binder import AxisBinder
from apps.authoring.services.chart_session import ChartSession, SessionState, compute_chart_hash
from apps.authoring.services.errors import (
    AuthoringError,
    ChartBusyError,
    ExpressionError,
    InconsistentSpecificationError,
    SolverFaultError,
)
from apps.authoring.services.scale_lifecycle import ScaleLifecycleManager
from apps.authoring.services.scale_matcher import find_reusable_scale
from apps.authoring.services.solve_orchestrator import SolveOrchestrator
from apps.authoring.services.solver import DirectMappingSolver, PreSolveValue

__all__ = [
    "AuthoringError",
    "AxisBinder",
    "ChartBusyError",
    "ChartSession",
    "DirectMappingSolver",
    "ExpressionError",
    "InconsistentSpecificationError",
    "PreSolveValue",
    "ScaleLifecycleManager",
    "SessionState",
    "SolveOrchestrator",
    "SolverFaultError",
    "compute_chart_hash",
    "find_reusable_scale",
]
