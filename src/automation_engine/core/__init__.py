"""Core workflow engine components"""

from .engine import WorkflowEngine
from .registry import NodeTypeRegistry, NodeType, NodePort, NodeCategory
from .store import WorkflowStore
from .scheduler import ExecutionScheduler
from .stats import StatsAggregator, EngineStats
from .parser import WorkflowParser
from .expressions import evaluate, ExpressionResult

__all__ = [
    "WorkflowEngine",
    "NodeTypeRegistry",
    "NodeType",
    "NodePort",
    "NodeCategory",
    "WorkflowStore",
    "ExecutionScheduler",
    "StatsAggregator",
    "EngineStats",
    "WorkflowParser",
    "evaluate",
    "ExpressionResult"
]
