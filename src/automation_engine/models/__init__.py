"""Workflow and execution models"""

from .workflow import (
    Workflow, Node, Edge, Position, WorkflowSettings, WorkflowMetadata,
    WorkflowStatus, TriggerType, NodeKind, NodeStatus, ErrorHandling
)
from .execution import (
    WorkflowExecution, NodeExecution, ExecutionContext, CancellationToken,
    ExecutionStatus, TERMINAL_STATUSES
)

__all__ = [
    "Workflow",
    "Node",
    "Edge",
    "Position",
    "WorkflowSettings",
    "WorkflowMetadata",
    "WorkflowStatus",
    "TriggerType",
    "NodeKind",
    "NodeStatus",
    "ErrorHandling",
    "WorkflowExecution",
    "NodeExecution",
    "ExecutionContext",
    "CancellationToken",
    "ExecutionStatus",
    "TERMINAL_STATUSES"
]
