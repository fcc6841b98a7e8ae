"""
Automation Engine - 工作流自动化引擎
"""

__version__ = "0.1.0"

from .core.engine import WorkflowEngine
from .core.registry import NodeTypeRegistry, NodeType, NodePort, NodeCategory
from .core.parser import WorkflowParser
from .models.workflow import Workflow, Node, Edge
from .models.execution import WorkflowExecution, NodeExecution, ExecutionContext
from .integrations.event_bus import EventBus, EventType

__all__ = [
    "WorkflowEngine",
    "NodeTypeRegistry",
    "NodeType",
    "NodePort",
    "NodeCategory",
    "WorkflowParser",
    "Workflow",
    "Node",
    "Edge",
    "WorkflowExecution",
    "NodeExecution",
    "ExecutionContext",
    "EventBus",
    "EventType"
]
