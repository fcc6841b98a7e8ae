"""
工作流定义模型
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from enum import Enum
from uuid import uuid4
from datetime import datetime


class WorkflowStatus(str, Enum):
    """工作流状态"""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class TriggerType(str, Enum):
    """触发方式"""
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"
    EVENT = "event"
    AI_TRIGGER = "ai_trigger"


class NodeKind(str, Enum):
    """内置节点类型"""
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    WEBHOOK = "webhook"
    AI_TASK = "ai_task"
    EMAIL = "email"
    NOTIFICATION = "notification"


class NodeStatus(str, Enum):
    """节点运行状态"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorHandling(str, Enum):
    """节点最终失败后的处理方式"""
    STOP = "stop"
    CONTINUE = "continue"
    ROLLBACK = "rollback"


@dataclass
class Position:
    """画布坐标（仅用于展示）"""
    x: float = 0.0
    y: float = 0.0


@dataclass
class Node:
    """工作流节点"""
    id: str
    type: str
    name: str = ""
    description: Optional[str] = None
    position: Position = field(default_factory=Position)
    config: Dict[str, Any] = field(default_factory=dict)
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    status: NodeStatus = NodeStatus.PENDING

    def __post_init__(self):
        if not self.name:
            self.name = self.id


@dataclass
class Edge:
    """工作流边"""
    source: str
    target: str
    id: str = field(default_factory=lambda: str(uuid4()))
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    condition: Optional[str] = None  # 分支标签或条件表达式
    label: Optional[str] = None
    animated: bool = False


@dataclass
class WorkflowSettings:
    """执行设置，时间单位均为毫秒"""
    timeout: float = 300000
    retry_attempts: int = 3
    retry_delay: float = 5000
    parallel_execution: bool = True
    error_handling: ErrorHandling = ErrorHandling.STOP


@dataclass
class WorkflowMetadata:
    """工作流元数据与执行统计"""
    created_by: str = "system"
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    last_executed: Optional[datetime] = None
    execution_count: int = 0
    success_rate: float = 0.0
    average_execution_time: float = 0.0


@dataclass
class Workflow:
    """工作流定义"""
    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    description: Optional[str] = None
    version: str = "1.0.0"
    status: WorkflowStatus = WorkflowStatus.DRAFT
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_config: Dict[str, Any] = field(default_factory=dict)
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    metadata: WorkflowMetadata = field(default_factory=WorkflowMetadata)

    def get_node(self, node_id: str) -> Optional[Node]:
        """根据ID获取节点"""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def inbound_edges(self, node_id: str) -> List[Edge]:
        """指向该节点的边"""
        return [edge for edge in self.edges if edge.target == node_id]

    def validate(self) -> List[str]:
        """验证工作流结构，返回错误列表"""
        errors = []

        if not self.name or not self.name.strip():
            errors.append("Workflow name must not be empty")

        node_ids = [node.id for node in self.nodes]
        for node in self.nodes:
            if not node.id:
                errors.append("Node id must not be empty")
            if not node.type:
                errors.append(f"Node '{node.id}' has no type")

        seen = set()
        for node_id in node_ids:
            if node_id in seen:
                errors.append(f"Duplicate node id '{node_id}'")
            seen.add(node_id)

        edge_ids = set()
        for edge in self.edges:
            if edge.id in edge_ids:
                errors.append(f"Duplicate edge id '{edge.id}'")
            edge_ids.add(edge.id)
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' source '{edge.source}' not found in nodes")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' target '{edge.target}' not found in nodes")

        settings = self.settings
        if settings.timeout <= 0:
            errors.append("settings.timeout must be positive")
        if settings.retry_attempts < 0:
            errors.append("settings.retry_attempts must not be negative")
        if settings.retry_delay < 0:
            errors.append("settings.retry_delay must not be negative")

        return errors
