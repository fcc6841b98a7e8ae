"""
工作流执行模型
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
from enum import Enum
from datetime import datetime
from uuid import uuid4

from .workflow import NodeStatus
from ..exceptions import WorkflowEngineError


class ExecutionStatus(str, Enum):
    """工作流执行状态"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
)

# ${name} / ${node_id.field.sub}
_REFERENCE = re.compile(r"\$\{\s*([A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*)\s*\}")


class CancellationToken:
    """取消令牌，调度器在波次之间检查"""

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Execution cancelled"):
        """请求取消"""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    async def wait(self):
        """等待取消信号"""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


@dataclass
class ExecutionContext:
    """执行上下文，每次运行独立"""
    workflow_id: str
    execution_id: str
    variables: Dict[str, Any] = field(default_factory=dict)
    node_results: Dict[str, Any] = field(default_factory=dict)
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def get_variable(self, key: str, default: Any = None) -> Any:
        """获取变量值"""
        return self.variables.get(key, default)

    def set_variable(self, key: str, value: Any):
        """设置变量值"""
        self.variables[key] = value

    def get_node_result(self, node_id: str, default: Any = None) -> Any:
        """获取节点输出"""
        return self.node_results.get(node_id, default)

    def record_result(self, node_id: str, result: Any):
        """记录节点输出，每个节点只能写入一次"""
        if node_id in self.node_results:
            raise WorkflowEngineError(
                f"Result for node '{node_id}' already recorded in execution {self.execution_id}"
            )
        self.node_results[node_id] = result

    def resolve(self, value: Any) -> Any:
        """解析配置中的 ${...} 引用"""
        if isinstance(value, str):
            return self._resolve_string(value)
        if isinstance(value, dict):
            return {key: self.resolve(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve(item) for item in value]
        return value

    def lookup(self, path: str) -> Any:
        """按点分路径查找变量或节点输出"""
        parts = path.split(".")
        head, rest = parts[0], parts[1:]

        if head == "nodes" and rest:
            head, rest = rest[0], rest[1:]
            current = self.node_results.get(head)
        elif head == "vars" and rest:
            head, rest = rest[0], rest[1:]
            current = self.variables.get(head)
        elif head in self.node_results:
            current = self.node_results[head]
        else:
            current = self.variables.get(head)

        for part in rest:
            if isinstance(current, dict):
                current = current.get(part)
            elif isinstance(current, (list, tuple)) and part.isdigit():
                index = int(part)
                current = current[index] if index < len(current) else None
            else:
                return None
        return current

    def _resolve_string(self, text: str) -> Any:
        match = _REFERENCE.fullmatch(text.strip())
        if match:
            # 整体引用保留原始类型
            return self.lookup(match.group(1))

        def replace(m):
            resolved = self.lookup(m.group(1))
            return "" if resolved is None else str(resolved)

        return _REFERENCE.sub(replace, text)


@dataclass
class NodeExecution:
    """节点执行记录"""
    node_id: str
    status: NodeStatus = NodeStatus.PENDING
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[float] = None  # 毫秒
    error: Optional[str] = None
    branch: Optional[str] = None
    compensated: bool = False

    def start(self):
        """开始执行"""
        self.status = NodeStatus.RUNNING
        self.started_at = datetime.utcnow()

    def complete(self):
        """执行完成"""
        self.status = NodeStatus.COMPLETED
        self._finish()

    def fail(self, error: BaseException):
        """执行失败"""
        self.status = NodeStatus.FAILED
        self.error = str(error)
        self._finish()

    def skip(self):
        """跳过"""
        self.status = NodeStatus.SKIPPED
        self.completed_at = datetime.utcnow()

    def skip_after_failure(self):
        """continue 策略下放行的失败节点：标记为跳过，保留错误与尝试次数"""
        self.status = NodeStatus.SKIPPED

    def _finish(self):
        self.completed_at = datetime.utcnow()
        if self.started_at:
            self.duration = (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "error": self.error,
            "branch": self.branch,
            "compensated": self.compensated,
        }


@dataclass
class WorkflowExecution:
    """工作流执行实例"""
    workflow_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    node_results: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    execution_time: float = 0.0  # 毫秒
    node_executions: Dict[str, NodeExecution] = field(default_factory=dict)

    def complete(self):
        """完成执行"""
        self.status = ExecutionStatus.COMPLETED
        self._finish()

    def fail(self, error: BaseException):
        """执行失败"""
        self.status = ExecutionStatus.FAILED
        self.error = str(error)
        self.error_type = type(error).__name__
        self._finish()

    def cancel(self, reason: Optional[str] = None):
        """取消执行"""
        self.status = ExecutionStatus.CANCELLED
        self.error = reason
        self.error_type = "WorkflowCancelledError" if reason else None
        self._finish()

    def _finish(self):
        self.completed_at = datetime.utcnow()
        self.execution_time = (self.completed_at - self.started_at).total_seconds() * 1000

    def is_terminal_state(self) -> bool:
        """是否为终止状态"""
        return self.status in TERMINAL_STATUSES

    def get_node_execution(self, node_id: str) -> Optional[NodeExecution]:
        """获取节点执行记录"""
        return self.node_executions.get(node_id)

    def nodes_with_status(self, status: NodeStatus) -> List[str]:
        return sorted(
            node_id for node_id, record in self.node_executions.items()
            if record.status == status
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "node_results": dict(self.node_results),
            "variables": dict(self.variables),
            "error": self.error,
            "error_type": self.error_type,
            "execution_time": self.execution_time,
            "node_executions": {
                node_id: record.to_dict()
                for node_id, record in self.node_executions.items()
            },
        }
