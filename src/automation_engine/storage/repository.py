"""
存储仓库

引擎只依赖这里的抽象接口；默认使用进程内字典实现，不做持久化。
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.workflow import Workflow
from ..models.execution import WorkflowExecution, ExecutionStatus


class WorkflowRepository(ABC):
    """工作流定义的存取接口"""

    @abstractmethod
    async def save(self, workflow: Workflow) -> str:
        pass

    @abstractmethod
    async def get(self, workflow_id: str) -> Optional[Workflow]:
        pass

    @abstractmethod
    async def exists(self, workflow_id: str) -> bool:
        pass

    @abstractmethod
    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Workflow]:
        """
        按创建顺序列出工作流

        Args:
            filters: 可选的 status（WorkflowStatus）与 created_by
        """
        pass

    @abstractmethod
    async def update(self, workflow: Workflow) -> bool:
        """替换已存在的工作流，不存在时返回 False"""
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        pass


class ExecutionRepository(ABC):
    """执行记录的存取接口"""

    @abstractmethod
    async def save(self, execution: WorkflowExecution) -> str:
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    async def list_by_workflow(
        self,
        workflow_id: str,
        status: Optional[ExecutionStatus] = None
    ) -> List[WorkflowExecution]:
        """某个工作流的执行记录，最新的在前"""
        pass

    @abstractmethod
    async def list_all(self) -> List[WorkflowExecution]:
        pass


class InMemoryWorkflowRepository(WorkflowRepository):
    """字典实现，保存对象本身"""

    def __init__(self):
        self.workflows: Dict[str, Workflow] = {}

    async def save(self, workflow: Workflow) -> str:
        self.workflows[workflow.id] = workflow
        return workflow.id

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        return self.workflows.get(workflow_id)

    async def exists(self, workflow_id: str) -> bool:
        return workflow_id in self.workflows

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Workflow]:
        filters = filters or {}
        status = filters.get("status")
        owner = filters.get("created_by")
        return [
            workflow for workflow in self.workflows.values()
            if (status is None or workflow.status == status)
            and (owner is None or workflow.metadata.created_by == owner)
        ]

    async def update(self, workflow: Workflow) -> bool:
        if workflow.id not in self.workflows:
            return False
        self.workflows[workflow.id] = workflow
        return True

    async def delete(self, workflow_id: str) -> bool:
        return self.workflows.pop(workflow_id, None) is not None


class InMemoryExecutionRepository(ExecutionRepository):
    """字典实现，执行记录常驻内存"""

    def __init__(self):
        self.executions: Dict[str, WorkflowExecution] = {}

    async def save(self, execution: WorkflowExecution) -> str:
        self.executions[execution.id] = execution
        return execution.id

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        return self.executions.get(execution_id)

    async def list_by_workflow(
        self,
        workflow_id: str,
        status: Optional[ExecutionStatus] = None
    ) -> List[WorkflowExecution]:
        matches = [
            execution for execution in self.executions.values()
            if execution.workflow_id == workflow_id
            and (status is None or execution.status == status)
        ]
        return sorted(matches, key=lambda e: e.started_at, reverse=True)

    async def list_all(self) -> List[WorkflowExecution]:
        return list(self.executions.values())
