"""
工作流自动化引擎

组合注册表、存储、调度器、统计与事件总线，对外提供统一入口。
"""
import asyncio
import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import Settings
from ..exceptions import NotFoundError, WorkflowEngineError
from ..integrations.channels import Channels
from ..integrations.event_bus import (
    EventBus, EventType, WorkflowCancelled, WorkflowCompleted, WorkflowFailed
)
from ..models.execution import (
    CancellationToken, ExecutionContext, ExecutionStatus, WorkflowExecution
)
from ..models.workflow import Workflow, WorkflowStatus
from ..storage.repository import (
    ExecutionRepository, InMemoryExecutionRepository, WorkflowRepository
)
from .nodes import register_builtin_node_types
from .parser import WorkflowParser
from .registry import NodeType, NodeTypeRegistry
from .scheduler import ExecutionScheduler
from .stats import StatsAggregator, engine_stats
from .store import WorkflowSpec, WorkflowStore


logger = logging.getLogger(__name__)


class WorkflowEngine:
    """工作流自动化引擎"""

    def __init__(
        self,
        registry: NodeTypeRegistry = None,
        workflow_repository: WorkflowRepository = None,
        execution_repository: ExecutionRepository = None,
        event_bus: EventBus = None,
        channels: Channels = None,
        settings: Settings = None,
        register_builtins: bool = True
    ):
        self.settings = settings or Settings()
        self.registry = registry or NodeTypeRegistry()
        self.event_bus = event_bus or EventBus()
        self.channels = channels or Channels()
        self.parser = WorkflowParser(default_settings=self.settings.workflow_defaults())
        self.store = WorkflowStore(
            self.registry,
            repository=workflow_repository,
            event_bus=self.event_bus,
            parser=self.parser
        )
        self.execution_repository = execution_repository or InMemoryExecutionRepository()
        self.scheduler = ExecutionScheduler(self.registry)
        self.stats = StatsAggregator(self.store)

        # 运行中执行的取消令牌
        self._active: Dict[str, CancellationToken] = {}
        # 后台执行任务
        self._tasks: Dict[str, asyncio.Task] = {}

        if register_builtins:
            register_builtin_node_types(self.registry, self.channels)

    # 节点类型

    def register_node_type(self, node_type: NodeType):
        self.registry.register(node_type)

    def list_node_types(self) -> List[NodeType]:
        return self.registry.list()

    def get_node_type(self, type_id: str) -> Optional[NodeType]:
        return self.registry.get(type_id)

    # 工作流管理

    async def create_workflow(self, spec: WorkflowSpec, created_by: Optional[str] = None) -> Workflow:
        """创建工作流，验证失败时抛出 WorkflowValidationError"""
        return await self.store.create(spec, created_by=created_by)

    async def update_workflow(self, workflow_id: str, partial: Dict[str, Any]) -> Workflow:
        return await self.store.update(workflow_id, partial)

    async def delete_workflow(self, workflow_id: str) -> bool:
        return await self.store.delete(workflow_id)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return await self.store.get(workflow_id)

    async def list_workflows(self, status: Optional[Union[WorkflowStatus, str]] = None) -> List[Workflow]:
        return await self.store.list(status)

    async def list_workflows_by_owner(self, owner_id: str) -> List[Workflow]:
        return await self.store.list_by_owner(owner_id)

    # 执行

    async def execute_workflow(
        self,
        workflow_id: str,
        input_data: Optional[Dict[str, Any]] = None,
        async_mode: bool = False
    ) -> WorkflowExecution:
        """
        执行工作流

        Args:
            workflow_id: 工作流ID
            input_data: 调用方输入，与工作流变量合并（同名时输入优先）
            async_mode: 为 True 时在后台运行并立即返回运行中的执行实例

        Returns:
            WorkflowExecution: 执行实例；任何失败都记录在实例上，不会抛出
        """
        execution = WorkflowExecution(workflow_id=workflow_id)

        workflow = await self.store.get(workflow_id)
        if workflow is None:
            error = NotFoundError("workflow", workflow_id)
            execution.fail(error)
            await self.execution_repository.save(execution)
            logger.warning(f"Execution {execution.id} rejected: {error}")
            self._emit_outcome(execution)
            return execution

        # 运行期间定义可能被更新或删除，使用快照
        snapshot = copy.deepcopy(workflow)
        context = ExecutionContext(
            workflow_id=workflow_id,
            execution_id=execution.id,
            variables={**snapshot.variables, **(input_data or {})}
        )
        execution.variables = dict(context.variables)
        await self.execution_repository.save(execution)
        self._active[execution.id] = context.cancellation

        logger.info(f"Starting execution {execution.id} of workflow {workflow_id} ({snapshot.name})")

        task = asyncio.create_task(self._run(snapshot, execution, context))
        self._tasks[execution.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution.id, None))
        if async_mode:
            return execution

        await task
        return execution

    async def _run(self, workflow: Workflow, execution: WorkflowExecution, context: ExecutionContext):
        try:
            await self.scheduler.run(workflow, execution, context)
        finally:
            self._active.pop(execution.id, None)

        await self.execution_repository.save(execution)
        try:
            await self.stats.record(execution)
        except Exception as e:
            logger.error(f"Failed to record stats for execution {execution.id}: {e}", exc_info=True)
        self._emit_outcome(execution)

    def _emit_outcome(self, execution: WorkflowExecution):
        if execution.status == ExecutionStatus.COMPLETED:
            event = WorkflowCompleted(
                workflow_id=execution.workflow_id,
                execution_id=execution.id,
                execution_time=execution.execution_time
            )
        elif execution.status == ExecutionStatus.CANCELLED:
            event = WorkflowCancelled(workflow_id=execution.workflow_id, execution_id=execution.id)
        else:
            event = WorkflowFailed(
                workflow_id=execution.workflow_id,
                execution_id=execution.id,
                error=execution.error or ""
            )
        self.event_bus.emit(event)

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> WorkflowExecution:
        """等待后台执行结束（timeout 单位为秒）"""
        execution = await self.get_execution(execution_id)
        if execution is None:
            raise NotFoundError("execution", execution_id)

        task = self._tasks.get(execution_id)
        if task is not None:
            # 等待超时不取消执行本身
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return execution

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.execution_repository.get(execution_id)

    async def list_executions(self, workflow_id: Optional[str] = None) -> List[WorkflowExecution]:
        """列出执行实例，按开始时间倒序"""
        if workflow_id is not None:
            return await self.execution_repository.list_by_workflow(workflow_id)
        executions = await self.execution_repository.list_all()
        return sorted(executions, key=lambda e: e.started_at, reverse=True)

    async def cancel_execution(self, execution_id: str, reason: str = "Execution cancelled") -> WorkflowExecution:
        """请求取消运行中的执行"""
        execution = await self.execution_repository.get(execution_id)
        if execution is None:
            raise NotFoundError("execution", execution_id)

        token = self._active.get(execution_id)
        if execution.is_terminal_state() or token is None:
            raise WorkflowEngineError(
                f"Cannot cancel execution in state: {execution.status.value}",
                {"execution_id": execution_id, "status": execution.status.value}
            )

        token.cancel(reason)
        logger.info(f"Cancellation requested for execution {execution_id}")
        return execution

    # 统计与事件

    async def get_stats(self) -> Dict[str, Any]:
        workflows = await self.store.list()
        executions = await self.execution_repository.list_all()
        return engine_stats(workflows, executions).to_dict()

    def on(self, event: Union[EventType, str], callback: Callable):
        self.event_bus.on(event, callback)

    def off(self, event: Union[EventType, str], callback: Callable) -> bool:
        return self.event_bus.off(event, callback)
