"""
执行调度器

按波次（wave）推进工作流图：每一轮扫描找出依赖已满足的节点，
整波执行完毕后再进入下一轮。
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel

from ..exceptions import (
    CircularDependencyError, NodeExecutionError, WorkflowCancelledError,
    WorkflowEngineError, WorkflowTimeoutError, WorkflowValidationError
)
from ..models.execution import ExecutionContext, NodeExecution, WorkflowExecution
from ..models.workflow import Edge, ErrorHandling, Node, NodeStatus, Workflow
from .expressions import evaluate, is_branch_label
from .registry import NodeCategory, NodeType, NodeTypeRegistry


logger = logging.getLogger(__name__)

_TERMINAL = (NodeStatus.COMPLETED, NodeStatus.SKIPPED, NodeStatus.FAILED)


@dataclass
class _RunState:
    """单次运行的调度状态"""
    remaining: Set[str]
    completion_order: List[str] = field(default_factory=list)
    configs: Dict[str, BaseModel] = field(default_factory=dict)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ExecutionScheduler:
    """执行调度器"""

    def __init__(self, registry: NodeTypeRegistry):
        self.registry = registry

    async def run(self, workflow: Workflow, execution: WorkflowExecution, context: ExecutionContext):
        """
        执行工作流，结果写回 execution

        不抛出业务异常：失败、超时与取消都记录为 execution 的终止状态。
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + workflow.settings.timeout / 1000
        state = _RunState(remaining={node.id for node in workflow.nodes})

        for node in workflow.nodes:
            execution.node_executions[node.id] = NodeExecution(node_id=node.id)

        try:
            await self._run_waves(workflow, execution, context, state, deadline)
        except WorkflowCancelledError as e:
            self._abort_running(execution, e)
            execution.cancel(str(e))
            logger.info(f"Execution {execution.id} cancelled: {e}")
        except NodeExecutionError as e:
            if workflow.settings.error_handling == ErrorHandling.ROLLBACK:
                await self._compensate(workflow, execution, context, state)
            execution.fail(e)
            logger.error(f"Execution {execution.id} failed: {e}")
        except WorkflowEngineError as e:
            self._abort_running(execution, e)
            execution.fail(e)
            logger.error(f"Execution {execution.id} failed: {e}")
        except Exception as e:
            self._abort_running(execution, e)
            execution.fail(e)
            logger.error(f"Unexpected error in execution {execution.id}: {e}", exc_info=True)
        else:
            execution.complete()
            logger.info(f"Execution {execution.id} completed in {execution.execution_time:.1f}ms")
        finally:
            execution.node_results = dict(context.node_results)
            execution.variables = dict(context.variables)

    async def _run_waves(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState,
        deadline: float
    ):
        wave = self._trigger_nodes(workflow)
        if not wave:
            raise WorkflowValidationError("No trigger nodes found in workflow")

        while wave:
            self._check_interrupted(context, workflow, deadline)
            state.remaining.difference_update(wave)

            logger.debug(f"Execution {execution.id} running wave: {', '.join(wave)}")
            await self._race(
                self._run_wave(wave, workflow, execution, context, state),
                context, workflow, deadline
            )

            if not state.remaining:
                break
            wave = self._next_wave(workflow, execution, context, state)

    def _trigger_nodes(self, workflow: Workflow) -> List[str]:
        triggers = []
        for node in workflow.nodes:
            node_type = self.registry.get(node.type)
            if node_type is not None and node_type.category == NodeCategory.TRIGGER:
                triggers.append(node.id)
        return sorted(triggers)

    def _next_wave(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState
    ) -> List[str]:
        """扫描剩余节点，返回就绪节点；只剩不活跃入边的节点就地跳过"""
        ready = []
        skipped = False

        for node_id in sorted(state.remaining):
            inbound = workflow.inbound_edges(node_id)
            if not all(self._is_terminal(execution, edge.source) for edge in inbound):
                continue
            if inbound and not any(self._edge_active(edge, execution, context, state) for edge in inbound):
                execution.node_executions[node_id].skip()
                state.remaining.discard(node_id)
                skipped = True
                logger.info(f"Node {node_id} skipped: no active inbound edges")
                continue
            ready.append(node_id)

        if not ready and not skipped and state.remaining:
            raise CircularDependencyError(list(state.remaining))
        if not ready and state.remaining:
            # 本轮跳过的节点可能让后续节点就绪
            return self._next_wave(workflow, execution, context, state)
        return ready

    def _is_terminal(self, execution: WorkflowExecution, node_id: str) -> bool:
        record = execution.node_executions.get(node_id)
        return record is not None and record.status in _TERMINAL

    def _edge_active(
        self,
        edge: Edge,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState
    ) -> bool:
        record = execution.node_executions[edge.source]
        if record.status != NodeStatus.COMPLETED:
            return False

        if record.branch is not None:
            handle = edge.source_handle
            if handle is None and is_branch_label(edge.condition):
                handle = edge.condition.strip().lower()
            if handle is not None and handle != record.branch:
                return False

        if edge.condition and not is_branch_label(edge.condition):
            return evaluate(edge.condition, context.variables, context.node_results).truthy
        return True

    async def _run_wave(
        self,
        wave: List[str],
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState
    ):
        if workflow.settings.parallel_execution and len(wave) > 1:
            outcomes = await asyncio.gather(
                *(self._execute_node(workflow.get_node(node_id), workflow, execution, context, state)
                  for node_id in wave),
                return_exceptions=True
            )
        else:
            outcomes = []
            for node_id in wave:
                try:
                    await self._execute_node(workflow.get_node(node_id), workflow, execution, context, state)
                except Exception as e:
                    outcomes.append(e)
                    if not self._tolerated(e, workflow):
                        break
                else:
                    outcomes.append(None)

        for node_id, outcome in zip(wave, outcomes):
            if outcome is None:
                continue
            if self._tolerated(outcome, workflow):
                execution.node_executions[node_id].skip_after_failure()
                logger.warning(f"Node {node_id} failed, continuing: {outcome}")
                continue
            raise outcome

    def _tolerated(self, error: BaseException, workflow: Workflow) -> bool:
        return (
            isinstance(error, NodeExecutionError)
            and workflow.settings.error_handling == ErrorHandling.CONTINUE
        )

    async def _execute_node(
        self,
        node: Node,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState
    ):
        """执行单个节点，按设置重试"""
        node_type = self.registry.lookup(node.type)
        record = execution.node_executions[node.id]
        settings = workflow.settings
        max_attempts = settings.retry_attempts + 1

        record.start()
        logger.info(f"Executing node {node.id} ({node.type})")

        last_error: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            record.attempts = attempt
            try:
                config = self.registry.parse_config(node.type, context.resolve(node.config))
                result = await _maybe_await(node_type.execute(config, context))
            except Exception as e:
                last_error = e
                logger.warning(f"Node {node.id} attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts and settings.retry_delay > 0:
                    await asyncio.sleep(settings.retry_delay / 1000)
                continue

            context.record_result(node.id, result)
            state.configs[node.id] = config
            state.completion_order.append(node.id)
            if node_type.category == NodeCategory.LOGIC and isinstance(result, dict) and "branch" in result:
                record.branch = str(result["branch"]).lower()
            record.complete()
            logger.info(f"Node {node.id} completed in {record.duration:.1f}ms")
            return

        record.fail(last_error)
        raise NodeExecutionError(node.id, record.attempts, last_error)

    async def _race(self, wave, context: ExecutionContext, workflow: Workflow, deadline: float):
        """等待整波完成，期间响应取消与超时"""
        loop = asyncio.get_running_loop()
        wave_task = asyncio.ensure_future(wave)
        cancel_task = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {wave_task, cancel_task},
                timeout=max(deadline - loop.time(), 0),
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()

        if wave_task in done:
            return wave_task.result()

        wave_task.cancel()
        try:
            await wave_task
        except asyncio.CancelledError:
            pass
        self._check_interrupted(context, workflow, deadline, expired=True)

    def _check_interrupted(
        self,
        context: ExecutionContext,
        workflow: Workflow,
        deadline: float,
        expired: bool = False
    ):
        if context.cancellation.cancelled:
            raise WorkflowCancelledError(context.cancellation.reason or "Execution cancelled")
        if expired or asyncio.get_running_loop().time() >= deadline:
            raise WorkflowTimeoutError(workflow.settings.timeout)

    def _abort_running(self, execution: WorkflowExecution, error: BaseException):
        for record in execution.node_executions.values():
            if record.status == NodeStatus.RUNNING:
                record.fail(error)

    async def _compensate(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        state: _RunState
    ):
        """按完成顺序的逆序调用补偿处理器"""
        for node_id in reversed(state.completion_order):
            node_type: Optional[NodeType] = self.registry.get(workflow.get_node(node_id).type)
            if node_type is None or node_type.compensate is None:
                continue
            try:
                await _maybe_await(
                    node_type.compensate(state.configs[node_id], context, context.get_node_result(node_id))
                )
            except Exception as e:
                logger.error(f"Compensation for node {node_id} failed: {e}", exc_info=True)
                continue
            execution.node_executions[node_id].compensated = True
            logger.info(f"Node {node_id} compensated")
