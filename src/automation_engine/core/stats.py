"""
执行统计聚合
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List

from ..models.execution import ExecutionStatus, WorkflowExecution
from ..models.workflow import Workflow, WorkflowMetadata, WorkflowStatus
from .store import WorkflowStore


logger = logging.getLogger(__name__)


@dataclass
class EngineStats:
    """引擎整体统计"""
    total_workflows: int = 0
    active_workflows: int = 0
    total_executions: int = 0
    successful_executions: int = 0
    average_execution_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatsAggregator:
    """把执行结果累计到工作流元数据上"""

    def __init__(self, store: WorkflowStore):
        self.store = store

    async def record(self, execution: WorkflowExecution) -> bool:
        """
        记录一次终止状态的执行

        Returns:
            是否已记录；工作流在执行期间被删除时返回 False
        """
        async with self.store.locked(execution.workflow_id):
            workflow = await self.store.repository.get(execution.workflow_id)
            if workflow is not None:
                self._apply(workflow.metadata, execution)
                await self.store.repository.update(workflow)

        if workflow is None:
            # 删除之后的加锁会重新创建锁对象
            self.store.release_lock(execution.workflow_id)
            logger.warning(
                f"Workflow {execution.workflow_id} was deleted before stats of "
                f"execution {execution.id} could be recorded"
            )
            return False

        logger.debug(
            f"Workflow {workflow.id} stats: count={workflow.metadata.execution_count}, "
            f"success_rate={workflow.metadata.success_rate:.2f}"
        )
        return True

    @staticmethod
    def _apply(metadata: WorkflowMetadata, execution: WorkflowExecution):
        """按运行平均值累计成功率与耗时"""
        metadata.execution_count += 1
        count = metadata.execution_count
        succeeded = 1.0 if execution.status == ExecutionStatus.COMPLETED else 0.0

        metadata.success_rate = (metadata.success_rate * (count - 1) + succeeded) / count
        metadata.average_execution_time = (
            metadata.average_execution_time * (count - 1) + execution.execution_time
        ) / count
        metadata.last_executed = execution.completed_at


def engine_stats(workflows: List[Workflow], executions: List[WorkflowExecution]) -> EngineStats:
    """汇总全部工作流与执行记录"""
    finished = [e for e in executions if e.is_terminal_state()]
    average = sum(e.execution_time for e in finished) / len(finished) if finished else 0.0
    return EngineStats(
        total_workflows=len(workflows),
        active_workflows=sum(1 for w in workflows if w.status == WorkflowStatus.ACTIVE),
        total_executions=len(executions),
        successful_executions=sum(1 for e in executions if e.status == ExecutionStatus.COMPLETED),
        average_execution_time=average,
    )
