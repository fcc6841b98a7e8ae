"""
工作流存储服务

负责工作流定义的创建、更新、删除与验证，写操作按工作流ID串行化。
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from ..exceptions import NotFoundError, UnknownNodeTypeError, WorkflowValidationError
from ..integrations.event_bus import EventBus, WorkflowCreated, WorkflowDeleted, WorkflowUpdated
from ..models.workflow import Workflow, WorkflowMetadata, WorkflowStatus
from ..storage.repository import InMemoryWorkflowRepository, WorkflowRepository
from .parser import WorkflowParser, normalize_keys
from .registry import NodeTypeRegistry


logger = logging.getLogger(__name__)

WorkflowSpec = Union[Dict[str, Any], str, Path, Workflow]

# 合并更新时按键合并的字段
_MERGED_FIELDS = ("settings", "trigger_config")


class WorkflowStore:
    """工作流存储"""

    def __init__(
        self,
        registry: NodeTypeRegistry,
        repository: WorkflowRepository = None,
        event_bus: EventBus = None,
        parser: WorkflowParser = None
    ):
        self.registry = registry
        self.repository = repository or InMemoryWorkflowRepository()
        self.event_bus = event_bus or EventBus()
        self.parser = parser or WorkflowParser()
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def locked(self, workflow_id: str):
        """持有指定工作流的写锁"""
        lock = self._locks.setdefault(workflow_id, asyncio.Lock())
        async with lock:
            yield

    def release_lock(self, workflow_id: str):
        """丢弃已删除工作流的锁，正被持有的锁保留"""
        lock = self._locks.get(workflow_id)
        if lock is not None and not lock.locked():
            del self._locks[workflow_id]

    async def create(self, spec: WorkflowSpec, created_by: Optional[str] = None) -> Workflow:
        """验证并保存新工作流"""
        workflow = self._to_workflow(spec)

        # 调用方提供的 id 一律忽略
        workflow.id = str(uuid4())
        workflow.metadata = WorkflowMetadata(
            created_by=created_by or workflow.metadata.created_by or "system"
        )

        self.validate(workflow)

        async with self.locked(workflow.id):
            if await self.repository.exists(workflow.id):
                raise WorkflowValidationError(f"Workflow id already exists: {workflow.id}")
            await self.repository.save(workflow)

        logger.info(f"Workflow created: {workflow.id} ({workflow.name})")
        self.event_bus.emit(WorkflowCreated(workflow_id=workflow.id, name=workflow.name))
        return workflow

    async def update(self, workflow_id: str, partial: Dict[str, Any]) -> Workflow:
        """合并字段、重新验证并保存"""
        if not isinstance(partial, dict):
            raise WorkflowValidationError("Workflow update must be a mapping")

        async with self.locked(workflow_id):
            existing = await self.repository.get(workflow_id)
            if existing is None:
                raise NotFoundError("workflow", workflow_id)

            merged = self._merge(existing, partial)
            updated = self.parser.parse_dict(merged)
            updated.id = existing.id
            updated.metadata = existing.metadata
            owner = normalize_keys(partial.get("metadata") or {}).get("created_by")

            self.validate(updated)

            if owner:
                updated.metadata.created_by = str(owner)
            updated.metadata.updated_at = datetime.utcnow()
            await self.repository.update(updated)

        logger.info(f"Workflow updated: {workflow_id}")
        self.event_bus.emit(WorkflowUpdated(workflow_id=workflow_id))
        return updated

    async def delete(self, workflow_id: str) -> bool:
        """删除工作流，返回是否存在"""
        async with self.locked(workflow_id):
            deleted = await self.repository.delete(workflow_id)
        if not deleted:
            return False

        self.release_lock(workflow_id)
        logger.info(f"Workflow deleted: {workflow_id}")
        self.event_bus.emit(WorkflowDeleted(workflow_id=workflow_id))
        return True

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        return await self.repository.get(workflow_id)

    async def list(self, status: Optional[Union[WorkflowStatus, str]] = None) -> List[Workflow]:
        filters = {}
        if status is not None:
            filters["status"] = WorkflowStatus(status)
        return await self.repository.list(filters=filters)

    async def list_by_owner(self, owner_id: str) -> List[Workflow]:
        return await self.repository.list(filters={"created_by": owner_id})

    def validate(self, workflow: Workflow):
        """完整验证：结构、边引用、节点类型与节点配置"""
        for node in workflow.nodes:
            if node.type not in self.registry:
                raise UnknownNodeTypeError(node.type, node.id)

        errors = workflow.validate()
        for node in workflow.nodes:
            errors.extend(
                self.registry.validate_config(node.type, node.config, prefix=f"nodes.{node.id}.config")
            )

        # 触发器只能作为入口
        for edge in workflow.edges:
            target = workflow.get_node(edge.target)
            if target is not None and self.registry.get(target.type).is_trigger:
                errors.append(
                    f"Edge {edge.source} -> {edge.target} points into trigger node '{edge.target}'"
                )

        if errors:
            raise WorkflowValidationError("Workflow validation failed", errors)

    def _to_workflow(self, spec: WorkflowSpec) -> Workflow:
        if isinstance(spec, Workflow):
            # 存储持有独立副本
            return self.parser.parse_dict(self.parser.serialize(spec))
        return self.parser.parse(spec)

    def _merge(self, existing: Workflow, partial: Dict[str, Any]) -> Dict[str, Any]:
        base = normalize_keys(self.parser.serialize(existing))
        base["settings"] = normalize_keys(base["settings"])
        changes = normalize_keys(partial)

        for key, value in changes.items():
            if key in ("id", "metadata"):
                continue
            if key in _MERGED_FIELDS and isinstance(value, dict):
                incoming = normalize_keys(value) if key == "settings" else value
                base[key] = {**base.get(key, {}), **incoming}
            else:
                base[key] = value

        base.pop("metadata", None)
        return base
