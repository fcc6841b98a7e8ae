"""
节点类型注册表
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type
from enum import Enum
import inspect
import logging
import threading

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..exceptions import UnknownNodeTypeError, WorkflowValidationError


logger = logging.getLogger(__name__)


class NodeCategory(str, Enum):
    """节点类别"""
    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"
    COMMUNICATION = "communication"
    AI = "ai"


@dataclass
class NodePort:
    """节点端口（仅描述用途，运行时不校验）"""
    id: str
    name: str
    type: str = "object"  # string / number / boolean / object / array
    required: bool = True


@dataclass
class NodeType:
    """节点类型定义"""
    id: str
    name: str
    category: NodeCategory
    config_schema: Type[BaseModel]
    execute: Callable[..., Any]
    description: str = ""
    inputs: List[NodePort] = field(default_factory=list)
    outputs: List[NodePort] = field(default_factory=list)
    compensate: Optional[Callable[..., Any]] = None  # 回滚时调用

    @property
    def is_trigger(self) -> bool:
        return self.category == NodeCategory.TRIGGER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "description": self.description,
            "inputs": [port.__dict__.copy() for port in self.inputs],
            "outputs": [port.__dict__.copy() for port in self.outputs],
            "config_schema": self.config_schema.model_json_schema(),
            "supports_compensation": self.compensate is not None,
        }


def format_validation_errors(error: PydanticValidationError, prefix: str = "") -> List[str]:
    """把 pydantic 错误转成 "字段: 信息" 列表"""
    errors = []
    for item in error.errors():
        field_path = ".".join(str(loc) for loc in item["loc"])
        if prefix:
            field_path = f"{prefix}.{field_path}" if field_path else prefix
        errors.append(f"{field_path}: {item['msg']}")
    return errors


class NodeTypeRegistry:
    """节点类型注册表"""

    def __init__(self):
        self._types: Dict[str, NodeType] = {}
        self._lock = threading.RLock()

    def register(self, node_type: NodeType):
        """注册节点类型，同ID重复注册会覆盖"""
        errors = []
        if not node_type.id or not node_type.id.strip():
            errors.append("Node type id must not be empty")
        if not callable(node_type.execute):
            errors.append(f"Node type '{node_type.id}' execute must be callable")
        if not (inspect.isclass(node_type.config_schema) and issubclass(node_type.config_schema, BaseModel)):
            errors.append(f"Node type '{node_type.id}' config_schema must be a pydantic model class")
        if node_type.compensate is not None and not callable(node_type.compensate):
            errors.append(f"Node type '{node_type.id}' compensate must be callable")
        if errors:
            raise WorkflowValidationError("Invalid node type", errors)

        with self._lock:
            if node_type.id in self._types:
                logger.info(f"Overwriting node type: {node_type.id}")
            self._types[node_type.id] = node_type

        logger.info(f"Registered node type: {node_type.id} ({node_type.name})")

    def unregister(self, type_id: str) -> bool:
        """注销节点类型"""
        with self._lock:
            removed = self._types.pop(type_id, None)
        if removed:
            logger.info(f"Unregistered node type: {type_id}")
        return removed is not None

    def lookup(self, type_id: str) -> NodeType:
        """获取节点类型，不存在时抛出 UnknownNodeTypeError"""
        node_type = self._types.get(type_id)
        if node_type is None:
            raise UnknownNodeTypeError(type_id)
        return node_type

    def get(self, type_id: str) -> Optional[NodeType]:
        return self._types.get(type_id)

    def list(self) -> List[NodeType]:
        return sorted(self._types.values(), key=lambda t: t.id)

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def validate_config(self, type_id: str, config: Dict[str, Any], prefix: str = "") -> List[str]:
        """
        按节点类型的配置模型验证配置

        Returns:
            错误列表，验证通过时为空
        """
        node_type = self.get(type_id)
        if node_type is None:
            return [f"Unknown node type: {type_id}"]

        try:
            node_type.config_schema.model_validate(config or {})
        except PydanticValidationError as e:
            return format_validation_errors(e, prefix)
        return []

    def parse_config(self, type_id: str, config: Dict[str, Any]) -> BaseModel:
        """把原始配置解析为类型化的配置对象"""
        node_type = self.lookup(type_id)
        try:
            return node_type.config_schema.model_validate(config or {})
        except PydanticValidationError as e:
            raise WorkflowValidationError(
                f"Invalid config for node type '{type_id}'",
                format_validation_errors(e)
            )
