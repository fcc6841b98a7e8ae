"""
工作流解析器
"""
import copy
import yaml
import json
import re
from datetime import datetime
from typing import Dict, Any, List, Optional, Union
from pathlib import Path

from ..models.workflow import (
    Workflow, Node, Edge, Position, WorkflowSettings, WorkflowMetadata,
    WorkflowStatus, TriggerType, NodeStatus, ErrorHandling
)
from ..exceptions import WorkflowParseError, WorkflowValidationError


_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    """triggerType -> trigger_type"""
    return _CAMEL.sub("_", key).lower()


def to_camel(key: str) -> str:
    """trigger_type -> triggerType"""
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """只转换一层键名，config/variables 等用户数据保持原样"""
    return {to_snake(key): value for key, value in data.items()}


class WorkflowParser:
    """工作流解析器"""

    def __init__(self, default_settings: Optional[WorkflowSettings] = None):
        self.default_settings = default_settings or WorkflowSettings()
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }

    def parse(self, source: Union[str, Path, Dict[str, Any]]) -> Workflow:
        """
        解析工作流定义

        Args:
            source: 工作流定义来源，可以是文件路径、YAML/JSON字符串或字典

        Returns:
            Workflow: 解析后的工作流对象
        """
        if isinstance(source, dict):
            return self.parse_dict(source)

        if isinstance(source, Path):
            return self.parse_file(source)

        if isinstance(source, str):
            if "\n" not in source and len(source) < 4096:
                path = Path(source)
                if path.suffix.lower().lstrip('.') in self.parsers and path.is_file():
                    return self.parse_file(path)
            return self.parse_string(source)

        raise WorkflowParseError(f"Unsupported source type: {type(source).__name__}")

    def parse_file(self, file_path: Union[str, Path]) -> Workflow:
        """解析工作流文件"""
        file_path = Path(file_path)
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise WorkflowParseError(f"Unsupported file format: {suffix}")

        try:
            content = file_path.read_text(encoding='utf-8')
        except OSError as e:
            raise WorkflowParseError(f"Failed to read {file_path}: {e}")

        return self.parse_dict(self.parsers[suffix](content))

    def parse_string(self, content: str) -> Workflow:
        """解析工作流字符串（JSON是YAML的子集，统一按YAML读取）"""
        return self.parse_dict(self._parse_yaml(content))

    def load(self, source: Union[str, Path]) -> Dict[str, Any]:
        """读取文件为原始字典，不做模型转换"""
        path = Path(source)
        suffix = path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise WorkflowParseError(f"Unsupported file format: {suffix}")
        data = self.parsers[suffix](path.read_text(encoding='utf-8'))
        if not isinstance(data, dict):
            raise WorkflowParseError("Workflow definition must be a mapping")
        return data

    def _parse_yaml(self, content: str) -> Dict[str, Any]:
        """解析YAML格式"""
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise WorkflowParseError(f"Failed to parse YAML: {e}")

    def _parse_json(self, content: str) -> Dict[str, Any]:
        """解析JSON格式"""
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise WorkflowParseError(f"Failed to parse JSON: {e}")

    def parse_dict(self, data: Dict[str, Any]) -> Workflow:
        """解析字典格式的工作流定义（不做完整性验证）"""
        if not isinstance(data, dict):
            raise WorkflowParseError("Workflow definition must be a mapping")
        if 'workflow' in data and isinstance(data['workflow'], dict):
            data = data['workflow']

        errors: List[str] = []
        data = normalize_keys(data)

        workflow = Workflow(
            name=str(data.get('name') or ''),
            description=data.get('description'),
            version=str(data.get('version', '1.0.0')),
            status=self._enum(WorkflowStatus, data.get('status', 'draft'), 'status', errors),
            trigger_type=self._enum(TriggerType, data.get('trigger_type', 'manual'), 'trigger_type', errors),
            trigger_config=self._mapping(data.get('trigger_config'), 'trigger_config', errors),
            variables=self._mapping(data.get('variables'), 'variables', errors),
            settings=self.parse_settings(data.get('settings'), errors),
            metadata=self.parse_metadata(data.get('metadata'), errors),
        )
        if data.get('id'):
            workflow.id = str(data['id'])

        for index, node_data in enumerate(data.get('nodes') or []):
            node = self._parse_node(node_data, index, errors)
            if node is not None:
                workflow.nodes.append(node)

        for index, edge_data in enumerate(data.get('edges') or []):
            edge = self._parse_edge(edge_data, index, errors)
            if edge is not None:
                workflow.edges.append(edge)

        if errors:
            raise WorkflowValidationError("Workflow definition is invalid", errors)

        return workflow

    def parse_settings(self, data: Optional[Dict[str, Any]], errors: List[str]) -> WorkflowSettings:
        settings = copy.copy(self.default_settings)
        if data is None:
            return settings
        if not isinstance(data, dict):
            errors.append("settings must be a mapping")
            return settings

        data = normalize_keys(data)
        for key in ('timeout', 'retry_delay'):
            if key in data:
                value = data[key]
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    errors.append(f"settings.{key} must be a number")
                else:
                    setattr(settings, key, float(value))
        if 'retry_attempts' in data:
            value = data['retry_attempts']
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append("settings.retry_attempts must be an integer")
            else:
                settings.retry_attempts = value
        if 'parallel_execution' in data:
            if not isinstance(data['parallel_execution'], bool):
                errors.append("settings.parallel_execution must be a boolean")
            else:
                settings.parallel_execution = data['parallel_execution']
        if 'error_handling' in data:
            settings.error_handling = self._enum(
                ErrorHandling, data['error_handling'], 'settings.error_handling', errors
            )
        return settings

    def parse_metadata(self, data: Optional[Dict[str, Any]], errors: List[str]) -> WorkflowMetadata:
        metadata = WorkflowMetadata()
        if data is None:
            return metadata
        if not isinstance(data, dict):
            errors.append("metadata must be a mapping")
            return metadata

        data = normalize_keys(data)
        if data.get('created_by'):
            metadata.created_by = str(data['created_by'])
        return metadata

    def _parse_node(self, data: Any, index: int, errors: List[str]) -> Optional[Node]:
        """解析节点"""
        if not isinstance(data, dict):
            errors.append(f"nodes[{index}] must be a mapping")
            return None

        data = normalize_keys(data)
        node_id = data.get('id')
        if not node_id:
            errors.append(f"nodes[{index}] is missing an id")
            return None
        if not data.get('type'):
            errors.append(f"Node '{node_id}' is missing a type")
            return None

        position = data.get('position') or {}
        if not isinstance(position, dict):
            errors.append(f"Node '{node_id}' position must be a mapping")
            position = {}

        return Node(
            id=str(node_id),
            type=str(data['type']),
            name=str(data.get('name') or node_id),
            description=data.get('description'),
            position=Position(x=position.get('x', 0.0), y=position.get('y', 0.0)),
            config=self._mapping(data.get('config'), f"Node '{node_id}' config", errors),
            inputs=self._ports(data.get('inputs')),
            outputs=self._ports(data.get('outputs')),
            status=self._enum(NodeStatus, data.get('status', 'pending'), f"Node '{node_id}' status", errors),
        )

    def _parse_edge(self, data: Any, index: int, errors: List[str]) -> Optional[Edge]:
        """解析边，支持 source/target 与 from/to 两种写法"""
        if not isinstance(data, dict):
            errors.append(f"edges[{index}] must be a mapping")
            return None

        data = normalize_keys(data)
        source = data.get('source', data.get('from'))
        target = data.get('target', data.get('to'))
        if not source or not target:
            errors.append(f"edges[{index}] requires both source and target")
            return None

        edge = Edge(
            source=str(source),
            target=str(target),
            source_handle=data.get('source_handle'),
            target_handle=data.get('target_handle'),
            condition=data.get('condition'),
            label=data.get('label'),
            animated=bool(data.get('animated', False)),
        )
        if data.get('id'):
            edge.id = str(data['id'])
        return edge

    def _ports(self, value: Any) -> List[str]:
        # 端口可以是名称列表，也可以是 {id, name, ...} 列表
        ports = []
        for item in value or []:
            if isinstance(item, dict):
                ports.append(str(item.get('id') or item.get('name')))
            else:
                ports.append(str(item))
        return ports

    def _mapping(self, value: Any, label: str, errors: List[str]) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            errors.append(f"{label} must be a mapping")
            return {}
        return dict(value)

    def _enum(self, enum_cls, value: Any, label: str, errors: List[str]):
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            errors.append(f"{label} '{value}' is not one of: {allowed}")
            return list(enum_cls)[0]

    def serialize(self, workflow: Workflow) -> Dict[str, Any]:
        """序列化为可视化编辑器使用的 camelCase 结构"""
        settings = workflow.settings
        metadata = workflow.metadata
        return {
            "id": workflow.id,
            "name": workflow.name,
            "description": workflow.description,
            "version": workflow.version,
            "status": workflow.status.value,
            "triggerType": workflow.trigger_type.value,
            "triggerConfig": dict(workflow.trigger_config),
            "nodes": [
                {
                    "id": node.id,
                    "type": node.type,
                    "name": node.name,
                    "description": node.description,
                    "position": {"x": node.position.x, "y": node.position.y},
                    "config": dict(node.config),
                    "inputs": list(node.inputs),
                    "outputs": list(node.outputs),
                    "status": node.status.value,
                }
                for node in workflow.nodes
            ],
            "edges": [
                {
                    "id": edge.id,
                    "source": edge.source,
                    "target": edge.target,
                    "sourceHandle": edge.source_handle,
                    "targetHandle": edge.target_handle,
                    "condition": edge.condition,
                    "label": edge.label,
                    "animated": edge.animated,
                }
                for edge in workflow.edges
            ],
            "variables": dict(workflow.variables),
            "settings": {
                "timeout": settings.timeout,
                "retryAttempts": settings.retry_attempts,
                "retryDelay": settings.retry_delay,
                "parallelExecution": settings.parallel_execution,
                "errorHandling": settings.error_handling.value,
            },
            "metadata": {
                "createdBy": metadata.created_by,
                "createdAt": _isoformat(metadata.created_at),
                "updatedAt": _isoformat(metadata.updated_at),
                "lastExecuted": _isoformat(metadata.last_executed),
                "executionCount": metadata.execution_count,
                "successRate": metadata.success_rate,
                "averageExecutionTime": metadata.average_execution_time,
            },
        }

    def dump(self, workflow: Workflow, fmt: str = "json") -> str:
        """序列化为 JSON 或 YAML 文本"""
        data = self.serialize(workflow)
        if fmt in ("yaml", "yml"):
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        if fmt == "json":
            return json.dumps(data, indent=2, ensure_ascii=False)
        raise WorkflowParseError(f"Unsupported output format: {fmt}")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
