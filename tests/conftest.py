"""
Pytest 配置和公共 fixtures
"""
import pytest
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from automation_engine.config import Settings
from automation_engine.core.engine import WorkflowEngine
from automation_engine.core.registry import NodeCategory, NodeType
from automation_engine.integrations import Channels, EventBus


class FreeConfig(BaseModel):
    """测试节点使用的宽松配置"""
    model_config = ConfigDict(extra="allow")

    fail_times: int = 0
    value: Any = None


class Recorder:
    """记录测试节点的调用顺序"""

    def __init__(self):
        self.calls: List[str] = []
        self.compensated: List[str] = []
        self.failures: Dict[str, int] = {}


def build_test_node_types(recorder: Recorder) -> List[NodeType]:
    """测试专用节点类型：record / flaky / boom"""

    async def record(config: FreeConfig, context):
        recorder.calls.append(str(config.value))
        return {"value": config.value}

    def flaky(config: FreeConfig, context):
        key = str(config.value)
        seen = recorder.failures.get(key, 0)
        if seen < config.fail_times:
            recorder.failures[key] = seen + 1
            raise RuntimeError(f"flaky failure {seen + 1}")
        return {"value": config.value, "failures": seen}

    def boom(config: FreeConfig, context):
        raise RuntimeError("boom")

    def undo(config: FreeConfig, context, result):
        recorder.compensated.append(str(config.value))

    return [
        NodeType(id="record", name="Record", category=NodeCategory.ACTION,
                 config_schema=FreeConfig, execute=record, compensate=undo),
        NodeType(id="flaky", name="Flaky", category=NodeCategory.ACTION,
                 config_schema=FreeConfig, execute=flaky),
        NodeType(id="boom", name="Boom", category=NodeCategory.ACTION,
                 config_schema=FreeConfig, execute=boom),
    ]


@pytest.fixture
def settings() -> Settings:
    """重试无延迟的测试配置"""
    return Settings(default_retry_attempts=0, default_retry_delay_ms=0)


@pytest.fixture
def channels() -> Channels:
    return Channels()


@pytest.fixture
def event_bus() -> EventBus:
    """创建事件总线"""
    return EventBus()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def engine(settings, channels, event_bus, recorder) -> WorkflowEngine:
    """创建使用内存存储的工作流引擎，并注册测试节点类型"""
    engine = WorkflowEngine(event_bus=event_bus, channels=channels, settings=settings)
    for node_type in build_test_node_types(recorder):
        engine.register_node_type(node_type)
    return engine


def make_workflow(
    nodes: List[Dict[str, Any]],
    edges: Optional[List[Dict[str, Any]]] = None,
    name: str = "Test Workflow",
    **settings: Any
) -> Dict[str, Any]:
    """构造工作流定义，默认带一个 start 触发节点"""
    return {
        "name": name,
        "triggerType": "manual",
        "nodes": [{"id": "start", "type": "trigger", "config": {}}] + list(nodes),
        "edges": list(edges or []),
        "settings": settings,
    }


@pytest.fixture
def sample_workflow() -> Dict[str, Any]:
    """示例工作流：触发 -> 条件 -> 两个分支"""
    return {
        "name": "Order Review",
        "description": "Route large orders to manual review",
        "triggerType": "manual",
        "variables": {"amount": 50},
        "nodes": [
            {"id": "start", "type": "trigger", "name": "Start", "config": {"title": "New order"}},
            {"id": "check", "type": "condition", "config": {"expression": "amount > 100"}},
            {"id": "review", "type": "notification",
             "config": {"message": "Review order of ${amount}", "channel": "slack"}},
            {"id": "approve", "type": "action", "config": {"assign": {"approved": True}}},
        ],
        "edges": [
            {"source": "start", "target": "check"},
            {"source": "check", "target": "review", "sourceHandle": "true"},
            {"source": "check", "target": "approve", "sourceHandle": "false"},
        ],
        "settings": {"retryAttempts": 0, "retryDelay": 0},
        "metadata": {"createdBy": "alice"},
    }


@pytest.fixture
def workflow_factory():
    return make_workflow
