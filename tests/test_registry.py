"""
节点类型注册表与内置节点测试
"""
import pytest
from pydantic import BaseModel

from automation_engine.core.nodes import (
    ActionConfig, DelayConfig, execute_action, execute_condition, register_builtin_node_types
)
from automation_engine.core.registry import NodeCategory, NodeType, NodeTypeRegistry
from automation_engine.exceptions import UnknownNodeTypeError, WorkflowValidationError
from automation_engine.integrations import Channels
from automation_engine.models.execution import ExecutionContext


class EchoConfig(BaseModel):
    text: str = "hello"


def echo(config, context):
    return {"text": config.text}


@pytest.fixture
def registry():
    registry = NodeTypeRegistry()
    register_builtin_node_types(registry, Channels())
    return registry


@pytest.fixture
def context():
    return ExecutionContext(workflow_id="wf", execution_id="ex", variables={"items": [3, 1, 2]})


class TestNodeTypeRegistry:
    """注册、查找与配置验证"""

    def test_builtin_types_registered(self, registry):
        assert [t.id for t in registry.list()] == [
            "action", "ai_task", "condition", "delay", "email", "notification", "trigger", "webhook"
        ]
        assert registry.lookup("trigger").is_trigger
        assert registry.lookup("condition").category == NodeCategory.LOGIC

    def test_register_overwrites(self, registry):
        registry.register(NodeType(id="echo", name="Echo", category=NodeCategory.ACTION,
                                   config_schema=EchoConfig, execute=echo))
        registry.register(NodeType(id="echo", name="Echo v2", category=NodeCategory.ACTION,
                                   config_schema=EchoConfig, execute=echo))

        assert registry.lookup("echo").name == "Echo v2"
        assert len(registry) == 9

    def test_invalid_node_type_rejected(self, registry):
        with pytest.raises(WorkflowValidationError) as exc_info:
            registry.register(NodeType(id="", name="Bad", category=NodeCategory.ACTION,
                                       config_schema=dict, execute="nope"))

        assert len(exc_info.value.errors) == 3

    def test_lookup_unknown(self, registry):
        with pytest.raises(UnknownNodeTypeError):
            registry.lookup("teleport")
        assert registry.get("teleport") is None
        assert "teleport" not in registry

    def test_unregister(self, registry):
        assert registry.unregister("delay") is True
        assert registry.unregister("delay") is False
        assert "delay" not in registry

    def test_validate_config_returns_errors(self, registry):
        assert registry.validate_config("delay", {"duration": 10}) == []
        errors = registry.validate_config("delay", {"duration": -1, "unit": "days"})
        assert len(errors) == 2
        assert registry.validate_config("teleport", {}) == ["Unknown node type: teleport"]

    def test_parse_config_applies_defaults(self, registry):
        config = registry.parse_config("ai_task", {"task": "summarize", "prompt": "p"})

        assert config.model == "gpt-4"
        assert config.temperature == 0.7

    def test_to_dict_includes_schema(self, registry):
        data = registry.lookup("notification").to_dict()

        assert data["category"] == "communication"
        assert "message" in data["config_schema"]["properties"]
        assert data["supports_compensation"] is False


class TestBuiltinHandlers:
    """内置处理器"""

    def test_delay_units(self):
        assert DelayConfig(duration=2, unit="seconds").milliseconds == 2000
        assert DelayConfig().milliseconds == 5000

    @pytest.mark.asyncio
    async def test_action_sets_variables(self, context):
        result = await execute_action(ActionConfig(assign={"a": 1, "b": "x"}), context)

        assert result == {"updated": ["a", "b"], "values": {"a": 1, "b": "x"}}
        assert context.get_variable("a") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("transformation, expression, expected", [
        ("map", "item * 10", [30, 10, 20]),
        ("filter", "item > 1", [3, 2]),
        ("reduce", "acc + item", 6),
        ("sort", None, [1, 2, 3]),
        ("custom", "len(input)", 3),
    ])
    async def test_action_transform(self, context, transformation, expression, expected):
        config = ActionConfig(
            operation="transform",
            transformation=transformation,
            input=[3, 1, 2],
            expression=expression,
            initial=0,
            output_variable="out",
        )

        result = await execute_action(config, context)

        assert result["value"] == expected
        assert context.get_variable("out") == expected

    @pytest.mark.asyncio
    async def test_condition_with_bound_variable(self, registry, context):
        config = registry.parse_config("condition", {"expression": "len(value) == 3", "variable": "items"})

        result = await execute_condition(config, context)

        assert result == {"branch": "true", "result": True, "expression": "len(value) == 3"}
