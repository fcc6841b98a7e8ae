"""
内置节点类型
"""
import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..integrations.channels import Channels
from ..models.execution import ExecutionContext
from ..models.workflow import NodeKind
from .expressions import evaluate
from .registry import NodeCategory, NodePort, NodeType, NodeTypeRegistry


logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_REFERENCE = re.compile(r"^\s*\$\{[^}]+\}\s*$")

_UNIT_MS = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 60000,
    "hours": 3600000,
}


def _is_reference(value: str) -> bool:
    return bool(_REFERENCE.match(value))


# 配置模型

class TriggerConfig(BaseModel):
    title: str = "Manual Trigger"
    description: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class ActionConfig(BaseModel):
    operation: Literal["set_variables", "transform"] = "set_variables"
    assign: Dict[str, Any] = Field(default_factory=dict)
    transformation: Optional[Literal["map", "filter", "reduce", "sort", "custom"]] = None
    input: Any = None
    expression: Optional[str] = None
    initial: Any = None
    output_variable: Optional[str] = None

    @field_validator("expression")
    @classmethod
    def _expression_not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError("expression must not be blank")
        return value


class ConditionConfig(BaseModel):
    expression: str = Field(..., min_length=1)
    variable: Optional[str] = None


class DelayConfig(BaseModel):
    duration: float = Field(5000, ge=0)
    unit: Literal["milliseconds", "seconds", "minutes", "hours"] = "milliseconds"

    @property
    def milliseconds(self) -> float:
        return self.duration * _UNIT_MS[self.unit]


class WebhookConfig(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value):
        if _is_reference(value) or value.startswith(("http://", "https://")):
            return value
        raise ValueError("url must start with http:// or https://")


class AITaskConfig(BaseModel):
    task: Literal["analyze", "generate", "summarize", "translate", "classify"]
    prompt: str
    model: str = "gpt-4"
    temperature: float = Field(0.7, ge=0, le=2)


class EmailConfig(BaseModel):
    to: str
    subject: str
    template: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("to")
    @classmethod
    def _valid_address(cls, value):
        if _is_reference(value) or _EMAIL.match(value):
            return value
        raise ValueError(f"invalid email address: {value}")


class NotificationConfig(BaseModel):
    message: str
    channel: Literal["in_app", "push", "sms", "slack"] = "in_app"
    recipients: List[str] = Field(default_factory=list)


# 处理器

async def execute_trigger(config: TriggerConfig, context: ExecutionContext) -> Dict[str, Any]:
    logger.info(f"Trigger '{config.title}' fired for workflow {context.workflow_id}")
    return {
        "triggered": True,
        "title": config.title,
        "timestamp": datetime.utcnow().isoformat(),
        "payload": dict(config.payload),
    }


async def execute_action(config: ActionConfig, context: ExecutionContext) -> Dict[str, Any]:
    if config.operation == "transform":
        value = _transform(config, context)
        if config.output_variable:
            context.set_variable(config.output_variable, value)
        return {"transformation": config.transformation, "value": value}

    for key, value in config.assign.items():
        context.set_variable(key, value)
    return {"updated": sorted(config.assign), "values": dict(config.assign)}


def _transform(config: ActionConfig, context: ExecutionContext) -> Any:
    """对输入数据做 map/filter/reduce/sort/custom 变换"""
    transformation = config.transformation or "custom"
    expression = config.expression
    data = config.input

    def run(extra: Dict[str, Any]) -> Any:
        return evaluate(expression, context.variables, context.node_results, extra).value

    if transformation == "custom":
        if expression is None:
            return data
        return run({"input": data})

    if not isinstance(data, (list, tuple)):
        raise ValueError(f"{transformation} requires a list input, got {type(data).__name__}")
    items = list(data)

    if transformation == "sort":
        if expression is None:
            return sorted(items)
        return sorted(items, key=lambda item: run({"item": item}))
    if expression is None:
        raise ValueError(f"{transformation} requires an expression")
    if transformation == "map":
        return [run({"item": item}) for item in items]
    if transformation == "filter":
        return [item for item in items if run({"item": item})]

    accumulator = config.initial
    for item in items:
        accumulator = run({"acc": accumulator, "item": item})
    return accumulator


async def execute_condition(config: ConditionConfig, context: ExecutionContext) -> Dict[str, Any]:
    extra = None
    if config.variable:
        extra = {"value": context.get_variable(config.variable)}
    outcome = evaluate(config.expression, context.variables, context.node_results, extra)
    logger.info(f"Condition '{config.expression}' evaluated to {outcome.branch}")
    return {"branch": outcome.branch, "result": outcome.truthy, "expression": config.expression}


async def execute_delay(config: DelayConfig, context: ExecutionContext) -> Dict[str, Any]:
    duration = config.milliseconds
    logger.info(f"Delay node waiting {duration:g}ms")
    await asyncio.sleep(duration / 1000)
    return {"delayed": True, "duration": duration}


def build_builtin_node_types(channels: Optional[Channels] = None) -> List[NodeType]:
    """构建内置节点类型，副作用节点绑定到给定通道"""
    channels = channels or Channels()

    async def execute_webhook(config: WebhookConfig, context: ExecutionContext) -> Dict[str, Any]:
        response = await channels.webhook.request(config.method, config.url, config.headers, config.body)
        status_code = response.get("status_code", 200)
        if status_code >= 400:
            raise RuntimeError(f"Webhook {config.method} {config.url} returned {status_code}")
        return response

    async def execute_ai_task(config: AITaskConfig, context: ExecutionContext) -> Dict[str, Any]:
        return await channels.ai.complete(config.task, config.prompt, config.model, config.temperature)

    async def execute_email(config: EmailConfig, context: ExecutionContext) -> Dict[str, Any]:
        body = config.template or ""
        return await channels.email.send(config.to, config.subject, body, config.variables)

    async def execute_notification(config: NotificationConfig, context: ExecutionContext) -> Dict[str, Any]:
        return await channels.notifier.notify(config.channel, config.message, config.recipients)

    data_in = [NodePort(id="input", name="Input", type="object")]
    data_out = [NodePort(id="output", name="Output", type="object")]

    return [
        NodeType(
            id=NodeKind.TRIGGER.value,
            name="Trigger",
            category=NodeCategory.TRIGGER,
            description="Start the workflow",
            outputs=[NodePort(id="output", name="Trigger", type="object")],
            config_schema=TriggerConfig,
            execute=execute_trigger,
        ),
        NodeType(
            id=NodeKind.ACTION.value,
            name="Action",
            category=NodeCategory.ACTION,
            description="Set variables or transform data",
            inputs=data_in,
            outputs=data_out,
            config_schema=ActionConfig,
            execute=execute_action,
        ),
        NodeType(
            id=NodeKind.CONDITION.value,
            name="Condition",
            category=NodeCategory.LOGIC,
            description="Conditional branching",
            inputs=data_in,
            outputs=[
                NodePort(id="true", name="True", type="object"),
                NodePort(id="false", name="False", type="object"),
            ],
            config_schema=ConditionConfig,
            execute=execute_condition,
        ),
        NodeType(
            id=NodeKind.DELAY.value,
            name="Delay",
            category=NodeCategory.ACTION,
            description="Wait for specified time",
            inputs=data_in,
            outputs=data_out,
            config_schema=DelayConfig,
            execute=execute_delay,
        ),
        NodeType(
            id=NodeKind.WEBHOOK.value,
            name="Webhook",
            category=NodeCategory.ACTION,
            description="Call an external webhook",
            inputs=data_in,
            outputs=[NodePort(id="output", name="Response", type="object")],
            config_schema=WebhookConfig,
            execute=execute_webhook,
        ),
        NodeType(
            id=NodeKind.AI_TASK.value,
            name="AI Task",
            category=NodeCategory.AI,
            description="Execute AI-powered task",
            inputs=[NodePort(id="input", name="Input Data", type="object")],
            outputs=[NodePort(id="output", name="AI Result", type="object")],
            config_schema=AITaskConfig,
            execute=execute_ai_task,
        ),
        NodeType(
            id=NodeKind.EMAIL.value,
            name="Send Email",
            category=NodeCategory.COMMUNICATION,
            description="Send email notification",
            inputs=[NodePort(id="input", name="Data", type="object")],
            outputs=[NodePort(id="output", name="Result", type="object")],
            config_schema=EmailConfig,
            execute=execute_email,
        ),
        NodeType(
            id=NodeKind.NOTIFICATION.value,
            name="Notification",
            category=NodeCategory.COMMUNICATION,
            description="Send an in-app, push, SMS or Slack notification",
            inputs=data_in,
            outputs=data_out,
            config_schema=NotificationConfig,
            execute=execute_notification,
        ),
    ]


def register_builtin_node_types(registry: NodeTypeRegistry, channels: Optional[Channels] = None):
    """把内置节点类型注册到注册表"""
    for node_type in build_builtin_node_types(channels):
        registry.register(node_type)
